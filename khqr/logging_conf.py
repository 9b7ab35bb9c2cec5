"""Logging setup for applications embedding the codec.

The codec only emits through named loggers under ``khqr``; nothing is
configured until the host calls :func:`configure_logging`.
"""
from __future__ import annotations

import json
import logging
from logging.config import dictConfig
from typing import Any

from .config import LoggingConfig, settings

CODEC_LOGGER = "khqr"
TEXT_FORMAT = "%(levelname)s %(name)s %(message)s"

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RECORD_ATTRIBUTES = frozenset(vars(logging.LogRecord("", logging.NOTSET, "", 0, "", None, None))) | {"message"}


class JsonFormatter(logging.Formatter):
    """Render a record as one JSON object, folding ``extra=`` fields into it."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update((key, value) for key, value in vars(record).items() if key not in _RECORD_ATTRIBUTES)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(config: LoggingConfig | None = None) -> None:
    """Install a stream handler on the root logger and set the codec log level.

    ``config`` defaults to the ``logging`` section of the loaded settings.
    """

    config = config or settings.logging
    formatter: dict[str, Any] = {"()": JsonFormatter} if config.json_logs else {"format": TEXT_FORMAT}
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"codec": formatter},
            "handlers": {
                "stream": {
                    "class": "logging.StreamHandler",
                    "formatter": "codec",
                }
            },
            "loggers": {CODEC_LOGGER: {"level": config.level}},
            "root": {"handlers": ["stream"], "level": config.level},
        }
    )
