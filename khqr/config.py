"""Codec configuration utilities."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", description="Root logger level")
    json_logs: bool = Field(default=True, description="Enable JSON formatted logs")


class Settings(BaseSettings):
    """Central codec settings loaded from ``KHQR_`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="KHQR_",
        env_nested_delimiter="__",
        env_file=(Path(__file__).resolve().parent.parent / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    verify_checksum: bool = Field(default=True, description="Reject decoded payloads whose tag 63 does not match")
    default_merchant_city: str = Field(default="Phnom Penh", min_length=1, max_length=15)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return memoized codec settings."""

    return Settings()


settings = get_settings()
