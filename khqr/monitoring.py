"""Monitoring helpers and Prometheus metrics for codec operations."""
from __future__ import annotations

from typing import Final

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

_CODEC_OPERATIONS_TOTAL: Final = Counter(
    "khqr_codec_operations_total",
    "Total encode/decode calls",
    labelnames=("operation", "outcome"),
)
_CODEC_DURATION: Final = Histogram(
    "khqr_codec_duration_seconds",
    "Latency of encode/decode calls",
    labelnames=("operation",),
    buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05),
)
_CODEC_ERRORS_TOTAL: Final = Counter(
    "khqr_codec_errors_total",
    "Codec errors by code",
    labelnames=("code", "operation"),
)


def observe_operation(operation: str, outcome: str, duration_ms: float) -> None:
    _CODEC_OPERATIONS_TOTAL.labels(operation=operation, outcome=outcome).inc()
    _CODEC_DURATION.labels(operation=operation).observe(duration_ms / 1000)


def record_codec_error(code: str, operation: str) -> None:
    _CODEC_ERRORS_TOTAL.labels(code=code, operation=operation).inc()


def metrics_payload() -> tuple[bytes, str]:
    """Return Prometheus exposition payload and content type."""

    return generate_latest(), CONTENT_TYPE_LATEST
