"""Shared codec error definitions."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class CodecError(ValueError):
    code: str
    message: str

    def __str__(self) -> str:  # noqa: D401 override
        return f"{self.code}: {self.message}"


class DecodeError(CodecError):
    """Raised when a QR string cannot be turned into a payload."""


class EncodeError(CodecError):
    """Raised when a payload cannot be rendered into a QR string."""


def err_malformed_header(message: str | None = None) -> CodecError:
    return CodecError(code="ERR_MALFORMED_HEADER", message=message or "Invalid TLV header")


def err_truncated(message: str | None = None) -> CodecError:
    return CodecError(code="ERR_TRUNCATED_FRAGMENT", message=message or "Declared length exceeds remaining slice")


def err_unknown_subtag(message: str | None = None) -> CodecError:
    return CodecError(code="ERR_UNKNOWN_SUBTAG", message=message or "Unknown sub-tag")


def err_field_length(message: str | None = None) -> CodecError:
    return CodecError(code="ERR_FIELD_LENGTH", message=message or "Field exceeds maximum length")


def err_field_format(message: str | None = None) -> CodecError:
    return CodecError(code="ERR_FIELD_FORMAT", message=message or "Field has an invalid format")


def err_missing_field(message: str | None = None) -> CodecError:
    return CodecError(code="ERR_MISSING_FIELD", message=message or "Required field is missing")


def err_conflicting_account(message: str | None = None) -> CodecError:
    return CodecError(
        code="ERR_CONFLICTING_ACCOUNT",
        message=message or "Multiple merchant account types found",
    )


def err_invalid_currency(message: str | None = None) -> CodecError:
    return CodecError(code="ERR_INVALID_CURRENCY", message=message or "Invalid currency code")


def err_invalid_amount(message: str | None = None) -> CodecError:
    return CodecError(code="ERR_INVALID_AMOUNT", message=message or "Invalid amount")


def err_amount_below_minimum(message: str | None = None) -> CodecError:
    return CodecError(code="ERR_AMOUNT_BELOW_MINIMUM", message=message or "Amount is below the currency minimum")


def err_timestamp_order(message: str | None = None) -> CodecError:
    return CodecError(
        code="ERR_TIMESTAMP_ORDER",
        message=message or "Expiration timestamp is before creation timestamp",
    )


def err_timestamp_expired(message: str | None = None) -> CodecError:
    return CodecError(code="ERR_TIMESTAMP_EXPIRED", message=message or "Expiration timestamp is already in the past")


def err_payload_too_large(message: str | None = None) -> CodecError:
    return CodecError(code="ERR_PAYLOAD_TOO_LARGE", message=message or "QR string length exceeds maximum allowed")


def err_checksum_mismatch(message: str | None = None) -> CodecError:
    return CodecError(code="ERR_CHECKSUM_MISMATCH", message=message or "CRC does not match payload")
