"""KHQR payload decoder and encoder with CRC16 handling."""
from __future__ import annotations

import logging
import time
from datetime import datetime

from pydantic import ValidationError

from .config import settings
from .crc import crc16_ccitt
from .errors import (
    CodecError,
    DecodeError,
    EncodeError,
    err_checksum_mismatch,
    err_conflicting_account,
    err_missing_field,
    err_payload_too_large,
)
from .models import (
    INITIATION_DYNAMIC,
    INITIATION_STATIC,
    AdditionalDataTemplate,
    Clock,
    Currency,
    DynamicQR,
    IndividualAccount,
    KHQRPayload,
    LanguageTemplate,
    MerchantAccount,
    StaticQR,
    TimestampWindow,
    parse_amount,
    utc_now,
)
from .monitoring import observe_operation, record_codec_error
from .tags import Tag
from .tlv import TLVItem, build_tlv, scan_tlv

logger = logging.getLogger("khqr.codec")

MAX_QR_LENGTH = 256
PAYLOAD_FORMAT_INDICATOR = "01"
COUNTRY_CODE = "KH"
CRC_HEADER = f"{Tag.CRC.code:02d}04"

_INITIATION_METHODS = {INITIATION_STATIC: True, INITIATION_DYNAMIC: False}


def decode(qr: str, *, clock: Clock = utc_now) -> KHQRPayload:
    """Parse a KHQR string into a validated payload.

    Raises :class:`DecodeError` on any malformed, inconsistent or expired input.
    """

    start = time.perf_counter()
    try:
        payload = _decode(qr, now=clock())
    except (CodecError, ValidationError) as exc:
        error = _classify(DecodeError, exc)
        _record_failure("decode", error, start)
        if error is exc:
            raise
        raise error from exc

    observe_operation("decode", "ok", (time.perf_counter() - start) * 1000)
    logger.debug("qr decoded", extra={"static": payload.is_static, "currency": payload.currency.name})
    return payload


def encode(payload: KHQRPayload) -> str:
    """Render a payload into a KHQR string terminated by its CRC."""

    start = time.perf_counter()
    try:
        qr = _encode(payload)
    except (CodecError, ValidationError) as exc:
        error = _classify(EncodeError, exc)
        _record_failure("encode", error, start)
        if error is exc:
            raise
        raise error from exc

    observe_operation("encode", "ok", (time.perf_counter() - start) * 1000)
    logger.debug("qr encoded", extra={"length": len(qr)})
    return qr


def verify_checksum(qr: str) -> bool:
    """Return True when ``qr`` ends with a tag 63 fragment matching its content."""

    if len(qr) < len(CRC_HEADER) + 4 or qr[-8:-4] != CRC_HEADER:
        return False
    return crc16_ccitt(qr[:-4]) == qr[-4:].upper()


def _classify(error_cls: type[CodecError], exc: CodecError | ValidationError) -> CodecError:
    if isinstance(exc, error_cls):
        return exc
    if isinstance(exc, CodecError):
        return error_cls(code=exc.code, message=exc.message)
    for detail in exc.errors():
        cause = detail.get("ctx", {}).get("error")
        if isinstance(cause, CodecError):
            return error_cls(code=cause.code, message=cause.message)
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return error_cls(code="ERR_INVALID_FIELD", message=f"{location}: {first['msg']}" if location else first["msg"])


def _record_failure(operation: str, error: CodecError, start: float) -> None:
    logger.warning("codec operation failed", extra={"operation": operation, "code": error.code, "detail": error.message})
    record_codec_error(error.code, operation)
    observe_operation(operation, "error", (time.perf_counter() - start) * 1000)


def _decode(qr: str, *, now: datetime) -> KHQRPayload:
    if len(qr) > MAX_QR_LENGTH:
        raise err_payload_too_large(f"QR string length {len(qr)} exceeds maximum allowed {MAX_QR_LENGTH}")

    is_static: bool | None = None
    currency: Currency | None = None
    amount_raw: str | None = None
    merchant_category_code: str | None = None
    merchant_name: str | None = None
    merchant_city: str | None = None
    additional_data: AdditionalDataTemplate | None = None
    timestamps: TimestampWindow | None = None
    unionpay_merchant: str | None = None
    language_template: LanguageTemplate | None = None
    account: IndividualAccount | MerchantAccount | None = None
    crc: str | None = None

    for item in scan_tlv(qr):
        tag, value = item.tag, item.value
        if tag is Tag.POINT_OF_INITIATION_METHOD:
            is_static = _INITIATION_METHODS.get(value)
        elif tag is Tag.TRANSACTION_CURRENCY:
            currency = Currency.from_code(value)
        elif tag is Tag.TRANSACTION_AMOUNT:
            amount_raw = value
        elif tag is Tag.MERCHANT_NAME:
            merchant_name = value
        elif tag is Tag.MERCHANT_CATEGORY_CODE:
            merchant_category_code = value
        elif tag is Tag.MERCHANT_CITY:
            merchant_city = value
        elif tag is Tag.ADDITIONAL_DATA_TEMPLATE:
            additional_data = AdditionalDataTemplate.from_tlv(value)
        elif tag is Tag.TIMESTAMP_FIELD:
            timestamps = TimestampWindow.from_tlv(value, now=now)
        elif tag is Tag.UNIONPAY_MERCHANT:
            unionpay_merchant = value
        elif tag is Tag.LANGUAGE_TEMPLATE:
            language_template = LanguageTemplate.from_tlv(value)
        elif tag is Tag.INDIVIDUAL_ACCOUNT:
            if account is not None:
                raise err_conflicting_account("Multiple merchant account types found (Individual + Merchant)")
            account = IndividualAccount.from_tlv(value)
        elif tag is Tag.MERCHANT_ACCOUNT:
            if account is not None:
                raise err_conflicting_account("Multiple merchant account types found (Merchant + Individual)")
            account = MerchantAccount.from_tlv(value)
        elif tag is Tag.CRC:
            crc = value

    if crc is not None and settings.verify_checksum:
        _check_crc(qr, crc)

    initiation = _resolve_initiation(is_static, currency, amount_raw, timestamps)

    if account is None:
        raise err_missing_field("Missing merchant account information")
    if merchant_name is None:
        raise err_missing_field("Missing merchant name")

    return KHQRPayload(
        initiation=initiation,
        account=account,
        merchant_category_code=merchant_category_code,
        merchant_name=merchant_name,
        merchant_city=merchant_city,
        additional_data=additional_data,
        unionpay_merchant=unionpay_merchant,
        language_template=language_template,
    )


def _resolve_initiation(
    is_static: bool | None,
    currency: Currency | None,
    amount_raw: str | None,
    timestamps: TimestampWindow | None,
) -> StaticQR | DynamicQR:
    if is_static is None:
        return StaticQR(currency=Currency.KHR)
    if is_static:
        if currency is None:
            raise err_missing_field("Missing currency for static QR")
        return StaticQR(currency=currency)

    if currency is None:
        raise err_missing_field("Missing currency for dynamic QR")
    if amount_raw is None:
        raise err_missing_field("Missing amount for dynamic QR")
    return DynamicQR(amount=parse_amount(currency, amount_raw), timestamps=timestamps)


def _check_crc(qr: str, crc: str) -> None:
    if not qr.endswith(CRC_HEADER + crc):
        raise err_checksum_mismatch("CRC must be the last field of the payload")
    expected = crc16_ccitt(qr[:-len(crc)])
    if expected != crc.upper():
        raise err_checksum_mismatch(f"CRC mismatch: calculated {expected}, found {crc}")


def _encode(payload: KHQRPayload) -> str:
    initiation = payload.initiation
    items: list[TLVItem] = [
        TLVItem(tag=Tag.PAYLOAD_FORMAT_INDICATOR, value=PAYLOAD_FORMAT_INDICATOR),
        TLVItem(tag=Tag.POINT_OF_INITIATION_METHOD, value=initiation.method_code),
        payload.account.to_item(),
    ]
    if payload.merchant_category_code is not None:
        items.append(TLVItem(tag=Tag.MERCHANT_CATEGORY_CODE, value=payload.merchant_category_code))
    items.append(payload.currency.to_item())
    if payload.unionpay_merchant is not None:
        items.append(TLVItem(tag=Tag.UNIONPAY_MERCHANT, value=payload.unionpay_merchant))
    if isinstance(initiation, DynamicQR):
        items.append(initiation.amount.to_item())
    items.append(TLVItem(tag=Tag.COUNTRY_CODE, value=COUNTRY_CODE))
    items.append(TLVItem(tag=Tag.MERCHANT_NAME, value=payload.merchant_name))
    merchant_city = payload.merchant_city if payload.merchant_city is not None else settings.default_merchant_city
    items.append(TLVItem(tag=Tag.MERCHANT_CITY, value=merchant_city))
    if payload.additional_data is not None:
        items.append(payload.additional_data.to_item())
    if payload.language_template is not None:
        items.append(payload.language_template.to_item())
    if isinstance(initiation, DynamicQR) and initiation.timestamps is not None:
        items.append(initiation.timestamps.to_item())

    crc_input = f"{build_tlv(items)}{CRC_HEADER}"
    qr = f"{crc_input}{crc16_ccitt(crc_input)}"
    if len(qr) > MAX_QR_LENGTH:
        raise err_payload_too_large(f"Encoded QR length {len(qr)} exceeds maximum allowed {MAX_QR_LENGTH}")
    return qr
