"""Typed KHQR payload models.

Every container knows how to build itself from the value of its TLV fragment
(``from_tlv``) and how to render itself back into one (``to_item``). Decoding
checks run before a model is constructed so failures keep their error code;
the model validators hold the same invariants for callers that build payloads
by hand.
"""
from __future__ import annotations

import enum
import re
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Callable, Iterable, Literal, Union

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import (
    err_amount_below_minimum,
    err_field_format,
    err_invalid_amount,
    err_invalid_currency,
    err_missing_field,
    err_timestamp_expired,
    err_timestamp_order,
)
from .tags import SubTag, Tag
from .tlv import TLVItem, build_tlv, scan_tlv

Clock = Callable[[], datetime]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MILLISECOND = timedelta(milliseconds=1)

KHR_MINIMUM = 100
USD_MINIMUM = Decimal("0.10")
_CENT = Decimal("0.01")
_DECIMAL_AMOUNT = re.compile(r"[0-9]+(\.[0-9]*)?|\.[0-9]+")

INITIATION_STATIC = "11"
INITIATION_DYNAMIC = "12"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_millis(moment: datetime) -> int:
    return (moment - EPOCH) // _MILLISECOND


def from_millis(millis: int) -> datetime:
    return EPOCH + millis * _MILLISECOND


def check_account_id(value: str) -> str:
    if value.count("@") != 1:
        raise err_field_format("Bakong account identifier must contain exactly one '@'")
    return value


def _scan_fields(value: str, parent: Tag) -> dict[str, str]:
    # SubTag values double as model field names.
    return {item.tag.value: item.value for item in scan_tlv(value, parent)}


def _container(parent: Tag, fields: Iterable[tuple[SubTag, str | None]]) -> TLVItem:
    inner = build_tlv(
        TLVItem(tag=sub_tag, value=value, parent=parent) for sub_tag, value in fields if value is not None
    )
    return TLVItem(tag=parent, value=inner)


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class IndividualAccount(FrozenModel):
    kind: Literal["individual"] = "individual"
    account_id: str
    account_information: str | None = None
    acquiring_bank: str | None = None

    @field_validator("account_id")
    @classmethod
    def check_account_id_format(cls, value: str) -> str:
        return check_account_id(value)

    @classmethod
    def from_tlv(cls, value: str) -> IndividualAccount:
        fields = _scan_fields(value, Tag.INDIVIDUAL_ACCOUNT)
        if not fields.get("account_id"):
            raise err_missing_field("Bakong account identifier is required but missing")
        check_account_id(fields["account_id"])
        return cls(**fields)

    def to_item(self) -> TLVItem:
        check_account_id(self.account_id)
        return _container(
            Tag.INDIVIDUAL_ACCOUNT,
            [
                (SubTag.ACCOUNT_ID, self.account_id),
                (SubTag.ACCOUNT_INFORMATION, self.account_information),
                (SubTag.ACQUIRING_BANK, self.acquiring_bank),
            ],
        )


class MerchantAccount(FrozenModel):
    kind: Literal["merchant"] = "merchant"
    account_id: str
    merchant_id: str = Field(min_length=1)
    acquiring_bank: str = Field(min_length=1)

    @field_validator("account_id")
    @classmethod
    def check_account_id_format(cls, value: str) -> str:
        return check_account_id(value)

    @classmethod
    def from_tlv(cls, value: str) -> MerchantAccount:
        fields = _scan_fields(value, Tag.MERCHANT_ACCOUNT)
        if not fields.get("account_id"):
            raise err_missing_field("Bakong account identifier is required but missing")
        if not fields.get("merchant_id"):
            raise err_missing_field("Merchant identifier is required but missing")
        if not fields.get("acquiring_bank"):
            raise err_missing_field("Acquiring bank is required but missing")
        check_account_id(fields["account_id"])
        return cls(**fields)

    def to_item(self) -> TLVItem:
        check_account_id(self.account_id)
        return _container(
            Tag.MERCHANT_ACCOUNT,
            [
                (SubTag.ACCOUNT_ID, self.account_id),
                (SubTag.MERCHANT_ID, self.merchant_id),
                (SubTag.ACQUIRING_BANK, self.acquiring_bank),
            ],
        )


MerchantAccountVariant = Annotated[Union[IndividualAccount, MerchantAccount], Field(discriminator="kind")]


class AdditionalDataTemplate(FrozenModel):
    bill_number: str | None = None
    store_label: str | None = None
    terminal_label: str | None = None
    mobile_number: str | None = None
    purpose_of_transaction: str | None = None

    @classmethod
    def from_tlv(cls, value: str) -> AdditionalDataTemplate:
        return cls(**_scan_fields(value, Tag.ADDITIONAL_DATA_TEMPLATE))

    def to_item(self) -> TLVItem:
        return _container(
            Tag.ADDITIONAL_DATA_TEMPLATE,
            [
                (SubTag.BILL_NUMBER, self.bill_number),
                (SubTag.MOBILE_NUMBER, self.mobile_number),
                (SubTag.STORE_LABEL, self.store_label),
                (SubTag.TERMINAL_LABEL, self.terminal_label),
                (SubTag.PURPOSE_OF_TRANSACTION, self.purpose_of_transaction),
            ],
        )


class TimestampWindow(FrozenModel):
    """Creation/expiration pair carried by dynamic QR codes (tag 99)."""

    creation: AwareDatetime
    expiration: AwareDatetime

    @field_validator("creation", "expiration")
    @classmethod
    def truncate_to_millis(cls, value: datetime) -> datetime:
        return from_millis(to_millis(value))

    @model_validator(mode="after")
    def check_order(self) -> TimestampWindow:
        if self.expiration < self.creation:
            raise err_timestamp_order()
        return self

    @classmethod
    def expiring_at(cls, expiration: datetime, *, clock: Clock = utc_now) -> TimestampWindow:
        """Stamp creation from ``clock`` and expire at ``expiration``."""

        return cls(creation=clock(), expiration=expiration)

    @classmethod
    def expiring_in(cls, ttl: timedelta, *, clock: Clock = utc_now) -> TimestampWindow:
        creation = clock()
        return cls(creation=creation, expiration=creation + ttl)

    @classmethod
    def from_tlv(cls, value: str, *, now: datetime) -> TimestampWindow:
        fields = _scan_fields(value, Tag.TIMESTAMP_FIELD)
        if "creation_timestamp" not in fields:
            raise err_missing_field("Missing creation timestamp")
        if "expiration_timestamp" not in fields:
            raise err_missing_field("Missing expiration timestamp")

        creation = from_millis(int(fields["creation_timestamp"]))
        expiration = from_millis(int(fields["expiration_timestamp"]))
        if expiration < creation:
            raise err_timestamp_order()
        if expiration < now:
            raise err_timestamp_expired()
        return cls(creation=creation, expiration=expiration)

    def to_item(self) -> TLVItem:
        return _container(
            Tag.TIMESTAMP_FIELD,
            [
                (SubTag.CREATION_TIMESTAMP, str(to_millis(self.creation))),
                (SubTag.EXPIRATION_TIMESTAMP, str(to_millis(self.expiration))),
            ],
        )


class LanguageTemplate(FrozenModel):
    language_preference: str = Field(min_length=1)
    merchant_name_alternate_language: str = Field(min_length=1)
    merchant_city_alternate_language: str = Field(min_length=1)

    @classmethod
    def from_tlv(cls, value: str) -> LanguageTemplate:
        fields = _scan_fields(value, Tag.LANGUAGE_TEMPLATE)
        for name in cls.model_fields:
            if not fields.get(name):
                raise err_missing_field(f"Language template field {name} is required but missing")
        return cls(**fields)

    def to_item(self) -> TLVItem:
        return _container(
            Tag.LANGUAGE_TEMPLATE,
            [
                (SubTag.LANGUAGE_PREFERENCE, self.language_preference),
                (SubTag.MERCHANT_NAME_ALTERNATE_LANGUAGE, self.merchant_name_alternate_language),
                (SubTag.MERCHANT_CITY_ALTERNATE_LANGUAGE, self.merchant_city_alternate_language),
            ],
        )


class Currency(str, enum.Enum):
    KHR = "116"
    USD = "840"

    @classmethod
    def from_code(cls, code: str) -> Currency:
        try:
            return cls(code)
        except ValueError:
            raise err_invalid_currency(f"Invalid currency code '{code}'") from None

    def to_item(self) -> TLVItem:
        return TLVItem(tag=Tag.TRANSACTION_CURRENCY, value=self.value)


def _check_khr_minimum(amount: int) -> int:
    if amount < KHR_MINIMUM:
        raise err_amount_below_minimum(f"KHR amount must be at least {KHR_MINIMUM}, got {amount}")
    return amount


def _check_usd_minimum(amount: Decimal) -> Decimal:
    if amount < USD_MINIMUM:
        raise err_amount_below_minimum(f"USD amount must be at least {USD_MINIMUM}, got {amount}")
    return amount


class KhrAmount(FrozenModel):
    """Whole riel amount."""

    currency: Literal[Currency.KHR] = Currency.KHR
    value: int

    @field_validator("value")
    @classmethod
    def check_minimum(cls, value: int) -> int:
        return _check_khr_minimum(value)

    @classmethod
    def parse(cls, raw: str) -> KhrAmount:
        if not (raw.isascii() and raw.isdigit()):
            raise err_invalid_amount(f"Invalid KHR amount '{raw}'")
        return cls(value=_check_khr_minimum(int(raw)))

    def render(self) -> str:
        return str(self.value)

    def to_item(self) -> TLVItem:
        return TLVItem(tag=Tag.TRANSACTION_AMOUNT, value=self.render())


class UsdAmount(FrozenModel):
    """Dollar amount, held and rendered at cent precision."""

    currency: Literal[Currency.USD] = Currency.USD
    value: Decimal

    @field_validator("value")
    @classmethod
    def check_minimum(cls, value: Decimal) -> Decimal:
        return _check_usd_minimum(value).quantize(_CENT, rounding=ROUND_HALF_UP)

    @classmethod
    def parse(cls, raw: str) -> UsdAmount:
        if not _DECIMAL_AMOUNT.fullmatch(raw):
            raise err_invalid_amount(f"Invalid USD amount '{raw}'")
        try:
            amount = Decimal(raw)
        except InvalidOperation:
            raise err_invalid_amount(f"Invalid USD amount '{raw}'") from None
        return cls(value=_check_usd_minimum(amount))

    def render(self) -> str:
        return format(self.value, "f")

    def to_item(self) -> TLVItem:
        return TLVItem(tag=Tag.TRANSACTION_AMOUNT, value=self.render())


TransactionAmount = Annotated[Union[KhrAmount, UsdAmount], Field(discriminator="currency")]


def parse_amount(currency: Currency, raw: str) -> KhrAmount | UsdAmount:
    """Parse a tag 54 value according to the declared currency."""

    if currency is Currency.KHR:
        return KhrAmount.parse(raw)
    return UsdAmount.parse(raw)


class StaticQR(FrozenModel):
    kind: Literal["static"] = "static"
    currency: Currency = Currency.KHR

    @property
    def method_code(self) -> str:
        return INITIATION_STATIC


class DynamicQR(FrozenModel):
    kind: Literal["dynamic"] = "dynamic"
    amount: TransactionAmount
    timestamps: TimestampWindow | None = None

    @property
    def method_code(self) -> str:
        return INITIATION_DYNAMIC

    @property
    def currency(self) -> Currency:
        return self.amount.currency


InitiationMethod = Annotated[Union[StaticQR, DynamicQR], Field(discriminator="kind")]


class KHQRPayload(FrozenModel):
    """Fully validated KHQR payload.

    A ``merchant_city`` of ``None`` is encoded as the configured default city,
    so decoding that QR returns the default city rather than ``None``.
    """

    initiation: InitiationMethod
    account: MerchantAccountVariant
    merchant_category_code: str | None = None
    merchant_name: str
    merchant_city: str | None = None
    additional_data: AdditionalDataTemplate | None = None
    unionpay_merchant: str | None = None
    language_template: LanguageTemplate | None = None

    @property
    def currency(self) -> Currency:
        return self.initiation.currency

    @property
    def is_static(self) -> bool:
        return isinstance(self.initiation, StaticQR)
