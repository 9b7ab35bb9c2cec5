"""KHQR tag and sub-tag taxonomy with per-field validation rules."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Literal

from .errors import err_field_format, err_field_length

Charset = Literal["digits", "alpha"]


@dataclass(frozen=True)
class FieldRule:
    """Length and format constraint for a single field value.

    ``exact_length`` replaces the ``max_length`` check when it is set.
    """

    max_length: int
    exact_length: int | None = None
    charset: Charset | None = None

    def check(self, label: str, value: str) -> None:
        if self.exact_length is not None:
            if len(value) != self.exact_length:
                unit = "digits" if self.charset == "digits" else "characters"
                raise err_field_format(f"{label} must be exactly {self.exact_length} {unit}")
        elif len(value) > self.max_length:
            raise err_field_length(f"{label} exceeds max length {self.max_length}")

        if self.charset == "digits" and not (value.isascii() and value.isdigit()):
            raise err_field_format(f"{label} must contain only digits")
        if self.charset == "alpha" and not (value.isascii() and value.isalpha()):
            raise err_field_format(f"{label} must contain only alphabetic characters")


class Tag(int, enum.Enum):
    PAYLOAD_FORMAT_INDICATOR = 0
    POINT_OF_INITIATION_METHOD = 1
    UNIONPAY_MERCHANT = 15
    INDIVIDUAL_ACCOUNT = 29
    MERCHANT_ACCOUNT = 30
    MERCHANT_CATEGORY_CODE = 52
    TRANSACTION_CURRENCY = 53
    TRANSACTION_AMOUNT = 54
    COUNTRY_CODE = 58
    MERCHANT_NAME = 59
    MERCHANT_CITY = 60
    ADDITIONAL_DATA_TEMPLATE = 62
    CRC = 63
    LANGUAGE_TEMPLATE = 64
    TIMESTAMP_FIELD = 99

    @property
    def code(self) -> int:
        return self.value

    @property
    def rule(self) -> FieldRule:
        return _TAG_RULES.get(self, _CONTAINER_RULE)

    @property
    def max_length(self) -> int:
        return self.rule.max_length

    @classmethod
    def from_code(cls, code: int) -> Tag | None:
        try:
            return cls(code)
        except ValueError:
            return None

    def validate(self, value: str) -> None:
        self.rule.check(self.name, value)


_CONTAINER_RULE = FieldRule(max_length=99)

_TAG_RULES: dict[Tag, FieldRule] = {
    Tag.PAYLOAD_FORMAT_INDICATOR: FieldRule(max_length=2),
    Tag.POINT_OF_INITIATION_METHOD: FieldRule(max_length=2),
    Tag.MERCHANT_CATEGORY_CODE: FieldRule(max_length=4, exact_length=4, charset="digits"),
    Tag.TRANSACTION_CURRENCY: FieldRule(max_length=3),
    Tag.TRANSACTION_AMOUNT: FieldRule(max_length=14),
    Tag.COUNTRY_CODE: FieldRule(max_length=3),
    Tag.MERCHANT_NAME: FieldRule(max_length=25),
    Tag.MERCHANT_CITY: FieldRule(max_length=15),
    Tag.CRC: FieldRule(max_length=4),
}


class SubTag(enum.Enum):
    """Field identities that only have meaning inside a parent container.

    Numeric codes are reused across containers, so a sub-tag is resolved from
    the ``(parent, code)`` pair and never from the code alone.
    """

    ACCOUNT_ID = "account_id"
    ACCOUNT_INFORMATION = "account_information"
    MERCHANT_ID = "merchant_id"
    ACQUIRING_BANK = "acquiring_bank"
    BILL_NUMBER = "bill_number"
    MOBILE_NUMBER = "mobile_number"
    STORE_LABEL = "store_label"
    TERMINAL_LABEL = "terminal_label"
    PURPOSE_OF_TRANSACTION = "purpose_of_transaction"
    LANGUAGE_PREFERENCE = "language_preference"
    MERCHANT_NAME_ALTERNATE_LANGUAGE = "merchant_name_alternate_language"
    MERCHANT_CITY_ALTERNATE_LANGUAGE = "merchant_city_alternate_language"
    CREATION_TIMESTAMP = "creation_timestamp"
    EXPIRATION_TIMESTAMP = "expiration_timestamp"

    @property
    def rule(self) -> FieldRule:
        return _SUBTAG_RULES[self]

    @property
    def max_length(self) -> int:
        return self.rule.max_length

    def code_in(self, parent: Tag) -> int:
        try:
            return _SUBTAG_CODES[(parent, self)]
        except KeyError:
            raise ValueError(f"{self.name} is not defined inside {parent.name}") from None

    @classmethod
    def from_code(cls, parent: Tag, code: int) -> SubTag | None:
        return _SUBTAG_SCOPES.get((parent, code))

    def validate(self, value: str) -> None:
        self.rule.check(self.name, value)


_SUBTAG_RULES: dict[SubTag, FieldRule] = {
    SubTag.ACCOUNT_ID: FieldRule(max_length=32),
    SubTag.ACCOUNT_INFORMATION: FieldRule(max_length=32),
    SubTag.MERCHANT_ID: FieldRule(max_length=32),
    SubTag.ACQUIRING_BANK: FieldRule(max_length=32),
    SubTag.BILL_NUMBER: FieldRule(max_length=25),
    SubTag.MOBILE_NUMBER: FieldRule(max_length=25, charset="digits"),
    SubTag.STORE_LABEL: FieldRule(max_length=25),
    SubTag.TERMINAL_LABEL: FieldRule(max_length=25),
    SubTag.PURPOSE_OF_TRANSACTION: FieldRule(max_length=25),
    SubTag.LANGUAGE_PREFERENCE: FieldRule(max_length=2, exact_length=2, charset="alpha"),
    SubTag.MERCHANT_NAME_ALTERNATE_LANGUAGE: FieldRule(max_length=25),
    SubTag.MERCHANT_CITY_ALTERNATE_LANGUAGE: FieldRule(max_length=15),
    SubTag.CREATION_TIMESTAMP: FieldRule(max_length=13, exact_length=13, charset="digits"),
    SubTag.EXPIRATION_TIMESTAMP: FieldRule(max_length=13, exact_length=13, charset="digits"),
}

_SUBTAG_SCOPES: dict[tuple[Tag, int], SubTag] = {
    (Tag.INDIVIDUAL_ACCOUNT, 0): SubTag.ACCOUNT_ID,
    (Tag.INDIVIDUAL_ACCOUNT, 1): SubTag.ACCOUNT_INFORMATION,
    (Tag.INDIVIDUAL_ACCOUNT, 2): SubTag.ACQUIRING_BANK,
    (Tag.MERCHANT_ACCOUNT, 0): SubTag.ACCOUNT_ID,
    (Tag.MERCHANT_ACCOUNT, 1): SubTag.MERCHANT_ID,
    (Tag.MERCHANT_ACCOUNT, 2): SubTag.ACQUIRING_BANK,
    (Tag.ADDITIONAL_DATA_TEMPLATE, 1): SubTag.BILL_NUMBER,
    (Tag.ADDITIONAL_DATA_TEMPLATE, 2): SubTag.MOBILE_NUMBER,
    (Tag.ADDITIONAL_DATA_TEMPLATE, 3): SubTag.STORE_LABEL,
    (Tag.ADDITIONAL_DATA_TEMPLATE, 7): SubTag.TERMINAL_LABEL,
    (Tag.ADDITIONAL_DATA_TEMPLATE, 8): SubTag.PURPOSE_OF_TRANSACTION,
    (Tag.LANGUAGE_TEMPLATE, 0): SubTag.LANGUAGE_PREFERENCE,
    (Tag.LANGUAGE_TEMPLATE, 1): SubTag.MERCHANT_NAME_ALTERNATE_LANGUAGE,
    (Tag.LANGUAGE_TEMPLATE, 2): SubTag.MERCHANT_CITY_ALTERNATE_LANGUAGE,
    (Tag.TIMESTAMP_FIELD, 0): SubTag.CREATION_TIMESTAMP,
    (Tag.TIMESTAMP_FIELD, 1): SubTag.EXPIRATION_TIMESTAMP,
}

_SUBTAG_CODES: dict[tuple[Tag, SubTag], int] = {
    (parent, sub_tag): code for (parent, code), sub_tag in _SUBTAG_SCOPES.items()
}
