"""Shared fixtures for the KHQR codec test-suite."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable

import pytest

from khqr.models import (
    AdditionalDataTemplate,
    Currency,
    DynamicQR,
    IndividualAccount,
    KHQRPayload,
    LanguageTemplate,
    MerchantAccount,
    StaticQR,
    TimestampWindow,
    UsdAmount,
)

NOW = datetime(2026, 1, 15, 8, 30, tzinfo=timezone.utc)


def _tlv(code: int, value: str) -> str:
    return f"{code:02d}{len(value):02d}{value}"


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: NOW


@pytest.fixture
def tlv() -> Callable[[int, str], str]:
    """Hand-rolled fragment builder, independent of the code under test."""

    return _tlv


@pytest.fixture
def individual_account() -> IndividualAccount:
    return IndividualAccount(
        account_id="john_smith@devb",
        account_information="85512233455",
        acquiring_bank="Dev Bank",
    )


@pytest.fixture
def merchant_account() -> MerchantAccount:
    return MerchantAccount(
        account_id="coffee_shop@aclb",
        merchant_id="123456",
        acquiring_bank="ACLEDA Bank",
    )


@pytest.fixture
def static_payload(individual_account: IndividualAccount) -> KHQRPayload:
    return KHQRPayload(
        initiation=StaticQR(currency=Currency.KHR),
        account=individual_account,
        merchant_name="John Smith",
        merchant_city="Phnom Penh",
    )


@pytest.fixture
def dynamic_payload(merchant_account: MerchantAccount, clock) -> KHQRPayload:
    return KHQRPayload(
        initiation=DynamicQR(
            amount=UsdAmount(value=Decimal("2.50")),
            timestamps=TimestampWindow.expiring_in(timedelta(minutes=15), clock=clock),
        ),
        account=merchant_account,
        merchant_category_code="5999",
        merchant_name="Coffee Shop",
        merchant_city="Siem Reap",
        additional_data=AdditionalDataTemplate(bill_number="INV-001", mobile_number="85512345678"),
        unionpay_merchant="UP123456789",
        language_template=LanguageTemplate(
            language_preference="km",
            merchant_name_alternate_language="Kafe",
            merchant_city_alternate_language="Siem Reap",
        ),
    )
