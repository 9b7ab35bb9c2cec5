from datetime import timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError

from khqr.errors import CodecError
from khqr.models import (
    Currency,
    DynamicQR,
    IndividualAccount,
    KhrAmount,
    KHQRPayload,
    LanguageTemplate,
    MerchantAccount,
    StaticQR,
    TimestampWindow,
    UsdAmount,
    from_millis,
    parse_amount,
    to_millis,
)


class TestAmounts:
    def test_khr_minimum_is_inclusive(self):
        assert KhrAmount(value=100).render() == "100"
        with pytest.raises(ValidationError) as excinfo:
            KhrAmount(value=99)
        assert "at least 100" in str(excinfo.value)

    def test_usd_minimum_is_inclusive(self):
        assert UsdAmount(value=Decimal("0.10")).render() == "0.10"
        with pytest.raises(ValidationError):
            UsdAmount(value=Decimal("0.09"))

    def test_usd_minimum_is_checked_before_rounding(self):
        with pytest.raises(ValidationError):
            UsdAmount(value=Decimal("0.095"))

    def test_usd_value_is_held_at_cent_precision(self):
        assert UsdAmount(value=Decimal("1.005")).value == Decimal("1.01")
        assert UsdAmount(value=Decimal("1.005")) == UsdAmount(value=Decimal("1.01"))

    @pytest.mark.parametrize(
        ("value", "rendered"),
        [("12.5", "12.50"), ("3", "3.00"), ("1.005", "1.01"), ("1.004", "1.00"), ("1000", "1000.00")],
    )
    def test_usd_always_renders_two_decimals(self, value, rendered):
        assert UsdAmount(value=Decimal(value)).render() == rendered

    def test_parse_khr(self):
        assert parse_amount(Currency.KHR, "5000") == KhrAmount(value=5000)
        with pytest.raises(CodecError) as excinfo:
            parse_amount(Currency.KHR, "99")
        assert excinfo.value.code == "ERR_AMOUNT_BELOW_MINIMUM"
        assert "99" in excinfo.value.message

    @pytest.mark.parametrize("raw", ["abc", "10.5", "-100", ""])
    def test_parse_khr_rejects_non_integers(self, raw):
        with pytest.raises(CodecError) as excinfo:
            KhrAmount.parse(raw)
        assert excinfo.value.code == "ERR_INVALID_AMOUNT"

    def test_parse_usd(self):
        assert parse_amount(Currency.USD, "0.10").value == Decimal("0.10")
        with pytest.raises(CodecError) as excinfo:
            parse_amount(Currency.USD, "0.09")
        assert excinfo.value.code == "ERR_AMOUNT_BELOW_MINIMUM"

    @pytest.mark.parametrize("raw", ["ten", "-1.00", "1.2.3", "NaN", "", "１.00"])
    def test_parse_usd_rejects_non_numeric(self, raw):
        with pytest.raises(CodecError) as excinfo:
            UsdAmount.parse(raw)
        assert excinfo.value.code == "ERR_INVALID_AMOUNT"

    def test_currency_codes(self):
        assert Currency.from_code("116") is Currency.KHR
        assert Currency.from_code("840") is Currency.USD
        with pytest.raises(CodecError) as excinfo:
            Currency.from_code("978")
        assert excinfo.value.code == "ERR_INVALID_CURRENCY"


class TestAccounts:
    @pytest.mark.parametrize("account_id", ["john_smith", "john@smith@devb"])
    def test_account_id_needs_exactly_one_at_sign(self, account_id):
        with pytest.raises(ValidationError):
            IndividualAccount(account_id=account_id)
        with pytest.raises(ValidationError):
            MerchantAccount(account_id=account_id, merchant_id="1", acquiring_bank="Bank")

    def test_merchant_fields_are_required(self):
        with pytest.raises(ValidationError):
            MerchantAccount(account_id="shop@bank", merchant_id="", acquiring_bank="Bank")
        with pytest.raises(ValidationError):
            MerchantAccount(account_id="shop@bank", merchant_id="1")

    def test_individual_from_tlv(self, tlv):
        account = IndividualAccount.from_tlv(tlv(0, "john_smith@devb") + tlv(2, "Dev Bank"))
        assert account == IndividualAccount(account_id="john_smith@devb", acquiring_bank="Dev Bank")

    def test_individual_from_tlv_requires_account_id(self, tlv):
        with pytest.raises(CodecError) as excinfo:
            IndividualAccount.from_tlv(tlv(2, "Dev Bank"))
        assert excinfo.value.code == "ERR_MISSING_FIELD"

    def test_merchant_from_tlv_rejects_individual_only_sub_tag(self, tlv):
        with pytest.raises(CodecError) as excinfo:
            MerchantAccount.from_tlv(tlv(0, "shop@bank") + tlv(3, "extra"))
        assert excinfo.value.code == "ERR_UNKNOWN_SUBTAG"

    def test_merchant_from_tlv_requires_acquiring_bank(self, tlv):
        with pytest.raises(CodecError) as excinfo:
            MerchantAccount.from_tlv(tlv(0, "shop@bank") + tlv(1, "123"))
        assert excinfo.value.code == "ERR_MISSING_FIELD"
        assert "Acquiring bank" in excinfo.value.message

    def test_to_item_uses_variant_tag(self, individual_account, merchant_account):
        assert individual_account.to_item().serialize().startswith("29")
        assert merchant_account.to_item().serialize().startswith("30")


class TestTimestampWindow:
    def test_expiring_in_stamps_creation_from_clock(self, clock, now):
        window = TimestampWindow.expiring_in(timedelta(minutes=5), clock=clock)
        assert window.creation == now
        assert window.expiration == now + timedelta(minutes=5)

    def test_expiring_at_rejects_expiration_before_creation(self, clock, now):
        with pytest.raises(ValidationError) as excinfo:
            TimestampWindow.expiring_at(now - timedelta(seconds=1), clock=clock)
        assert "before creation" in str(excinfo.value)

    def test_values_are_truncated_to_milliseconds(self, now):
        window = TimestampWindow(creation=now + timedelta(microseconds=1500), expiration=now + timedelta(hours=1))
        assert window.creation == now + timedelta(milliseconds=1)

    def test_naive_datetimes_are_rejected(self, now):
        with pytest.raises(ValidationError):
            TimestampWindow(creation=now.replace(tzinfo=None), expiration=now)

    def test_from_tlv(self, tlv, now):
        creation, expiration = to_millis(now), to_millis(now + timedelta(minutes=10))
        window = TimestampWindow.from_tlv(tlv(0, str(creation)) + tlv(1, str(expiration)), now=now)
        assert window.creation == from_millis(creation)
        assert window.expiration == now + timedelta(minutes=10)

    def test_from_tlv_rejects_expired_window(self, tlv, now):
        creation, expiration = to_millis(now - timedelta(hours=1)), to_millis(now - timedelta(minutes=1))
        with pytest.raises(CodecError) as excinfo:
            TimestampWindow.from_tlv(tlv(0, str(creation)) + tlv(1, str(expiration)), now=now)
        assert excinfo.value.code == "ERR_TIMESTAMP_EXPIRED"

    def test_from_tlv_rejects_inverted_window(self, tlv, now):
        creation, expiration = to_millis(now + timedelta(hours=2)), to_millis(now + timedelta(hours=1))
        with pytest.raises(CodecError) as excinfo:
            TimestampWindow.from_tlv(tlv(0, str(creation)) + tlv(1, str(expiration)), now=now)
        assert excinfo.value.code == "ERR_TIMESTAMP_ORDER"

    def test_from_tlv_requires_both_timestamps(self, tlv, now):
        with pytest.raises(CodecError) as excinfo:
            TimestampWindow.from_tlv(tlv(0, str(to_millis(now))), now=now)
        assert excinfo.value.code == "ERR_MISSING_FIELD"

    def test_to_item_renders_thirteen_digit_millis(self, clock):
        window = TimestampWindow.expiring_in(timedelta(minutes=1), clock=clock)
        rendered = window.to_item().serialize()
        assert rendered.startswith("9934")
        assert rendered[4:8] == "0013"


class TestLanguageTemplate:
    FIELDS = {0: "km", 1: "Kafe", 2: "Siem Reap"}

    @pytest.mark.parametrize("missing", [0, 1, 2])
    def test_from_tlv_requires_all_fields(self, tlv, missing):
        value = "".join(tlv(code, text) for code, text in self.FIELDS.items() if code != missing)
        with pytest.raises(CodecError) as excinfo:
            LanguageTemplate.from_tlv(value)
        assert excinfo.value.code == "ERR_MISSING_FIELD"

    def test_from_tlv(self, tlv):
        value = "".join(tlv(code, text) for code, text in self.FIELDS.items())
        template = LanguageTemplate.from_tlv(value)
        assert template.language_preference == "km"
        assert template.merchant_city_alternate_language == "Siem Reap"

    def test_construction_rejects_empty_fields(self):
        with pytest.raises(ValidationError):
            LanguageTemplate(
                language_preference="km",
                merchant_name_alternate_language="",
                merchant_city_alternate_language="Siem Reap",
            )


class TestPayload:
    def test_static_defaults_to_khr(self):
        assert StaticQR().currency is Currency.KHR

    def test_dynamic_currency_follows_amount(self):
        assert DynamicQR(amount=UsdAmount(value=Decimal("1"))).currency is Currency.USD
        assert DynamicQR(amount=KhrAmount(value=1000)).currency is Currency.KHR

    def test_variants_are_discriminated(self, static_payload, dynamic_payload):
        assert static_payload.is_static
        assert static_payload.account.kind == "individual"
        assert not dynamic_payload.is_static
        assert dynamic_payload.account.kind == "merchant"
        assert dynamic_payload.currency is Currency.USD

    def test_payload_is_immutable(self, static_payload):
        with pytest.raises(ValidationError):
            static_payload.merchant_name = "Someone Else"

    def test_static_qr_has_no_amount(self):
        with pytest.raises(ValidationError):
            StaticQR(currency=Currency.USD, amount=UsdAmount(value=Decimal("1")))

    def test_payload_requires_merchant_name(self, individual_account):
        with pytest.raises(ValidationError):
            KHQRPayload(initiation=StaticQR(), account=individual_account)
