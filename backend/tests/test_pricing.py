from decimal import Decimal

import pytest

from backoffice.errors import ValidationError
from backoffice.money import decimal_str, money_str, quantize_money, to_decimal
from backoffice.services.discount_snapshot import DiscountSnapshot, parse_snapshot_lenient
from backoffice.services.pricing import line_amounts


class TestToDecimal:
    def test_float_goes_through_repr(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_string_and_int(self):
        assert to_decimal(" 3.50 ") == Decimal("3.50")
        assert to_decimal(2) == Decimal(2)

    @pytest.mark.parametrize("value", [None, True, "", "abc", "NaN", "Infinity", [1]])
    def test_rejects_non_numbers(self, value):
        with pytest.raises(ValidationError):
            to_decimal(value)


def test_quantize_money_rounds_half_up():
    assert quantize_money(Decimal("0.845")) == Decimal("0.85")
    assert quantize_money(Decimal("0.844")) == Decimal("0.84")
    assert quantize_money(Decimal("2.5")) == Decimal("2.50")


def test_serializers():
    assert money_str(Decimal("8.4")) == "8.40"
    assert money_str(None) is None
    assert decimal_str(Decimal("2.000")) == "2"
    assert decimal_str(Decimal("10")) == "10"
    assert decimal_str(Decimal("1.250")) == "1.25"


class TestLineAmounts:
    def test_two_espressos_at_twenty_percent(self):
        amounts = line_amounts(Decimal("3.50"), Decimal("2"), Decimal("20"))
        assert amounts.base == Decimal("7.00")
        assert amounts.tax == Decimal("1.40")
        assert amounts.total == Decimal("8.40")

    def test_amounts_stay_exact(self):
        amounts = line_amounts(Decimal("0.99"), Decimal("3"), Decimal("21"))
        assert amounts.base == Decimal("2.97")
        assert amounts.tax == Decimal("0.6237")
        assert amounts.total == Decimal("3.5937")

    def test_zero_rate(self):
        amounts = line_amounts("5", "1.5", "0")
        assert amounts.tax == 0
        assert amounts.total == Decimal("7.5")


class TestDiscountSnapshot:
    def _snapshot(self, applied="0.84"):
        return DiscountSnapshot(
            code="TEN",
            discount_type="Percent",
            scope="Order",
            value=Decimal("10"),
            applied_amount=Decimal(applied),
        )

    def test_json_is_parsed_back(self):
        raw = self._snapshot().to_json()
        parsed = DiscountSnapshot.from_json(raw)
        assert parsed.applied_amount == Decimal("0.84")
        assert parsed.code == "TEN"

    def test_writer_rejects_negative_amount(self):
        with pytest.raises(ValidationError):
            self._snapshot(applied="-1").to_json()

    def test_strict_parse_raises_on_garbage(self):
        with pytest.raises(ValueError):
            DiscountSnapshot.from_json("{not json")
        with pytest.raises(KeyError):
            DiscountSnapshot.from_json('{"code": "X"}')

    def test_lenient_parse_degrades_to_no_discount(self, app, caplog):
        assert parse_snapshot_lenient(None) is None
        assert parse_snapshot_lenient("{not json", order_id=5) is None
        assert parse_snapshot_lenient('["a list"]', order_id=5) is None
        assert "order 5" in caplog.text
