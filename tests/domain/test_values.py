"""Tests for PeriodKey and money rounding."""

from datetime import date
from decimal import Decimal

import pytest

from fieldrep_kernel.domain.values import PeriodKey, parse_money, to_money


class TestPeriodKey:

    def test_parse_canonical_form(self):
        key = PeriodKey.parse("2024-03")
        assert key == PeriodKey(2024, 3)
        assert str(key) == "2024-03"

    def test_parse_returns_period_key_unchanged(self):
        key = PeriodKey(2024, 3)
        assert PeriodKey.parse(key) is key

    @pytest.mark.parametrize("raw", ["2024-3", "2024/03", "March 2024", "", "2024-13"])
    def test_parse_rejects_malformed(self, raw):
        with pytest.raises(ValueError):
            PeriodKey.parse(raw)

    def test_month_out_of_range(self):
        with pytest.raises(ValueError, match="month"):
            PeriodKey(2024, 0)

    def test_of_and_contains(self):
        key = PeriodKey.of(date(2024, 3, 31))
        assert key == PeriodKey(2024, 3)
        assert key.contains(date(2024, 3, 1))
        assert not key.contains(date(2024, 4, 1))

    def test_bounds_roll_over_december(self):
        key = PeriodKey(2023, 12)
        assert key.first_day == date(2023, 12, 1)
        assert key.next_first_day == date(2024, 1, 1)

    def test_ordering_is_chronological(self):
        assert PeriodKey(2023, 12) < PeriodKey(2024, 1) < PeriodKey(2024, 2)


class TestToMoney:

    def test_rounds_half_up(self):
        assert to_money("0.005") == Decimal("0.01")
        assert to_money("2.675") == Decimal("2.68")

    def test_float_goes_through_str(self):
        assert to_money(12.3) == Decimal("12.30")

    def test_int(self):
        assert to_money(5) == Decimal("5.00")

    @pytest.mark.parametrize("raw", ["abc", None, True, "NaN", "Infinity"])
    def test_rejects_non_amounts(self, raw):
        with pytest.raises(ValueError):
            to_money(raw)

    def test_parse_money_keeps_sign_and_precision(self):
        assert parse_money("-0.004") == Decimal("-0.004")
        assert parse_money("-0.004") < 0
        assert to_money("-0.004") == Decimal("0.00")
