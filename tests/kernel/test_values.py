"""Tests for money and period helpers in payroll_kernel.domain.values."""

from datetime import date
from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from payroll_kernel.domain.values import (
    add_months,
    normalize_key,
    parse_period,
    period_bounds,
    period_in_window,
    period_of,
    quantize_money,
    sum_amounts,
    to_decimal,
)
from payroll_kernel.exceptions import ValidationError


class TestMoney:

    def test_half_up_rounding(self):
        assert quantize_money(Decimal("0.005")) == Decimal("0.01")
        assert quantize_money(Decimal("2.675")) == Decimal("2.68")
        assert quantize_money(Decimal("-1.005")) == Decimal("-1.01")

    def test_to_decimal(self):
        assert to_decimal(None) == Decimal("0")
        assert to_decimal(0.1) == Decimal("0.1")
        assert to_decimal("12.50") == Decimal("12.50")

    def test_sum_of_nothing_is_decimal_zero(self):
        total = sum_amounts([])
        assert isinstance(total, Decimal)
        assert total == 0

    @given(st.lists(st.decimals(min_value=0, max_value=10**9, places=2), max_size=30))
    def test_sum_matches_builtin(self, amounts):
        assert sum_amounts(amounts) == sum(amounts, Decimal("0"))


class TestKeys:

    @pytest.mark.parametrize(
        "name,key",
        [
            ("Responsibility Allowance", "responsibility_allowance"),
            ("  PAYE   Tax ", "paye_tax"),
            ("NHF", "nhf"),
        ],
    )
    def test_normalize(self, name, key):
        assert normalize_key(name) == key


class TestPeriods:

    def test_parse(self):
        assert parse_period("2024-02") == (2024, 2)

    @pytest.mark.parametrize("bad", ["2024-13", "2024-00", "24-01", "2024/01", "", None])
    def test_malformed(self, bad):
        with pytest.raises(ValidationError):
            parse_period(bad)

    def test_bounds_handle_leap_years(self):
        assert period_bounds("2024-02") == (date(2024, 2, 1), date(2024, 2, 29))
        assert period_bounds("2023-02")[1] == date(2023, 2, 28)

    def test_period_of(self):
        assert period_of(date(2024, 3, 9)) == "2024-03"

    def test_window(self):
        assert period_in_window("2024-02", "2024-01", "2024-03")
        assert period_in_window("2030-01", "2024-01", None)
        assert not period_in_window("2023-12", "2024-01", None)
        assert not period_in_window("2024-04", None, "2024-03")

    def test_add_months_clamps_day(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2024, 11, 30), 3) == date(2025, 2, 28)
        assert add_months(date(2024, 5, 15), 0) == date(2024, 5, 15)
