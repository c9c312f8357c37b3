"""
Tests for the Loan Amortization Engine.

Covers:
- Flat-rate terms
- Reducing-balance (EMI) terms
- Schedule exactness: principal sums, zero final balance
- Input validation
"""

from datetime import date
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from payroll_engines.amortization import (
    InterestMethod,
    build_repayment_schedule,
    calculate_loan_schedule,
)
from payroll_kernel.exceptions import ValidationError


class TestFlatSchedule:

    def test_terms(self):
        summary = calculate_loan_schedule(Decimal("120000"), Decimal("10"), 12, InterestMethod.FLAT)

        assert summary.monthly_principal == Decimal("10000.00")
        assert summary.total_interest == Decimal("12000.00")
        assert summary.monthly_interest == Decimal("1000.00")
        assert summary.monthly_total == Decimal("11000.00")

    def test_interest_scales_with_term(self):
        summary = calculate_loan_schedule(Decimal("100000"), Decimal("12"), 6, "flat")
        assert summary.total_interest == Decimal("6000.00")

    def test_zero_rate(self):
        summary = calculate_loan_schedule(Decimal("50000"), Decimal("0"), 4)
        assert summary.monthly_total == Decimal("12500.00")
        assert summary.total_interest == Decimal("0.00")


class TestReducingSchedule:

    def test_level_installment(self):
        summary = calculate_loan_schedule(
            Decimal("100000"), Decimal("12"), 12, InterestMethod.REDUCING,
        )
        # Standard EMI at 1% a month over 12 months
        assert summary.monthly_total == Decimal("8884.88")
        assert summary.total_interest < Decimal("100000") * Decimal("0.12")

    def test_zero_rate_is_principal_over_n(self):
        summary = calculate_loan_schedule(Decimal("90000"), Decimal("0"), 3, InterestMethod.REDUCING)
        assert summary.monthly_total == Decimal("30000.00")
        assert summary.monthly_interest == Decimal("0")

    def test_interest_declines_each_month(self):
        rows = build_repayment_schedule(Decimal("100000"), Decimal("12"), 12, InterestMethod.REDUCING)
        interests = [row.interest for row in rows]
        assert interests == sorted(interests, reverse=True)


class TestScheduleExactness:

    @pytest.mark.parametrize("method", [InterestMethod.FLAT, InterestMethod.REDUCING])
    def test_remainder_lands_in_final_installment(self, method):
        rows = build_repayment_schedule(Decimal("100000"), Decimal("7"), 7, method)

        assert len(rows) == 7
        assert sum(row.principal for row in rows) == Decimal("100000.00")
        assert rows[-1].remaining_balance == Decimal("0.00")

    def test_due_dates_and_paid_flags(self):
        rows = build_repayment_schedule(
            Decimal("60000"), Decimal("0"), 3, start_date=date(2024, 1, 31), installments_paid=1,
        )
        assert [row.due_date for row in rows] == [
            date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31),
        ]
        assert [row.is_paid for row in rows] == [True, False, False]

    @given(
        principal=st.decimals(min_value=1, max_value=10_000_000, places=2,
                              allow_nan=False, allow_infinity=False),
        rate=st.decimals(min_value=0, max_value=40, places=2, allow_nan=False, allow_infinity=False),
        installments=st.integers(min_value=1, max_value=60),
        method=st.sampled_from(list(InterestMethod)),
    )
    @settings(max_examples=150, deadline=None)
    def test_final_balance_always_zero(self, principal, rate, installments, method):
        rows = build_repayment_schedule(principal, rate, installments, method)
        assert rows[-1].remaining_balance == 0
        assert sum(row.principal for row in rows) == principal
        assert all(row.principal >= 0 for row in rows)


class TestValidation:

    @pytest.mark.parametrize(
        "principal,rate,installments",
        [("0", "10", 12), ("-1", "10", 12), ("1000", "-1", 12), ("1000", "10", 0)],
    )
    def test_rejects_bad_terms(self, principal, rate, installments):
        with pytest.raises(ValidationError):
            calculate_loan_schedule(Decimal(principal), Decimal(rate), installments)

    def test_rejects_unknown_method(self):
        with pytest.raises(ValidationError):
            calculate_loan_schedule(Decimal("1000"), Decimal("10"), 12, "balloon")
