"""
Leave helper functions -- pure accrual and overlap arithmetic.

Pure functions with no I/O.  Called by ``LeaveService``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from payroll_engines.calendar import calculate_working_days, overlap
from payroll_kernel.domain.values import ZERO, period_bounds
from payroll_modules.leave.models import LeaveType


def initial_accrued_days(leave_type: LeaveType, as_of: date, prorate: bool = True) -> Decimal:
    """Opening accrual for a new balance row: ``accrual_rate x month``."""
    if not prorate:
        return ZERO
    return leave_type.accrual_rate * as_of.month


def working_days_in_period(
    start: date,
    end: date,
    period: str,
    weekend_days: frozenset[int],
) -> int:
    """Working days of ``start..end`` that fall inside the ``YYYY-MM`` month."""
    month_start, month_end = period_bounds(period)
    window = overlap(start, end, month_start, month_end)
    if window is None:
        return 0
    return calculate_working_days(window[0], window[1], weekend_days)
