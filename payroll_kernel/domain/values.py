"""
Value helpers (``payroll_kernel.domain.values``).

Responsibility
--------------
Decimal money arithmetic and payroll period parsing shared by engines and
modules.

Invariants enforced
-------------------
* Monetary values are ``Decimal`` -- NEVER ``float``.  ``to_decimal`` routes
  floats through ``str`` so binary noise never enters a computation.
* Money is quantized to 0.01 with ROUND_HALF_UP, once, at the edge of a
  calculation.
* A period is ``YYYY-MM`` with month 01-12.
"""

from __future__ import annotations

import calendar
import re
from collections.abc import Iterable, Mapping
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from payroll_kernel.exceptions import ValidationError

ZERO = Decimal("0")
MONEY_QUANTUM = Decimal("0.01")

_PERIOD_RE = re.compile(r"^(\d{4})-(\d{2})$")


def to_decimal(value: Decimal | int | float | str | None) -> Decimal:
    """Coerce a numeric value to ``Decimal`` (``None`` -> 0)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize_money(amount: Decimal, quantum: Decimal = MONEY_QUANTUM) -> Decimal:
    """Round a monetary amount to the currency quantum (half-up)."""
    return amount.quantize(quantum, rounding=ROUND_HALF_UP)


def sum_amounts(amounts: Iterable[Decimal]) -> Decimal:
    """Sum Decimals, starting from ``Decimal("0")``."""
    total = ZERO
    for amount in amounts:
        total += amount
    return total


def sum_breakdown(breakdown: Mapping[str, Decimal]) -> Decimal:
    return sum_amounts(breakdown.values())


def normalize_key(name: str) -> str:
    """``"Responsibility Allowance"`` -> ``"responsibility_allowance"``."""
    return re.sub(r"\s+", "_", name.strip().lower())


def parse_period(period: str) -> tuple[int, int]:
    """Parse ``YYYY-MM`` into ``(year, month)``.

    Raises:
        ValidationError: If the period is malformed.
    """
    match = _PERIOD_RE.match(period or "")
    if match is None:
        raise ValidationError(f"Invalid period '{period}', expected YYYY-MM", field="period")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid month in period '{period}'", field="period")
    return year, month


def period_bounds(period: str) -> tuple[date, date]:
    """First and last calendar day of a ``YYYY-MM`` period."""
    year, month = parse_period(period)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def period_of(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def period_in_window(period: str, start: str | None, end: str | None) -> bool:
    """True when ``start <= period <= end`` (open bounds allowed).

    ``YYYY-MM`` strings order lexicographically the same as chronologically.
    """
    parse_period(period)
    if start is not None and period < start:
        return False
    if end is not None and period > end:
        return False
    return True


def add_months(day: date, months: int) -> date:
    """Shift a date by whole months, clamping to the month's last day."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))
