"""
Working-day calendar engine.

Pure functions with no I/O.  Weekends are Saturday and Sunday unless the
caller passes a different set of ISO weekday numbers (Monday=1 .. Sunday=7).
"""

from __future__ import annotations

from datetime import date, timedelta

from payroll_kernel.exceptions import ValidationError

WEEKEND_ISO_DAYS: frozenset[int] = frozenset({6, 7})


def _as_date(value: date | str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid date '{value}'", field="date") from exc


def calculate_working_days(
    start: date | str,
    end: date | str,
    weekend_days: frozenset[int] = WEEKEND_ISO_DAYS,
) -> int:
    """
    Inclusive count of working days between two calendar dates.

    Raises:
        ValidationError: If ``end`` is before ``start``.
    """
    start_date = _as_date(start)
    end_date = _as_date(end)
    if end_date < start_date:
        raise ValidationError(
            f"End date {end_date} is before start date {start_date}",
            field="end_date",
        )

    total_days = (end_date - start_date).days + 1
    full_weeks, remainder = divmod(total_days, 7)
    working = full_weeks * (7 - len(weekend_days))

    day = start_date + timedelta(days=full_weeks * 7)
    for _ in range(remainder):
        if day.isoweekday() not in weekend_days:
            working += 1
        day += timedelta(days=1)
    return working


def overlap(
    start: date,
    end: date,
    window_start: date,
    window_end: date,
) -> tuple[date, date] | None:
    """Intersection of two inclusive date ranges, or ``None``."""
    lo = max(start, window_start)
    hi = min(end, window_end)
    if hi < lo:
        return None
    return lo, hi
