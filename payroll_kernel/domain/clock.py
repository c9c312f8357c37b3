"""
Injectable time source.

Services take a ``Clock`` in their constructor and never read the system
time themselves, so decision timestamps, default periods and leave years are
reproducible in tests.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """Current UTC time plus the payroll calendar views derived from it."""

    @abstractmethod
    def now(self) -> datetime:
        """Timezone-aware UTC ``datetime``."""

    def today(self) -> date:
        return self.now().date()

    def current_period(self) -> str:
        """Payroll period (``YYYY-MM``) containing ``now()``."""
        return f"{self.now():%Y-%m}"


class SystemClock(Clock):
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.  Time only moves when ``advance`` or
    ``set_time`` is called.
    """

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)
        if self._now.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start time")

    def now(self) -> datetime:
        return self._now

    def set_time(self, moment: datetime) -> None:
        self._now = moment

    def advance(self, **delta: float) -> None:
        """Move forward by a ``timedelta`` expressed as keywords (``days=31``)."""
        self._now += timedelta(**delta)
