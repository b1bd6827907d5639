"""
Clock -- injectable time source.

Responsibility:
    Lease, payment, reminder and batch code ask a Clock for the time
    instead of calling ``datetime.now()``.  Timestamps such as
    ``caution_paid_at`` and ``settled_at`` and every business date (the
    invoice month, the reminder day) therefore come from one object that
    tests can pin to any day.

Architecture position:
    Kernel > Domain.  ``SystemClock`` is the only place that reads the
    system time.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone

# Business dates are UTC calendar days
BUSINESS_TZ = timezone.utc


class Clock(ABC):
    """Source of the current time; ``now()`` is always timezone-aware."""

    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        """The business date of ``now()``."""
        return self.now().astimezone(BUSINESS_TZ).date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(BUSINESS_TZ)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Used by tests and by replays of a past business day.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or datetime(2024, 1, 1, 12, 0, tzinfo=BUSINESS_TZ)
        if self._current.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware datetime")

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance_days(self, days: int = 1) -> datetime:
        """Move forward by whole days and return the new time."""
        self._current += timedelta(days=days)
        return self._current
