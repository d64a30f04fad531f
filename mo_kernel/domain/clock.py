"""
Clock -- injectable time source for the production floor.

Responsibility:
    Every timestamp the engine writes (panel start and station times,
    allocation, audit rows, closure) and the progress cache expiry are read
    from a Clock handed to the service at construction.  Nothing below the
    facade calls ``datetime.now()`` itself.

Architecture position:
    Kernel > Domain.  SystemClock is the only place wall time enters.

Failure modes:
    DeterministicClock rejects a naive start time with ValueError.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

# Monday morning shift start; fixtures and examples are laid out from here.
SHIFT_START = datetime(2025, 3, 3, 8, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """
    Source of the current instant.

    Guarantees:
        ``now()`` is timezone-aware and expressed in UTC.
    """

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Wall clock used in production."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Station timings, ETAs and cache expiry are all driven by elapsed time,
    so tests advance this clock to simulate a shift instead of sleeping.
    """

    def __init__(self, start: datetime | None = None):
        start = start or SHIFT_START
        if start.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start time")
        self._current = start.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: float = 1) -> datetime:
        """Move forward by ``seconds`` and return the new instant."""
        self._current += timedelta(seconds=seconds)
        return self._current

    def advance_minutes(self, minutes: float) -> datetime:
        return self.advance(minutes * 60)

    def set_time(self, moment: datetime) -> None:
        if moment.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware time")
        self._current = moment.astimezone(timezone.utc)
