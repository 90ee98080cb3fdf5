"""UTC time source used by every sliding-window computation."""

from datetime import datetime, timedelta, timezone
from typing import Protocol


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the form stored in the database)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock."""

    def now(self) -> datetime:
        return utcnow()


class FrozenClock:
    """
    Manually advanced clock for deterministic window tests.
    """

    def __init__(self, start: datetime | None = None):
        self._now = start or utcnow()

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        self._now = self._now + timedelta(seconds=seconds, **kwargs)
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value


system_clock = SystemClock()


def get_clock() -> Clock:
    """Clock dependency; tests override it with a frozen clock."""
    return system_clock
