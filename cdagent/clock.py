"""Abstractions over the system clock, mainly to ease testing time-based code."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """The primitives every clock provides."""

    def now(self) -> datetime: ...

    def until(self, t: datetime) -> timedelta: ...

    def since(self, t: datetime) -> timedelta: ...


class StandardClock:
    """A clock that reads the real system time (in UTC)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def until(self, t: datetime) -> timedelta:
        return t - self.now()

    def since(self, t: datetime) -> timedelta:
        return self.now() - t


class SeededClock:
    """A clock frozen at a given instant, which only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self._now = now

    def now(self) -> datetime:
        return self._now

    def until(self, t: datetime) -> timedelta:
        return t - self._now

    def since(self, t: datetime) -> timedelta:
        return self._now - t

    def at(self, seed: datetime) -> None:
        """Move the clock to the instant ``seed``."""
        self._now = seed