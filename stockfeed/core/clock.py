"""
Concrete adapters for the clock ports.

SystemClock provides wall time for bar timestamps. LoopScheduler arms one-shot timers on
the running asyncio loop, which is what the feed client uses for its reconnect delay.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from stockfeed.ports.clock import TimerHandle


class ClockError(RuntimeError):
    """Raised when a clock would go backwards."""


class SystemClock:
    """Clock adapter that returns the current UTC time, never going backwards."""

    def __init__(self) -> None:
        self._last: Optional[datetime] = None

    def now(self) -> datetime:
        ts = datetime.now(timezone.utc)
        # Wall time can step back (NTP); keep timestamps non-decreasing within a session.
        if self._last is not None and ts < self._last:
            ts = self._last
        self._last = ts
        return ts


class FixedClock:
    """Clock pinned to a given instant; advance() moves it forward."""

    def __init__(self, start: datetime) -> None:
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> None:
        new_now = self._now + delta
        if new_now < self._now:
            raise ClockError(f"Clock cannot go backwards: {new_now} < {self._now}")
        self._now = new_now


class LoopScheduler:
    """Scheduler adapter on top of the running asyncio event loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, callback)
