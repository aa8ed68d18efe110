"""Clock and Scheduler Port Interfaces.

Contract: the feed never reads wall time or arms timers directly; it goes through
these ports so tests can drive time by hand.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """Return current UTC time (datetime, tz-aware).
        Should be monotonic non-decreasing within a session.
        """
        ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run `callback` once after `delay` seconds; the returned handle cancels it."""
        ...
