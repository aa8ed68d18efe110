"""
Test doubles for the feed client: a scripted transport and a hand-driven scheduler.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import pytest

from stockfeed.feed.protocol import encode_message
from stockfeed.feed.types import ABNORMAL_CLOSURE, MessageType, TransportEvent
from stockfeed.types.types import Bar


class FakeTransport:
    """Transport whose events are pushed by the test."""

    def __init__(
        self,
        url: str,
        emit: Callable[[TransportEvent], None],
        auto_open: bool,
        open_gate: Optional[asyncio.Event] = None,
        open_error: Optional[Exception] = None,
    ) -> None:
        self.url = url
        self.emit = emit
        self.auto_open = auto_open
        self.open_gate = open_gate
        self.open_error = open_error
        self.connected = False
        self.close_calls = 0

    @property
    def is_open(self) -> bool:
        return self.connected

    async def open(self) -> None:
        if self.open_gate is not None:
            await self.open_gate.wait()
        if self.open_error is not None:
            raise self.open_error
        if self.auto_open:
            self.accept()

    async def close(self) -> None:
        self.close_calls += 1
        self.connected = False

    # --- driven by tests ---

    def accept(self) -> None:
        self.connected = True
        self.emit(TransportEvent.opened())

    def deliver(self, text: str) -> None:
        self.emit(TransportEvent.message(text))

    def drop(self, reason: str = "", code: int = ABNORMAL_CLOSURE) -> None:
        self.connected = False
        self.emit(TransportEvent.closed(code, reason, was_clean=False))

    def finish(self, code: int = 1000, reason: str = "") -> None:
        self.connected = False
        self.emit(TransportEvent.closed(code, reason, was_clean=True))

    def fail(self, reason: str = "boom") -> None:
        self.emit(TransportEvent.error(reason))


class FakeTransportFactory:
    def __init__(self) -> None:
        self.transports: list[FakeTransport] = []
        self.auto_open = True
        self.raise_on_create: Optional[Exception] = None
        # applied to transports built from now on
        self.open_gate: Optional[asyncio.Event] = None
        self.open_error: Optional[Exception] = None

    def __call__(self, url: str, emit: Callable[[TransportEvent], None]) -> FakeTransport:
        if self.raise_on_create is not None:
            raise self.raise_on_create
        transport = FakeTransport(url, emit, self.auto_open, self.open_gate, self.open_error)
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


class FakeTimer:
    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Scheduler whose timers only fire when the test says so."""

    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def fire_all(self) -> int:
        due = self.pending
        for timer in due:
            timer.fired = True
            timer.callback()
        return len(due)


def make_bar(i: int, close: float = 100.0) -> Bar:
    return Bar(
        timestamp=datetime(2024, 1, 2, 10, 0, tzinfo=timezone.utc) + timedelta(seconds=2 * i),
        open=close - 0.5,
        high=close + 1.0,
        low=close - 1.0,
        close=close,
        volume=500_000 + i,
        symbol="BA",
    )


def wire(i: int, message_type: MessageType = MessageType.UPDATE) -> str:
    return encode_message(message_type, make_bar(i, close=100.0 + i))


@pytest.fixture
def transports() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def bar_factory() -> Callable[..., Bar]:
    return make_bar


@pytest.fixture
def wire_message() -> Callable[..., str]:
    return wire
