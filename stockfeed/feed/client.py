"""
Feed Client - connection state machine for consuming the bar feed.

Handles:
- Connection lifecycle (connect, explicit reconnect, teardown)
- Fixed-delay automatic reconnection after unclean closure
- Parsing inbound messages into a capped rolling buffer
- Connection-level health tracking

All transport events and reconnect timers go through a single queue consumed by one
dispatcher task, so each event is fully processed before the next one starts.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from stockfeed.core.clock import LoopScheduler
from stockfeed.feed.buffer import RollingBuffer
from stockfeed.feed.config import ClientConfig
from stockfeed.feed.errors import FeedConnectionError, MessageParseError
from stockfeed.feed.protocol import decode_message
from stockfeed.feed.transport import Transport, TransportFactory, WebSocketTransport
from stockfeed.feed.types import (
    ClientHealth,
    ConnectionState,
    TransportEvent,
    TransportEventKind,
)
from stockfeed.ports.clock import Scheduler, TimerHandle
from stockfeed.types.types import Bar

logger = logging.getLogger(__name__)

PARSE_ERROR_MESSAGE = "Error parsing server data"
TRANSPORT_ERROR_MESSAGE = "Failed to connect to feed server"
CREATE_ERROR_MESSAGE = "Failed to create feed connection"


class FeedClient:
    """
    Consumes the bar feed and keeps the most recent bars in memory.

    State Machine:
        [DISCONNECTED] --connect()--> [CONNECTING] --opened--> [CONNECTED]
              ^                            |                        |
              |                      build failure            unclean close
              |                            v                        |
              +---- reconnect timer ---- [ERROR]           [DISCONNECTED] + timer

    A transport `error` event moves to ERROR but does not schedule a reconnect; the
    unclean `closed` event that follows a failing socket does.

    Usage:
        async def on_bars(bars: list[Bar]) -> None:
            print(bars[-1])

        client = FeedClient(ClientConfig(url="ws://localhost:8080"), on_bars=on_bars)
        await client.connect()
        # ... later ...
        await client.close()
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        transport_factory: Optional[TransportFactory] = None,
        scheduler: Optional[Scheduler] = None,
        on_bars: Optional[Callable[[list[Bar]], Awaitable[None]]] = None,
        on_state_change: Optional[Callable[[ConnectionState], Awaitable[None]]] = None,
        name: str = "feed_client",
    ) -> None:
        """
        Initialize the feed client.

        Args:
            config: Client configuration
            transport_factory: Builds a transport for (url, emit); defaults to WebSocketTransport
            scheduler: Timer source for the reconnect delay; defaults to the running loop
            on_bars: Async callback receiving the buffered bars after each append
            on_state_change: Optional async callback for state changes
            name: Name for logging purposes
        """
        self._config = config or ClientConfig()
        self._transport_factory = transport_factory or self._default_transport
        self._scheduler = scheduler or LoopScheduler()
        self._on_bars = on_bars
        self._on_state_change = on_state_change
        self._name = name

        # State
        self._state = ConnectionState.DISCONNECTED
        self._error: Optional[str] = None
        self._buffer = RollingBuffer(self._config.buffer_capacity)

        # Transport bookkeeping; events from any other transport id are stale
        self._transport: Optional[Transport] = None
        self._transport_id = 0
        self._reconnect_handle: Optional[TimerHandle] = None
        self._closed = False

        # Event channel
        self._events: asyncio.Queue[tuple[int, TransportEvent]] = asyncio.Queue()
        self._dispatch_task: Optional[asyncio.Task[None]] = None

        # Metrics
        self._connected_at: Optional[datetime] = None
        self._last_message_at: Optional[datetime] = None
        self._message_count = 0
        self._parse_errors = 0
        self._reconnect_count = 0
        self._last_exception: Optional[FeedConnectionError] = None

    # --- Properties ---

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def error(self) -> Optional[str]:
        """Last error message, or None."""
        return self._error

    @property
    def bars(self) -> list[Bar]:
        """Buffered bars, oldest first."""
        return self._buffer.snapshot()

    @property
    def buffer(self) -> RollingBuffer:
        return self._buffer

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def last_exception(self) -> Optional[FeedConnectionError]:
        """Exception from the last failed transport construction, or None."""
        return self._last_exception

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    # --- Public API ---

    async def connect(self) -> None:
        """Open a transport unless one is already open."""
        if self._closed:
            logger.warning(f"[{self._name}] connect() after close() ignored")
            return
        if self._transport is not None and self._transport.is_open:
            return

        self._ensure_dispatcher()
        self._error = None
        await self._set_state(ConnectionState.CONNECTING)

        self._transport_id += 1
        transport_id = self._transport_id
        emit = functools.partial(self._post, transport_id)
        transport: Optional[Transport] = None
        try:
            transport = self._transport_factory(self._config.url, emit)
            self._transport = transport
            await transport.open()
        except Exception as e:
            if transport is not None:
                await transport.close()
            if self._closed or transport_id != self._transport_id:
                logger.debug(f"[{self._name}] Ignoring failure of replaced transport {transport_id}: {e}")
                return
            if isinstance(e, FeedConnectionError):
                err = e
            else:
                err = FeedConnectionError(
                    f"{CREATE_ERROR_MESSAGE}: {e}", url=self._config.url, component=self._name
                )
            logger.error(f"[{self._name}] Error creating feed connection: {err}")
            self._transport = None
            self._last_exception = err
            self._error = CREATE_ERROR_MESSAGE
            await self._set_state(ConnectionState.ERROR)
            return

        if self._closed or transport_id != self._transport_id:
            # replaced while opening
            await transport.close()

    async def reconnect(self) -> None:
        """Drop the current connection and buffered bars, then connect again right away."""
        self._cancel_reconnect()

        if self._transport is not None:
            transport = self._transport
            self._transport = None
            self._transport_id += 1  # late events from the old socket are stale
            await transport.close()

        self._buffer.clear()
        await self.connect()

    async def close(self) -> None:
        """Tear the session down; every later event is ignored."""
        if self._closed:
            return
        logger.info(f"[{self._name}] Closing feed client")
        self._closed = True
        self._cancel_reconnect()

        if self._transport is not None:
            transport = self._transport
            self._transport = None
            await transport.close()

        if self._dispatch_task is not None and not self._dispatch_task.done():
            self._dispatch_task.cancel()
            try:
                await self._dispatch_task
            except asyncio.CancelledError:
                pass
        self._dispatch_task = None

    async def wait_idle(self) -> None:
        """Wait until every queued event has been processed."""
        await self._events.join()

    def get_health(self) -> ClientHealth:
        """Get current connection health snapshot."""
        return ClientHealth(
            state=self._state,
            url=self._config.url,
            connected_since=self._connected_at,
            last_message_at=self._last_message_at,
            message_count=self._message_count,
            parse_errors=self._parse_errors,
            reconnect_count=self._reconnect_count,
            last_error=self._error,
            buffered=len(self._buffer),
        )

    # --- Event channel ---

    def _default_transport(self, url: str, emit: Callable[[TransportEvent], None]) -> Transport:
        return WebSocketTransport(
            url,
            emit,
            connect_timeout_s=self._config.connect_timeout_s,
            name=f"{self._name}_ws",
        )

    def _post(self, source: int, event: TransportEvent) -> None:
        if self._closed:
            return
        self._events.put_nowait((source, event))

    def _ensure_dispatcher(self) -> None:
        if self._dispatch_task is None or self._dispatch_task.done():
            self._dispatch_task = asyncio.create_task(
                self._dispatch_loop(), name=f"{self._name}_dispatch"
            )

    async def _dispatch_loop(self) -> None:
        while True:
            source, event = await self._events.get()
            try:
                if not self._closed:
                    await self._handle(source, event)
            except Exception as e:
                logger.error(f"[{self._name}] Event handling error: {e}", exc_info=True)
            finally:
                self._events.task_done()

    async def _handle(self, source: int, event: TransportEvent) -> None:
        if event.kind == TransportEventKind.RECONNECT_DUE:
            self._reconnect_handle = None
            logger.info(f"[{self._name}] Attempting to reconnect...")
            self._reconnect_count += 1
            await self.connect()
            return

        if source != self._transport_id:
            logger.debug(f"[{self._name}] Dropping {event.kind.value} from stale transport {source}")
            return

        if event.kind == TransportEventKind.OPENED:
            await self._on_open()
        elif event.kind == TransportEventKind.MESSAGE:
            await self._on_message(event.data or "")
        elif event.kind == TransportEventKind.CLOSED:
            await self._on_close(event)
        elif event.kind == TransportEventKind.ERROR:
            await self._on_error(event)

    # --- Event handlers ---

    async def _on_open(self) -> None:
        logger.info(f"[{self._name}] Feed connected")
        self._connected_at = datetime.now(timezone.utc)
        self._error = None
        await self._set_state(ConnectionState.CONNECTED)

    async def _on_message(self, raw: str) -> None:
        try:
            message = decode_message(raw)
        except MessageParseError as e:
            self._parse_errors += 1
            logger.warning(f"[{self._name}] Error parsing feed message: {e}")
            self._error = PARSE_ERROR_MESSAGE
            return

        self._message_count += 1
        self._last_message_at = datetime.now(timezone.utc)
        self._buffer.append(message.bar)

        if self._on_bars:
            try:
                await self._on_bars(self._buffer.snapshot())
            except Exception as e:
                logger.warning(f"[{self._name}] on_bars callback error: {e}")

    async def _on_close(self, event: TransportEvent) -> None:
        logger.info(f"[{self._name}] Feed connection closed: {event.code} {event.reason}")
        self._connected_at = None
        await self._set_state(ConnectionState.DISCONNECTED)

        if event.was_clean:
            return

        self._error = f"Connection closed unexpectedly: {event.reason or 'Unknown reason'}"
        self._schedule_reconnect()

    async def _on_error(self, event: TransportEvent) -> None:
        logger.error(f"[{self._name}] Feed transport error: {event.reason}")
        self._error = TRANSPORT_ERROR_MESSAGE
        await self._set_state(ConnectionState.ERROR)

    # --- Helpers ---

    async def _set_state(self, new_state: ConnectionState) -> None:
        """Update state and notify listener."""
        old_state = self._state
        self._state = new_state

        if old_state != new_state:
            logger.debug(f"[{self._name}] State: {old_state.value} -> {new_state.value}")
            if self._on_state_change:
                try:
                    await self._on_state_change(new_state)
                except Exception as e:
                    logger.warning(f"[{self._name}] State change callback error: {e}")

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        delay = self._config.reconnect_delay_s
        logger.warning(f"[{self._name}] Reconnecting in {delay:.1f}s")
        self._reconnect_handle = self._scheduler.call_later(
            delay,
            lambda: self._post(self._transport_id, TransportEvent(TransportEventKind.RECONNECT_DUE)),
        )

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
