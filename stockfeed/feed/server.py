"""
Feed Server - pushes synthetic bars to WebSocket clients.

Handles:
- Accepting WebSocket connections on a single route
- Sending an `initial` bar immediately, then an `update` bar per interval
- One update task per connection, cancelled on close or error
- Graceful shutdown on SIGTERM/SIGINT
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import signal
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from aiohttp import WSCloseCode, WSMsgType, web

from stockfeed.feed.config import GeneratorConfig, ServerConfig
from stockfeed.feed.generator import BarGenerator
from stockfeed.feed.protocol import encode_message
from stockfeed.feed.types import MessageType, ServerStats

logger = logging.getLogger(__name__)


@dataclass
class ConnectionSession:
    """Server-side state for one accepted connection."""

    conn_id: int
    ws: web.WebSocketResponse
    connected_at: datetime
    task: Optional[asyncio.Task[None]] = None
    bars_sent: int = 0


class FeedServer:
    """
    WebSocket server streaming bars from one shared BarGenerator.

    The generator is created once by the caller and handed in; every connection draws
    from it, so simultaneous clients see the same price path offset by when they joined.
    All connection handlers and update tasks run on one event loop, so the generator is
    never mutated concurrently.

    Usage:
        server = FeedServer(ServerConfig(port=8080), BarGenerator())
        await server.start()
        # ... later ...
        await server.stop()
    """

    def __init__(
        self,
        config: ServerConfig,
        generator: BarGenerator,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        name: str = "feed_server",
    ) -> None:
        """
        Initialize the feed server.

        Args:
            config: Server configuration
            generator: Shared bar generator (one per process)
            sleep: Awaitable used between updates; tests replace it to drive ticks
            name: Name for logging purposes
        """
        self._config = config
        self._generator = generator
        self._sleep = sleep
        self._name = name

        self._sessions: dict[int, ConnectionSession] = {}
        self._ids = itertools.count(1)
        self._stats = ServerStats()

        self._app = web.Application()
        self._app.router.add_get(config.path, self.handle)
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    @property
    def app(self) -> web.Application:
        """The aiohttp application (useful for in-process test servers)."""
        return self._app

    @property
    def generator(self) -> BarGenerator:
        return self._generator

    @property
    def active_connections(self) -> int:
        return len(self._sessions)

    @property
    def is_running(self) -> bool:
        return self._site is not None

    async def start(self) -> None:
        """Bind the listener. Bind failures propagate to the caller."""
        if self._runner is not None:
            logger.warning(f"[{self._name}] Already started")
            return

        self._runner = web.AppRunner(self._app, handle_signals=False)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._config.host, self._config.port)
        try:
            await self._site.start()
        except OSError:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            raise
        logger.info(
            f"[{self._name}] Feed server running on ws://{self._config.host}:{self._config.port}"
            f"{self._config.path}"
        )

    async def stop(self) -> None:
        """Stop accepting connections, tear down all sessions and close the listener."""
        if self._runner is None:
            return

        logger.info(f"[{self._name}] Server shutting down...")
        if self._site is not None:
            await self._site.stop()
            self._site = None

        for session in list(self._sessions.values()):
            self._cancel_session(session.conn_id)
            if not session.ws.closed:
                await session.ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown")

        await self._runner.cleanup()
        self._runner = None
        logger.info(f"[{self._name}] Server stopped")

    async def handle(self, request: web.Request) -> web.WebSocketResponse:
        """WebSocket handler: one invocation per accepted connection."""
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        conn_id = next(self._ids)
        session = ConnectionSession(
            conn_id=conn_id,
            ws=ws,
            connected_at=datetime.now(timezone.utc),
        )
        self._sessions[conn_id] = session
        self._stats.connections_total += 1
        logger.info(f"[{self._name}] New WebSocket connection established (id={conn_id})")

        try:
            # initial is on the wire before the update task exists
            await self._send(session, MessageType.INITIAL)
            session.task = asyncio.create_task(
                self._stream_updates(session), name=f"{self._name}_updates_{conn_id}"
            )

            async for msg in ws:
                if msg.type == WSMsgType.ERROR:
                    logger.error(f"[{self._name}] WebSocket error (id={conn_id}): {ws.exception()}")
                    break
                logger.debug(f"[{self._name}] Ignoring inbound {msg.type.name} frame (id={conn_id})")
        except ConnectionResetError as e:
            logger.error(f"[{self._name}] WebSocket error (id={conn_id}): {e}")
        finally:
            self._cancel_session(conn_id)
            logger.info(f"[{self._name}] WebSocket connection closed (id={conn_id})")

        return ws

    async def _stream_updates(self, session: ConnectionSession) -> None:
        """Send one update per interval while the connection stays open."""
        try:
            while True:
                await self._sleep(self._config.update_interval_s)
                if session.ws.closed:
                    logger.debug(
                        f"[{self._name}] Connection {session.conn_id} no longer open, stopping updates"
                    )
                    break
                try:
                    await self._send(session, MessageType.UPDATE)
                except ConnectionResetError:
                    logger.debug(
                        f"[{self._name}] Connection {session.conn_id} closed during send, stopping updates"
                    )
                    break
        except asyncio.CancelledError:
            logger.debug(f"[{self._name}] Update task cancelled (id={session.conn_id})")
            raise

    async def _send(self, session: ConnectionSession, message_type: MessageType) -> None:
        bar = self._generator.generate_next()
        await session.ws.send_str(encode_message(message_type, bar))
        session.bars_sent += 1
        self._stats.bars_sent += 1

    def _cancel_session(self, conn_id: int) -> None:
        """Cancel the session's update task and forget it. Safe to call twice."""
        session = self._sessions.pop(conn_id, None)
        if session is None:
            return
        if session.task is not None and not session.task.done():
            session.task.cancel()

    def get_stats(self) -> ServerStats:
        return ServerStats(
            connections_total=self._stats.connections_total,
            active_connections=len(self._sessions),
            bars_sent=self._stats.bars_sent,
        )


async def run_server(
    config: Optional[ServerConfig] = None,
    generator_config: Optional[GeneratorConfig] = None,
    *,
    stop_event: Optional[asyncio.Event] = None,
) -> None:
    """
    Run a feed server until SIGTERM/SIGINT (or `stop_event`) and shut it down gracefully.
    """
    config = config or ServerConfig.from_env()
    generator = BarGenerator(generator_config)
    server = FeedServer(config, generator)
    stop = stop_event or asyncio.Event()

    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, stop.set)
            installed.append(sig)
        except NotImplementedError:  # pragma: no cover - platforms without signal support
            logger.debug(f"Signal handler for {sig.name} not supported")

    await server.start()
    try:
        await stop.wait()
    finally:
        await server.stop()
        for sig in installed:
            loop.remove_signal_handler(sig)
