"""
WebSocket transport for the feed client.

Wraps an aiohttp client WebSocket and turns everything that happens on it into
TransportEvents posted through a callback. The transport never touches client state;
the client's dispatcher interprets the events.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Protocol

import aiohttp

from stockfeed.feed.errors import FeedConnectionError
from stockfeed.feed.types import ABNORMAL_CLOSURE, TransportEvent

logger = logging.getLogger(__name__)

Emit = Callable[[TransportEvent], None]


class Transport(Protocol):
    """What the client needs from a transport."""

    @property
    def is_open(self) -> bool: ...

    async def open(self) -> None: ...

    async def close(self) -> None: ...


TransportFactory = Callable[[str, Emit], Transport]


class WebSocketTransport:
    """
    aiohttp-backed transport.

    Connection failures (refused, handshake rejected, timeout) are reported the way a
    browser socket reports them: an `error` event followed by an unclean `closed`
    event. An invalid URL raises FeedConnectionError from open() instead.
    """

    def __init__(
        self,
        url: str,
        emit: Emit,
        *,
        connect_timeout_s: float = 10.0,
        name: str = "transport",
    ) -> None:
        self._url = url
        self._emit = emit
        self._connect_timeout_s = connect_timeout_s
        self._name = name

        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._receive_task: Optional[asyncio.Task[None]] = None
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def open(self) -> None:
        """
        Connect the socket and start the receive loop.

        Raises:
            FeedConnectionError: If the URL cannot be used at all
        """
        timeout = aiohttp.ClientTimeout(total=self._connect_timeout_s)
        self._session = aiohttp.ClientSession(timeout=timeout)

        logger.info(f"[{self._name}] Connecting to {self._url}")
        try:
            self._ws = await self._session.ws_connect(self._url, autoping=True)
        except aiohttp.InvalidURL as e:
            await self._close_session()
            raise FeedConnectionError(
                f"Invalid feed URL: {self._url}", url=self._url, component=self._name
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            reason = str(e) or type(e).__name__
            logger.error(f"[{self._name}] Connection failed: {reason}")
            await self._close_session()
            self._emit(TransportEvent.error(reason))
            self._emit(TransportEvent.closed(ABNORMAL_CLOSURE, reason, was_clean=False))
            return

        self._emit(TransportEvent.opened())
        self._receive_task = asyncio.create_task(self._receive_loop(), name=f"{self._name}_receive")

    async def _receive_loop(self) -> None:
        ws = self._ws
        if ws is None:
            return

        try:
            while True:
                msg = await ws.receive()

                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._emit(TransportEvent.message(msg.data))

                elif msg.type == aiohttp.WSMsgType.BINARY:
                    logger.debug(f"[{self._name}] Received binary message (ignored)")

                elif msg.type == aiohttp.WSMsgType.CLOSE:
                    # Peer sent a close frame; aiohttp answers it (autoclose)
                    logger.info(f"[{self._name}] Server closed connection: {msg.data} {msg.extra or ''}")
                    self._emit(TransportEvent.closed(msg.data, msg.extra or "", was_clean=True))
                    break

                elif msg.type == aiohttp.WSMsgType.ERROR:
                    reason = str(ws.exception() or "WebSocket error")
                    logger.error(f"[{self._name}] WebSocket error: {reason}")
                    self._emit(TransportEvent.error(reason))
                    self._emit(
                        TransportEvent.closed(
                            ws.close_code or ABNORMAL_CLOSURE, reason, was_clean=False
                        )
                    )
                    break

                elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.CLOSING):
                    if not self._closing:
                        self._emit(
                            TransportEvent.closed(
                                ws.close_code or ABNORMAL_CLOSURE, "", was_clean=False
                            )
                        )
                    break

        except asyncio.CancelledError:
            logger.debug(f"[{self._name}] Receive loop cancelled")
            raise
        finally:
            await self._close_session()

    async def close(self) -> None:
        """Close the socket locally. No events are emitted for a local close."""
        self._closing = True
        if self._receive_task is not None and not self._receive_task.done():
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
        self._receive_task = None

        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        await self._close_session()

    async def _close_session(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
