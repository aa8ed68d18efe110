"""
Shared types, enums, and data structures for the feed module.

This module contains types that are used by both the server and the client side.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from stockfeed.types.types import Bar

# Close code reported when a socket went away without a closing handshake.
ABNORMAL_CLOSURE = 1006


class ConnectionState(str, Enum):
    """State machine for the feed client."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class MessageType(str, Enum):
    """Kinds of messages pushed by the feed server."""

    INITIAL = "initial"
    UPDATE = "update"


class TransportEventKind(str, Enum):
    """Events a transport posts into the client's event channel."""

    OPENED = "opened"
    MESSAGE = "message"
    CLOSED = "closed"
    ERROR = "error"
    RECONNECT_DUE = "reconnect_due"


@dataclass(frozen=True, slots=True)
class TransportEvent:
    """One event flowing from a transport (or the reconnect timer) into the client."""

    kind: TransportEventKind
    data: Optional[str] = None  # MESSAGE: raw text frame
    code: Optional[int] = None  # CLOSED: close code
    reason: str = ""  # CLOSED / ERROR: human-readable reason
    was_clean: bool = False  # CLOSED: closing handshake completed

    @classmethod
    def opened(cls) -> TransportEvent:
        return cls(TransportEventKind.OPENED)

    @classmethod
    def message(cls, data: str) -> TransportEvent:
        return cls(TransportEventKind.MESSAGE, data=data)

    @classmethod
    def closed(cls, code: Optional[int], reason: str = "", *, was_clean: bool) -> TransportEvent:
        return cls(TransportEventKind.CLOSED, code=code, reason=reason, was_clean=was_clean)

    @classmethod
    def error(cls, reason: str) -> TransportEvent:
        return cls(TransportEventKind.ERROR, reason=reason)


@dataclass(frozen=True, slots=True)
class FeedMessage:
    """Decoded wire message."""

    type: MessageType
    bar: Bar


@dataclass
class ClientHealth:
    """Health snapshot for a feed client."""

    state: ConnectionState
    url: str
    connected_since: Optional[datetime] = None
    last_message_at: Optional[datetime] = None
    message_count: int = 0
    parse_errors: int = 0
    reconnect_count: int = 0
    last_error: Optional[str] = None
    buffered: int = 0

    @property
    def uptime_s(self) -> Optional[float]:
        """Connection uptime in seconds, or None if not connected."""
        if self.connected_since is None:
            return None
        now = datetime.now(timezone.utc)
        return (now - self.connected_since).total_seconds()

    @property
    def is_healthy(self) -> bool:
        return self.state == ConnectionState.CONNECTED


@dataclass
class ServerStats:
    """Counters for the feed server."""

    connections_total: int = 0
    active_connections: int = 0
    bars_sent: int = 0
