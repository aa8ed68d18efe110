"""
Live Stock Feed Module.

This module streams synthetic stock bars over WebSocket and consumes them on the
client side with a bounded buffer and automatic reconnection.

Components:
- BarGenerator: Bounded random walk producing OHLCV bars (one per server process)
- FeedServer: aiohttp WebSocket endpoint pushing `initial` then periodic `update` bars
- FeedClient: Connection state machine, rolling buffer, fixed-delay reconnect
- WebSocketTransport: aiohttp client socket translated into transport events

Usage:
    from stockfeed.feed import FeedClient, ClientConfig

    client = FeedClient(ClientConfig(url="ws://localhost:8080"))
    await client.connect()
"""

from stockfeed.feed.buffer import RollingBuffer
from stockfeed.feed.client import FeedClient
from stockfeed.feed.config import ClientConfig, GeneratorConfig, ServerConfig
from stockfeed.feed.errors import (
    ConfigurationError,
    FeedConnectionError,
    FeedError,
    HistoryError,
    MessageParseError,
)
from stockfeed.feed.generator import BarGenerator
from stockfeed.feed.protocol import decode_message, encode_message
from stockfeed.feed.server import FeedServer, run_server
from stockfeed.feed.types import (
    ClientHealth,
    ConnectionState,
    FeedMessage,
    MessageType,
    ServerStats,
)

__all__ = [
    # Main entry points
    "BarGenerator",
    "FeedServer",
    "FeedClient",
    "run_server",
    # Configuration
    "GeneratorConfig",
    "ServerConfig",
    "ClientConfig",
    # Types
    "ConnectionState",
    "MessageType",
    "FeedMessage",
    "ClientHealth",
    "ServerStats",
    "RollingBuffer",
    # Codec
    "encode_message",
    "decode_message",
    # Errors
    "FeedError",
    "FeedConnectionError",
    "MessageParseError",
    "ConfigurationError",
    "HistoryError",
]
