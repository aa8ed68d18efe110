"""
Configuration types for the stock feed.

Provides immutable, validated configuration dataclasses for the generator, server and client.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from stockfeed.feed.errors import ConfigurationError

# Environment variable selecting the server's listening port.
PORT_ENV_VAR = "WS_PORT"

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_URL = f"ws://localhost:{DEFAULT_PORT}"


@dataclass(frozen=True)
class GeneratorConfig:
    """Parameters of the bounded random walk behind the synthetic bars."""

    symbol: str = "BA"
    start_price: float = 180.0

    # Walk bounds (clamped, not reflected)
    min_price: float = 50.0
    max_price: float = 300.0

    # Per-bar randomness
    max_step: float = 2.0  # price change drawn from [-max_step, +max_step]
    max_volatility: float = 0.02  # 2% high/low spread
    close_jitter: float = 1.0  # close = walk price +- jitter

    # Volume drawn from [volume_min, volume_max)
    volume_min: int = 500_000
    volume_max: int = 1_500_000

    # Widen high/low so they bracket open and close
    enforce_ohlc_bounds: bool = True

    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.symbol:
            raise ConfigurationError("symbol must be non-empty", field="symbol")
        if self.min_price <= 0 or self.min_price >= self.max_price:
            raise ConfigurationError(
                "min_price must be positive and below max_price",
                field="min_price",
                value=self.min_price,
            )
        if not (self.min_price <= self.start_price <= self.max_price):
            raise ConfigurationError(
                "start_price must lie within [min_price, max_price]",
                field="start_price",
                value=self.start_price,
            )
        if self.max_step < 0:
            raise ConfigurationError(
                "max_step must be non-negative", field="max_step", value=self.max_step
            )
        if not (0 <= self.max_volatility < 1):
            raise ConfigurationError(
                "max_volatility must be between 0 and 1",
                field="max_volatility",
                value=self.max_volatility,
            )
        if self.close_jitter < 0:
            raise ConfigurationError(
                "close_jitter must be non-negative",
                field="close_jitter",
                value=self.close_jitter,
            )
        if self.volume_min < 0 or self.volume_max <= self.volume_min:
            raise ConfigurationError(
                "volume range must be non-negative and non-empty",
                field="volume_max",
                value=self.volume_max,
            )


@dataclass(frozen=True)
class ServerConfig:
    """Configuration for the feed server."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    path: str = "/"
    update_interval_s: float = 2.0

    def __post_init__(self) -> None:
        if not (0 <= self.port <= 65535):
            raise ConfigurationError("port must be between 0 and 65535", field="port", value=self.port)
        if not self.path.startswith("/"):
            raise ConfigurationError("path must start with '/'", field="path", value=self.path)
        if self.update_interval_s <= 0:
            raise ConfigurationError(
                "update_interval_s must be positive",
                field="update_interval_s",
                value=self.update_interval_s,
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> ServerConfig:
        """Build a config whose port comes from WS_PORT when set."""
        env = os.environ if environ is None else environ
        raw_port = env.get(PORT_ENV_VAR)
        if raw_port and "port" not in overrides:
            try:
                overrides["port"] = int(raw_port)
            except ValueError as e:
                raise ConfigurationError(
                    f"{PORT_ENV_VAR} must be an integer",
                    field=PORT_ENV_VAR,
                    value=raw_port,
                ) from e
        return cls(**overrides)


@dataclass(frozen=True)
class ClientConfig:
    """Configuration for the feed client."""

    url: str = DEFAULT_URL
    reconnect_delay_s: float = 3.0
    buffer_capacity: int = 100
    connect_timeout_s: float = 10.0

    def __post_init__(self) -> None:
        if not self.url.startswith(("ws://", "wss://")):
            raise ConfigurationError("url must be a ws:// or wss:// URL", field="url", value=self.url)
        if self.reconnect_delay_s < 0:
            raise ConfigurationError(
                "reconnect_delay_s must be non-negative",
                field="reconnect_delay_s",
                value=self.reconnect_delay_s,
            )
        if self.buffer_capacity <= 0:
            raise ConfigurationError(
                "buffer_capacity must be positive",
                field="buffer_capacity",
                value=self.buffer_capacity,
            )
        if self.connect_timeout_s <= 0:
            raise ConfigurationError(
                "connect_timeout_s must be positive",
                field="connect_timeout_s",
                value=self.connect_timeout_s,
            )
