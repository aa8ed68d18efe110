"""
Synthetic bar generator.

Produces a path-dependent OHLCV series from a bounded random walk. One instance is owned
by the server process and shared by every connection, so all clients see the same price
path.
"""

from __future__ import annotations

import logging
import random
from typing import Optional

from stockfeed.core.clock import SystemClock
from stockfeed.feed.config import GeneratorConfig
from stockfeed.ports.clock import Clock
from stockfeed.types.types import Bar

logger = logging.getLogger(__name__)


class BarGenerator:
    """
    Bounded random walk emitting one Bar per call.

    Walk state (`current_price`) stays unrounded; only the emitted bar is rounded to
    2 decimals. The next bar opens at the previous bar's (rounded) close.

    Usage:
        generator = BarGenerator(GeneratorConfig(seed=7))
        bar = generator.generate_next()
    """

    def __init__(
        self,
        config: Optional[GeneratorConfig] = None,
        *,
        rng: Optional[random.Random] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._config = config or GeneratorConfig()
        self._rng = rng or random.Random(self._config.seed)
        self._clock = clock or SystemClock()

        self._current_price = float(self._config.start_price)
        start = round(self._current_price, 2)
        self._last_bar = Bar(
            timestamp=self._clock.now(),
            open=start,
            high=start,
            low=start,
            close=start,
            volume=self._draw_volume(),
            symbol=self._config.symbol,
        )
        self._generated = 0

    @property
    def config(self) -> GeneratorConfig:
        return self._config

    @property
    def current_price(self) -> float:
        """Unrounded walk state."""
        return self._current_price

    @property
    def last_bar(self) -> Bar:
        return self._last_bar

    @property
    def generated(self) -> int:
        """Number of bars emitted so far."""
        return self._generated

    def generate_next(self) -> Bar:
        cfg = self._config
        rng = self._rng

        price_change = rng.uniform(-cfg.max_step, cfg.max_step)
        volatility = rng.uniform(0.0, cfg.max_volatility)
        self._walk(price_change)

        high = self._current_price * (1 + volatility * rng.random())
        low = self._current_price * (1 - volatility * rng.random())
        open_ = self._last_bar.close
        close = self._current_price + rng.uniform(-cfg.close_jitter, cfg.close_jitter)

        high = round(high, 2)
        low = round(low, 2)
        close = round(close, 2)
        if cfg.enforce_ohlc_bounds:
            high = max(high, open_, close)
            low = min(low, open_, close)

        bar = Bar(
            timestamp=self._clock.now(),
            open=open_,
            high=high,
            low=low,
            close=close,
            volume=self._draw_volume(),
            symbol=cfg.symbol,
        )
        self._last_bar = bar
        self._generated += 1
        return bar

    def _walk(self, price_change: float) -> None:
        """Apply one step and clamp into [min_price, max_price]."""
        price = self._current_price + price_change
        price = max(price, self._config.min_price)
        price = min(price, self._config.max_price)
        if price in (self._config.min_price, self._config.max_price):
            logger.debug(f"Walk clamped at {price:.2f}")
        self._current_price = price

    def _draw_volume(self) -> int:
        return self._rng.randrange(self._config.volume_min, self._config.volume_max)
