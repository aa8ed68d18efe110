from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

# Column / field names shared by the wire format and the historical CSV.
BAR_FIELDS: tuple[str, ...] = ("date", "open", "high", "low", "close", "volume", "Name")


def format_timestamp(ts: datetime) -> str:
    """Render a timestamp as ISO-8601 UTC with millisecond precision and a 'Z' suffix."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 string into an aware UTC datetime (naive input is taken as UTC)."""
    ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class Bar:
    """
    One OHLCV observation for the single instrument served by a feed.
    """

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: int
    symbol: str

    @property
    def is_bracketed(self) -> bool:
        """True if low <= open, close <= high."""
        return self.low <= min(self.open, self.close) and max(self.open, self.close) <= self.high

    def to_wire(self) -> dict[str, Any]:
        return {
            "date": format_timestamp(self.timestamp),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "Name": self.symbol,
        }
