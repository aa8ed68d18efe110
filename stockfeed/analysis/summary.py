"""
Summary statistics over a bar sequence (live buffer or a historical slice).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from stockfeed.types.types import Bar


@dataclass(frozen=True, slots=True)
class BarSummary:
    start_price: float  # first bar's open
    current_price: float  # last bar's close
    total_change: float
    total_return_pct: Optional[float]  # None when start_price is 0
    period_high: float
    period_low: float
    points: int
    first_at: datetime
    last_at: datetime

    def format(self) -> str:
        ret = "n/a" if self.total_return_pct is None else f"{self.total_return_pct:.1f}%"
        sign = "+" if self.total_change >= 0 else "-"
        return (
            f"{self.first_at:%d/%m/%Y} to {self.last_at:%d/%m/%Y} ({self.points:,} points) | "
            f"start ${self.start_price:.2f} | current ${self.current_price:.2f} | "
            f"change {sign}${abs(self.total_change):.2f} ({ret}) | "
            f"high ${self.period_high:.2f} | low ${self.period_low:.2f}"
        )


def summarize(bars: Sequence[Bar]) -> Optional[BarSummary]:
    """Return a BarSummary, or None for an empty sequence."""
    if not bars:
        return None

    first, last = bars[0], bars[-1]
    total_change = last.close - first.open
    total_return_pct = (total_change / first.open * 100) if first.open else None

    return BarSummary(
        start_price=first.open,
        current_price=last.close,
        total_change=total_change,
        total_return_pct=total_return_pct,
        period_high=max(b.high for b in bars),
        period_low=min(b.low for b in bars),
        points=len(bars),
        first_at=first.timestamp,
        last_at=last.timestamp,
    )
