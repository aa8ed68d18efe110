from datetime import datetime, timedelta, timezone

import pytest

from stockfeed.analysis.summary import summarize
from stockfeed.types.types import Bar

T0 = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _bar(i: int, open_: float, high: float, low: float, close: float) -> Bar:
    return Bar(
        timestamp=T0 + timedelta(days=i),
        open=open_,
        high=high,
        low=low,
        close=close,
        volume=1_000,
        symbol="BA",
    )


def test_empty_sequence_has_no_summary() -> None:
    assert summarize([]) is None


def test_summary_over_bars() -> None:
    bars = [
        _bar(0, 180.0, 183.0, 178.0, 182.0),
        _bar(1, 182.0, 190.0, 181.0, 189.0),
        _bar(2, 189.0, 189.5, 175.0, 198.0),
    ]
    summary = summarize(bars)

    assert summary is not None
    assert summary.start_price == 180.0
    assert summary.current_price == 198.0
    assert summary.total_change == pytest.approx(18.0)
    assert summary.total_return_pct == pytest.approx(10.0)
    assert summary.period_high == 190.0
    assert summary.period_low == 175.0
    assert summary.points == 3
    assert summary.first_at == T0
    assert summary.last_at == T0 + timedelta(days=2)


def test_zero_start_price_has_no_return() -> None:
    summary = summarize([_bar(0, 0.0, 1.0, 0.0, 1.0)])
    assert summary is not None
    assert summary.total_return_pct is None
    assert "n/a" in summary.format()


def test_format_negative_change() -> None:
    summary = summarize([_bar(0, 200.0, 201.0, 189.0, 190.0)])
    text = summary.format()

    assert "01/03/2024 to 01/03/2024 (1 points)" in text
    assert "change -$10.00 (-5.0%)" in text
    assert "start $200.00" in text
