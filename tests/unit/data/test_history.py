import datetime as dt
from pathlib import Path

import polars as pl
import pytest

from stockfeed.data.history import (
    Aggregation,
    DateRange,
    aggregate,
    filter_range,
    load_history,
    to_bars,
    with_changes,
)
from stockfeed.feed.errors import HistoryError

HEADER = "date,open,high,low,close,volume,Name\n"


def _write_csv(path: Path, rows: list[str]) -> Path:
    path.write_text(HEADER + "\n".join(rows) + "\n")
    return path


def _daily_rows(start: dt.date, days: int) -> list[str]:
    rows = []
    for i in range(days):
        day = start + dt.timedelta(days=i)
        price = 100.0 + i
        rows.append(f"{day.isoformat()},{price},{price + 2},{price - 2},{price + 1},{1000 + i},BA")
    return rows


@pytest.fixture
def history_csv(tmp_path: Path) -> Path:
    # 2024-01-01 .. 2024-04-30, shuffled order to check sorting
    rows = _daily_rows(dt.date(2024, 1, 1), 121)
    rows = rows[60:] + rows[:60]
    return _write_csv(tmp_path / "BA_data.csv", rows)


def test_load_history_sorts_and_types(history_csv: Path) -> None:
    df = load_history(history_csv)

    assert df.columns == ["date", "open", "high", "low", "close", "volume", "Name"]
    assert df.height == 121
    assert df.schema["date"] == pl.Datetime("us")
    assert df.schema["volume"] == pl.Int64
    assert df["date"].is_sorted()
    assert df["date"][0] == dt.datetime(2024, 1, 1)


def test_load_history_drops_incomplete_rows(tmp_path: Path) -> None:
    path = _write_csv(
        tmp_path / "gaps.csv",
        ["2024-01-01,1,2,0.5,1.5,10,BA", "2024-01-02,,2,0.5,1.5,10,BA"],
    )
    assert load_history(path).height == 1


def test_load_history_drops_rows_without_volume_or_name(tmp_path: Path) -> None:
    path = _write_csv(
        tmp_path / "gaps.csv",
        [
            "2024-01-01,1,2,0.5,1.5,10,BA",
            "2024-01-02,1,2,0.5,1.5,,BA",
            "2024-01-03,1,2,0.5,1.5,12,",
        ],
    )
    df = load_history(path)

    assert df["date"].to_list() == [dt.datetime(2024, 1, 1)]
    bars = to_bars(df)
    assert bars[0].volume == 10
    assert bars[0].symbol == "BA"


def test_load_history_missing_file(tmp_path: Path) -> None:
    with pytest.raises(HistoryError) as exc_info:
        load_history(tmp_path / "nope.csv")
    assert "not found" in str(exc_info.value)


def test_load_history_missing_columns(tmp_path: Path) -> None:
    path = tmp_path / "bad.csv"
    path.write_text("date,open,close\n2024-01-01,1,2\n")
    with pytest.raises(HistoryError) as exc_info:
        load_history(path)
    assert exc_info.value.missing_columns == ["high", "low", "volume", "Name"]


@pytest.mark.parametrize(
    "date_range, first_day",
    [
        (DateRange.MONTH, dt.datetime(2024, 3, 30)),
        (DateRange.QUARTER, dt.datetime(2024, 1, 30)),
        (DateRange.YEAR, dt.datetime(2024, 1, 1)),
        (DateRange.ALL, dt.datetime(2024, 1, 1)),
    ],
)
def test_filter_range(history_csv: Path, date_range: DateRange, first_day: dt.datetime) -> None:
    df = filter_range(load_history(history_csv), date_range)
    assert df["date"].min() == first_day
    assert df["date"].max() == dt.datetime(2024, 4, 30)


def test_weekly_aggregation_starts_on_sunday(tmp_path: Path) -> None:
    # 2024-01-06 is a Saturday, 2024-01-07 a Sunday
    path = _write_csv(tmp_path / "w.csv", _daily_rows(dt.date(2024, 1, 5), 9))
    weekly = aggregate(load_history(path), Aggregation.WEEKLY)

    assert weekly["date"].to_list() == [
        dt.datetime(2023, 12, 31),
        dt.datetime(2024, 1, 7),
    ]
    first = weekly.row(0, named=True)
    # Jan 5 and Jan 6
    assert first["open"] == 100.0
    assert first["close"] == 102.0
    assert first["high"] == 103.0
    assert first["low"] == 98.0
    assert first["volume"] == 1000 + 1001


def test_monthly_aggregation(history_csv: Path) -> None:
    monthly = aggregate(load_history(history_csv), Aggregation.MONTHLY)
    assert monthly.height == 4
    jan = monthly.row(0, named=True)
    assert jan["date"] == dt.datetime(2024, 1, 1)
    assert jan["open"] == 100.0
    assert jan["close"] == 131.0
    assert jan["volume"] == sum(range(1000, 1031))


def test_daily_aggregation_is_identity(history_csv: Path) -> None:
    df = load_history(history_csv)
    assert aggregate(df, Aggregation.DAILY).equals(df)


def test_with_changes(tmp_path: Path) -> None:
    path = _write_csv(tmp_path / "c.csv", _daily_rows(dt.date(2024, 1, 1), 3))
    df = with_changes(load_history(path))
    # first row compares close to its own open
    assert df["change"].to_list() == [1.0, 1.0, 1.0]
    assert df["change_pct"][1] == pytest.approx(1 / 101 * 100)


def test_to_bars(tmp_path: Path) -> None:
    path = _write_csv(tmp_path / "b.csv", _daily_rows(dt.date(2024, 1, 1), 2))
    bars = to_bars(load_history(path))
    assert len(bars) == 2
    assert bars[0].timestamp == dt.datetime(2024, 1, 1, tzinfo=dt.timezone.utc)
    assert bars[0].symbol == "BA"
    assert bars[1].volume == 1001
