from __future__ import annotations

import logging
from datetime import timezone
from enum import Enum
from pathlib import Path

import polars as pl

from stockfeed.feed.errors import HistoryError
from stockfeed.types.types import BAR_FIELDS, Bar

logger = logging.getLogger(__name__)

_PRICE_COLS = ("open", "high", "low", "close")


class DateRange(str, Enum):
    """Look-back window measured from the latest row."""

    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"
    ALL = "all"


class Aggregation(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


_RANGE_MONTHS: dict[DateRange, int] = {
    DateRange.MONTH: 1,
    DateRange.QUARTER: 3,
    DateRange.YEAR: 12,
}


def load_history(path: str | Path) -> pl.DataFrame:
    """
    Read the historical CSV (`date,open,high,low,close,volume,Name`) into a DataFrame
    sorted by date. `date` becomes a naive UTC Datetime; rows with any missing field are dropped.

    Raises:
        HistoryError: If the file is missing, lacks columns or has unparseable dates
    """
    path = Path(path)
    if not path.exists():
        raise HistoryError(f"History file not found: {path}", path=str(path), component="history")

    df = pl.read_csv(path, try_parse_dates=True)

    missing = [c for c in BAR_FIELDS if c not in df.columns]
    if missing:
        raise HistoryError(
            f"History file is missing columns: {', '.join(missing)}",
            path=str(path),
            missing_columns=missing,
            component="history",
        )

    date_dtype = df.schema["date"]
    if date_dtype == pl.Date:
        df = df.with_columns(pl.col("date").cast(pl.Datetime("us")))
    elif isinstance(date_dtype, pl.Datetime):
        if date_dtype.time_zone is not None:
            df = df.with_columns(
                pl.col("date").dt.convert_time_zone("UTC").dt.replace_time_zone(None)
            )
    else:
        raise HistoryError(
            f"Could not parse 'date' column (dtype {date_dtype})",
            path=str(path),
            component="history",
        )

    rows_in = df.height
    df = (
        df.with_columns(
            [pl.col(c).cast(pl.Float64, strict=False) for c in _PRICE_COLS]
            + [
                pl.col("volume").cast(pl.Float64, strict=False).round(0).cast(pl.Int64),
                pl.col("Name").cast(pl.Utf8),
            ]
        )
        .drop_nulls(subset=["date", *_PRICE_COLS, "volume", "Name"])
        .sort("date")
        .select(BAR_FIELDS)
    )
    if df.height < rows_in:
        logger.warning(f"Dropped {rows_in - df.height} incomplete rows from {path}")

    logger.debug(f"Loaded {df.height} rows from {path}")
    return df


def filter_range(df: pl.DataFrame, date_range: DateRange) -> pl.DataFrame:
    """Keep rows dated on or after (latest date - window)."""
    if date_range == DateRange.ALL or df.is_empty():
        return df

    months = _RANGE_MONTHS[date_range]
    latest = df["date"].max()
    start = pl.lit(latest).dt.offset_by(f"-{months}mo")
    return df.filter(pl.col("date") >= start)


def aggregate(df: pl.DataFrame, aggregation: Aggregation) -> pl.DataFrame:
    """
    Bucket rows into OHLCV bars: first open, max high, min low, last close, summed volume.
    Weekly buckets start on Sunday; monthly buckets on the 1st.
    """
    if aggregation == Aggregation.DAILY or df.is_empty():
        return df

    if aggregation == Aggregation.WEEKLY:
        # truncate("1w") snaps to Monday; shift by a day to start weeks on Sunday
        bucket = (pl.col("date") + pl.duration(days=1)).dt.truncate("1w") - pl.duration(days=1)
    else:
        bucket = pl.col("date").dt.truncate("1mo")

    return (
        df.sort("date")
        .with_columns(bucket.alias("_bucket"))
        .group_by("_bucket", maintain_order=True)
        .agg(
            pl.col("open").first(),
            pl.col("high").max(),
            pl.col("low").min(),
            pl.col("close").last(),
            pl.col("volume").sum(),
            pl.col("Name").first(),
        )
        .rename({"_bucket": "date"})
        .sort("date")
        .select(BAR_FIELDS)
    )


def with_changes(df: pl.DataFrame) -> pl.DataFrame:
    """Add `change` and `change_pct` against the previous close (first row: its own open)."""
    prev_close = pl.col("close").shift(1).fill_null(pl.col("open"))
    return df.with_columns(
        (pl.col("close") - prev_close).alias("change"),
        ((pl.col("close") - prev_close) / prev_close * 100).alias("change_pct"),
    )


def to_bars(df: pl.DataFrame) -> list[Bar]:
    return [
        Bar(
            timestamp=row["date"].replace(tzinfo=timezone.utc),
            open=row["open"],
            high=row["high"],
            low=row["low"],
            close=row["close"],
            volume=int(row["volume"]),
            symbol=row["Name"],
        )
        for row in df.iter_rows(named=True)
    ]
