"""stockfeed CLI entrypoint.

Subcommands:
  serve     Run the live feed server (port from --port, else WS_PORT, else 8080)
  watch     Connect to a feed server and print bars as they arrive
  history   Summarize a historical CSV (date,open,high,low,close,volume,Name)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from stockfeed.analysis.summary import summarize
from stockfeed.data.history import (
    Aggregation,
    DateRange,
    aggregate,
    filter_range,
    load_history,
    to_bars,
    with_changes,
)
from stockfeed.feed.client import FeedClient
from stockfeed.feed.config import (
    DEFAULT_URL,
    ClientConfig,
    GeneratorConfig,
    ServerConfig,
)
from stockfeed.feed.errors import FeedError
from stockfeed.feed.server import run_server
from stockfeed.feed.types import ConnectionState
from stockfeed.types.types import Bar, format_timestamp

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """
    Return the top-level CLI argument parser.
    """
    p = argparse.ArgumentParser(prog="stockfeed")
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    sub = p.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the live feed server")
    serve.add_argument("--host", default=None, help="Listen address (default 0.0.0.0)")
    serve.add_argument("--port", type=int, default=None, help="Listen port (default WS_PORT or 8080)")
    serve.add_argument("--interval", type=float, default=2.0, help="Seconds between updates")
    serve.add_argument("--symbol", default="BA", help="Instrument identifier")
    serve.add_argument("--seed", type=int, default=None, help="Seed for reproducible bars")

    watch = sub.add_parser("watch", help="Print bars from a feed server")
    watch.add_argument("--url", default=DEFAULT_URL, help="Feed server URL")
    watch.add_argument("--reconnect-delay", type=float, default=3.0, help="Seconds before reconnecting")
    watch.add_argument("--capacity", type=int, default=100, help="Bars kept in memory")

    history = sub.add_parser("history", help="Summarize a historical CSV")
    history.add_argument("csv", type=Path, help="Path to the CSV file")
    history.add_argument(
        "--range", dest="date_range", default="month", choices=[r.value for r in DateRange]
    )
    history.add_argument(
        "--aggregation", default="daily", choices=[a.value for a in Aggregation]
    )
    return p


def _serve(args: argparse.Namespace) -> int:
    overrides: dict = {"update_interval_s": args.interval}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port

    config = ServerConfig.from_env(**overrides)
    generator_config = GeneratorConfig(symbol=args.symbol, seed=args.seed)
    asyncio.run(run_server(config, generator_config))
    return 0


def _format_bar(bar: Bar) -> str:
    return (
        f"{format_timestamp(bar.timestamp)} {bar.symbol} "
        f"O={bar.open:.2f} H={bar.high:.2f} L={bar.low:.2f} C={bar.close:.2f} V={bar.volume:,}"
    )


async def _watch(config: ClientConfig) -> None:
    async def on_bars(bars: list[Bar]) -> None:
        print(_format_bar(bars[-1]))
        summary = summarize(bars)
        if summary is not None:
            print(f"  {summary.format()}")

    async def on_state_change(state: ConnectionState) -> None:
        print(f"[{state.value}]", file=sys.stderr)

    client = FeedClient(config, on_bars=on_bars, on_state_change=on_state_change)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:  # pragma: no cover
            pass

    await client.connect()
    try:
        await stop.wait()
    finally:
        await client.close()


def _history(args: argparse.Namespace) -> int:
    df = load_history(args.csv)
    df = aggregate(filter_range(df, DateRange(args.date_range)), Aggregation(args.aggregation))
    summary = summarize(to_bars(df))
    if summary is None:
        print("No data", file=sys.stderr)
        return 1
    print(summary.format())

    last = with_changes(df).row(-1, named=True)
    sign = "+" if last["change"] >= 0 else "-"
    print(
        f"last {args.aggregation} change {sign}${abs(last['change']):.2f} "
        f"({last['change_pct']:.2f}%)"
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint wrapper compatible with setuptools scripts."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "serve":
            return _serve(args)
        if args.command == "watch":
            config = ClientConfig(
                url=args.url,
                reconnect_delay_s=args.reconnect_delay,
                buffer_capacity=args.capacity,
            )
            asyncio.run(_watch(config))
            return 0
        if args.command == "history":
            return _history(args)
    except FeedError as e:
        logger.error(str(e))
        print(f"error: {e}", file=sys.stderr)
        return 2

    parser.error(f"Unknown command {args.command!r}")
    return 2


if __name__ == "__main__":
    sys.exit(main())
