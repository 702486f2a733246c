"""CLI entry point for the walk-forward backtest.

Usage:
    python -m walkforward --csv bars.csv --symbol 600519 --start 2024-01-01 --end 2024-12-31
    python -m walkforward --csv bars.csv --start 2024-01-01 --end 2024-06-30 --workers 4 --json out.json
"""

from __future__ import annotations

import argparse
import datetime as dt
import logging
import signal
import sys

import pandas as pd

from signal_engine.config import load_engine_config
from signal_engine.errors import ConfigError, LookaheadViolation
from signal_engine.models.bar import Bar, BarSeries

from walkforward.config import get_backtest_settings
from walkforward.engine import BacktestConfig, CancellationToken, WalkForwardEngine
from walkforward.report import ReportFormatter

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("date", "open", "high", "low", "close", "volume")


def parse_date(date_str: str) -> dt.date:
    """Parse YYYY-MM-DD."""
    try:
        return dt.datetime.strptime(date_str, "%Y-%m-%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"Invalid date format: {date_str} (expected YYYY-MM-DD)"
        )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    settings = get_backtest_settings()
    parser = argparse.ArgumentParser(
        description="Walk-forward backtest of the signal engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m walkforward --csv bars.csv --symbol 600519 --start 2024-01-01 --end 2024-12-31
  python -m walkforward --csv bars.csv --start 2024-01-01 --end 2024-06-30 --interval 10 --days 3
  python -m walkforward --csv bars.csv --start 2024-01-01 --end 2024-12-31 --workers 4 --json out.json
        """,
    )
    parser.add_argument(
        "--csv",
        type=str,
        required=True,
        help="Daily bars CSV (date,open,high,low,close,volume[,amount][,symbol])",
    )
    parser.add_argument(
        "--symbol",
        type=str,
        default=None,
        help="Symbol to backtest (default: the CSV's symbol column, else the file name)",
    )
    parser.add_argument("--start", type=parse_date, required=True, help="Start date (YYYY-MM-DD)")
    parser.add_argument("--end", type=parse_date, required=True, help="End date (YYYY-MM-DD)")
    parser.add_argument(
        "--interval",
        type=int,
        default=settings.interval_days,
        help=f"Calendar days between predictions (default: {settings.interval_days})",
    )
    parser.add_argument(
        "--days",
        type=int,
        default=settings.prediction_days,
        help=f"Trading days to forecast per step (default: {settings.prediction_days})",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=settings.max_workers,
        help=f"Parallel step workers (default: {settings.max_workers})",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Engine YAML config (default: signal_engine.yaml if present)",
    )
    parser.add_argument(
        "--json", "-o",
        dest="output",
        type=str,
        default=None,
        help="Output file path for JSON results",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging",
    )
    return parser.parse_args(argv)


def load_bars(path: str, symbol: str | None = None) -> BarSeries:
    """
    Load daily bars from CSV into a BarSeries.

    Rows are sorted by date; prev_close is taken from the previous row.
    """
    frame = pd.read_csv(path)
    frame.columns = [c.strip().lower() for c in frame.columns]
    missing = [c for c in REQUIRED_COLUMNS if c not in frame.columns]
    if missing:
        raise ValueError(f"{path}: missing columns {', '.join(missing)}")

    if "symbol" in frame.columns:
        frame["symbol"] = frame["symbol"].astype(str)
        if symbol is None:
            symbol = frame["symbol"].iloc[0]
        frame = frame[frame["symbol"] == symbol]
    if symbol is None:
        symbol = path.rsplit("/", 1)[-1].rsplit(".", 1)[0]

    frame = frame.assign(date=pd.to_datetime(frame["date"]).dt.date)
    frame = frame.sort_values("date").drop_duplicates("date", keep="last")
    frame["prev_close"] = frame["close"].shift(1)
    if "amount" not in frame.columns:
        frame["amount"] = 0.0

    bars = [
        Bar(
            symbol=symbol,
            date=row.date,
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
            amount=float(row.amount),
            prev_close=None if pd.isna(row.prev_close) else float(row.prev_close),
        )
        for row in frame.itertuples(index=False)
    ]
    logger.info(f"Loaded {len(bars):,} bars for {symbol} from {path}")
    return BarSeries(symbol=symbol, bars=bars)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    settings = get_backtest_settings()

    try:
        engine_config = load_engine_config(args.config)
        config = BacktestConfig(
            start=args.start,
            end=args.end,
            interval_days=args.interval,
            prediction_days=args.days,
            min_history=settings.min_history,
            max_workers=args.workers,
        )
    except ConfigError as e:
        print(f"Error: {e}")
        return 2

    series = load_bars(args.csv, args.symbol)

    print(f"\nWalk-forward: {series.symbol}")
    print(f"Period: {config.start:%Y-%m-%d} → {config.end:%Y-%m-%d}")
    print(f"Interval: {config.interval_days}d, horizon: {config.prediction_days} days")

    token = CancellationToken()
    signal.signal(signal.SIGINT, lambda *_: token.cancel())

    engine = WalkForwardEngine(
        config,
        engine_config=engine_config,
        token=token,
    )

    print("\nRunning backtest...")
    try:
        report = engine.run(series)
    except LookaheadViolation as e:
        print(f"Error: {e}")
        return 1

    # Print console report
    ReportFormatter.print_console(report)

    # Optional: save JSON
    if args.output:
        ReportFormatter.to_json(report, args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
