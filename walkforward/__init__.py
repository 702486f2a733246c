"""Walk-forward backtesting for the signal engine.

Replays a bar history at fixed intervals with no lookahead and reports
forecast accuracy and buy/sell point outcomes.

Usage:
    python -m walkforward --csv bars.csv --start 2024-01-01 --end 2024-12-31
"""

from walkforward.engine import (
    BacktestConfig,
    BacktestEntry,
    CancellationToken,
    RunStatus,
    WalkForwardEngine,
)
from walkforward.stats import BacktestReport

__all__ = [
    "BacktestConfig",
    "BacktestEntry",
    "CancellationToken",
    "RunStatus",
    "WalkForwardEngine",
    "BacktestReport",
]
