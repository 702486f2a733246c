"""Walk-forward backtest engine.

Replays one symbol's history at fixed calendar intervals. At each cursor
the full signal pipeline sees only the bars strictly before the cursor,
forecasts the next prediction_days, and the forecast plus every emitted
buy/sell point is checked against the bars that followed.

Steps share nothing but the read-only series, so they may fan out over a
thread pool; entries are merged back in prediction-date order.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum

from signal_engine.config import EngineConfig
from signal_engine.errors import ConfigError, LookaheadViolation, SignalEngineError
from signal_engine.models.bar import Bar, BarSeries
from signal_engine.models.prediction import Prediction
from signal_engine.pipeline import SignalEngine

from walkforward.outcome import SignalOutcome, evaluate_point
from walkforward.stats import BacktestReport, StatisticsCalculator

logger = logging.getLogger(__name__)

# Realized change treated as "no move" when comparing directions
FLAT_CHANGE = 1e-3
DIRECTION_WEIGHT = 0.7
PRICE_WEIGHT = 0.3


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class BacktestConfig:
    """Configuration for a walk-forward run."""

    start: dt.date
    end: dt.date
    interval_days: int = 5
    prediction_days: int = 5
    min_history: int = 60
    max_workers: int = 1

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ConfigError(f"end {self.end} is before start {self.start}")
        if self.interval_days < 1:
            raise ConfigError(f"interval_days must be >= 1, got {self.interval_days}")
        if self.prediction_days < 1:
            raise ConfigError(f"prediction_days must be >= 1, got {self.prediction_days}")
        if self.min_history < 2:
            raise ConfigError(f"min_history must be >= 2, got {self.min_history}")
        if self.max_workers < 1:
            raise ConfigError(f"max_workers must be >= 1, got {self.max_workers}")


class CancellationToken:
    """Cooperative cancellation flag, checked between steps."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class BacktestEntry:
    """Result of one prediction cursor. Never mutated after creation."""

    prediction_date: dt.date
    # Latest bar date the pipeline was allowed to see
    history_end: dt.date
    predictions: list[Prediction]
    actual_prices: list[float]
    # Realized daily changes in percent
    actual_changes: list[float]
    price_accuracy: float
    direction_accuracy: float
    combined_accuracy: float
    avg_prediction_error: float
    # Per-day |error| in percent of the realized close
    errors_pct: list[float] = field(default_factory=list)
    signal_outcomes: list[SignalOutcome] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# =============================================================================
# Accuracy
# =============================================================================

def price_accuracy(predicted: float, actual: float) -> float:
    """max(0, 1 - |predicted - actual| / actual)."""
    if actual == 0:
        return 0.0
    return max(0.0, 1.0 - abs(predicted - actual) / abs(actual))


def direction_hit(predicted_change: float, actual_change: float) -> bool:
    """
    Same sign of change (fractions). A flat realized day only counts when
    the prediction was also flat.
    """
    if actual_change == 0:
        return abs(predicted_change) < FLAT_CHANGE
    if predicted_change == 0:
        return False
    return math.copysign(1.0, predicted_change) == math.copysign(1.0, actual_change)


def score_predictions(
    predictions: list[Prediction],
    realized: list[Bar],
    last_close: float,
) -> dict:
    """Per-entry accuracy over the overlapping days."""
    n = min(len(predictions), len(realized))
    prices: list[float] = []
    changes: list[float] = []
    price_accs: list[float] = []
    hits: list[bool] = []
    errors: list[float] = []

    prev_close = last_close
    for pred, bar in zip(predictions[:n], realized[:n]):
        actual_change = (bar.close - prev_close) / prev_close if prev_close else 0.0
        prices.append(bar.close)
        changes.append(actual_change * 100)
        price_accs.append(price_accuracy(pred.predicted_price, bar.close))
        hits.append(direction_hit(pred.predicted_change_percent / 100, actual_change))
        errors.append(abs(pred.predicted_price - bar.close) / bar.close * 100 if bar.close else 0.0)
        prev_close = bar.close

    if n == 0:
        price_acc = direction_acc = avg_error = 0.0
    else:
        price_acc = sum(price_accs) / n
        direction_acc = sum(hits) / n
        avg_error = sum(errors) / n / 100

    return {
        "actual_prices": prices,
        "actual_changes": changes,
        "price_accuracy": price_acc,
        "direction_accuracy": direction_acc,
        "combined_accuracy": DIRECTION_WEIGHT * direction_acc + PRICE_WEIGHT * price_acc,
        "avg_prediction_error": avg_error,
        "errors_pct": errors,
    }


# =============================================================================
# Engine
# =============================================================================

class WalkForwardEngine:
    """Walk-forward replay of one symbol's bar history."""

    def __init__(
        self,
        config: BacktestConfig,
        engine_config: EngineConfig | None = None,
        token: CancellationToken | None = None,
    ):
        self.config = config
        engine_config = engine_config or EngineConfig()
        if engine_config.prediction_days != config.prediction_days:
            logger.debug(
                f"Forecast horizon {engine_config.prediction_days} replaced by "
                f"backtest horizon {config.prediction_days}"
            )
            engine_config = engine_config.model_copy(
                update={"prediction_days": config.prediction_days}
            )
        self.engine_config = engine_config
        # Raises ConfigError on a bad weight map before any step runs
        self.pipeline = SignalEngine(self.engine_config)
        self.token = token or CancellationToken()
        self.status = RunStatus.PENDING

    def schedule(self, series: BarSeries) -> list[int]:
        """
        Bar indices used as prediction cursors.

        Each calendar cursor is snapped forward to the next bar in the data.
        A cursor needs min_history bars before it and prediction_days bars
        from it onward.
        """
        cfg = self.config
        dates = series.dates()
        indices: list[int] = []
        candidate = cfg.start
        idx = 0
        while candidate <= cfg.end:
            while idx < len(dates) and dates[idx] < candidate:
                idx += 1
            if idx >= len(dates) or dates[idx] > cfg.end:
                break
            if idx + cfg.prediction_days > len(dates):
                break
            if idx >= cfg.min_history and (not indices or indices[-1] != idx):
                indices.append(idx)
            candidate += dt.timedelta(days=cfg.interval_days)
        return indices

    def run_step(self, series: BarSeries, cursor_idx: int) -> BacktestEntry | None:
        """
        Evaluate one cursor.

        Returns:
            BacktestEntry, or None when the run was cancelled first

        Raises:
            LookaheadViolation: The snapshot holds a bar dated on or after
                the cursor
        """
        if self.token.cancelled:
            return None

        cursor = series.bars[cursor_idx].date
        history = series.before(cursor)
        if len(history) and history.last.date >= cursor:
            raise LookaheadViolation(cursor, history.last.date)

        result = self.pipeline.run(history)
        realized = series.bars[cursor_idx:cursor_idx + self.config.prediction_days]
        predictions = result.forecast.predictions
        scores = score_predictions(predictions, realized, history.last.close)

        analysis = result.analysis
        outcomes = [
            evaluate_point(point, realized)
            for point in [*analysis.buy_points, *analysis.sell_points]
        ]

        logger.debug(
            f"[{series.symbol}] {cursor}: price={scores['price_accuracy']:.1%} "
            f"direction={scores['direction_accuracy']:.1%} signals={len(outcomes)}"
        )
        return BacktestEntry(
            prediction_date=cursor,
            history_end=history.last.date,
            predictions=list(predictions),
            signal_outcomes=outcomes,
            warnings=list(result.warnings),
            **scores,
        )

    def _run_sequential(self, series: BarSeries, indices: list[int]) -> list[BacktestEntry]:
        entries = []
        for i, idx in enumerate(indices):
            entry = self._guarded_step(series, idx)
            if entry is None and self.token.cancelled:
                break
            if entry is not None:
                entries.append(entry)
            if (i + 1) % 50 == 0:
                logger.info(f"[{series.symbol}] Processed {i + 1}/{len(indices)} steps")
        return entries

    def _run_parallel(self, series: BarSeries, indices: list[int]) -> list[BacktestEntry]:
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
            futures = [pool.submit(self._guarded_step, series, idx) for idx in indices]
            try:
                results = [f.result() for f in futures]
            except LookaheadViolation:
                self.token.cancel()
                raise
        entries = [e for e in results if e is not None]
        return sorted(entries, key=lambda e: e.prediction_date)

    def _guarded_step(self, series: BarSeries, idx: int) -> BacktestEntry | None:
        """Run one step; non-fatal engine errors skip the step."""
        try:
            return self.run_step(series, idx)
        except LookaheadViolation:
            raise
        except SignalEngineError as e:
            logger.warning(f"[{series.symbol}] step {series.bars[idx].date} skipped: {e}")
            return None

    def run(self, series: BarSeries) -> BacktestReport:
        """
        Execute the walk-forward replay.

        Args:
            series: Full bar history of one symbol (not modified)

        Returns:
            BacktestReport; status is cancelled if the token fired mid-run

        Raises:
            LookaheadViolation: A step saw a bar on or after its cursor
        """
        cfg = self.config
        start_time = time.time()
        self.status = RunStatus.RUNNING
        indices = self.schedule(series)

        logger.info(
            f"Starting walk-forward {series.symbol}: {cfg.start} → {cfg.end}, "
            f"{len(indices)} steps, interval={cfg.interval_days}d "
            f"horizon={cfg.prediction_days} workers={cfg.max_workers}"
        )

        try:
            if cfg.max_workers > 1:
                entries = self._run_parallel(series, indices)
            else:
                entries = self._run_sequential(series, indices)
        except LookaheadViolation:
            self.status = RunStatus.FAILED
            logger.error(f"Walk-forward {series.symbol} aborted", exc_info=True)
            raise

        self.status = RunStatus.CANCELLED if self.token.cancelled else RunStatus.COMPLETED
        warnings = []
        if not indices:
            warnings.append(
                f"no cursor in {cfg.start}..{cfg.end} has {cfg.min_history} bars of "
                f"history and {cfg.prediction_days} bars ahead"
            )
        skipped = len(indices) - len(entries)
        if skipped and self.status == RunStatus.COMPLETED:
            warnings.append(f"{skipped} steps skipped")

        report = StatisticsCalculator().calculate(
            entries=entries,
            symbol=series.symbol,
            start=cfg.start,
            end=cfg.end,
            status=self.status.value,
            warnings=warnings,
        )

        elapsed = time.time() - start_time
        logger.info(
            f"Walk-forward {series.symbol} {self.status.value} in {elapsed:.1f}s: "
            f"{len(entries)}/{len(indices)} steps"
        )
        return report
