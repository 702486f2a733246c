"""Statistics calculator for walk-forward results.

Computes overall accuracy, per-date buckets, the error distribution and
per-setup signal outcome statistics.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import pandas as pd

from walkforward.outcome import Outcome

if TYPE_CHECKING:
    from walkforward.engine import BacktestEntry

logger = logging.getLogger(__name__)

# Upper bounds of the |error%| histogram buckets; the last is open-ended
ERROR_BUCKETS = (
    ("0-1%", 1.0),
    ("1-2%", 2.0),
    ("2-5%", 5.0),
    ("5-10%", 10.0),
    (">10%", float("inf")),
)


@dataclass
class DailyAccuracy:
    date: dt.date
    price_accuracy: float = 0.0
    direction_accuracy: float = 0.0
    prediction_count: int = 0
    # Mean |realized daily change| in percent
    market_volatility: float = 0.0


@dataclass
class SignalTypeStats:
    point_type: str
    total: int = 0
    wins: int = 0
    losses: int = 0
    open: int = 0
    total_r: float = 0.0

    @property
    def win_rate(self) -> float:
        resolved = self.wins + self.losses
        return (self.wins / resolved * 100) if resolved > 0 else 0.0

    @property
    def avg_r(self) -> float:
        return self.total_r / self.total if self.total > 0 else 0.0


@dataclass
class BacktestReport:
    """Complete walk-forward results."""

    # Metadata
    symbol: str
    start: dt.date
    end: dt.date
    status: str

    entries: list[BacktestEntry] = field(default_factory=list)

    # Overall
    total_predictions: int = 0
    overall_price_accuracy: float = 0.0
    overall_direction_accuracy: float = 0.0
    overall_combined_accuracy: float = 0.0
    average_prediction_error: float = 0.0
    accuracy_trend: list[float] = field(default_factory=list)

    # Breakdowns
    daily_accuracy: list[DailyAccuracy] = field(default_factory=list)
    price_error_distribution: list[float] = field(default_factory=list)
    error_histogram: dict[str, int] = field(default_factory=dict)
    volatility_vs_accuracy: list[tuple[float, float]] = field(default_factory=list)

    # Signal outcomes
    signal_stats: list[SignalTypeStats] = field(default_factory=list)

    warnings: list[str] = field(default_factory=list)


class StatisticsCalculator:
    """Calculate walk-forward statistics from ordered entries."""

    def calculate(
        self,
        entries: list[BacktestEntry],
        symbol: str,
        start: dt.date,
        end: dt.date,
        status: str,
        warnings: list[str] | None = None,
    ) -> BacktestReport:
        report = BacktestReport(
            symbol=symbol,
            start=start,
            end=end,
            status=status,
            entries=list(entries),
            warnings=list(warnings or []),
        )
        self._calc_overall(report)
        self._calc_daily(report)
        self._calc_errors(report)
        self._calc_signals(report)
        return report

    def _calc_overall(self, report: BacktestReport) -> None:
        entries = report.entries
        report.total_predictions = len(entries)
        if not entries:
            return
        n = len(entries)
        report.overall_price_accuracy = sum(e.price_accuracy for e in entries) / n
        report.overall_direction_accuracy = sum(e.direction_accuracy for e in entries) / n
        report.overall_combined_accuracy = sum(e.combined_accuracy for e in entries) / n
        report.average_prediction_error = sum(e.avg_prediction_error for e in entries) / n
        report.accuracy_trend = [e.direction_accuracy for e in entries]

    def _calc_daily(self, report: BacktestReport) -> None:
        if not report.entries:
            return
        frame = pd.DataFrame(
            [
                {
                    "date": e.prediction_date,
                    "price_accuracy": e.price_accuracy,
                    "direction_accuracy": e.direction_accuracy,
                    "prediction_count": len(e.actual_changes),
                    "market_volatility": (
                        sum(abs(c) for c in e.actual_changes) / len(e.actual_changes)
                        if e.actual_changes else 0.0
                    ),
                }
                for e in report.entries
            ]
        )
        grouped = frame.groupby("date", sort=True).agg(
            price_accuracy=("price_accuracy", "mean"),
            direction_accuracy=("direction_accuracy", "mean"),
            prediction_count=("prediction_count", "sum"),
            market_volatility=("market_volatility", "mean"),
        )
        report.daily_accuracy = [
            DailyAccuracy(
                date=date,
                price_accuracy=float(row.price_accuracy),
                direction_accuracy=float(row.direction_accuracy),
                prediction_count=int(row.prediction_count),
                market_volatility=float(row.market_volatility),
            )
            for date, row in grouped.iterrows()
        ]
        report.volatility_vs_accuracy = [
            (d.market_volatility, d.direction_accuracy) for d in report.daily_accuracy
        ]

    def _calc_errors(self, report: BacktestReport) -> None:
        errors = [err for e in report.entries for err in e.errors_pct]
        report.price_error_distribution = errors
        histogram = {label: 0 for label, _ in ERROR_BUCKETS}
        for err in errors:
            for label, upper in ERROR_BUCKETS:
                if err < upper:
                    histogram[label] += 1
                    break
        report.error_histogram = histogram

    def _calc_signals(self, report: BacktestReport) -> None:
        groups: dict[str, SignalTypeStats] = {}
        for entry in report.entries:
            for outcome in entry.signal_outcomes:
                key = outcome.point_type.value
                if key not in groups:
                    groups[key] = SignalTypeStats(point_type=key)
                stats = groups[key]
                stats.total += 1
                stats.total_r += outcome.r_multiple
                if outcome.outcome == Outcome.TP:
                    stats.wins += 1
                elif outcome.outcome == Outcome.SL:
                    stats.losses += 1
                else:
                    stats.open += 1
        report.signal_stats = sorted(groups.values(), key=lambda s: s.total, reverse=True)
