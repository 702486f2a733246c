"""Report formatting for walk-forward results.

Outputs results to console (formatted tables) and JSON files.
"""

from __future__ import annotations

import datetime as dt
import json
import math
from enum import Enum

from walkforward.stats import BacktestReport


class ReportEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, (dt.date, dt.datetime)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


def _finite(value: float) -> float | None:
    return round(value, 6) if math.isfinite(value) else None


class ReportFormatter:
    """Format walk-forward results for display and export."""

    @staticmethod
    def print_console(report: BacktestReport) -> None:
        """Print formatted report to console."""
        print("\n" + "=" * 70)
        print(f"  WALK-FORWARD RESULTS: {report.symbol}")
        print("=" * 70)
        print(f"  Period: {report.start:%Y-%m-%d} → {report.end:%Y-%m-%d}")
        print(f"  Status: {report.status}")

        # Overall
        print("\n" + "-" * 70)
        print("  OVERALL")
        print("-" * 70)
        print(f"  Prediction steps:    {report.total_predictions}")
        print(f"  Price accuracy:      {report.overall_price_accuracy:.1%}")
        print(f"  Direction accuracy:  {report.overall_direction_accuracy:.1%}")
        print(f"  Combined accuracy:   {report.overall_combined_accuracy:.1%}")
        print(f"  Avg price error:     {report.average_prediction_error:.2%}")

        # Error histogram
        if report.price_error_distribution:
            print("\n" + "-" * 70)
            print("  PRICE ERROR DISTRIBUTION")
            print("-" * 70)
            total = len(report.price_error_distribution)
            for label, count in report.error_histogram.items():
                bar = "#" * round(count / total * 40)
                print(f"  {label:<8} {count:>6} {count / total:>7.1%}  {bar}")

        # By setup
        if report.signal_stats:
            print("\n" + "-" * 70)
            print("  SIGNAL OUTCOMES")
            print("-" * 70)
            print(f"  {'Setup':<18} {'Total':>6} {'TP':>5} {'SL':>5} {'Open':>5} {'Win%':>8} {'Avg R':>8}")
            for s in report.signal_stats:
                print(
                    f"  {s.point_type:<18} {s.total:>6} {s.wins:>5} {s.losses:>5} "
                    f"{s.open:>5} {s.win_rate:>7.1f}% {s.avg_r:>+7.2f}R"
                )

        # Per-date (last 10)
        if report.daily_accuracy:
            print("\n" + "-" * 70)
            print("  BY DATE (last 10)")
            print("-" * 70)
            print(f"  {'Date':<12} {'Price':>8} {'Direction':>10} {'Days':>5} {'Volatility':>11}")
            for d in report.daily_accuracy[-10:]:
                print(
                    f"  {d.date:%Y-%m-%d}   {d.price_accuracy:>7.1%} {d.direction_accuracy:>9.1%} "
                    f"{d.prediction_count:>5} {d.market_volatility:>10.2f}%"
                )

        if report.warnings:
            print("\n" + "-" * 70)
            print("  WARNINGS")
            print("-" * 70)
            for w in report.warnings:
                print(f"  - {w}")

        print("\n" + "=" * 70)

    @staticmethod
    def to_dict(report: BacktestReport) -> dict:
        """Convert results to JSON-serializable dict."""
        return {
            "metadata": {
                "symbol": report.symbol,
                "start": report.start.isoformat(),
                "end": report.end.isoformat(),
                "status": report.status,
            },
            "overall": {
                "total_predictions": report.total_predictions,
                "price_accuracy": round(report.overall_price_accuracy, 4),
                "direction_accuracy": round(report.overall_direction_accuracy, 4),
                "combined_accuracy": round(report.overall_combined_accuracy, 4),
                "average_prediction_error": round(report.average_prediction_error, 6),
            },
            "accuracy_trend": report.accuracy_trend,
            "daily_accuracy": [
                {
                    "date": d.date.isoformat(),
                    "price_accuracy": round(d.price_accuracy, 4),
                    "direction_accuracy": round(d.direction_accuracy, 4),
                    "prediction_count": d.prediction_count,
                    "market_volatility": round(d.market_volatility, 4),
                }
                for d in report.daily_accuracy
            ],
            "error_histogram": report.error_histogram,
            "price_error_distribution": [round(e, 4) for e in report.price_error_distribution],
            "volatility_vs_accuracy": [list(pair) for pair in report.volatility_vs_accuracy],
            "signal_stats": [
                {
                    "point_type": s.point_type,
                    "total": s.total,
                    "wins": s.wins,
                    "losses": s.losses,
                    "open": s.open,
                    "win_rate": round(s.win_rate, 2),
                    "avg_r": round(s.avg_r, 4),
                }
                for s in report.signal_stats
            ],
            "entries": [
                {
                    "prediction_date": e.prediction_date.isoformat(),
                    "history_end": e.history_end.isoformat(),
                    "predicted_prices": [p.predicted_price for p in e.predictions],
                    "actual_prices": e.actual_prices,
                    "actual_changes": e.actual_changes,
                    "price_accuracy": round(e.price_accuracy, 4),
                    "direction_accuracy": round(e.direction_accuracy, 4),
                    "avg_prediction_error": round(e.avg_prediction_error, 6),
                    "signals": [
                        {
                            "id": o.point_id,
                            "point_type": o.point_type,
                            "entry_price": o.entry_price,
                            "stop_loss": o.stop_loss,
                            "target": o.target,
                            "outcome": o.outcome,
                            "exit_price": o.exit_price,
                            "bars_held": o.bars_held,
                            "r_multiple": _finite(o.r_multiple),
                        }
                        for o in e.signal_outcomes
                    ],
                }
                for e in report.entries
            ],
            "warnings": report.warnings,
        }

    @staticmethod
    def to_json(report: BacktestReport, filepath: str) -> None:
        """Save results to JSON file."""
        data = ReportFormatter.to_dict(report)
        with open(filepath, "w") as f:
            json.dump(data, f, indent=2, cls=ReportEncoder)
        print(f"\nResults saved to {filepath}")
