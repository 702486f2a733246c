"""Tests for the walk-forward backtest engine, statistics and CLI."""

import datetime as dt
import json
import math

import pytest

from signal_engine.config import EngineConfig
from signal_engine.errors import ConfigError, LookaheadViolation
from signal_engine.models.bar import Bar, BarSeries
from signal_engine.models.prediction import Prediction
from signal_engine.models.signal import PointType
from walkforward import __main__ as cli
from walkforward.engine import (
    BacktestConfig,
    BacktestEntry,
    CancellationToken,
    RunStatus,
    WalkForwardEngine,
    direction_hit,
    price_accuracy,
    score_predictions,
)
from walkforward.outcome import Outcome, SignalOutcome
from walkforward.report import ReportFormatter
from walkforward.stats import StatisticsCalculator


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_series(n: int = 160, symbol: str = "TEST") -> BarSeries:
    """Drifting sine wave on weekdays from 2024-01-01 (a Monday)."""
    bars = []
    prev = None
    day = dt.date(2024, 1, 1)
    i = 0
    while len(bars) < n:
        if day.weekday() < 5:
            close = 20 + 0.05 * i + 1.5 * math.sin(i / 6)
            open_ = prev if prev is not None else close
            bars.append(
                Bar(
                    symbol=symbol,
                    date=day,
                    open=open_,
                    high=max(open_, close) * 1.01,
                    low=min(open_, close) * 0.99,
                    close=close,
                    volume=1000 + 300 * math.cos(i / 4),
                    prev_close=prev,
                )
            )
            prev = close
            i += 1
        day += dt.timedelta(days=1)
    return BarSeries(symbol=symbol, bars=bars)


def small_window(**overrides) -> BacktestConfig:
    values = dict(
        start=dt.date(2024, 3, 25),
        end=dt.date(2024, 5, 31),
        interval_days=7,
        prediction_days=5,
        min_history=60,
    )
    values.update(overrides)
    return BacktestConfig(**values)


def make_prediction(day: int, price: float, change_pct: float) -> Prediction:
    return Prediction(
        target_date=dt.date(2024, 3, day),
        predicted_price=price,
        predicted_change_percent=change_pct,
        confidence=0.6,
        trading_signal="hold",
        signal_strength=0.4,
    )


def make_entry(day: int, errors_pct=(), outcomes=()) -> BacktestEntry:
    return BacktestEntry(
        prediction_date=dt.date(2024, 3, day),
        history_end=dt.date(2024, 3, day - 1),
        predictions=[],
        actual_prices=[10.0],
        actual_changes=[1.0],
        price_accuracy=0.9,
        direction_accuracy=1.0,
        combined_accuracy=0.97,
        avg_prediction_error=0.01,
        errors_pct=list(errors_pct),
        signal_outcomes=list(outcomes),
    )


def make_outcome(outcome: Outcome, r: float) -> SignalOutcome:
    return SignalOutcome(
        point_id="x",
        point_type=PointType.TREND_BUY,
        entry_price=100.0,
        stop_loss=95.0,
        target=110.0,
        outcome=outcome,
        exit_price=100.0,
        bars_held=1,
        r_multiple=r,
    )


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class TestBacktestConfig:
    """Tests for BacktestConfig validation."""

    def test_end_before_start(self):
        with pytest.raises(ConfigError):
            BacktestConfig(start=dt.date(2024, 2, 1), end=dt.date(2024, 1, 1))

    @pytest.mark.parametrize(
        "field,value",
        [("interval_days", 0), ("prediction_days", 0), ("min_history", 1), ("max_workers", 0)],
    )
    def test_bad_values(self, field, value):
        with pytest.raises(ConfigError):
            small_window(**{field: value})


# ---------------------------------------------------------------------------
# Accuracy
# ---------------------------------------------------------------------------

class TestAccuracy:
    """Tests for the per-entry accuracy helpers."""

    def test_price_accuracy(self):
        assert price_accuracy(99.0, 100.0) == pytest.approx(0.99)
        assert price_accuracy(300.0, 100.0) == 0.0
        assert price_accuracy(1.0, 0.0) == 0.0

    def test_direction_hit(self):
        assert direction_hit(0.01, 0.02)
        assert not direction_hit(0.01, -0.02)
        assert direction_hit(0.0005, 0.0)
        assert not direction_hit(0.0, 0.01)

    def test_score_predictions(self):
        preds = [make_prediction(4, 102.0, 2.0), make_prediction(5, 101.0, -1.0)]
        realized = [
            Bar(symbol="TEST", date=dt.date(2024, 3, 4), open=100, high=102, low=99, close=101, volume=1),
            Bar(symbol="TEST", date=dt.date(2024, 3, 5), open=101, high=101, low=99, close=100, volume=1),
        ]
        scores = score_predictions(preds, realized, last_close=100.0)
        assert scores["actual_prices"] == [101.0, 100.0]
        assert scores["direction_accuracy"] == 1.0
        assert scores["price_accuracy"] == pytest.approx(((1 - 1 / 101) + 0.99) / 2)
        assert scores["errors_pct"] == pytest.approx([100 / 101, 1.0])
        assert scores["combined_accuracy"] == pytest.approx(
            0.7 * 1.0 + 0.3 * scores["price_accuracy"]
        )

    def test_score_predictions_no_overlap(self):
        scores = score_predictions([make_prediction(4, 102.0, 2.0)], [], last_close=100.0)
        assert scores["price_accuracy"] == 0.0
        assert scores["errors_pct"] == []


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class TestSchedule:
    """Tests for WalkForwardEngine.schedule()."""

    def test_interval_and_bounds(self):
        config = BacktestConfig(
            start=dt.date(2024, 1, 1),
            end=dt.date(2024, 12, 31),
            interval_days=7,
            prediction_days=5,
            min_history=60,
        )
        indices = WalkForwardEngine(config).schedule(make_series())
        assert indices == list(range(60, 156, 5))

    def test_weekend_start_snaps_forward(self):
        config = BacktestConfig(
            start=dt.date(2024, 3, 23),
            end=dt.date(2024, 12, 31),
            interval_days=7,
            prediction_days=5,
            min_history=60,
        )
        indices = WalkForwardEngine(config).schedule(make_series())
        assert indices == list(range(60, 156, 5))


class TestWalkForwardEngine:
    """Tests for WalkForwardEngine.run()."""

    def test_run_completes(self):
        series = make_series()
        engine = WalkForwardEngine(small_window())
        report = engine.run(series)
        assert engine.status == RunStatus.COMPLETED
        assert report.status == "completed"
        assert report.total_predictions == 10
        dates = [e.prediction_date for e in report.entries]
        assert dates == sorted(dates)
        for entry in report.entries:
            assert entry.history_end < entry.prediction_date
            assert len(entry.predictions) == 5
            assert len(entry.actual_prices) == 5
            assert 0.0 <= entry.combined_accuracy <= 1.0

    def test_series_not_modified(self):
        series = make_series()
        before = series.model_dump()
        WalkForwardEngine(small_window()).run(series)
        assert series.model_dump() == before

    def test_lookahead_detected(self, monkeypatch):
        monkeypatch.setattr(BarSeries, "before", lambda self, cutoff: self)
        engine = WalkForwardEngine(small_window())
        with pytest.raises(LookaheadViolation):
            engine.run(make_series())
        assert engine.status == RunStatus.FAILED

    def test_parallel_matches_sequential(self):
        series = make_series()
        sequential = WalkForwardEngine(small_window()).run(series)
        parallel = WalkForwardEngine(small_window(max_workers=4)).run(series)
        assert [e.prediction_date for e in parallel.entries] == [
            e.prediction_date for e in sequential.entries
        ]
        assert [e.combined_accuracy for e in parallel.entries] == [
            e.combined_accuracy for e in sequential.entries
        ]
        assert parallel.overall_direction_accuracy == sequential.overall_direction_accuracy

    def test_cancel_mid_run(self, monkeypatch):
        token = CancellationToken()
        engine = WalkForwardEngine(small_window(), token=token)
        original = engine.run_step

        def step_then_cancel(series, idx):
            entry = original(series, idx)
            token.cancel()
            return entry

        monkeypatch.setattr(engine, "run_step", step_then_cancel)
        report = engine.run(make_series())
        assert report.status == "cancelled"
        assert len(report.entries) == 1

    def test_no_cursor_warning(self):
        report = WalkForwardEngine(small_window(min_history=1000)).run(make_series())
        assert report.total_predictions == 0
        assert any("no cursor" in w for w in report.warnings)

    def test_supplied_engine_config_follows_backtest_horizon(self):
        """A caller's engine config forecasts exactly the days the run scores."""
        engine = WalkForwardEngine(small_window(prediction_days=3), engine_config=EngineConfig())
        assert engine.engine_config.prediction_days == 3
        report = engine.run(make_series())
        assert report.entries
        for entry in report.entries:
            assert len(entry.predictions) == 3
            assert len(entry.actual_prices) == 3

    def test_supplied_engine_config_keeps_other_settings(self):
        engine = WalkForwardEngine(small_window(), engine_config=EngineConfig(min_models=2))
        assert engine.engine_config.min_models == 2
        assert engine.engine_config.prediction_days == 5


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

class TestStatistics:
    """Tests for StatisticsCalculator."""

    def calculate(self, entries):
        return StatisticsCalculator().calculate(
            entries=entries,
            symbol="TEST",
            start=dt.date(2024, 3, 1),
            end=dt.date(2024, 3, 31),
            status="completed",
        )

    def test_error_histogram(self):
        report = self.calculate([make_entry(4, errors_pct=[0.5, 1.5, 3.0, 7.0, 12.0])])
        assert report.error_histogram == {"0-1%": 1, "1-2%": 1, "2-5%": 1, "5-10%": 1, ">10%": 1}

    def test_signal_stats(self):
        outcomes = [make_outcome(Outcome.TP, 2.0), make_outcome(Outcome.SL, -1.0), make_outcome(Outcome.OPEN, 0.5)]
        report = self.calculate([make_entry(4, outcomes=outcomes)])
        stats = report.signal_stats[0]
        assert stats.point_type == "trend_buy"
        assert (stats.wins, stats.losses, stats.open) == (1, 1, 1)
        assert stats.win_rate == pytest.approx(50.0)
        assert stats.avg_r == pytest.approx(0.5)

    def test_overall_and_daily(self):
        report = self.calculate([make_entry(4), make_entry(11)])
        assert report.total_predictions == 2
        assert report.overall_combined_accuracy == pytest.approx(0.97)
        assert [d.date for d in report.daily_accuracy] == [dt.date(2024, 3, 4), dt.date(2024, 3, 11)]
        assert report.daily_accuracy[0].market_volatility == pytest.approx(1.0)

    def test_empty(self):
        report = self.calculate([])
        assert report.total_predictions == 0
        assert report.daily_accuracy == []
        assert sum(report.error_histogram.values()) == 0

    def test_to_dict_is_json_serializable(self):
        outcomes = [make_outcome(Outcome.TP, 2.0)]
        report = self.calculate([make_entry(4, errors_pct=[0.5], outcomes=outcomes)])
        data = json.loads(json.dumps(ReportFormatter.to_dict(report), default=str))
        assert data["metadata"]["symbol"] == "TEST"
        assert data["overall"]["total_predictions"] == 1


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

class TestCli:
    """Tests for the python -m walkforward entry point."""

    def write_csv(self, path):
        lines = ["date,open,high,low,close,volume"]
        for bar in make_series().bars:
            lines.append(
                f"{bar.date.isoformat()},{bar.open},{bar.high},{bar.low},{bar.close},{bar.volume}"
            )
        path.write_text("\n".join(lines) + "\n")

    def test_load_bars(self, tmp_path):
        csv_path = tmp_path / "600519.csv"
        self.write_csv(csv_path)
        series = cli.load_bars(str(csv_path))
        assert series.symbol == "600519"
        assert len(series) == 160
        assert series.bars[0].prev_close is None
        assert series.bars[1].prev_close == pytest.approx(series.bars[0].close)

    def test_load_bars_missing_columns(self, tmp_path):
        csv_path = tmp_path / "bad.csv"
        csv_path.write_text("date,close\n2024-01-01,10\n")
        with pytest.raises(ValueError, match="missing columns"):
            cli.load_bars(str(csv_path))

    def test_main_writes_json(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(cli.signal, "signal", lambda *args: None)
        csv_path = tmp_path / "bars.csv"
        out_path = tmp_path / "out.json"
        self.write_csv(csv_path)
        code = cli.main([
            "--csv", str(csv_path),
            "--symbol", "TEST",
            "--start", "2024-03-25",
            "--end", "2024-04-30",
            "--interval", "7",
            "--json", str(out_path),
        ])
        assert code == 0
        data = json.loads(out_path.read_text())
        assert data["metadata"]["status"] == "completed"
        assert data["overall"]["total_predictions"] > 0

    def test_main_rejects_bad_range(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        csv_path = tmp_path / "bars.csv"
        self.write_csv(csv_path)
        code = cli.main(["--csv", str(csv_path), "--start", "2024-05-01", "--end", "2024-04-01"])
        assert code == 2
