"""End-to-end tests for SignalEngine."""

import datetime as dt
import math

import pytest

from signal_engine.config import EngineConfig
from signal_engine.errors import ConfigError
from signal_engine.models.bar import Bar, BarSeries
from signal_engine.models.ensemble import ModelPrediction
from signal_engine.models.signal import Side
from signal_engine.pipeline import SignalEngine, analyze, build_context, predict


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_series(n: int = 160, symbol: str = "TEST") -> BarSeries:
    """Drifting sine wave on weekdays from 2024-01-01."""
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


# ---------------------------------------------------------------------------
# SignalEngine
# ---------------------------------------------------------------------------

class TestSignalEngine:
    """Tests for SignalEngine.run()."""

    def test_run_produces_full_bundle(self):
        series = make_series()
        result = SignalEngine().run(series)
        analysis = result.analysis
        assert analysis.symbol == "TEST"
        assert analysis.as_of == series.last.date
        assert analysis.current_price == series.last.close
        assert 0.0 <= analysis.multi_factor_score.total_score <= 100.0
        assert len(analysis.multi_factor_score.factors) == 8
        assert analysis.current_advice
        assert analysis.risk_level in ("low", "medium", "elevated", "high")
        assert len(result.forecast.predictions) == 5

    def test_ensemble_uses_internal_sources(self):
        result = SignalEngine().run(make_series())
        assert result.analysis.ensemble is not None
        assert result.analysis.ensemble.model_count == 4

    def test_caller_predictions_join_ensemble(self):
        extra = ModelPrediction(source_id="lstm", direction=1, change=0.01, confidence=0.7)
        result = SignalEngine().run(make_series(), model_predictions=[extra])
        assert result.analysis.ensemble.model_count == 5

    def test_insufficient_models_skips_ensemble(self):
        result = SignalEngine(EngineConfig(min_models=10)).run(make_series())
        assert result.analysis.ensemble is None
        assert any("at least 10 predictions" in w for w in result.warnings)

    def test_points_respect_invariants(self):
        config = EngineConfig(signal_threshold=0.0, min_risk_reward=0.1)
        analysis = SignalEngine(config).analyze(make_series())
        for point in analysis.buy_points + analysis.sell_points:
            assert 0.0 <= point.confidence <= 1.0
            assert point.risk_reward_ratio >= 0.1
            if point.side == Side.BUY:
                assert point.stop_loss < point.price_level < point.take_profit[0]
            else:
                assert point.take_profit[0] < point.price_level < point.stop_loss

    def test_deterministic(self):
        series = make_series()
        first = SignalEngine().analyze(series).model_dump_json()
        second = SignalEngine().analyze(series).model_dump_json()
        assert first == second

    def test_series_not_modified(self):
        series = make_series()
        before = series.model_dump()
        SignalEngine().run(series)
        assert series.model_dump() == before

    def test_short_series_warns(self):
        result = SignalEngine().run(make_series(30))
        assert any("MACD" in w for w in result.warnings)
        assert result.analysis.multi_factor_score.total_score >= 0.0

    def test_single_bar_raises(self):
        with pytest.raises(ValueError, match="at least 2 bars"):
            SignalEngine().run(make_series(1))

    def test_bad_overrides_rejected_before_run(self):
        with pytest.raises(ConfigError):
            SignalEngine(EngineConfig(factor_weight_overrides={"trend": 0.9, "momentum": 0.9}))


class TestContext:
    """Tests for build_context()."""

    def test_context_matches_last_bar(self):
        series = make_series()
        ctx, _ = build_context(series, EngineConfig())
        assert ctx.close == series.last.close
        assert ctx.prev_close == series.bars[-2].close
        assert ctx.snapshot.date == series.last.date
        assert set(ctx.moving_averages) == {5, 10, 20, 60}
        assert len(ctx.recent_volumes) == 21

    def test_daily_only(self):
        ctx, warnings = build_context(make_series(), EngineConfig(resample_granularities=[]))
        assert ctx.resonance.weekly.available is False
        assert ctx.resonance.monthly.available is False


class TestWrappers:
    """Tests for the module-level analyze() and predict()."""

    def test_analyze(self):
        analysis = analyze(make_series())
        assert analysis.symbol == "TEST"

    def test_predict(self):
        series = make_series()
        response = predict(series, EngineConfig(prediction_days=3))
        assert len(response.predictions) == 3
        assert response.last_real_data.date == series.last.date
