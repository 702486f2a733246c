"""End-to-end analysis of one symbol's bar history.

bars -> indicators + timeframe caches -> analyzers -> scorer -> signals,
with the ensemble fed by the engine's own prediction sources plus any
caller-supplied model predictions.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Sequence

from signal_engine.analysis import (
    analyze_resonance,
    analyze_sentiment,
    analyze_volume,
    detect_divergence,
    detect_levels,
    identify_patterns,
)
from signal_engine.config import EngineConfig
from signal_engine.ensemble import EnsembleFusion, PerformanceTracker, direction_of
from signal_engine.errors import InsufficientModels
from signal_engine.forecast import (
    generate_predictions,
    historical_volatility,
    price_momentum,
    trend_bias,
)
from signal_engine.indicators import IndicatorCalculator, sma
from signal_engine.models.bar import BarSeries
from signal_engine.models.ensemble import EnsemblePrediction, ModelPrediction, PredictionLayer
from signal_engine.models.prediction import PredictionResponse, ProfessionalPrediction
from signal_engine.models.scoring import MultiFactorScore
from signal_engine.scoring import AnalysisContext, MultiFactorScorer
from signal_engine.signals import AccuracyOracle, SignalGenerator, generate_trading_advice
from signal_engine.timeframe import Granularity, build_caches

logger = logging.getLogger(__name__)

MIN_BARS = 2


@dataclass
class EngineResult:
    """Analysis and forecast produced from the same history."""

    analysis: ProfessionalPrediction
    forecast: PredictionResponse
    context: AnalysisContext
    warnings: list[str] = field(default_factory=list)


# =============================================================================
# Context
# =============================================================================

def build_context(series: BarSeries, config: EngineConfig) -> tuple[AnalysisContext, list[str]]:
    """
    Run indicators and every analyzer over the series.

    Returns:
        Tuple of (AnalysisContext for the last bar, warnings)
    """
    if len(series) < MIN_BARS:
        raise ValueError(f"analysis needs at least {MIN_BARS} bars, got {len(series)}")

    bars = series.bars
    params = config.indicators
    warnings: list[str] = []

    daily = IndicatorCalculator(params).calculate(bars)
    snapshot = daily.snapshots[-1]
    warnings.extend(daily.warnings)
    if not snapshot.complete:
        warnings.append(f"daily indicators still warming up on {snapshot.date}")

    caches = build_caches(bars, config.granularities, params)
    higher = {}
    for granularity, cache in caches.items():
        warnings.extend(cache.warnings)
        higher[granularity] = cache.at(snapshot.date)

    resonance = analyze_resonance(
        snapshot,
        higher.get(Granularity.WEEKLY),
        higher.get(Granularity.MONTHLY),
    )

    closes = series.closes()
    moving_averages = {}
    ma5_prev = math.nan
    for period in params.ma_periods:
        values = sma(closes, period)
        moving_averages[period] = float(values[-1])
        if period == 5 and len(values) > 5:
            ma5_prev = float(values[-6])

    ctx = AnalysisContext(
        close=float(closes[-1]),
        snapshot=snapshot,
        moving_averages=moving_averages,
        ma5_prev=ma5_prev,
        levels=detect_levels(bars),
        divergence=detect_divergence(bars),
        volume=analyze_volume(bars),
        sentiment=analyze_sentiment(bars, rsi_period=params.rsi_period),
        resonance=resonance,
        patterns=identify_patterns(bars),
        prev_close=float(closes[-2]),
        recent_volumes=series.volumes()[-21:],
    )
    return ctx, warnings


# =============================================================================
# Internal prediction sources
# =============================================================================

def internal_predictions(
    ctx: AnalysisContext,
    score: MultiFactorScore,
    forecast: PredictionResponse,
    closes: Sequence[float],
) -> list[ModelPrediction]:
    """The engine's own prediction sources, one per layer family."""
    predictions = []

    factor_change = (score.total_score - 50.0) / 50.0 * 0.02
    predictions.append(
        ModelPrediction(
            source_id="multi_factor",
            direction=direction_of(factor_change),
            change=factor_change,
            confidence=min(1.0, 0.4 + abs(score.total_score - 50.0) / 100.0),
            layer=PredictionLayer.TECHNICAL,
        )
    )

    resonance_change = trend_bias(ctx.resonance)
    predictions.append(
        ModelPrediction(
            source_id="resonance",
            direction=direction_of(resonance_change),
            change=resonance_change,
            confidence=ctx.resonance.signal_quality / 100.0,
            layer=PredictionLayer.TECHNICAL,
        )
    )

    if forecast.predictions:
        first = forecast.predictions[0]
        forecast_change = first.predicted_change_percent / 100.0
        predictions.append(
            ModelPrediction(
                source_id="trend_forecast",
                direction=direction_of(forecast_change),
                change=forecast_change,
                confidence=first.confidence,
                layer=PredictionLayer.STATISTICAL,
            )
        )

    momentum_change = price_momentum(closes) * 0.5
    predictions.append(
        ModelPrediction(
            source_id="momentum",
            direction=direction_of(momentum_change),
            change=momentum_change,
            confidence=0.5,
            layer=PredictionLayer.STATISTICAL,
        )
    )
    return predictions


# =============================================================================
# Engine
# =============================================================================

class SignalEngine:
    """
    Runs the full analysis for one bar history.

    Weight overrides are validated when the engine is built, so a bad
    configuration raises ConfigError before any bars are read.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        oracle: AccuracyOracle | None = None,
        tracker: PerformanceTracker | None = None,
    ):
        self.config = config or EngineConfig()
        self.scorer = MultiFactorScorer(self.config)
        self.generator = SignalGenerator(self.config, oracle)
        self.fusion = EnsembleFusion(self.config)
        self.tracker = tracker

    def _fuse(
        self,
        predictions: list[ModelPrediction],
        closes: Sequence[float],
        warnings: list[str],
    ) -> EnsemblePrediction | None:
        if self.tracker is not None:
            predictions = self.tracker.apply(predictions)
        try:
            ensemble = self.fusion.fuse(predictions, market_volatility=historical_volatility(closes))
        except InsufficientModels as e:
            logger.warning(str(e))
            warnings.append(str(e))
            return None
        warnings.extend(ensemble.warnings)
        return ensemble

    def run(
        self,
        series: BarSeries,
        model_predictions: Sequence[ModelPrediction] | None = None,
    ) -> EngineResult:
        """
        Analyze the series and forecast the next prediction_days.

        Args:
            series: Bar history of one symbol (not modified)
            model_predictions: Extra caller-owned predictions for the ensemble

        Returns:
            EngineResult with the analysis bundle and the forecast
        """
        ctx, warnings = build_context(series, self.config)
        score = self.scorer.score(ctx)
        warnings.extend(score.warnings)

        last = series.last
        buys, sells = self.generator.generate(series.symbol, last.date, ctx, score)
        advice, risk_level = generate_trading_advice(
            buys, sells, ctx.resonance, ctx.levels, ctx.divergence
        )

        forecast = generate_predictions(
            series, ctx.resonance, ctx.levels, days=self.config.prediction_days
        )

        closes = series.closes()
        predictions = internal_predictions(ctx, score, forecast, closes)
        predictions.extend(model_predictions or [])
        ensemble = self._fuse(predictions, closes, warnings)

        analysis = ProfessionalPrediction(
            symbol=series.symbol,
            as_of=last.date,
            current_price=ctx.close,
            buy_points=buys,
            sell_points=sells,
            support_resistance=ctx.levels,
            multi_timeframe=ctx.resonance,
            divergence=ctx.divergence,
            current_advice=advice,
            risk_level=risk_level,
            candle_patterns=ctx.patterns,
            volume_analysis=ctx.volume,
            sentiment=ctx.sentiment,
            multi_factor_score=score,
            ensemble=ensemble,
            warnings=warnings,
        )
        logger.debug(
            "%s %s: score %.1f, %d buy / %d sell, %d warnings",
            series.symbol, last.date, score.total_score, len(buys), len(sells), len(warnings),
        )
        return EngineResult(analysis=analysis, forecast=forecast, context=ctx, warnings=warnings)

    def analyze(
        self,
        series: BarSeries,
        model_predictions: Sequence[ModelPrediction] | None = None,
    ) -> ProfessionalPrediction:
        return self.run(series, model_predictions).analysis

    def predict(self, series: BarSeries) -> PredictionResponse:
        """Forecast only; skips scoring and signal generation."""
        ctx, _ = build_context(series, self.config)
        return generate_predictions(
            series, ctx.resonance, ctx.levels, days=self.config.prediction_days
        )


def analyze(
    series: BarSeries,
    config: EngineConfig | None = None,
    model_predictions: Sequence[ModelPrediction] | None = None,
    oracle: AccuracyOracle | None = None,
) -> ProfessionalPrediction:
    """Convenience wrapper around SignalEngine.analyze()."""
    return SignalEngine(config, oracle).analyze(series, model_predictions)


def predict(series: BarSeries, config: EngineConfig | None = None) -> PredictionResponse:
    """Convenience wrapper around SignalEngine.predict()."""
    return SignalEngine(config).predict(series)
