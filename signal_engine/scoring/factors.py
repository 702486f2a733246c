"""Factor scorers.

Each scorer reads an AnalysisContext and returns (score, rationale) on a
0-100 scale. Scorers are independent of each other. A scorer returns NaN
when an input it needs is still warming up; MultiFactorScorer turns that
into a degraded neutral score.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Callable

import numpy as np

from signal_engine.models.analysis import (
    CandlePattern,
    MultiTimeframeSignal,
    PatternDirection,
    SentimentAnalysis,
    SupportResistance,
    VolumeAnalysis,
    VolumePriceDivergence,
)
from signal_engine.models.indicator import IndicatorSnapshot
from signal_engine.models.scoring import FactorName

SCORE_FLOOR = 5.0
SCORE_CEILING = 95.0


@dataclass
class AnalysisContext:
    """Everything the factor scorers read, computed once per bar."""

    close: float
    snapshot: IndicatorSnapshot
    moving_averages: dict[int, float]
    ma5_prev: float  # MA5 five bars earlier
    levels: SupportResistance
    divergence: VolumePriceDivergence
    volume: VolumeAnalysis
    sentiment: SentimentAnalysis
    resonance: MultiTimeframeSignal
    patterns: list[CandlePattern] = field(default_factory=list)
    prev_close: float = math.nan
    recent_volumes: np.ndarray = field(default_factory=lambda: np.array([], dtype=np.float64))

    def ma(self, period: int) -> float:
        return self.moving_averages.get(period, math.nan)

    def volume_vs_average(self, window: int = 5) -> float:
        """Latest volume over the mean of the `window` bars before it (NaN if unknown)."""
        vols = self.recent_volumes
        if len(vols) < window + 1:
            return math.nan
        base = float(np.mean(vols[-window - 1 : -1]))
        if base <= 0:
            return math.nan
        return float(vols[-1]) / base

    @property
    def bullish_alignment(self) -> bool:
        return self.ma(5) > self.ma(10) > self.ma(20)

    @property
    def bearish_alignment(self) -> bool:
        return self.ma(5) < self.ma(10) < self.ma(20)


FactorResult = tuple[float, str]
FactorScorer = Callable[[AnalysisContext], FactorResult]


def _clamp(score: float) -> float:
    return max(SCORE_FLOOR, min(SCORE_CEILING, score))


def _any_nan(*values: float) -> bool:
    return any(math.isnan(v) for v in values)


# =============================================================================
# Scorers
# =============================================================================

def score_trend(ctx: AnalysisContext) -> FactorResult:
    ma5, ma10, ma20 = ctx.ma(5), ctx.ma(10), ctx.ma(20)
    if _any_nan(ma5, ma10, ma20):
        return math.nan, "moving averages warming up"

    score = 50.0
    reasons = []
    if ctx.bullish_alignment:
        score += 25
        reasons.append("MA bullish alignment")
    elif ctx.bearish_alignment:
        score -= 25
        reasons.append("MA bearish alignment")

    if ctx.close > ma5 and ctx.close > ma20:
        score += 12
        reasons.append("price above MA5 and MA20")
    elif ctx.close < ma5 and ctx.close < ma20:
        score -= 12
        reasons.append("price below MA5 and MA20")

    if not math.isnan(ctx.ma5_prev) and ctx.ma5_prev > 0:
        slope = (ma5 - ctx.ma5_prev) / ctx.ma5_prev
        if slope > 0.02:
            score += 8
            reasons.append(f"MA5 rising {slope:.1%}")
        elif slope < -0.02:
            score -= 8
            reasons.append(f"MA5 falling {slope:.1%}")

    return _clamp(score), "; ".join(reasons) or "no clear trend"


def score_volume_price(ctx: AnalysisContext) -> FactorResult:
    vol = ctx.volume
    score = 50.0
    reasons = []

    if vol.volume_price_sync:
        score += 15
        reasons.append("volume confirms price")
    else:
        score -= 15
        reasons.append("volume diverges from price")

    if vol.obv_trend == "rising":
        score += 12
        reasons.append("OBV rising")
    elif vol.obv_trend == "falling":
        score -= 12
        reasons.append("OBV falling")

    if vol.accumulation_signal > 70:
        score += 15
        reasons.append("strong accumulation")
    elif vol.accumulation_signal > 50:
        score += 8
        reasons.append("accumulation detected")

    if vol.volume_trend == "expanding":
        score += 8
        reasons.append("volume expanding")
    elif vol.volume_trend == "shrinking":
        score -= 5
        reasons.append("volume shrinking")

    return _clamp(score), "; ".join(reasons)


def score_resonance(ctx: AnalysisContext) -> FactorResult:
    res = ctx.resonance
    score = 50.0 + 12.0 * res.resonance_level
    reasons = []
    if res.resonance_level >= 2:
        reasons.append(f"level {res.resonance_level} resonance")
    if res.is_bullish:
        score += 15
        reasons.append("timeframes lean bullish")
    elif res.is_bearish:
        score -= 15
        reasons.append("timeframes lean bearish")
    score += (res.signal_quality - 50.0) * 0.3
    return _clamp(score), "; ".join(reasons) or "no resonance"


def score_momentum(ctx: AnalysisContext) -> FactorResult:
    snap = ctx.snapshot
    if _any_nan(snap.rsi, snap.macd_dif, snap.macd_dea):
        return math.nan, "RSI/MACD warming up"

    score = 50.0
    reasons = []
    if snap.rsi < 30:
        score += 20
        reasons.append("RSI oversold")
    elif snap.rsi > 70:
        score -= 20
        reasons.append("RSI overbought")
    elif 45 < snap.rsi < 55:
        score += 5
        reasons.append("RSI neutral")

    if snap.macd_dif > snap.macd_dea:
        if snap.macd_dif > 0 and snap.macd_dea > 0:
            score += 20
            reasons.append("MACD above zero, DIF over DEA")
        else:
            score += 15
            reasons.append("DIF over DEA")
    elif snap.macd_dif < snap.macd_dea:
        if snap.macd_dif < 0 and snap.macd_dea < 0:
            score -= 20
            reasons.append("MACD below zero, DIF under DEA")
        else:
            score -= 15
            reasons.append("DIF under DEA")

    if snap.macd_dif > snap.macd_dea:
        score += 10
        reasons.append("positive histogram")
    elif snap.macd_dif < snap.macd_dea:
        score -= 10
        reasons.append("negative histogram")

    return _clamp(score), "; ".join(reasons)


def score_pattern(ctx: AnalysisContext) -> FactorResult:
    if not ctx.patterns:
        return 50.0, "no recent patterns"

    score = 50.0
    names = []
    for pattern in ctx.patterns:
        if pattern.direction == PatternDirection.NEUTRAL:
            score -= 5
        else:
            score += pattern.signed_weight * 100 * 0.5
        names.append(pattern.pattern_type)
    return _clamp(score), ", ".join(names)


def score_support_resistance(ctx: AnalysisContext) -> FactorResult:
    price = ctx.close
    levels = ctx.levels
    score = 50.0
    reasons = []

    support = levels.nearest_support
    if support is not None:
        distance = (price - support) / price * 100
        if distance < 2:
            score += 25
            reasons.append(f"near support {support:.2f}")
        elif distance < 5:
            score += 15
            reasons.append("approaching support")

    resistance = levels.nearest_resistance
    if resistance is not None:
        distance = (resistance - price) / price * 100
        if distance < 2:
            score -= 25
            reasons.append(f"near resistance {resistance:.2f}")
        elif distance < 5:
            score -= 15
            reasons.append("approaching resistance")
        elif distance > 10:
            score += 10
            reasons.append("room above")

    if levels.range_high is not None and levels.range_low is not None:
        span = levels.range_high - levels.range_low
        if span > 0:
            position = (price - levels.range_low) / span
            if position < 0.3:
                score += 10
                reasons.append("bottom of range")
            elif position > 0.7:
                score -= 10
                reasons.append("top of range")

    return _clamp(score), "; ".join(reasons) or "mid-range"


def score_sentiment(ctx: AnalysisContext) -> FactorResult:
    sentiment = ctx.sentiment
    score = sentiment.sentiment_score
    reasons = [f"phase {sentiment.market_phase.value}"]
    if sentiment.fear_greed_index > 75:
        score = min(score * 0.8, 70.0)
        reasons.append("extreme greed")
    elif sentiment.fear_greed_index < 25:
        score = min(score + 10, 75.0)
        reasons.append("extreme fear")
    return _clamp(score), "; ".join(reasons)


def score_volatility(ctx: AnalysisContext) -> FactorResult:
    vol_pct = ctx.snapshot.atr_pct
    if math.isnan(vol_pct):
        return math.nan, "ATR warming up"

    if vol_pct < 1.0:
        adjust, label = 20, "very low"
    elif vol_pct < 1.5:
        adjust, label = 10, "low"
    elif vol_pct < 3.0:
        adjust, label = 0, "normal"
    elif vol_pct < 5.0:
        adjust, label = -15, "high"
    else:
        adjust, label = -25, "extreme"
    return _clamp(50.0 + adjust), f"{label} volatility ({vol_pct:.2f}%)"


FACTOR_SCORERS: dict[FactorName, FactorScorer] = {
    FactorName.TREND: score_trend,
    FactorName.VOLUME_PRICE: score_volume_price,
    FactorName.RESONANCE: score_resonance,
    FactorName.MOMENTUM: score_momentum,
    FactorName.PATTERN: score_pattern,
    FactorName.SUPPORT_RESISTANCE: score_support_resistance,
    FactorName.SENTIMENT: score_sentiment,
    FactorName.VOLATILITY: score_volatility,
}

_missing = set(FactorName) - set(FACTOR_SCORERS)
if _missing:
    raise RuntimeError(f"factors without a scorer: {sorted(m.value for m in _missing)}")
