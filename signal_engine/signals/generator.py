"""Buy/sell point generation and trading advice.

Buy points need a total score at or above the signal threshold plus a
confirmation (bullish MA alignment, or bullish resonance of level >= 2).
Sell points need either a weak score with a bearish confirmation, or
price pressing on resistance with a bearish volume divergence.

Every point carries a stop, a take-profit ladder of up to three targets
and a risk/reward ratio; points below min_risk_reward are dropped.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
from typing import Protocol

from signal_engine.config import EngineConfig
from signal_engine.models.analysis import (
    LevelPosition,
    MultiTimeframeSignal,
    PriceLevel,
    SupportResistance,
    VolumePriceDivergence,
)
from signal_engine.models.scoring import MultiFactorScore
from signal_engine.models.signal import BuySellPoint, PointType, Side
from signal_engine.scoring.factors import AnalysisContext

logger = logging.getLogger(__name__)

# Ladder extension multiples applied to the first target's distance
LADDER_EXTENSIONS = (1.5, 2.0)
MAX_TARGETS = 3
# Target used when no level exists on the target side
FALLBACK_TARGET_PCT = 0.10
NO_LEVEL_STOP_ATR = 2.0

BREAKOUT_DISTANCE = 0.02
BREAKOUT_VOLUME = 1.3
PULLBACK_DISTANCE = 0.03
PULLBACK_VOLUME = 0.8
BREAKDOWN_VOLUME = 1.2
RESISTANCE_SELL_DISTANCE = 0.02

DEFAULT_ACCURACY = 0.5


class AccuracyOracle(Protocol):
    """Historical hit rate of a signal type within a confidence bucket."""

    def success_rate(self, signal_type: str, confidence_bucket: str) -> float | None:
        ...


def confidence_bucket(confidence: float) -> str:
    """Ten-point bucket label, e.g. 0.63 -> '0.6-0.7'."""
    low = min(9, max(0, int(confidence * 10)))
    return f"{low / 10:.1f}-{(low + 1) / 10:.1f}"


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


# =============================================================================
# Price ladders
# =============================================================================

def build_ladder(price: float, levels: list[PriceLevel], side: Side) -> list[float]:
    """
    Take-profit ladder: up to three levels on the target side, extended
    with price +/- k * (first target distance) when fewer exist.
    """
    targets = [lv.price for lv in levels[:MAX_TARGETS]]
    if not targets:
        sign = 1.0 if side == Side.BUY else -1.0
        targets = [price * (1 + sign * FALLBACK_TARGET_PCT)]

    first_distance = targets[0] - price
    for k in LADDER_EXTENSIONS:
        if len(targets) >= MAX_TARGETS:
            break
        target = price + k * first_distance
        if (side == Side.BUY and target > targets[-1]) or (
            side == Side.SELL and target < targets[-1]
        ):
            targets.append(target)
    return targets


def reward_ratios(price: float, stop: float, targets: list[float], side: Side) -> list[float]:
    risk = price - stop if side == Side.BUY else stop - price
    if risk <= 0:
        return [0.0 for _ in targets]
    if side == Side.BUY:
        return [(t - price) / risk for t in targets]
    return [(price - t) / risk for t in targets]


# =============================================================================
# Generator
# =============================================================================

class SignalGenerator:
    """Turns a scored AnalysisContext into buy/sell points."""

    def __init__(self, config: EngineConfig | None = None, oracle: AccuracyOracle | None = None):
        self.config = config or EngineConfig()
        self.oracle = oracle

    # -------------------------------------------------------------------------
    # Stops
    # -------------------------------------------------------------------------

    def _buy_stop(self, ctx: AnalysisContext, atr: float) -> float:
        support = ctx.levels.nearest_support
        if support is None:
            return ctx.close - NO_LEVEL_STOP_ATR * atr
        return support - self.config.atr_stop_multiple * atr

    def _sell_stop(self, ctx: AnalysisContext, atr: float) -> float:
        resistance = ctx.levels.nearest_resistance
        if resistance is None:
            return ctx.close + NO_LEVEL_STOP_ATR * atr
        return resistance + self.config.atr_stop_multiple * atr

    # -------------------------------------------------------------------------
    # Confidence
    # -------------------------------------------------------------------------

    def confidence(
        self,
        point_type: PointType,
        score: MultiFactorScore,
        ctx: AnalysisContext,
    ) -> float:
        """
        Blend of side-aligned total score, aligned resonance, divergence
        agreement and historical accuracy. Clamped to [0, 1].
        """
        side = point_type.side
        aligned_score = score.total_score if side == Side.BUY else 100.0 - score.total_score

        res = ctx.resonance
        aligned = res.is_bullish if side == Side.BUY else res.is_bearish
        level = res.resonance_level if aligned else 0

        div = ctx.divergence
        opposing = div.has_bearish_divergence if side == Side.BUY else div.has_bullish_divergence
        divergence_term = 0.3 if opposing else 1.0

        def blend(accuracy: float) -> float:
            return _clamp(
                0.5 * aligned_score / 100.0
                + 0.2 * level / 3.0
                + 0.15 * divergence_term
                + 0.15 * accuracy,
                0.0,
                1.0,
            )

        accuracy = DEFAULT_ACCURACY
        if self.oracle is not None:
            bucket = confidence_bucket(blend(DEFAULT_ACCURACY))
            rate = self.oracle.success_rate(point_type.value, bucket)
            if rate is not None and not math.isnan(rate):
                accuracy = _clamp(rate, 0.0, 1.0)
        return blend(accuracy)

    def _make_point(
        self,
        symbol: str,
        signal_date: dt.date,
        point_type: PointType,
        ctx: AnalysisContext,
        score: MultiFactorScore,
        stop: float,
        targets: list[float],
        strength: float,
        reasons: list[str],
    ) -> BuySellPoint | None:
        side = point_type.side
        ratios = reward_ratios(ctx.close, stop, targets, side)
        rr = ratios[0] if ratios else 0.0
        if rr < self.config.min_risk_reward:
            logger.debug(
                "Dropped %s on %s: risk/reward %.2f < %.2f",
                point_type.value, signal_date, rr, self.config.min_risk_reward,
            )
            return None
        return BuySellPoint(
            symbol=symbol,
            signal_date=signal_date,
            point_type=point_type,
            price_level=ctx.close,
            stop_loss=stop,
            take_profit=targets,
            reward_ratios=ratios,
            risk_reward_ratio=rr,
            confidence=self.confidence(point_type, score, ctx),
            signal_strength=_clamp(strength, 0.0, 100.0),
            reasons=reasons,
        )

    # -------------------------------------------------------------------------
    # Buy side
    # -------------------------------------------------------------------------

    def buy_points(
        self,
        symbol: str,
        signal_date: dt.date,
        ctx: AnalysisContext,
        score: MultiFactorScore,
    ) -> list[BuySellPoint]:
        """Buy candidates for the latest bar, strongest first."""
        atr = ctx.snapshot.atr
        if math.isnan(atr):
            return []

        res = ctx.resonance
        resonance_ok = res.resonance_level >= 2 and res.is_bullish
        trend_ok = ctx.bullish_alignment
        if score.total_score < self.config.signal_threshold or not (resonance_ok or trend_ok):
            return []

        price = ctx.close
        stop = self._buy_stop(ctx, atr)
        targets = build_ladder(price, ctx.levels.resistance_levels, Side.BUY)
        vol_ratio = ctx.volume_vs_average()
        candidates: list[tuple[PointType, float, list[str]]] = []

        if resonance_ok:
            reasons = [f"level {res.resonance_level} bullish resonance"]
            if trend_ok:
                reasons.append("MA bullish alignment")
            if ctx.divergence.has_bullish_divergence:
                reasons.append("bullish volume divergence")
            candidates.append((PointType.RESONANCE_BUY, 70.0 + res.signal_quality * 0.2, reasons))
        elif trend_ok:
            candidates.append((
                PointType.TREND_BUY,
                60.0 + (score.total_score - self.config.signal_threshold) * 0.5,
                ["MA bullish alignment"],
            ))

        resistance = ctx.levels.nearest_resistance
        if (
            resistance is not None
            and (resistance - price) / price <= BREAKOUT_DISTANCE
            and vol_ratio > BREAKOUT_VOLUME
        ):
            candidates.append((
                PointType.BREAKOUT_BUY,
                75.0,
                [f"testing resistance {resistance:.2f}", f"volume {vol_ratio:.1f}x average"],
            ))

        support = ctx.levels.nearest_support
        if (
            support is not None
            and (price - support) / price <= PULLBACK_DISTANCE
            and vol_ratio < PULLBACK_VOLUME
        ):
            candidates.append((
                PointType.PULLBACK_BUY,
                65.0,
                [f"pullback to support {support:.2f}", "volume drying up"],
            ))

        points = []
        for point_type, strength, reasons in candidates:
            point = self._make_point(
                symbol, signal_date, point_type, ctx, score, stop, targets, strength, reasons
            )
            if point is not None:
                points.append(point)
        points.sort(key=lambda p: p.signal_strength, reverse=True)
        return points

    # -------------------------------------------------------------------------
    # Sell side
    # -------------------------------------------------------------------------

    def sell_points(
        self,
        symbol: str,
        signal_date: dt.date,
        ctx: AnalysisContext,
        score: MultiFactorScore,
    ) -> list[BuySellPoint]:
        """Sell candidates for the latest bar, strongest first."""
        atr = ctx.snapshot.atr
        if math.isnan(atr):
            return []

        price = ctx.close
        res = ctx.resonance
        resonance_bearish = res.resonance_level >= 2 and res.is_bearish
        weak = score.total_score <= 100.0 - self.config.signal_threshold and (
            ctx.bearish_alignment or resonance_bearish
        )

        resistance = ctx.levels.nearest_resistance
        pressing = (
            resistance is not None
            and (resistance - price) / price <= RESISTANCE_SELL_DISTANCE
            and ctx.divergence.has_bearish_divergence
        )
        if not (weak or pressing):
            return []

        stop = self._sell_stop(ctx, atr)
        targets = build_ladder(price, ctx.levels.support_levels, Side.SELL)
        candidates: list[tuple[PointType, float, list[str]]] = []

        if resonance_bearish:
            reasons = [f"level {res.resonance_level} bearish resonance"]
            if ctx.bearish_alignment:
                reasons.append("MA bearish alignment")
            if ctx.divergence.has_bearish_divergence:
                reasons.append("bearish volume divergence")
            candidates.append((PointType.RESONANCE_SELL, 75.0 + res.signal_quality * 0.2, reasons))

        # A level the previous close sat above and today's close fell through
        broken = resistance is not None and not math.isnan(ctx.prev_close) and (
            ctx.prev_close >= resistance > price
        )
        vol_ratio = ctx.volume_vs_average()
        if broken and vol_ratio > BREAKDOWN_VOLUME:
            candidates.append((
                PointType.BREAKDOWN_SELL,
                85.0,
                [f"closed below support {resistance:.2f}", f"volume {vol_ratio:.1f}x average"],
            ))

        if pressing:
            candidates.append((
                PointType.RESISTANCE_SELL,
                75.0,
                [f"pressing resistance {resistance:.2f}", "bearish volume divergence"],
            ))

        points = []
        for point_type, strength, reasons in candidates:
            point = self._make_point(
                symbol, signal_date, point_type, ctx, score, stop, targets, strength, reasons
            )
            if point is not None:
                points.append(point)
        points.sort(key=lambda p: p.signal_strength, reverse=True)
        return points

    def generate(
        self,
        symbol: str,
        signal_date: dt.date,
        ctx: AnalysisContext,
        score: MultiFactorScore,
    ) -> tuple[list[BuySellPoint], list[BuySellPoint]]:
        buys = self.buy_points(symbol, signal_date, ctx, score)
        sells = self.sell_points(symbol, signal_date, ctx, score)
        if buys or sells:
            logger.info(
                "%s %s: %d buy / %d sell points (score %.1f)",
                symbol, signal_date, len(buys), len(sells), score.total_score,
            )
        return buys, sells


# =============================================================================
# Advice
# =============================================================================

RISK_BANDS: tuple[tuple[int, str], ...] = (
    (3, "low"),
    (6, "medium"),
    (8, "elevated"),
)


def risk_band(risk_score: int) -> str:
    for ceiling, label in RISK_BANDS:
        if risk_score <= ceiling:
            return label
    return "high"


def generate_trading_advice(
    buy_points: list[BuySellPoint],
    sell_points: list[BuySellPoint],
    resonance: MultiTimeframeSignal,
    levels: SupportResistance,
    divergence: VolumePriceDivergence,
) -> tuple[str, str]:
    """
    Summarize the points and market context as advice text and a risk level.

    The risk score starts at 5 and walks on the signals present, then is
    clamped to 1..10 and banded into low / medium / elevated / high.

    Returns:
        (advice_text, risk_level_text)
    """
    parts = []
    if buy_points and not sell_points:
        best = buy_points[0]
        parts.append(
            f"{best.point_type.value}: target {best.take_profit[0]:.2f}, stop {best.stop_loss:.2f}"
        )
        risk_score = 4
    elif sell_points and not buy_points:
        best = sell_points[0]
        parts.append(
            f"{best.point_type.value}: target {best.take_profit[0]:.2f}, stop {best.stop_loss:.2f}"
        )
        risk_score = 7
    elif buy_points and sell_points:
        if buy_points[0].signal_strength > sell_points[0].signal_strength:
            parts.append("conflicting signals, buy side stronger: buy cautiously or wait")
            risk_score = 5
        else:
            parts.append("conflicting signals, sell side stronger: reduce or wait")
            risk_score = 6
    else:
        parts.append("no clear buy or sell signal: wait and see")
        risk_score = 5

    if resonance.resonance_level >= 2:
        if resonance.is_bullish:
            parts.append("timeframes aligned upward")
            risk_score -= 1
        elif resonance.is_bearish:
            parts.append("timeframes aligned downward")
            risk_score += 1

    position = levels.current_position
    if position == LevelPosition.NEAR_SUPPORT:
        parts.append("price near support, watch for a rebound")
        risk_score -= 1
    elif position == LevelPosition.NEAR_RESISTANCE:
        parts.append("price near resistance, watch for a pullback")
        risk_score += 1

    if divergence.has_bullish_divergence:
        parts.append("bullish divergence, a rebound may follow")
        risk_score -= 1
    if divergence.has_bearish_divergence:
        parts.append("bearish divergence, beware of a pullback")
        risk_score += 2

    risk_score = int(_clamp(risk_score, 1, 10))
    return "; ".join(parts), risk_band(risk_score)
