"""Factor weight vectors: overrides, regime adjustment, blending, evaluation.

Default weights (sum 1.0):
    trend 0.22, volume_price 0.18, resonance 0.15, momentum 0.13,
    pattern 0.12, support_resistance 0.10, sentiment 0.07, volatility 0.03

adjust_weights() applies named multiplicative regime adjustments, then
clamps every weight to [MIN_WEIGHT, MAX_WEIGHT] and renormalizes. Clamping
and renormalizing are repeated (fixing weights that hit a bound) until
both the bounds and the unit sum hold.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Mapping, Sequence

from signal_engine.errors import ConfigError
from signal_engine.models.analysis import MarketPhase
from signal_engine.models.scoring import WEIGHT_TOLERANCE, FactorName, FactorWeights

logger = logging.getLogger(__name__)

MIN_WEIGHT = 0.02
MAX_WEIGHT = 0.30
MAX_BLEND_RATIO = 0.7

DEFAULT_WEIGHTS = FactorWeights()

F = FactorName

# =============================================================================
# Regime adjustment tables
# =============================================================================

# (label, multipliers)
Adjustment = tuple[str, dict[FactorName, float]]

STRONG_TREND: Adjustment = (
    "strong_trend",
    {F.TREND: 1.30, F.RESONANCE: 1.30, F.SUPPORT_RESISTANCE: 0.85, F.PATTERN: 0.85},
)
MODERATE_TREND: Adjustment = (
    "moderate_trend",
    {F.TREND: 1.15, F.RESONANCE: 1.15, F.SUPPORT_RESISTANCE: 0.92, F.PATTERN: 0.92},
)
WEAK_TREND: Adjustment = (
    "weak_trend",
    {F.TREND: 0.85, F.RESONANCE: 0.85, F.SUPPORT_RESISTANCE: 1.15, F.PATTERN: 1.15},
)

PHASE_ADJUSTMENTS: dict[MarketPhase, Adjustment] = {
    MarketPhase.OVERHEATED: (
        "phase_overheated",
        {F.SENTIMENT: 1.20, F.VOLATILITY: 1.30, F.TREND: 0.90},
    ),
    MarketPhase.RISING: (
        "phase_rising",
        {F.TREND: 1.20, F.RESONANCE: 1.20, F.MOMENTUM: 1.15},
    ),
    MarketPhase.RANGING: (
        "phase_ranging",
        {F.SUPPORT_RESISTANCE: 1.30, F.PATTERN: 1.20, F.TREND: 0.85},
    ),
    MarketPhase.DECLINING: (
        "phase_declining",
        {F.VOLATILITY: 1.20, F.SENTIMENT: 1.15, F.SUPPORT_RESISTANCE: 1.20},
    ),
    MarketPhase.PANIC: (
        "phase_panic",
        {F.SENTIMENT: 1.30, F.SUPPORT_RESISTANCE: 1.30, F.VOLATILITY: 1.20},
    ),
}

HIGH_VOLATILITY: Adjustment = ("high_volatility", {F.VOLATILITY: 1.30})
ELEVATED_VOLATILITY: Adjustment = ("elevated_volatility", {F.VOLATILITY: 1.15})


def regime_adjustments(
    market_phase: MarketPhase | None,
    volatility_pct: float | None,
    adx: float | None,
) -> list[Adjustment]:
    """Adjustments that apply to a regime, in application order."""
    adjustments: list[Adjustment] = []

    if adx is not None and not math.isnan(adx):
        if adx > 40:
            adjustments.append(STRONG_TREND)
        elif adx > 25:
            adjustments.append(MODERATE_TREND)
        else:
            adjustments.append(WEAK_TREND)

    if market_phase is not None:
        adjustments.append(PHASE_ADJUSTMENTS[market_phase])

    if volatility_pct is not None and not math.isnan(volatility_pct):
        if volatility_pct > 5.0:
            adjustments.append(HIGH_VOLATILITY)
        elif volatility_pct > 3.0:
            adjustments.append(ELEVATED_VOLATILITY)

    return adjustments


# =============================================================================
# Clamp + renormalize
# =============================================================================

def clamp_and_normalize(
    raw: Mapping[FactorName, float],
    lo: float = MIN_WEIGHT,
    hi: float = MAX_WEIGHT,
) -> dict[FactorName, float]:
    """
    Project positive raw weights onto {sum = 1, lo <= w <= hi}.

    Weights are scaled proportionally; any weight that would cross a bound
    is pinned there and the remaining mass is redistributed over the rest.
    Upper-bound violations are pinned before lower-bound ones.
    """
    names = list(raw)
    if len(names) * lo > 1.0 + WEIGHT_TOLERANCE or len(names) * hi < 1.0 - WEIGHT_TOLERANCE:
        raise ConfigError(
            f"cannot fit {len(names)} weights into [{lo}, {hi}] with sum 1.0"
        )

    fixed: dict[FactorName, float] = {}
    free = [n for n in names]
    scaled: dict[FactorName, float] = {}
    while free:
        remaining = 1.0 - sum(fixed.values())
        free_total = sum(raw[n] for n in free)
        if free_total <= 0:
            scaled = {n: remaining / len(free) for n in free}
        else:
            scaled = {n: raw[n] * remaining / free_total for n in free}

        over = [n for n in free if scaled[n] > hi]
        if over:
            for n in over:
                fixed[n] = hi
            free = [n for n in free if n not in over]
            continue
        under = [n for n in free if scaled[n] < lo]
        if under:
            for n in under:
                fixed[n] = lo
            free = [n for n in free if n not in under]
            continue
        break
    else:
        scaled = {}

    result = {**fixed, **scaled}
    return {n: result[n] for n in names}


def adjust_weights(
    weights: FactorWeights,
    market_phase: MarketPhase | None,
    volatility_pct: float | None,
    adx: float | None,
) -> FactorWeights:
    """
    Adapt a weight vector to the detected market regime.

    Args:
        weights: Base weights (defaults or validated overrides)
        market_phase: Sentiment market phase (None skips the phase table)
        volatility_pct: ATR as percent of price (None/NaN skips)
        adx: Latest ADX (None/NaN skips the trend-strength table)

    Returns:
        New FactorWeights summing to 1.0 with every weight in [0.02, 0.30]
    """
    raw = dict(weights.as_dict())
    applied = []
    for label, multipliers in regime_adjustments(market_phase, volatility_pct, adx):
        for name, mult in multipliers.items():
            raw[name] *= mult
        applied.append(label)

    adjusted = clamp_and_normalize(raw)
    logger.debug(f"Weight adjustments applied: {applied or 'none'}")
    return FactorWeights.from_mapping(adjusted)


# =============================================================================
# Overrides
# =============================================================================

def validate_overrides(overrides: Mapping[str, float]) -> FactorWeights:
    """
    Validate a factor_weight_overrides map and return it as FactorWeights.

    Raises:
        ConfigError: Unknown factor name, negative/NaN weight, or a sum
            outside 1.0 +/- 1e-6
    """
    known = {f.value for f in FactorName}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ConfigError(f"unknown factors in weight overrides: {unknown}")

    for name, value in overrides.items():
        if value is None or math.isnan(value) or value < 0:
            raise ConfigError(f"weight override for '{name}' must be >= 0, got {value}")

    total = sum(overrides.values())
    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        raise ConfigError(
            f"weight overrides must sum to 1.0 (+/- {WEIGHT_TOLERANCE}), got {total:.6f}"
        )

    full = {f.value: 0.0 for f in FactorName}
    full.update({k: float(v) for k, v in overrides.items()})
    return FactorWeights(**full)


def resolve_weights(overrides: Mapping[str, float] | None) -> FactorWeights:
    """Base weight vector: validated overrides, or the defaults."""
    if overrides is None:
        return DEFAULT_WEIGHTS
    return validate_overrides(overrides)


# =============================================================================
# Blending and evaluation
# =============================================================================

def blend_weights(
    default: FactorWeights,
    learned: FactorWeights,
    learning_confidence: float,
) -> FactorWeights:
    """Blend learned weights into defaults, trusting learned weights at most 70%."""
    lc = max(0.0, min(MAX_BLEND_RATIO, learning_confidence))
    dc = 1.0 - lc
    blended = {
        name: default[name] * dc + learned[name] * lc for name in FactorName
    }
    total = sum(blended.values())
    return FactorWeights.from_mapping({n: v / total for n, v in blended.items()})


@dataclass
class WeightPerformance:
    mae: float = 0.0
    rmse: float = 0.0
    direction_accuracy: float = 0.0
    sample_count: int = 0


def evaluate_weights(records: Sequence[tuple[float, float]]) -> WeightPerformance:
    """
    Score (predicted_change_pct, actual_change_pct) pairs.

    Direction counts as correct on matching signs, or when both moves are
    negligible (|predicted| < 0.3 and |actual| < 0.5).
    """
    if not records:
        return WeightPerformance()

    abs_err = 0.0
    sq_err = 0.0
    correct = 0
    for predicted, actual in records:
        err = actual - predicted
        abs_err += abs(err)
        sq_err += err * err
        if (
            (predicted > 0 and actual > 0)
            or (predicted < 0 and actual < 0)
            or (abs(predicted) < 0.3 and abs(actual) < 0.5)
        ):
            correct += 1

    n = len(records)
    return WeightPerformance(
        mae=abs_err / n,
        rmse=math.sqrt(sq_err / n),
        direction_accuracy=correct / n,
        sample_count=n,
    )
