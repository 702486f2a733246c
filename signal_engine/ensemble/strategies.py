"""Fusion strategy handlers.

Every EnsembleStrategy value maps to exactly one handler in
STRATEGY_HANDLERS. A handler takes the (already filtered) predictions and
returns a FusionResult; consensus and risk are computed by the caller.
"""

from __future__ import annotations

import math
from collections import Counter
from typing import Callable, NamedTuple, Sequence

from signal_engine.ensemble.consensus import consensus_score
from signal_engine.models.ensemble import EnsembleStrategy, ModelPrediction, PredictionLayer

DIRECTION_DEAD_BAND = 0.005

LAYER_WEIGHTS: dict[PredictionLayer, float] = {
    PredictionLayer.TECHNICAL: 0.35,
    PredictionLayer.LEARNED: 0.45,
    PredictionLayer.STATISTICAL: 0.20,
}

# Hybrid blend of (voting, weighted average, stacking)
HYBRID_MIX = (0.3, 0.4, 0.3)


class FusionResult(NamedTuple):
    direction: int
    change: float
    confidence: float


def direction_of(change: float, dead_band: float = DIRECTION_DEAD_BAND) -> int:
    if change > dead_band:
        return 1
    if change < -dead_band:
        return -1
    return 0


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


# =============================================================================
# Handlers
# =============================================================================

def weighted_average(predictions: Sequence[ModelPrediction]) -> FusionResult:
    """
    change = sum(change * w * conf) / sum(w * conf), plain mean if that
    denominator is 0. Confidence is the weight-averaged confidence scaled
    by 0.8 + 0.2 * consensus.
    """
    strength = sum(p.weight * p.confidence for p in predictions)
    if strength > 0:
        change = sum(p.change * p.weight * p.confidence for p in predictions) / strength
    else:
        change = _mean([p.change for p in predictions])

    total_weight = sum(p.weight for p in predictions)
    if total_weight > 0:
        base_conf = sum(p.confidence * p.weight for p in predictions) / total_weight
    else:
        base_conf = _mean([p.confidence for p in predictions])

    confidence = base_conf * (0.8 + 0.2 * consensus_score(predictions))
    return FusionResult(direction_of(change), change, confidence)


def voting(predictions: Sequence[ModelPrediction]) -> FusionResult:
    """
    Confidence-weighted vote on the declared direction.

    Ties go to the direction with the higher summed confidence, then to 0.
    """
    votes: dict[int, float] = {}
    agg_conf: dict[int, float] = {}
    for p in predictions:
        votes[p.direction] = votes.get(p.direction, 0.0) + p.weight * p.confidence
        agg_conf[p.direction] = agg_conf.get(p.direction, 0.0) + p.confidence

    best = max((votes[d], agg_conf[d]) for d in votes)
    leaders = [d for d in votes if (votes[d], agg_conf[d]) == best]
    if len(leaders) == 1:
        winner = leaders[0]
    else:
        # Unresolved ties go to neutral
        winner = 0

    members = [p for p in predictions if p.direction == winner] or list(predictions)
    total_votes = sum(votes.values())
    share = best[0] / total_votes if total_votes > 0 else 0.0

    change = _mean([p.change for p in members])
    confidence = _mean([p.confidence for p in members]) * share
    return FusionResult(winner, change, confidence)


def stacking(predictions: Sequence[ModelPrediction]) -> FusionResult:
    """Weighted average per layer, then a fixed layer blend over present layers."""
    layer_results: list[tuple[float, FusionResult]] = []
    for layer, layer_weight in LAYER_WEIGHTS.items():
        members = [p for p in predictions if p.layer == layer]
        if members:
            layer_results.append((layer_weight, weighted_average(members)))

    total = sum(w for w, _ in layer_results)
    change = sum(w * r.change for w, r in layer_results) / total
    confidence = sum(w * r.confidence for w, r in layer_results) / total
    return FusionResult(direction_of(change), change, confidence)


def dynamic_selection(predictions: Sequence[ModelPrediction]) -> FusionResult:
    """Weighted average over the more confident half (at least one)."""
    keep = max(1, len(predictions) // 2)
    ranked = sorted(
        enumerate(predictions), key=lambda item: (-item[1].confidence, item[0])
    )
    selected = [p for _, p in ranked[:keep]]
    return weighted_average(selected)


def hybrid(predictions: Sequence[ModelPrediction]) -> FusionResult:
    """0.3 voting + 0.4 weighted average + 0.3 stacking, majority direction."""
    results = (voting(predictions), weighted_average(predictions), stacking(predictions))
    change = sum(mix * r.change for mix, r in zip(HYBRID_MIX, results))
    confidence = sum(mix * r.confidence for mix, r in zip(HYBRID_MIX, results))

    direction, count = Counter(r.direction for r in results).most_common(1)[0]
    if count < 2:
        direction = direction_of(change)
    return FusionResult(direction, change, confidence)


STRATEGY_HANDLERS: dict[EnsembleStrategy, Callable[[Sequence[ModelPrediction]], FusionResult]] = {
    EnsembleStrategy.WEIGHTED_AVERAGE: weighted_average,
    EnsembleStrategy.VOTING: voting,
    EnsembleStrategy.STACKING: stacking,
    EnsembleStrategy.DYNAMIC_SELECTION: dynamic_selection,
    EnsembleStrategy.HYBRID: hybrid,
}

_missing = set(EnsembleStrategy) - set(STRATEGY_HANDLERS)
if _missing:
    raise RuntimeError(f"ensemble strategies without a handler: {sorted(m.value for m in _missing)}")


def run_strategy(strategy: EnsembleStrategy, predictions: Sequence[ModelPrediction]) -> FusionResult:
    result = STRATEGY_HANDLERS[strategy](predictions)
    if math.isnan(result.change) or math.isnan(result.confidence):
        raise ValueError(f"{strategy.value} produced NaN from {len(predictions)} predictions")
    return result
