"""Multi-factor scoring and factor weight management."""

from signal_engine.scoring.weights import (
    DEFAULT_WEIGHTS,
    MAX_WEIGHT,
    MIN_WEIGHT,
    WeightPerformance,
    adjust_weights,
    blend_weights,
    clamp_and_normalize,
    evaluate_weights,
    resolve_weights,
    validate_overrides,
)
from signal_engine.scoring.factors import FACTOR_SCORERS, AnalysisContext
from signal_engine.scoring.scorer import (
    MultiFactorScorer,
    quality_for_score,
    suggestion_for_score,
)

__all__ = [
    "DEFAULT_WEIGHTS",
    "MAX_WEIGHT",
    "MIN_WEIGHT",
    "WeightPerformance",
    "adjust_weights",
    "blend_weights",
    "clamp_and_normalize",
    "evaluate_weights",
    "resolve_weights",
    "validate_overrides",
    "FACTOR_SCORERS",
    "AnalysisContext",
    "MultiFactorScorer",
    "quality_for_score",
    "suggestion_for_score",
]
