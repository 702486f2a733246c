"""Ensemble fusion of model predictions."""

from signal_engine.ensemble.consensus import assess_risk, consensus_score
from signal_engine.ensemble.strategies import (
    STRATEGY_HANDLERS,
    FusionResult,
    direction_of,
    dynamic_selection,
    hybrid,
    stacking,
    voting,
    weighted_average,
)
from signal_engine.ensemble.fusion import (
    EnsembleFusion,
    filter_by_confidence,
    remove_outliers,
)
from signal_engine.ensemble.performance import PerformanceTracker

__all__ = [
    "assess_risk",
    "consensus_score",
    "STRATEGY_HANDLERS",
    "FusionResult",
    "direction_of",
    "dynamic_selection",
    "hybrid",
    "stacking",
    "voting",
    "weighted_average",
    "EnsembleFusion",
    "filter_by_confidence",
    "remove_outliers",
    "PerformanceTracker",
]
