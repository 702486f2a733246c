"""Rolling accuracy per prediction source and accuracy-based re-weighting."""

from __future__ import annotations

import logging
from typing import Sequence

from signal_engine.ensemble.strategies import direction_of
from signal_engine.models.ensemble import ModelPerformance, ModelPrediction

logger = logging.getLogger(__name__)

WINDOW = 20
# Absolute change error at which price accuracy reaches 0
PRICE_ERROR_SCALE = 0.05
MIN_FACTOR = 0.5
MAX_FACTOR = 1.5


class PerformanceTracker:
    """Keeps the last WINDOW outcomes of every prediction source."""

    def __init__(self, window: int = WINDOW):
        self.window = window
        self._performances: dict[str, ModelPerformance] = {}

    def update(self, source_id: str, predicted_change: float, actual_change: float) -> ModelPerformance:
        """Record one realized outcome (changes as fractions)."""
        perf = self._performances.setdefault(source_id, ModelPerformance(source_id=source_id))
        hit = direction_of(predicted_change) == direction_of(actual_change)
        error = abs(predicted_change - actual_change)
        perf.direction_hits.append(hit)
        perf.price_accuracies.append(max(0.0, 1.0 - min(1.0, error / PRICE_ERROR_SCALE)))
        del perf.direction_hits[: -self.window]
        del perf.price_accuracies[: -self.window]
        return perf

    def get(self, source_id: str) -> ModelPerformance | None:
        return self._performances.get(source_id)

    @property
    def sources(self) -> list[str]:
        return list(self._performances)

    def adjusted_weights(self) -> dict[str, float]:
        """
        Weight multiplier per tracked source.

        accuracy / mean accuracy, clamped to [0.5, 1.5], then rescaled so
        the multipliers average 1.
        """
        accuracies = {
            sid: perf.recent_accuracy
            for sid, perf in self._performances.items()
            if perf.samples
        }
        if not accuracies:
            return {}
        mean_acc = sum(accuracies.values()) / len(accuracies)
        if mean_acc <= 0:
            return {sid: 1.0 for sid in accuracies}

        factors = {
            sid: max(MIN_FACTOR, min(MAX_FACTOR, acc / mean_acc))
            for sid, acc in accuracies.items()
        }
        mean_factor = sum(factors.values()) / len(factors)
        return {sid: f / mean_factor for sid, f in factors.items()}

    def apply(self, predictions: Sequence[ModelPrediction]) -> list[ModelPrediction]:
        """Re-weighted copies; untracked sources keep their weight."""
        factors = self.adjusted_weights()
        return [
            p.model_copy(update={"weight": p.weight * factors.get(p.source_id, 1.0)})
            for p in predictions
        ]
