"""Ensemble fusion of independent model predictions."""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from signal_engine.config import EngineConfig
from signal_engine.ensemble.consensus import assess_risk, consensus_score
from signal_engine.ensemble.strategies import run_strategy
from signal_engine.errors import InsufficientModels
from signal_engine.models.ensemble import EnsemblePrediction, ModelPrediction

logger = logging.getLogger(__name__)

IQR_MULTIPLE = 1.5
MIN_FOR_OUTLIERS = 4


def remove_outliers(
    predictions: Sequence[ModelPrediction],
    min_keep: int,
) -> tuple[list[ModelPrediction], int]:
    """
    Drop predictions whose change lies outside 1.5 * IQR.

    Skipped with fewer than 4 predictions, or when dropping would leave
    fewer than min_keep.

    Returns:
        Tuple of (kept predictions, number removed)
    """
    preds = list(predictions)
    if len(preds) < MIN_FOR_OUTLIERS:
        return preds, 0

    changes = np.array([p.change for p in preds], dtype=np.float64)
    q1, q3 = np.percentile(changes, [25, 75])
    iqr = q3 - q1
    lo, hi = q1 - IQR_MULTIPLE * iqr, q3 + IQR_MULTIPLE * iqr
    kept = [p for p in preds if lo <= p.change <= hi]
    if len(kept) < min_keep:
        return preds, 0
    return kept, len(preds) - len(kept)


def filter_by_confidence(
    predictions: Sequence[ModelPrediction],
    threshold: float,
    min_keep: int,
) -> list[ModelPrediction]:
    """
    Drop predictions below the confidence threshold.

    If that would leave fewer than min_keep, the min_keep most confident
    predictions are kept instead (input order preserved).
    """
    kept = [p for p in predictions if p.confidence >= threshold]
    if len(kept) >= min_keep:
        return kept
    ranked = sorted(
        range(len(predictions)), key=lambda i: (-predictions[i].confidence, i)
    )
    chosen = set(ranked[:min_keep])
    return [p for i, p in enumerate(predictions) if i in chosen]


class EnsembleFusion:
    """Fuses a ModelPrediction set with the configured strategy."""

    def __init__(self, config: EngineConfig | None = None):
        self.config = config or EngineConfig()

    def fuse(
        self,
        predictions: Sequence[ModelPrediction],
        market_volatility: float | None = None,
    ) -> EnsemblePrediction:
        """
        Fuse predictions into one decision.

        Args:
            predictions: Model predictions for the same target
            market_volatility: Realized volatility (fraction) for the risk score

        Returns:
            EnsemblePrediction

        Raises:
            InsufficientModels: Fewer than min_models predictions
        """
        cfg = self.config
        if len(predictions) < cfg.min_models:
            raise InsufficientModels(cfg.min_models, len(predictions))

        warnings: list[str] = []
        working = filter_by_confidence(predictions, cfg.confidence_threshold, cfg.min_models)
        dropped = len(predictions) - len(working)
        if dropped:
            warnings.append(
                f"{dropped} predictions below confidence {cfg.confidence_threshold:.2f} excluded"
            )

        if cfg.remove_outliers:
            working, removed = remove_outliers(working, cfg.min_models)
            if removed:
                warnings.append(f"{removed} outlier predictions removed")

        result = run_strategy(cfg.ensemble_strategy, working)
        consensus = consensus_score(working)
        confidence = max(0.0, min(1.0, result.confidence))
        risk = assess_risk(working, confidence, consensus, market_volatility)

        logger.debug(
            "Ensemble %s over %d predictions: dir=%d change=%.4f conf=%.3f consensus=%.3f risk=%s",
            cfg.ensemble_strategy.value, len(working), result.direction,
            result.change, confidence, consensus, risk.risk_level.value,
        )
        return EnsemblePrediction(
            final_direction=result.direction,
            final_change=result.change,
            ensemble_confidence=confidence,
            consensus_score=consensus,
            risk_assessment=risk,
            strategy=cfg.ensemble_strategy,
            model_count=len(working),
            warnings=warnings,
        )
