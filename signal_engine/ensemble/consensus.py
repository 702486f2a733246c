"""Consensus and risk assessment over a prediction set."""

from __future__ import annotations

from collections import Counter
from typing import Sequence

import numpy as np

from signal_engine.models.ensemble import ModelPrediction, RiskAssessment, RiskLevel

# std(change) at which the dispersion term of consensus bottoms out
DISPERSION_SCALE = 0.05

RECOMMENDATIONS: dict[RiskLevel, str] = {
    RiskLevel.LOW: "clear signal, active positioning is reasonable",
    RiskLevel.MEDIUM: "fairly clear signal, trade with caution",
    RiskLevel.HIGH: "uncertain signal, wait or keep positions small",
    RiskLevel.EXTREME: "conflicting signals, stay out and avoid heavy positions",
}


def change_dispersion(predictions: Sequence[ModelPrediction]) -> float:
    """Population standard deviation of predicted changes."""
    if not predictions:
        return 0.0
    return float(np.std([p.change for p in predictions]))


def consensus_score(predictions: Sequence[ModelPrediction]) -> float:
    """
    0.6 * modal-direction agreement + 0.4 * (1 - min(1, std(change) / 0.05)).

    Always in [0, 1]; identical predictions give 1.0.
    """
    if not predictions:
        return 0.0
    _, modal_count = Counter(p.direction for p in predictions).most_common(1)[0]
    agreement = modal_count / len(predictions)
    dispersion = min(1.0, change_dispersion(predictions) / DISPERSION_SCALE)
    return max(0.0, min(1.0, 0.6 * agreement + 0.4 * (1.0 - dispersion)))


def assess_risk(
    predictions: Sequence[ModelPrediction],
    confidence: float,
    consensus: float,
    market_volatility: float | None = None,
) -> RiskAssessment:
    """
    Risk of acting on a fused prediction.

    Args:
        predictions: Predictions that went into the fusion
        confidence: Fused ensemble confidence
        consensus: consensus_score() of the same predictions
        market_volatility: Recent realized volatility as a fraction; defaults
            to the mean absolute predicted change
    """
    disagreement = change_dispersion(predictions)
    if market_volatility is None:
        market_volatility = (
            sum(abs(p.change) for p in predictions) / len(predictions) if predictions else 0.0
        )

    uncertainty = (1 - confidence) * 0.5 + (1 - consensus) * 0.3 + disagreement * 2
    risk_score = uncertainty * 0.4 + disagreement * 0.3 + market_volatility * 0.3

    if risk_score < 0.3 and confidence > 0.7:
        level = RiskLevel.LOW
    elif risk_score < 0.5 and confidence > 0.6:
        level = RiskLevel.MEDIUM
    elif risk_score < 0.7:
        level = RiskLevel.HIGH
    else:
        level = RiskLevel.EXTREME

    return RiskAssessment(
        uncertainty=uncertainty,
        model_disagreement=disagreement,
        risk_score=risk_score,
        risk_level=level,
        recommendation=RECOMMENDATIONS[level],
    )
