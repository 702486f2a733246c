"""Multi-factor scorer: eight factor scores, regime-adjusted weights, total."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Mapping

from signal_engine.errors import DegradedFactor
from signal_engine.models.scoring import (
    FactorName,
    FactorScore,
    FactorWeights,
    MultiFactorScore,
    SignalQuality,
)
from signal_engine.scoring.factors import FACTOR_SCORERS, AnalysisContext, FactorScorer
from signal_engine.scoring.weights import adjust_weights, resolve_weights

if TYPE_CHECKING:
    from signal_engine.config import EngineConfig

logger = logging.getLogger(__name__)

QUALITY_BANDS: tuple[tuple[float, SignalQuality], ...] = (
    (85.0, SignalQuality.EXCELLENT),
    (70.0, SignalQuality.GOOD),
    (55.0, SignalQuality.FAIR),
    (40.0, SignalQuality.POOR),
)

SUGGESTION_BANDS: tuple[tuple[float, str], ...] = (
    (75.0, "strong buy: factors aligned, position can be built"),
    (65.0, "buy: keep position size under control"),
    (55.0, "cautious buy: light probe with a strict stop"),
    (45.0, "hold: wait and see"),
    (35.0, "reduce: do not add, trim exposure"),
)
SELL_SUGGESTION = "sell: stay flat"


def quality_for_score(total: float) -> SignalQuality:
    for threshold, quality in QUALITY_BANDS:
        if total >= threshold:
            return quality
    return SignalQuality.VERY_POOR


def suggestion_for_score(total: float) -> str:
    for threshold, text in SUGGESTION_BANDS:
        if total >= threshold:
            return text
    return SELL_SUGGESTION


def _sanitize(raw: float) -> float:
    if math.isnan(raw):
        return 50.0
    return max(0.0, min(100.0, raw))


class MultiFactorScorer:
    """
    Scores an AnalysisContext.

    Weight overrides are validated when the scorer is built, so a bad map
    raises ConfigError before anything is computed.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        scorers: Mapping[FactorName, FactorScorer] | None = None,
    ):
        overrides = config.factor_weight_overrides if config is not None else None
        self.base_weights: FactorWeights = resolve_weights(overrides)
        self.scorers = dict(FACTOR_SCORERS)
        if scorers:
            self.scorers.update(scorers)

    def score(self, ctx: AnalysisContext) -> MultiFactorScore:
        """
        Compute all factor scores and their weighted total.

        Args:
            ctx: Analysis results for the latest bar

        Returns:
            MultiFactorScore; factors that produced NaN or out-of-range
            values are flagged degraded and listed in warnings
        """
        snap = ctx.snapshot
        weights = adjust_weights(
            self.base_weights,
            market_phase=ctx.sentiment.market_phase,
            volatility_pct=snap.atr_pct,
            adx=snap.adx,
        )

        factors: list[FactorScore] = []
        warnings: list[str] = []
        for name in FactorName:
            raw, rationale = self.scorers[name](ctx)
            value = _sanitize(raw)
            degraded = math.isnan(raw) or value != raw
            if degraded:
                err = DegradedFactor(name.value, raw, value)
                logger.warning(str(err))
                warnings.append(str(err))
            factors.append(
                FactorScore(
                    name=name,
                    raw_score=value,
                    weight=weights[name],
                    rationale=rationale,
                    degraded=degraded,
                )
            )

        total = max(0.0, min(100.0, sum(f.weighted for f in factors)))
        result = MultiFactorScore(
            factors=factors,
            total_score=total,
            signal_quality=quality_for_score(total),
            operation_suggestion=suggestion_for_score(total),
            weights=weights,
            warnings=warnings,
        )
        logger.debug(
            "Multi-factor total %.2f (%s), degraded=%s",
            total, result.signal_quality.value, [n.value for n in result.degraded_factors],
        )
        return result
