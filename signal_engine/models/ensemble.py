"""Ensemble fusion models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class EnsembleStrategy(str, Enum):
    """Fusion strategy. Closed set; each value has exactly one handler."""

    WEIGHTED_AVERAGE = "weighted_average"
    VOTING = "voting"
    STACKING = "stacking"
    DYNAMIC_SELECTION = "dynamic_selection"
    HYBRID = "hybrid"


class PredictionLayer(str, Enum):
    """Source family of a prediction, used by stacking."""

    TECHNICAL = "technical"
    LEARNED = "learned"
    STATISTICAL = "statistical"


class RiskLevel(str, Enum):
    LOW = "低"
    MEDIUM = "中"
    HIGH = "高"
    EXTREME = "极高"


class ModelPrediction(BaseModel):
    """One prediction source's output. Owned by the caller."""

    model_config = ConfigDict(frozen=True)

    source_id: str
    direction: int = Field(ge=-1, le=1)
    change: float
    confidence: float = Field(ge=0.0, le=1.0)
    weight: float = Field(default=1.0, ge=0.0)
    layer: PredictionLayer = PredictionLayer.LEARNED


class RiskAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    uncertainty: float
    model_disagreement: float
    risk_score: float
    risk_level: RiskLevel
    recommendation: str


class EnsemblePrediction(BaseModel):
    """Fused decision over a set of model predictions."""

    model_config = ConfigDict(frozen=True)

    final_direction: int = Field(ge=-1, le=1)
    final_change: float
    ensemble_confidence: float = Field(ge=0.0, le=1.0)
    consensus_score: float = Field(ge=0.0, le=1.0)
    risk_assessment: RiskAssessment
    strategy: EnsembleStrategy
    model_count: int
    warnings: list[str] = Field(default_factory=list)


class ModelPerformance(BaseModel):
    """Rolling accuracy of one prediction source."""

    source_id: str
    direction_hits: list[bool] = Field(default_factory=list)
    price_accuracies: list[float] = Field(default_factory=list)

    @property
    def samples(self) -> int:
        return len(self.direction_hits)

    @property
    def direction_accuracy(self) -> float:
        if not self.direction_hits:
            return 0.0
        return sum(self.direction_hits) / len(self.direction_hits)

    @property
    def price_accuracy(self) -> float:
        if not self.price_accuracies:
            return 0.0
        return sum(self.price_accuracies) / len(self.price_accuracies)

    @property
    def recent_accuracy(self) -> float:
        """0.7 * direction accuracy + 0.3 * price accuracy."""
        return 0.7 * self.direction_accuracy + 0.3 * self.price_accuracy
