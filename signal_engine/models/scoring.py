"""Multi-factor scoring models."""

from __future__ import annotations

import math
from enum import Enum
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FactorName(str, Enum):
    """The eight canonical factors, in scoring order."""

    TREND = "trend"
    VOLUME_PRICE = "volume_price"
    RESONANCE = "resonance"
    MOMENTUM = "momentum"
    PATTERN = "pattern"
    SUPPORT_RESISTANCE = "support_resistance"
    SENTIMENT = "sentiment"
    VOLATILITY = "volatility"


class SignalQuality(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    VERY_POOR = "very_poor"


WEIGHT_TOLERANCE = 1e-6


class FactorWeights(BaseModel):
    """Immutable weight vector over the canonical factors.

    Always sums to 1.0 (within WEIGHT_TOLERANCE).
    """

    model_config = ConfigDict(frozen=True)

    trend: float = 0.22
    volume_price: float = 0.18
    resonance: float = 0.15
    momentum: float = 0.13
    pattern: float = 0.12
    support_resistance: float = 0.10
    sentiment: float = 0.07
    volatility: float = 0.03

    @model_validator(mode="after")
    def _validate_sum(self):
        values = list(self.as_dict().values())
        if any(v < 0 or math.isnan(v) for v in values):
            raise ValueError(f"factor weights must be non-negative numbers: {values}")
        total = sum(values)
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ValueError(f"factor weights must sum to 1.0, got {total:.6f}")
        return self

    def as_dict(self) -> dict[FactorName, float]:
        return {name: getattr(self, name.value) for name in FactorName}

    @classmethod
    def from_mapping(cls, mapping: Mapping[FactorName | str, float]) -> FactorWeights:
        return cls(**{FactorName(k).value: float(v) for k, v in mapping.items()})

    def __getitem__(self, name: FactorName | str) -> float:
        return getattr(self, FactorName(name).value)


class FactorScore(BaseModel):
    """Score of one factor on a 0-100 scale."""

    model_config = ConfigDict(frozen=True)

    name: FactorName
    raw_score: float = Field(ge=0.0, le=100.0)
    weight: float = 0.0
    rationale: str = ""
    degraded: bool = False

    @property
    def weighted(self) -> float:
        return self.raw_score * self.weight


class MultiFactorScore(BaseModel):
    """Weighted combination of the eight factor scores."""

    model_config = ConfigDict(frozen=True)

    factors: list[FactorScore]
    total_score: float = Field(ge=0.0, le=100.0)
    signal_quality: SignalQuality
    operation_suggestion: str
    weights: FactorWeights
    warnings: list[str] = Field(default_factory=list)

    def factor(self, name: FactorName | str) -> FactorScore:
        name = FactorName(name)
        for f in self.factors:
            if f.name == name:
                return f
        raise KeyError(name)

    @property
    def degraded_factors(self) -> list[FactorName]:
        return [f.name for f in self.factors if f.degraded]
