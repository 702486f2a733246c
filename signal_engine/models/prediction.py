"""Output records: price forecasts and the professional analysis bundle."""

from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field

from signal_engine.models.analysis import (
    CandlePattern,
    MultiTimeframeSignal,
    SentimentAnalysis,
    SupportResistance,
    VolumeAnalysis,
    VolumePriceDivergence,
)
from signal_engine.models.ensemble import EnsemblePrediction
from signal_engine.models.scoring import MultiFactorScore
from signal_engine.models.signal import BuySellPoint


class Prediction(BaseModel):
    """Forecast for one future trading day."""

    model_config = ConfigDict(frozen=True)

    target_date: dt.date
    predicted_price: float
    predicted_change_percent: float
    confidence: float
    trading_signal: str  # buy / sell / hold
    signal_strength: float
    technical_indicators: dict[str, float] = Field(default_factory=dict)
    prediction_reason: str = ""
    key_factors: list[str] = Field(default_factory=list)


class LastRealData(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: dt.date
    price: float
    change_percent: float


class PredictionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    predictions: list[Prediction]
    last_real_data: LastRealData | None = None


class ProfessionalPrediction(BaseModel):
    """Complete analysis for the latest bar of one symbol."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    as_of: dt.date
    current_price: float
    buy_points: list[BuySellPoint] = Field(default_factory=list)
    sell_points: list[BuySellPoint] = Field(default_factory=list)
    support_resistance: SupportResistance
    multi_timeframe: MultiTimeframeSignal
    divergence: VolumePriceDivergence
    current_advice: str
    risk_level: str
    candle_patterns: list[CandlePattern] = Field(default_factory=list)
    volume_analysis: VolumeAnalysis
    sentiment: SentimentAnalysis
    multi_factor_score: MultiFactorScore
    ensemble: EnsemblePrediction | None = None
    warnings: list[str] = Field(default_factory=list)
