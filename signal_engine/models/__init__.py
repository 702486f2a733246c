"""Data models for bars, indicators, analysis results and outputs."""

from signal_engine.models.bar import Bar, BarSeries
from signal_engine.models.indicator import IndicatorParams, IndicatorSnapshot
from signal_engine.models.analysis import (
    CandlePattern,
    LevelPosition,
    MarketPhase,
    MultiTimeframeSignal,
    PatternDirection,
    PriceLevel,
    ResonanceDirection,
    SentimentAnalysis,
    SupportResistance,
    TimeframeTrend,
    Trend,
    VolumeAnalysis,
    VolumePriceDivergence,
)
from signal_engine.models.scoring import (
    FactorName,
    FactorScore,
    FactorWeights,
    MultiFactorScore,
    SignalQuality,
)
from signal_engine.models.signal import BuySellPoint, PointType, Side
from signal_engine.models.ensemble import (
    EnsemblePrediction,
    EnsembleStrategy,
    ModelPerformance,
    ModelPrediction,
    PredictionLayer,
    RiskAssessment,
    RiskLevel,
)
from signal_engine.models.prediction import (
    LastRealData,
    Prediction,
    PredictionResponse,
    ProfessionalPrediction,
)

__all__ = [
    # Bars
    "Bar",
    "BarSeries",
    # Indicators
    "IndicatorParams",
    "IndicatorSnapshot",
    # Analysis
    "CandlePattern",
    "LevelPosition",
    "MarketPhase",
    "MultiTimeframeSignal",
    "PatternDirection",
    "PriceLevel",
    "ResonanceDirection",
    "SentimentAnalysis",
    "SupportResistance",
    "TimeframeTrend",
    "Trend",
    "VolumeAnalysis",
    "VolumePriceDivergence",
    # Scoring
    "FactorName",
    "FactorScore",
    "FactorWeights",
    "MultiFactorScore",
    "SignalQuality",
    # Signals
    "BuySellPoint",
    "PointType",
    "Side",
    # Ensemble
    "EnsemblePrediction",
    "EnsembleStrategy",
    "ModelPerformance",
    "ModelPrediction",
    "PredictionLayer",
    "RiskAssessment",
    "RiskLevel",
    # Outputs
    "LastRealData",
    "Prediction",
    "PredictionResponse",
    "ProfessionalPrediction",
]
