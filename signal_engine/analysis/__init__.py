"""Pattern and structure analyzers (pure functions over bar history)."""

from signal_engine.analysis.patterns import (
    PatternThresholds,
    PatternType,
    identify_patterns,
)
from signal_engine.analysis.levels import LevelParams, detect_levels
from signal_engine.analysis.volume import analyze_volume
from signal_engine.analysis.divergence import detect_divergence
from signal_engine.analysis.sentiment import analyze_sentiment, phase_for_index
from signal_engine.analysis.multi_timeframe import analyze_resonance, timeframe_trend

__all__ = [
    "PatternThresholds",
    "PatternType",
    "identify_patterns",
    "LevelParams",
    "detect_levels",
    "analyze_volume",
    "detect_divergence",
    "analyze_sentiment",
    "phase_for_index",
    "analyze_resonance",
    "timeframe_trend",
]
