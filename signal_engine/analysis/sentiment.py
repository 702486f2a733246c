"""Fear-greed index and market phase.

fear_greed = 0.4 * RSI + 0.3 * volume component + 0.3 * momentum component

Phase bands on the index:
    >= 80 overheated, >= 60 rising, >= 40 ranging, >= 20 declining, else panic
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

import numpy as np

from signal_engine.indicators import kdj, roc, rsi
from signal_engine.models.analysis import MarketPhase, SentimentAnalysis
from signal_engine.models.bar import Bar

logger = logging.getLogger(__name__)

PHASE_BANDS: tuple[tuple[float, MarketPhase], ...] = (
    (80.0, MarketPhase.OVERHEATED),
    (60.0, MarketPhase.RISING),
    (40.0, MarketPhase.RANGING),
    (20.0, MarketPhase.DECLINING),
)


def _clamp(x: float, lo: float = 0.0, hi: float = 100.0) -> float:
    return max(lo, min(hi, x))


def phase_for_index(index: float) -> MarketPhase:
    for threshold, phase in PHASE_BANDS:
        if index >= threshold:
            return phase
    return MarketPhase.PANIC


def analyze_sentiment(
    bars: Sequence[Bar],
    rsi_period: int = 14,
    volume_window: int = 20,
    momentum_period: int = 10,
) -> SentimentAnalysis:
    """
    Compute the fear-greed index for the latest bar.

    Components default to neutral (50) while their window is warming up.
    """
    closes = [b.close for b in bars]
    volumes = np.array([b.volume for b in bars], dtype=np.float64)

    rsi_values = rsi(closes, rsi_period)
    rsi_now = float(rsi_values[-1]) if len(rsi_values) else math.nan
    rsi_component = 50.0 if math.isnan(rsi_now) else rsi_now

    volume_component = 50.0
    if len(volumes) > volume_window:
        base = volumes[-volume_window - 1 : -1].mean()
        if base > 0:
            ratio = volumes[-1] / base
            volume_component = _clamp(50.0 + (ratio - 1.0) * 50.0)

    roc_values = roc(closes, momentum_period)
    roc_now = float(roc_values[-1]) if len(roc_values) else math.nan
    momentum_component = 50.0 if math.isnan(roc_now) else _clamp(50.0 + roc_now * 5.0)

    index = _clamp(0.4 * rsi_component + 0.3 * volume_component + 0.3 * momentum_component)
    phase = phase_for_index(index)

    # Contrarian: fear lifts the score, greed lowers it; KDJ extremes add 15
    k_values = kdj([b.high for b in bars], [b.low for b in bars], closes).k
    k_now = float(k_values[-1]) if len(k_values) else math.nan
    kdj_adjust = 0.0
    if not math.isnan(k_now):
        if k_now < 20.0:
            kdj_adjust = 15.0
        elif k_now > 80.0:
            kdj_adjust = -15.0
    sentiment_score = _clamp(50.0 + (50.0 - index) * 0.5 + kdj_adjust)

    return SentimentAnalysis(
        fear_greed_index=index,
        sentiment_score=sentiment_score,
        market_phase=phase,
        rsi_component=rsi_component,
        volume_component=volume_component,
        momentum_component=momentum_component,
    )
