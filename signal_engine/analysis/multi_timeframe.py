"""Multi-timeframe resonance from daily/weekly/monthly MACD and KDJ state."""

from __future__ import annotations

import logging
import math

from signal_engine.models.analysis import (
    MultiTimeframeSignal,
    ResonanceDirection,
    TimeframeTrend,
    Trend,
)
from signal_engine.models.indicator import IndicatorSnapshot

logger = logging.getLogger(__name__)

# Minimum number of agreeing timeframes for a resonance
MIN_ALIGNED = 2

_BULLISH_BY_COUNT = {3: ResonanceDirection.STRONG_BULLISH, 2: ResonanceDirection.BULLISH}
_BEARISH_BY_COUNT = {3: ResonanceDirection.STRONG_BEARISH, 2: ResonanceDirection.BEARISH}

_QUALITY_BY_LEVEL: dict[int, float] = {3: 95.0, 2: 80.0, 0: 40.0}


def _kdj_trend(snapshot: IndicatorSnapshot) -> Trend:
    if snapshot.kdj_golden_cross or snapshot.kdj_k > snapshot.kdj_d:
        return Trend.BULLISH
    if snapshot.kdj_death_cross or snapshot.kdj_k < snapshot.kdj_d:
        return Trend.BEARISH
    return Trend.NONE


def timeframe_trend(timeframe: str, snapshot: IndicatorSnapshot | None) -> TimeframeTrend:
    """Trend vote of one timeframe from its latest snapshot.

    With MACD available, a golden cross or positive histogram votes bullish
    and anything else votes bearish. While MACD is still warming up the
    vote falls back to KDJ (K above D bullish, K below D bearish, equal 0).
    A missing snapshot, or one with neither indicator, votes 0.
    """
    if snapshot is None:
        return TimeframeTrend(timeframe=timeframe)

    if not math.isnan(snapshot.macd_hist):
        bullish = snapshot.macd_golden_cross or snapshot.macd_hist > 0
        trend = Trend.BULLISH if bullish else Trend.BEARISH
    elif not (math.isnan(snapshot.kdj_k) or math.isnan(snapshot.kdj_d)):
        trend = _kdj_trend(snapshot)
    else:
        return TimeframeTrend(timeframe=timeframe)

    return TimeframeTrend(
        timeframe=timeframe,
        trend=trend,
        macd_golden_cross=snapshot.macd_golden_cross,
        macd_death_cross=snapshot.macd_death_cross,
        macd_hist=0.0 if math.isnan(snapshot.macd_hist) else snapshot.macd_hist,
        available=True,
    )


def analyze_resonance(
    daily: IndicatorSnapshot | None,
    weekly: IndicatorSnapshot | None,
    monthly: IndicatorSnapshot | None,
) -> MultiTimeframeSignal:
    """
    Combine the three timeframe votes into a resonance level and direction.

    At least two bullish votes give a bullish resonance whose level is the
    bullish count, otherwise at least two bearish votes give a bearish one.
    Anything else is level 0, neutral.

    Args:
        daily: Latest daily snapshot
        weekly: Latest visible weekly snapshot (None if unavailable)
        monthly: Latest visible monthly snapshot (None if unavailable)

    Returns:
        MultiTimeframeSignal with level = number of agreeing timeframes
    """
    trends = (
        timeframe_trend("daily", daily),
        timeframe_trend("weekly", weekly),
        timeframe_trend("monthly", monthly),
    )
    bullish = sum(1 for t in trends if t.trend == Trend.BULLISH)
    bearish = sum(1 for t in trends if t.trend == Trend.BEARISH)

    if bullish >= MIN_ALIGNED:
        level, direction = bullish, _BULLISH_BY_COUNT[bullish]
    elif bearish >= MIN_ALIGNED:
        level, direction = bearish, _BEARISH_BY_COUNT[bearish]
    else:
        level, direction = 0, ResonanceDirection.NEUTRAL

    signal = MultiTimeframeSignal(
        daily=trends[0],
        weekly=trends[1],
        monthly=trends[2],
        resonance_level=level,
        resonance_direction=direction,
        signal_quality=_QUALITY_BY_LEVEL[level],
    )
    logger.debug(
        "Resonance: daily=%d weekly=%d monthly=%d -> level %d %s",
        trends[0].trend.value, trends[1].trend.value, trends[2].trend.value,
        level, direction.value,
    )
    return signal
