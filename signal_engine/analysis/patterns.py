"""Candlestick pattern recognition.

Evaluates 1-3 bar windows against a fixed catalog using body/shadow
length ratios. Thresholds are tunable through PatternThresholds;
reliabilities are fixed per pattern type.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Sequence

from pydantic import BaseModel, ConfigDict

from signal_engine.models.analysis import CandlePattern, PatternDirection
from signal_engine.models.bar import Bar

logger = logging.getLogger(__name__)


class PatternType(str, Enum):
    HAMMER = "hammer"
    INVERTED_HAMMER = "inverted_hammer"
    SHOOTING_STAR = "shooting_star"
    HANGING_MAN = "hanging_man"
    DOJI = "doji"
    BULLISH_ENGULFING = "bullish_engulfing"
    BEARISH_ENGULFING = "bearish_engulfing"
    BULLISH_HARAMI = "bullish_harami"
    BEARISH_HARAMI = "bearish_harami"
    PIERCING_LINE = "piercing_line"
    DARK_CLOUD_COVER = "dark_cloud_cover"
    MORNING_STAR = "morning_star"
    EVENING_STAR = "evening_star"
    BULLISH_MARUBOZU = "bullish_marubozu"
    BEARISH_MARUBOZU = "bearish_marubozu"
    THREE_WHITE_SOLDIERS = "three_white_soldiers"
    THREE_BLACK_CROWS = "three_black_crows"


class PatternThresholds(BaseModel):
    """Body/shadow ratio thresholds."""

    model_config = ConfigDict(frozen=True)

    doji_body_ratio: float = 0.1  # body <= ratio * range
    shadow_body_multiple: float = 2.0  # long shadow >= multiple * body
    short_shadow_body_ratio: float = 0.5  # opposite shadow < ratio * body
    marubozu_body_ratio: float = 0.95  # body >= ratio * range
    star_body_ratio: float = 0.3  # star body <= ratio * first body
    trend_lookback: int = 5


RELIABILITY: dict[PatternType, float] = {
    PatternType.HAMMER: 0.75,
    PatternType.INVERTED_HAMMER: 0.65,
    PatternType.SHOOTING_STAR: 0.75,
    PatternType.HANGING_MAN: 0.65,
    PatternType.DOJI: 0.60,
    PatternType.BULLISH_ENGULFING: 0.80,
    PatternType.BEARISH_ENGULFING: 0.80,
    PatternType.BULLISH_HARAMI: 0.65,
    PatternType.BEARISH_HARAMI: 0.65,
    PatternType.PIERCING_LINE: 0.70,
    PatternType.DARK_CLOUD_COVER: 0.70,
    PatternType.MORNING_STAR: 0.85,
    PatternType.EVENING_STAR: 0.85,
    PatternType.BULLISH_MARUBOZU: 0.70,
    PatternType.BEARISH_MARUBOZU: 0.70,
    PatternType.THREE_WHITE_SOLDIERS: 0.80,
    PatternType.THREE_BLACK_CROWS: 0.80,
}


def _prior_trend(bars: Sequence[Bar], i: int, lookback: int) -> int:
    """Sign of the close change over the bars before i (0 if too short)."""
    start = i - lookback
    if start < 0:
        return 0
    delta = bars[i - 1].close - bars[start].close
    if delta > 0:
        return 1
    if delta < 0:
        return -1
    return 0


def _clip(x: float) -> float:
    return max(0.0, min(1.0, x))


# -----------------------------------------------------------------------------
# Detectors: (bars, i, thresholds, prior_trend) -> (direction, strength) | None
# -----------------------------------------------------------------------------

Detection = tuple[PatternDirection, float] | None
Detector = Callable[[Sequence[Bar], int, PatternThresholds, int], Detection]


def _long_lower_shadow(bar: Bar, t: PatternThresholds) -> bool:
    body = bar.body
    return (
        bar.range_size > 0
        and bar.lower_shadow >= t.shadow_body_multiple * body
        and bar.upper_shadow < max(t.short_shadow_body_ratio * body, 1e-12)
        and body > t.doji_body_ratio * bar.range_size
    )


def _long_upper_shadow(bar: Bar, t: PatternThresholds) -> bool:
    body = bar.body
    return (
        bar.range_size > 0
        and bar.upper_shadow >= t.shadow_body_multiple * body
        and bar.lower_shadow < max(t.short_shadow_body_ratio * body, 1e-12)
        and body > t.doji_body_ratio * bar.range_size
    )


def _hammer(bars, i, t, trend) -> Detection:
    bar = bars[i]
    if trend < 0 and _long_lower_shadow(bar, t):
        return PatternDirection.BULLISH, _clip(bar.lower_shadow / bar.range_size)
    return None


def _hanging_man(bars, i, t, trend) -> Detection:
    bar = bars[i]
    if trend > 0 and _long_lower_shadow(bar, t):
        return PatternDirection.BEARISH, _clip(bar.lower_shadow / bar.range_size)
    return None


def _inverted_hammer(bars, i, t, trend) -> Detection:
    bar = bars[i]
    if trend < 0 and _long_upper_shadow(bar, t):
        return PatternDirection.BULLISH, _clip(bar.upper_shadow / bar.range_size)
    return None


def _shooting_star(bars, i, t, trend) -> Detection:
    bar = bars[i]
    if trend > 0 and _long_upper_shadow(bar, t):
        return PatternDirection.BEARISH, _clip(bar.upper_shadow / bar.range_size)
    return None


def _doji(bars, i, t, trend) -> Detection:
    bar = bars[i]
    if bar.range_size > 0 and bar.body <= t.doji_body_ratio * bar.range_size:
        return PatternDirection.NEUTRAL, _clip(1.0 - bar.body / bar.range_size)
    return None


def _bullish_engulfing(bars, i, t, trend) -> Detection:
    if i < 1:
        return None
    prev, cur = bars[i - 1], bars[i]
    if prev.is_bearish and cur.is_bullish and cur.open <= prev.close and cur.close >= prev.open:
        if cur.body > prev.body:
            return PatternDirection.BULLISH, _clip(cur.body / (prev.body + cur.body))
    return None


def _bearish_engulfing(bars, i, t, trend) -> Detection:
    if i < 1:
        return None
    prev, cur = bars[i - 1], bars[i]
    if prev.is_bullish and cur.is_bearish and cur.open >= prev.close and cur.close <= prev.open:
        if cur.body > prev.body:
            return PatternDirection.BEARISH, _clip(cur.body / (prev.body + cur.body))
    return None


def _bullish_harami(bars, i, t, trend) -> Detection:
    if i < 1:
        return None
    prev, cur = bars[i - 1], bars[i]
    if (
        prev.is_bearish
        and cur.is_bullish
        and cur.body < prev.body
        and cur.open > prev.close
        and cur.close < prev.open
    ):
        return PatternDirection.BULLISH, _clip(1.0 - cur.body / prev.body)
    return None


def _bearish_harami(bars, i, t, trend) -> Detection:
    if i < 1:
        return None
    prev, cur = bars[i - 1], bars[i]
    if (
        prev.is_bullish
        and cur.is_bearish
        and cur.body < prev.body
        and cur.open < prev.close
        and cur.close > prev.open
    ):
        return PatternDirection.BEARISH, _clip(1.0 - cur.body / prev.body)
    return None


def _piercing_line(bars, i, t, trend) -> Detection:
    if i < 1:
        return None
    prev, cur = bars[i - 1], bars[i]
    midpoint = (prev.open + prev.close) / 2
    if (
        prev.is_bearish
        and cur.is_bullish
        and cur.open < prev.close
        and midpoint < cur.close < prev.open
    ):
        return PatternDirection.BULLISH, _clip((cur.close - prev.close) / prev.body)
    return None


def _dark_cloud_cover(bars, i, t, trend) -> Detection:
    if i < 1:
        return None
    prev, cur = bars[i - 1], bars[i]
    midpoint = (prev.open + prev.close) / 2
    if (
        prev.is_bullish
        and cur.is_bearish
        and cur.open > prev.close
        and prev.open < cur.close < midpoint
    ):
        return PatternDirection.BEARISH, _clip((prev.close - cur.close) / prev.body)
    return None


def _morning_star(bars, i, t, trend) -> Detection:
    if i < 2:
        return None
    first, star, third = bars[i - 2], bars[i - 1], bars[i]
    if (
        first.is_bearish
        and first.body > 0
        and star.body <= t.star_body_ratio * first.body
        and third.is_bullish
        and third.close > (first.open + first.close) / 2
    ):
        return PatternDirection.BULLISH, _clip(third.body / first.body)
    return None


def _evening_star(bars, i, t, trend) -> Detection:
    if i < 2:
        return None
    first, star, third = bars[i - 2], bars[i - 1], bars[i]
    if (
        first.is_bullish
        and first.body > 0
        and star.body <= t.star_body_ratio * first.body
        and third.is_bearish
        and third.close < (first.open + first.close) / 2
    ):
        return PatternDirection.BEARISH, _clip(third.body / first.body)
    return None


def _bullish_marubozu(bars, i, t, trend) -> Detection:
    bar = bars[i]
    if bar.is_bullish and bar.range_size > 0 and bar.body >= t.marubozu_body_ratio * bar.range_size:
        return PatternDirection.BULLISH, _clip(bar.body / bar.range_size)
    return None


def _bearish_marubozu(bars, i, t, trend) -> Detection:
    bar = bars[i]
    if bar.is_bearish and bar.range_size > 0 and bar.body >= t.marubozu_body_ratio * bar.range_size:
        return PatternDirection.BEARISH, _clip(bar.body / bar.range_size)
    return None


def _three_white_soldiers(bars, i, t, trend) -> Detection:
    if i < 2:
        return None
    a, b, c = bars[i - 2], bars[i - 1], bars[i]
    if (
        a.is_bullish and b.is_bullish and c.is_bullish
        and a.close < b.close < c.close
        and a.open < b.open <= a.close
        and b.open < c.open <= b.close
    ):
        return PatternDirection.BULLISH, _clip((c.close - a.open) / max(a.open, 1e-12) * 10)
    return None


def _three_black_crows(bars, i, t, trend) -> Detection:
    if i < 2:
        return None
    a, b, c = bars[i - 2], bars[i - 1], bars[i]
    if (
        a.is_bearish and b.is_bearish and c.is_bearish
        and a.close > b.close > c.close
        and a.open > b.open >= a.close
        and b.open > c.open >= b.close
    ):
        return PatternDirection.BEARISH, _clip((a.open - c.close) / max(a.open, 1e-12) * 10)
    return None


_DETECTORS: dict[PatternType, Detector] = {
    PatternType.HAMMER: _hammer,
    PatternType.INVERTED_HAMMER: _inverted_hammer,
    PatternType.SHOOTING_STAR: _shooting_star,
    PatternType.HANGING_MAN: _hanging_man,
    PatternType.DOJI: _doji,
    PatternType.BULLISH_ENGULFING: _bullish_engulfing,
    PatternType.BEARISH_ENGULFING: _bearish_engulfing,
    PatternType.BULLISH_HARAMI: _bullish_harami,
    PatternType.BEARISH_HARAMI: _bearish_harami,
    PatternType.PIERCING_LINE: _piercing_line,
    PatternType.DARK_CLOUD_COVER: _dark_cloud_cover,
    PatternType.MORNING_STAR: _morning_star,
    PatternType.EVENING_STAR: _evening_star,
    PatternType.BULLISH_MARUBOZU: _bullish_marubozu,
    PatternType.BEARISH_MARUBOZU: _bearish_marubozu,
    PatternType.THREE_WHITE_SOLDIERS: _three_white_soldiers,
    PatternType.THREE_BLACK_CROWS: _three_black_crows,
}

_missing = set(PatternType) - set(_DETECTORS)
if _missing:
    raise RuntimeError(f"pattern types without a detector: {sorted(m.value for m in _missing)}")


def detect_at(
    bars: Sequence[Bar],
    i: int,
    thresholds: PatternThresholds | None = None,
) -> list[CandlePattern]:
    """Run every detector on the window ending at bar i."""
    t = thresholds or PatternThresholds()
    trend = _prior_trend(bars, i, t.trend_lookback)
    found = []
    for pattern_type, detector in _DETECTORS.items():
        hit = detector(bars, i, t, trend)
        if hit is None:
            continue
        direction, strength = hit
        confirmed = False
        if i + 1 < len(bars) and direction != PatternDirection.NEUTRAL:
            nxt = bars[i + 1].close - bars[i].close
            confirmed = nxt > 0 if direction == PatternDirection.BULLISH else nxt < 0
        found.append(
            CandlePattern(
                pattern_type=pattern_type.value,
                direction=direction,
                strength=strength,
                reliability=RELIABILITY[pattern_type],
                position=i,
                confirmed=confirmed,
                description=pattern_type.value.replace("_", " "),
            )
        )
    return found


def identify_patterns(
    bars: Sequence[Bar],
    lookback: int = 10,
    thresholds: PatternThresholds | None = None,
) -> list[CandlePattern]:
    """
    Scan the last `lookback` bars for catalog patterns.

    Args:
        bars: Daily bars in date order
        lookback: Number of trailing bars to scan
        thresholds: Ratio thresholds (defaults if None)

    Returns:
        Patterns ordered by position, then catalog order
    """
    start = max(0, len(bars) - lookback)
    patterns = []
    for i in range(start, len(bars)):
        patterns.extend(detect_at(bars, i, thresholds))
    logger.debug(f"Identified {len(patterns)} patterns in last {lookback} bars")
    return patterns
