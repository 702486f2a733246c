"""Support and resistance level detection.

Five level sources are merged:
1. Moving averages (MA5/10/20/60)
2. Local swing highs/lows (pivot window scan)
3. Round-number levels
4. Volume-density clusters (price bins weighted by volume)
5. Fibonacci retracements of the latest swing range

Levels closer than `cluster_tolerance` (fraction of price) are merged into
one cluster whose strength is the number of corroborating sources.
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict

from signal_engine.indicators import highest, lowest, sma
from signal_engine.models.analysis import LevelPosition, PriceLevel, SupportResistance
from signal_engine.models.bar import Bar

logger = logging.getLogger(__name__)

FIB_RATIOS = (0.382, 0.5, 0.618)


class LevelParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    ma_periods: tuple[int, ...] = (5, 10, 20, 60)
    swing_window: int = 3
    range_lookback: int = 60
    volume_bins: int = 20
    volume_top_bins: int = 3
    cluster_tolerance: float = 0.01
    band: float = 0.15  # levels kept within +/- 15% of price
    max_levels: int = 5
    near_threshold: float = 0.02


# -----------------------------------------------------------------------------
# Level sources
# -----------------------------------------------------------------------------

def moving_average_levels(closes: np.ndarray, periods: Sequence[int]) -> list[tuple[float, str]]:
    levels = []
    for period in periods:
        values = sma(closes, period)
        if len(values) and not math.isnan(values[-1]):
            levels.append((float(values[-1]), f"ma{period}"))
    return levels


def swing_levels(highs: np.ndarray, lows: np.ndarray, window: int) -> list[tuple[float, str]]:
    """Pivot highs/lows: the extreme of a +/- window neighbourhood."""
    levels = []
    for i in range(window, len(highs) - window):
        seg_h = highs[i - window : i + window + 1]
        seg_l = lows[i - window : i + window + 1]
        if highs[i] == seg_h.max() and np.argmax(seg_h) == window:
            levels.append((float(highs[i]), "swing_high"))
        if lows[i] == seg_l.min() and np.argmin(seg_l) == window:
            levels.append((float(lows[i]), "swing_low"))
    return levels


def round_number_step(price: float) -> float:
    """Step between psychologically round prices for a price magnitude."""
    if price <= 0:
        return 1.0
    magnitude = 10 ** math.floor(math.log10(price))
    return magnitude / 2 if price / magnitude < 5 else magnitude


def round_number_levels(price: float) -> list[tuple[float, str]]:
    step = round_number_step(price)
    below = math.floor(price / step) * step
    levels = []
    for k in (-1, 0, 1, 2):
        level = below + k * step
        if level > 0 and not math.isclose(level, price):
            levels.append((round(level, 10), "round_number"))
    return levels


def volume_cluster_levels(
    closes: np.ndarray,
    volumes: np.ndarray,
    bins: int,
    top: int,
) -> list[tuple[float, str]]:
    """Centres of the price bins that traded the most volume."""
    if len(closes) == 0:
        return []
    lo, hi = float(closes.min()), float(closes.max())
    if hi <= lo:
        return [(lo, "volume_cluster")]
    hist, edges = np.histogram(closes, bins=bins, range=(lo, hi), weights=volumes)
    order = np.argsort(-hist, kind="stable")[:top]
    return [
        (float((edges[i] + edges[i + 1]) / 2), "volume_cluster")
        for i in order
        if hist[i] > 0
    ]


def fibonacci_levels(range_high: float, range_low: float) -> list[tuple[float, str]]:
    span = range_high - range_low
    levels = [(range_high, "range_high"), (range_low, "range_low")]
    if span > 0:
        levels.extend(
            (range_high - span * ratio, f"fib_{ratio}") for ratio in FIB_RATIOS
        )
    return levels


# -----------------------------------------------------------------------------
# Clustering and ranking
# -----------------------------------------------------------------------------

def cluster_levels(
    raw: Sequence[tuple[float, str]],
    price: float,
    tolerance: float,
) -> list[PriceLevel]:
    """Merge levels within tolerance * price of the running cluster mean."""
    band = tolerance * price
    clusters: list[list[tuple[float, str]]] = []
    for level, source in sorted(raw, key=lambda x: x[0]):
        if clusters:
            members = clusters[-1]
            mean = sum(m[0] for m in members) / len(members)
            if abs(level - mean) <= band:
                members.append((level, source))
                continue
        clusters.append([(level, source)])

    return [
        PriceLevel(
            price=sum(m[0] for m in members) / len(members),
            strength=len(members),
            sources=sorted({m[1] for m in members}),
        )
        for members in clusters
    ]


def detect_levels(
    bars: Sequence[Bar],
    params: LevelParams | None = None,
) -> SupportResistance:
    """
    Detect support and resistance levels around the latest close.

    Args:
        bars: Daily bars in date order
        params: Detection parameters

    Returns:
        SupportResistance with up to max_levels per side, nearest first
    """
    p = params or LevelParams()
    if not bars:
        raise ValueError("detect_levels requires at least one bar")

    closes = np.array([b.close for b in bars], dtype=np.float64)
    highs = np.array([b.high for b in bars], dtype=np.float64)
    lows = np.array([b.low for b in bars], dtype=np.float64)
    volumes = np.array([b.volume for b in bars], dtype=np.float64)
    price = float(closes[-1])

    lookback = min(p.range_lookback, len(bars))
    range_high = float(highest(highs, lookback)[-1])
    range_low = float(lowest(lows, lookback)[-1])

    raw: list[tuple[float, str]] = []
    raw.extend(moving_average_levels(closes, p.ma_periods))
    raw.extend(swing_levels(highs[-lookback:], lows[-lookback:], p.swing_window))
    raw.extend(round_number_levels(price))
    raw.extend(
        volume_cluster_levels(
            closes[-lookback:], volumes[-lookback:], p.volume_bins, p.volume_top_bins
        )
    )
    raw.extend(fibonacci_levels(range_high, range_low))

    clusters = cluster_levels(raw, price, p.cluster_tolerance)

    supports = [
        c for c in clusters if price * (1 - p.band) < c.price < price
    ]
    resistances = [
        c for c in clusters if price < c.price < price * (1 + p.band)
    ]
    supports.sort(key=lambda c: (price - c.price, -c.strength))
    resistances.sort(key=lambda c: (c.price - price, -c.strength))
    supports = supports[: p.max_levels]
    resistances = resistances[: p.max_levels]

    position = LevelPosition.MIDDLE
    if supports and (price - supports[0].price) / price <= p.near_threshold:
        position = LevelPosition.NEAR_SUPPORT
    elif resistances and (resistances[0].price - price) / price <= p.near_threshold:
        position = LevelPosition.NEAR_RESISTANCE

    logger.debug(
        "Levels @ %.2f: %d supports, %d resistances, position=%s",
        price, len(supports), len(resistances), position.value,
    )
    return SupportResistance(
        current_price=price,
        support_levels=supports,
        resistance_levels=resistances,
        current_position=position,
        range_high=range_high,
        range_low=range_low,
    )
