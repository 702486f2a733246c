"""Volume analysis: volume trend, OBV trend, accumulation, money flow."""

from __future__ import annotations

import logging
import math
from typing import Sequence

import numpy as np

from signal_engine.indicators import mfi, obv
from signal_engine.models.analysis import VolumeAnalysis
from signal_engine.models.bar import Bar

logger = logging.getLogger(__name__)


def volume_ratio(volumes: Sequence[float], period: int = 5) -> float:
    """Latest volume divided by the mean of the preceding `period` volumes."""
    v = np.asarray(volumes, dtype=np.float64)
    if len(v) < period + 1:
        return 1.0
    base = v[-period - 1 : -1].mean()
    return float(v[-1] / base) if base > 0 else 1.0


def volume_trend(volumes: Sequence[float], window: int = 5) -> str:
    """expanding / shrinking / stable: recent window mean vs prior window mean."""
    v = np.asarray(volumes, dtype=np.float64)
    if len(v) < 2 * window:
        return "stable"
    recent = v[-window:].mean()
    prior = v[-2 * window : -window].mean()
    if prior <= 0:
        return "stable"
    if recent > prior * 1.2:
        return "expanding"
    if recent < prior * 0.8:
        return "shrinking"
    return "stable"


def check_volume_price_sync(
    closes: Sequence[float],
    volumes: Sequence[float],
    window: int = 5,
) -> bool:
    """True when volume moves with price over the last window.

    Rising price on rising volume, or falling price on falling volume.
    """
    c = np.asarray(closes, dtype=np.float64)
    v = np.asarray(volumes, dtype=np.float64)
    if len(c) < 2 * window:
        return True
    price_up = c[-1] > c[-window]
    volume_up = v[-window:].mean() > v[-2 * window : -window].mean()
    return price_up == volume_up


def obv_trend(obv_values: Sequence[float], window: int = 10) -> str:
    if len(obv_values) < window:
        return "insufficient"
    recent = obv_values[-window:]
    return "rising" if recent[-1] > recent[0] else "falling"


def accumulation_signal(
    closes: Sequence[float],
    volumes: Sequence[float],
    obv_values: Sequence[float],
    window: int = 20,
) -> float:
    """
    Score (0-100) for quiet accumulation.

    Adds up to 40 for price sitting in the lower part of its range,
    30 for OBV rising while price is flat or falling, and 30 for volume
    on up days outweighing volume on down days.
    """
    c = np.asarray(closes, dtype=np.float64)
    v = np.asarray(volumes, dtype=np.float64)
    o = np.asarray(obv_values, dtype=np.float64)
    if len(c) < window + 1:
        return 0.0

    seg = c[-window:]
    lo, hi = seg.min(), seg.max()
    score = 0.0
    if hi > lo:
        position = (c[-1] - lo) / (hi - lo)
        score += 40.0 * (1.0 - position)

    price_change = (c[-1] - c[-window]) / c[-window] if c[-window] else 0.0
    if o[-1] > o[-window] and price_change <= 0.02:
        score += 30.0

    deltas = np.diff(c[-window - 1 :])
    vols = v[-window:]
    up_vol = vols[deltas > 0].sum()
    down_vol = vols[deltas < 0].sum()
    if up_vol + down_vol > 0:
        score += 30.0 * up_vol / (up_vol + down_vol)
    return float(min(100.0, score))


def abnormal_volume_days(volumes: Sequence[float], window: int = 20, multiple: float = 2.0) -> list[int]:
    """Indexes of bars whose volume exceeds multiple x the trailing average."""
    v = np.asarray(volumes, dtype=np.float64)
    days = []
    for i in range(window, len(v)):
        base = v[i - window : i].mean()
        if base > 0 and v[i] > multiple * base:
            days.append(i)
    return days


def analyze_volume(bars: Sequence[Bar]) -> VolumeAnalysis:
    """Summarize volume behaviour for the latest bar."""
    closes = [b.close for b in bars]
    highs = [b.high for b in bars]
    lows = [b.low for b in bars]
    volumes = [b.volume for b in bars]
    obv_values = obv(closes, volumes)
    mfi_values = mfi(highs, lows, closes, volumes)
    latest_mfi = float(mfi_values[-1]) if len(mfi_values) else math.nan

    return VolumeAnalysis(
        volume_trend=volume_trend(volumes),
        volume_price_sync=check_volume_price_sync(closes, volumes),
        accumulation_signal=accumulation_signal(closes, volumes, obv_values),
        obv_trend=obv_trend(obv_values),
        volume_ratio=volume_ratio(volumes),
        mfi=50.0 if math.isnan(latest_mfi) else latest_mfi,
        abnormal_volume_days=abnormal_volume_days(volumes),
    )
