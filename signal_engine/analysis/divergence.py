"""Volume-price divergence detection.

Compares the smoothed price trend with the OBV trend over one window.
Bullish divergence: price makes a lower low while OBV makes a higher low.
Bearish divergence: price makes a higher high while OBV makes a lower high.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from signal_engine.analysis.volume import check_volume_price_sync
from signal_engine.indicators import ema, obv
from signal_engine.models.analysis import VolumePriceDivergence
from signal_engine.models.bar import Bar

logger = logging.getLogger(__name__)


def _normalized_slope(values: np.ndarray) -> float:
    """Least-squares slope divided by the mean absolute level."""
    x = np.arange(len(values), dtype=np.float64)
    slope = np.polyfit(x, values, 1)[0]
    scale = np.mean(np.abs(values))
    return float(slope / scale) if scale > 0 else 0.0


def detect_divergence(
    bars: Sequence[Bar],
    window: int = 20,
    smoothing: int = 5,
) -> VolumePriceDivergence:
    """
    Detect price/OBV divergence over the trailing window.

    Args:
        bars: Daily bars in date order
        window: Bars compared; split into two halves for the extremes
        smoothing: EMA period applied to closes before the slope fit

    Returns:
        VolumePriceDivergence (no divergence when history is too short)
    """
    closes = [b.close for b in bars]
    volumes = [b.volume for b in bars]
    sync = check_volume_price_sync(closes, volumes)
    if len(bars) < window:
        return VolumePriceDivergence(volume_price_sync=sync, description="insufficient data")

    price = np.asarray(closes[-window:], dtype=np.float64)
    smooth = ema(closes, smoothing)[-window:]
    obv_values = obv(closes, volumes)[-window:]
    # Shift OBV so the normalizing scale is its range, not a level near zero
    obv_shifted = obv_values - obv_values.min() + 1.0

    price_slope = _normalized_slope(smooth)
    obv_slope = _normalized_slope(obv_shifted)

    half = window // 2
    first_p, second_p = price[:half], price[half:]
    first_o, second_o = obv_values[:half], obv_values[half:]

    bullish = second_p.min() < first_p.min() and second_o.min() > first_o.min()
    bearish = second_p.max() > first_p.max() and second_o.max() < first_o.max()
    strength = min(1.0, abs(price_slope - obv_slope)) if (bullish or bearish) else 0.0

    if bullish:
        description = "price lower low with OBV higher low (bullish divergence)"
    elif bearish:
        description = "price higher high with OBV lower high (bearish divergence)"
    else:
        description = "no divergence"

    return VolumePriceDivergence(
        has_bullish_divergence=bool(bullish),
        has_bearish_divergence=bool(bearish),
        strength=float(strength),
        price_slope=price_slope,
        obv_slope=obv_slope,
        volume_price_sync=sync,
        description=description,
    )
