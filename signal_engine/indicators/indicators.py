"""Technical indicators for daily bar series.

Every function takes an ordered sequence of floats and returns a numpy
float64 array aligned 1:1 with the input. Entries before an indicator's
minimum window are NaN (the warm-up sentinel); nothing is back-filled.
Inputs are copied into new arrays, so callers' buffers are never touched.

Smoothing conventions:
- EMA: alpha = 2 / (period + 1), seeded with the first value
- Wilder (RMA): seeded with the SMA of the first `period` values,
  then prev + (x - prev) / period
"""

from __future__ import annotations

from typing import NamedTuple, Sequence

import numpy as np

from signal_engine.errors import InsufficientData


def _as_array(values: Sequence[float]) -> np.ndarray:
    return np.array(values, dtype=np.float64)


def _nan_array(n: int) -> np.ndarray:
    return np.full(n, np.nan, dtype=np.float64)


# =============================================================================
# Primitives
# =============================================================================

def sma(values: Sequence[float], period: int) -> np.ndarray:
    """
    Calculate Simple Moving Average.

    Args:
        values: Sequence of values
        period: Window length

    Returns:
        Array of SMA values, NaN for the first period-1 entries
    """
    arr = _as_array(values)
    result = _nan_array(len(arr))
    if len(arr) < period:
        return result

    for i in range(period - 1, len(arr)):
        result[i] = np.mean(arr[i - period + 1 : i + 1])
    return result


def ema(values: Sequence[float], period: int) -> np.ndarray:
    """
    Calculate Exponential Moving Average.

    Seeded with the first finite value, which matches the recurrence
    EMA_t = EMA_{t-1} + alpha * (x_t - EMA_{t-1}). Leading NaNs in the
    input (e.g. a DIF series still warming up) stay NaN.

    Args:
        values: Sequence of values
        period: EMA period

    Returns:
        Array of EMA values (same length as input)
    """
    arr = _as_array(values)
    result = _nan_array(len(arr))
    finite = np.flatnonzero(~np.isnan(arr))
    if len(finite) == 0:
        return result

    alpha = 2.0 / (period + 1)
    start = finite[0]
    result[start] = arr[start]
    for i in range(start + 1, len(arr)):
        result[i] = result[i - 1] + alpha * (arr[i] - result[i - 1])
    return result


def wilder(values: Sequence[float], period: int) -> np.ndarray:
    """Wilder's smoothing (RMA), seeded with the SMA of the first window."""
    arr = _as_array(values)
    result = _nan_array(len(arr))
    if len(arr) < period:
        return result

    result[period - 1] = np.mean(arr[:period])
    for i in range(period, len(arr)):
        result[i] = result[i - 1] + (arr[i] - result[i - 1]) / period
    return result


def highest(values: Sequence[float], period: int) -> np.ndarray:
    """Rolling maximum over the lookback period."""
    arr = _as_array(values)
    result = _nan_array(len(arr))
    for i in range(period - 1, len(arr)):
        result[i] = np.max(arr[i - period + 1 : i + 1])
    return result


def lowest(values: Sequence[float], period: int) -> np.ndarray:
    """Rolling minimum over the lookback period."""
    arr = _as_array(values)
    result = _nan_array(len(arr))
    for i in range(period - 1, len(arr)):
        result[i] = np.min(arr[i - period + 1 : i + 1])
    return result


def stddev(values: Sequence[float], period: int) -> np.ndarray:
    """Rolling population standard deviation (ddof=0)."""
    arr = _as_array(values)
    result = _nan_array(len(arr))
    for i in range(period - 1, len(arr)):
        result[i] = np.std(arr[i - period + 1 : i + 1])
    return result


def true_range(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
) -> np.ndarray:
    """
    Calculate True Range.

    TR = max(high - low, abs(high - prev_close), abs(low - prev_close))
    The first bar has no previous close and uses high - low.
    """
    h = _as_array(highs)
    l = _as_array(lows)
    c = _as_array(closes)
    n = len(h)
    if n == 0:
        return np.empty(0, dtype=np.float64)

    result = np.empty(n, dtype=np.float64)
    result[0] = h[0] - l[0]
    for i in range(1, n):
        result[i] = max(h[i] - l[i], abs(h[i] - c[i - 1]), abs(l[i] - c[i - 1]))
    return result


# =============================================================================
# Indicators
# =============================================================================

class MACDResult(NamedTuple):
    dif: np.ndarray
    dea: np.ndarray
    hist: np.ndarray


class KDJResult(NamedTuple):
    k: np.ndarray
    d: np.ndarray
    j: np.ndarray


class BollingerResult(NamedTuple):
    upper: np.ndarray
    mid: np.ndarray
    lower: np.ndarray


class DMIResult(NamedTuple):
    di_plus: np.ndarray
    di_minus: np.ndarray
    adx: np.ndarray


def macd(
    closes: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> MACDResult:
    """
    Calculate MACD.

    DIF = EMA(fast) - EMA(slow), DEA = EMA(DIF, signal), HIST = 2 * (DIF - DEA).
    All three lines are warm-up before bar slow-1; DEA is seeded with the
    first valid DIF.

    Args:
        closes: Close prices
        fast: Fast EMA period
        slow: Slow EMA period
        signal: Signal line period

    Returns:
        MACDResult(dif, dea, hist)

    Raises:
        InsufficientData: If fewer than slow + signal bars are given
    """
    arr = _as_array(closes)
    required = slow + signal
    if len(arr) < required:
        raise InsufficientData("MACD", required, len(arr))

    dif = ema(arr, fast) - ema(arr, slow)
    dif[: slow - 1] = np.nan

    dea = ema(dif, signal)

    hist = 2.0 * (dif - dea)
    return MACDResult(dif=dif, dea=dea, hist=hist)


def kdj(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    n: int = 9,
    k_smooth: int = 3,
    d_smooth: int = 3,
) -> KDJResult:
    """
    Calculate the KDJ stochastic oscillator.

    RSV = (close - LLV(n)) / (HHV(n) - LLV(n)) * 100, or 50 when HHV == LLV.
    K = ((k_smooth-1) * K_prev + RSV) / k_smooth, seeded at 50.
    D = ((d_smooth-1) * D_prev + K) / d_smooth, seeded at 50.
    J = 3K - 2D.
    """
    c = _as_array(closes)
    hhv = highest(highs, n)
    llv = lowest(lows, n)
    size = len(c)

    k = _nan_array(size)
    d = _nan_array(size)
    prev_k = 50.0
    prev_d = 50.0
    for i in range(n - 1, size):
        span = hhv[i] - llv[i]
        rsv = 50.0 if span == 0 else (c[i] - llv[i]) / span * 100.0
        prev_k = ((k_smooth - 1) * prev_k + rsv) / k_smooth
        prev_d = ((d_smooth - 1) * prev_d + prev_k) / d_smooth
        k[i] = prev_k
        d[i] = prev_d

    j = 3.0 * k - 2.0 * d
    return KDJResult(k=k, d=d, j=j)


def rsi(closes: Sequence[float], period: int = 14) -> np.ndarray:
    """
    Calculate RSI with Wilder-smoothed average gain and loss.

    RSI = 100 when average loss is zero and average gain positive,
    and 50 when both are zero (flat series).
    """
    c = _as_array(closes)
    result = _nan_array(len(c))
    if len(c) <= period:
        return result

    delta = np.diff(c)
    gains = np.where(delta > 0, delta, 0.0)
    losses = np.where(delta < 0, -delta, 0.0)
    avg_gain = wilder(gains, period)
    avg_loss = wilder(losses, period)

    for i in range(period - 1, len(delta)):
        g = avg_gain[i]
        l = avg_loss[i]
        if l == 0:
            value = 50.0 if g == 0 else 100.0
        else:
            value = 100.0 - 100.0 / (1.0 + g / l)
        result[i + 1] = value
    return result


def bollinger(
    closes: Sequence[float],
    period: int = 20,
    k: float = 2.0,
) -> BollingerResult:
    """Bollinger Bands: SMA mid with +/- k population standard deviations."""
    mid = sma(closes, period)
    sd = stddev(closes, period)
    return BollingerResult(upper=mid + k * sd, mid=mid, lower=mid - k * sd)


def atr(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = 14,
) -> np.ndarray:
    """
    Calculate Average True Range (ATR) using Wilder's smoothing.

    Args:
        highs: High prices
        lows: Low prices
        closes: Close prices
        period: ATR period

    Returns:
        Array of ATR values
    """
    return wilder(true_range(highs, lows, closes), period)


def dmi_adx(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = 14,
) -> DMIResult:
    """
    Calculate DI+, DI- and ADX (Wilder).

    +DM = up move if up > down and up > 0, else 0 (mirror for -DM).
    DI = 100 * Wilder(DM) / Wilder(TR).
    DX = 100 * |DI+ - DI-| / (DI+ + DI-), 0 when both are 0.
    ADX = Wilder(DX).
    """
    h = _as_array(highs)
    l = _as_array(lows)
    size = len(h)
    di_plus = _nan_array(size)
    di_minus = _nan_array(size)
    adx = _nan_array(size)
    if size <= period:
        return DMIResult(di_plus=di_plus, di_minus=di_minus, adx=adx)

    up = h[1:] - h[:-1]
    down = l[:-1] - l[1:]
    plus_dm = np.where((up > down) & (up > 0), up, 0.0)
    minus_dm = np.where((down > up) & (down > 0), down, 0.0)
    tr = true_range(h, l, closes)[1:]

    tr_s = wilder(tr, period)
    plus_s = wilder(plus_dm, period)
    minus_s = wilder(minus_dm, period)

    dx = _nan_array(size - 1)
    for i in range(period - 1, size - 1):
        if tr_s[i] == 0:
            p = m = 0.0
        else:
            p = 100.0 * plus_s[i] / tr_s[i]
            m = 100.0 * minus_s[i] / tr_s[i]
        di_plus[i + 1] = p
        di_minus[i + 1] = m
        total = p + m
        dx[i] = 0.0 if total == 0 else 100.0 * abs(p - m) / total

    valid_dx = dx[period - 1 :]
    adx_tail = wilder(valid_dx, period)
    adx[period:] = adx_tail
    return DMIResult(di_plus=di_plus, di_minus=di_minus, adx=adx)


def williams_r(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = 14,
) -> np.ndarray:
    """Williams %R in [-100, 0]; -50 when the window has no range."""
    c = _as_array(closes)
    hhv = highest(highs, period)
    llv = lowest(lows, period)
    result = _nan_array(len(c))
    for i in range(period - 1, len(c)):
        span = hhv[i] - llv[i]
        result[i] = -50.0 if span == 0 else (hhv[i] - c[i]) / span * -100.0
    return result


def roc(closes: Sequence[float], period: int = 12) -> np.ndarray:
    """Percent rate of change versus the close `period` bars ago."""
    c = _as_array(closes)
    result = _nan_array(len(c))
    for i in range(period, len(c)):
        base = c[i - period]
        result[i] = 0.0 if base == 0 else (c[i] - base) / base * 100.0
    return result


def obv(closes: Sequence[float], volumes: Sequence[float]) -> np.ndarray:
    """On-Balance Volume, cumulative from 0 at the first bar."""
    c = _as_array(closes)
    v = _as_array(volumes)
    result = np.zeros(len(c), dtype=np.float64)
    for i in range(1, len(c)):
        if c[i] > c[i - 1]:
            result[i] = result[i - 1] + v[i]
        elif c[i] < c[i - 1]:
            result[i] = result[i - 1] - v[i]
        else:
            result[i] = result[i - 1]
    return result


def cci(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = 20,
) -> np.ndarray:
    """Commodity Channel Index: (TP - SMA(TP)) / (0.015 * mean deviation)."""
    tp = (_as_array(highs) + _as_array(lows) + _as_array(closes)) / 3.0
    result = _nan_array(len(tp))
    for i in range(period - 1, len(tp)):
        window = tp[i - period + 1 : i + 1]
        mean = np.mean(window)
        mean_dev = np.mean(np.abs(window - mean))
        result[i] = 0.0 if mean_dev == 0 else (tp[i] - mean) / (0.015 * mean_dev)
    return result


def mfi(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    volumes: Sequence[float],
    period: int = 14,
) -> np.ndarray:
    """Money Flow Index in [0, 100]; 50 when the window has no flow."""
    tp = (_as_array(highs) + _as_array(lows) + _as_array(closes)) / 3.0
    flow = tp * _as_array(volumes)
    result = _nan_array(len(tp))
    for i in range(period, len(tp)):
        pos = 0.0
        neg = 0.0
        for j in range(i - period + 1, i + 1):
            if tp[j] > tp[j - 1]:
                pos += flow[j]
            elif tp[j] < tp[j - 1]:
                neg += flow[j]
        if neg == 0:
            result[i] = 50.0 if pos == 0 else 100.0
        else:
            result[i] = 100.0 - 100.0 / (1.0 + pos / neg)
    return result


# =============================================================================
# Cross helpers
# =============================================================================

def crossed_above(a: Sequence[float], b: Sequence[float], i: int) -> bool:
    """True if a crosses above b at index i (a[i-1] <= b[i-1], a[i] > b[i])."""
    if i < 1:
        return False
    vals = (a[i - 1], b[i - 1], a[i], b[i])
    if any(np.isnan(v) for v in vals):
        return False
    return a[i - 1] <= b[i - 1] and a[i] > b[i]


def crossed_below(a: Sequence[float], b: Sequence[float], i: int) -> bool:
    """True if a crosses below b at index i (a[i-1] >= b[i-1], a[i] < b[i])."""
    if i < 1:
        return False
    vals = (a[i - 1], b[i - 1], a[i], b[i])
    if any(np.isnan(v) for v in vals):
        return False
    return a[i - 1] >= b[i - 1] and a[i] < b[i]
