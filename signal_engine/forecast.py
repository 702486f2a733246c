"""Multi-day price forecast from trend bias, damping and decaying volatility.

For each target day the trend strength starts from the resonance bias
(or half the 5-day momentum when there is no resonance), is damped near
levels and at RSI extremes, and decays by 0.93 per day. RSI and MACD are
recomputed over the history extended with the forecast so far.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
from typing import Sequence

import numpy as np

from signal_engine.errors import InsufficientData
from signal_engine.indicators import macd, rsi
from signal_engine.models.analysis import MultiTimeframeSignal, SupportResistance
from signal_engine.models.bar import BarSeries
from signal_engine.models.prediction import LastRealData, Prediction, PredictionResponse

logger = logging.getLogger(__name__)

TREND_BIAS_BY_LEVEL = {3: 0.015, 2: 0.010}
TREND_DECAY = 0.93
VOLATILITY_FLOOR = 0.015
VOLATILITY_CAP = 0.08
DEFAULT_VOLATILITY = 0.02
LEVEL_DAMPING_DISTANCE = 0.03
LEVEL_DAMPING = 0.3
MAX_DAILY_CHANGE_PCT = 10.0
SIGNAL_THRESHOLD = 0.008
# Floor moves by day % 3 when the computed change is under 0.1%
MIN_DAILY_MOVES = (0.003, -0.002, 0.001)


def next_trading_day(day: dt.date) -> dt.date:
    """Next weekday after `day`."""
    nxt = day + dt.timedelta(days=1)
    while nxt.weekday() >= 5:
        nxt += dt.timedelta(days=1)
    return nxt


def historical_volatility(closes: Sequence[float], window: int = 20) -> float:
    """Population std of the last `window` daily returns (0.02 if too short)."""
    if len(closes) < window:
        return DEFAULT_VOLATILITY
    tail = np.asarray(closes[-(window + 1):], dtype=np.float64)
    returns = np.diff(tail) / tail[:-1]
    return min(float(np.std(returns)), 0.1)


def price_momentum(closes: Sequence[float]) -> float:
    """Mean of the last 5 closes relative to the 5 before them."""
    if len(closes) < 10:
        return 0.0
    recent = float(np.mean(closes[-5:]))
    previous = float(np.mean(closes[-10:-5]))
    return (recent - previous) / previous if previous else 0.0


def trend_bias(resonance: MultiTimeframeSignal) -> float:
    bias = TREND_BIAS_BY_LEVEL.get(resonance.resonance_level, 0.0)
    if resonance.is_bullish:
        return bias
    if resonance.is_bearish:
        return -bias
    return 0.0


def _latest_rsi_and_hist(closes: list[float]) -> tuple[float, float]:
    rsi_now = float(rsi(closes)[-1])
    try:
        hist = float(macd(closes).hist[-1])
    except InsufficientData:
        hist = math.nan
    return (
        50.0 if math.isnan(rsi_now) else rsi_now,
        0.0 if math.isnan(hist) else hist,
    )


def _trend_description(strength: float) -> str:
    if strength > 0.010:
        return "strong uptrend"
    if strength > 0.005:
        return "moderate uptrend"
    if strength > -0.005:
        return "sideways consolidation"
    if strength > -0.010:
        return "moderate downtrend"
    return "strong downtrend"


def _rsi_state(value: float) -> str:
    if value > 70:
        return "RSI overbought, pullback pressure"
    if value > 60:
        return "RSI strong, upside momentum"
    if value > 40:
        return "RSI neutral, balanced"
    if value > 30:
        return "RSI weak, downside momentum"
    return "RSI oversold, rebound potential"


def _macd_state(hist: float) -> str:
    if hist > 0.5:
        return "MACD histogram expanding above zero"
    if hist > 0:
        return "MACD histogram positive but fading"
    if hist > -0.5:
        return "MACD histogram negative but fading"
    return "MACD histogram expanding below zero"


def _near(price: float, levels: Sequence[float], tolerance: float = 0.02) -> float | None:
    for level in levels:
        if abs(price - level) / level < tolerance:
            return level
    return None


def prediction_reason(
    predicted_price: float,
    change_percent: float,
    day: int,
    levels: SupportResistance,
    resonance: MultiTimeframeSignal,
    trend_strength: float,
    rsi_value: float,
    macd_hist: float,
) -> tuple[str, list[str]]:
    """Reason text and key factors for one forecast day."""
    reasons: list[str] = []
    key_factors: list[str] = []
    supports = [lv.price for lv in levels.support_levels]
    resistances = [lv.price for lv in levels.resistance_levels]

    if change_percent > 0:
        resistance = _near(predicted_price, resistances)
        if resistance is not None:
            reasons.append(f"near resistance {resistance:.2f}, limited upside")
            key_factors.append("resistance cap")
        elif rsi_value > 70:
            reasons.append("RSI overbought, short-term pullback possible")
            key_factors.append("overbought")
        else:
            reasons.append(_trend_description(trend_strength))
            reasons.append(_rsi_state(rsi_value))
            if resonance.resonance_level >= 2:
                reasons.append(f"{resonance.resonance_direction.value} resonance")
                key_factors.append(f"level {resonance.resonance_level} resonance")
    elif change_percent < 0:
        support = _near(predicted_price, supports)
        if support is not None:
            reasons.append(f"near support {support:.2f}, limited downside")
            key_factors.append("support floor")
        elif rsi_value < 30:
            reasons.append("RSI oversold, short-term rebound possible")
            key_factors.append("oversold")
        else:
            reasons.append(_trend_description(trend_strength))
            reasons.append(_rsi_state(rsi_value))
            if resonance.resonance_level >= 2:
                reasons.append(f"{resonance.resonance_direction.value} resonance")
                key_factors.append(f"level {resonance.resonance_level} resonance to the downside")
    else:
        reasons.append("buyers and sellers balanced, consolidation")
        key_factors.append("consolidation")

    key_factors.append(_macd_state(macd_hist))

    if day > 3:
        reasons.append(f"day {day} forecast, uncertainty rising")
        key_factors.append(f"T+{day} decay")

    return "; ".join(reasons), key_factors


def _damped_strength(
    strength: float,
    last_price: float,
    levels: SupportResistance,
    rsi_value: float,
) -> float:
    if strength > 0:
        if any(
            abs(last_price - lv.price) / lv.price < LEVEL_DAMPING_DISTANCE
            for lv in levels.resistance_levels
        ):
            strength *= LEVEL_DAMPING
        if rsi_value > 70:
            strength *= 0.4
        elif rsi_value > 65:
            strength *= 0.7
    elif strength < 0:
        if any(
            abs(last_price - lv.price) / lv.price < LEVEL_DAMPING_DISTANCE
            for lv in levels.support_levels
        ):
            strength *= LEVEL_DAMPING
        if rsi_value < 30:
            strength *= 0.4
        elif rsi_value < 35:
            strength *= 0.7
    return strength


def generate_predictions(
    series: BarSeries,
    resonance: MultiTimeframeSignal,
    levels: SupportResistance,
    days: int = 5,
) -> PredictionResponse:
    """
    Forecast the next `days` trading days after the last bar.

    Args:
        series: Bar history (not modified)
        resonance: Multi-timeframe signal for the last bar
        levels: Support/resistance around the last close
        days: Number of trading days to forecast

    Returns:
        PredictionResponse with one Prediction per day and the last real bar
    """
    if len(series) == 0:
        return PredictionResponse(predictions=[])

    closes = [float(c) for c in series.closes()]
    last_bar = series.last
    current_price = closes[-1]

    volatility = min(VOLATILITY_CAP, max(VOLATILITY_FLOOR, historical_volatility(closes)))
    bias = trend_bias(resonance)
    initial_strength = bias if abs(bias) > 0.001 else price_momentum(closes) * 0.5

    path = list(closes)
    last_price = current_price
    target_date = last_bar.date
    predictions: list[Prediction] = []

    for day in range(1, days + 1):
        target_date = next_trading_day(target_date)
        rsi_value, macd_hist = _latest_rsi_and_hist(path)
        decay = TREND_DECAY ** day
        strength = _damped_strength(initial_strength, last_price, levels, rsi_value)

        base_vol = volatility * 0.3
        if abs(strength) < 0.001:
            # Deterministic alternating swing while flat
            adjustment = base_vol * (1.0 if day % 2 == 0 else -0.8) * decay
        else:
            adjustment = math.copysign(base_vol * (1 + abs(strength) * 2) * decay, strength)

        change_rate = strength * decay + adjustment
        if abs(change_rate) < 0.001:
            change_rate = MIN_DAILY_MOVES[day % 3]

        change_pct = max(-MAX_DAILY_CHANGE_PCT, min(MAX_DAILY_CHANGE_PCT, change_rate * 100))
        predicted_price = last_price * (1 + change_pct / 100)
        confidence = max(0.40, min(0.85, 0.70 * decay + resonance.signal_quality * 0.003))

        if strength > SIGNAL_THRESHOLD:
            trading_signal = "buy"
        elif strength < -SIGNAL_THRESHOLD:
            trading_signal = "sell"
        else:
            trading_signal = "hold"

        reason, key_factors = prediction_reason(
            predicted_price, change_pct, day, levels, resonance, strength, rsi_value, macd_hist
        )
        predictions.append(
            Prediction(
                target_date=target_date,
                predicted_price=predicted_price,
                predicted_change_percent=change_pct,
                confidence=confidence,
                trading_signal=trading_signal,
                signal_strength=resonance.signal_quality / 100,
                technical_indicators={
                    "rsi": rsi_value,
                    "macd_histogram": macd_hist,
                    "trend_strength": strength,
                    "volatility": volatility,
                },
                prediction_reason=reason,
                key_factors=key_factors,
            )
        )
        path.append(predicted_price)
        last_price = predicted_price

    prev_close = closes[-2] if len(closes) > 1 else current_price
    change_percent = (current_price - prev_close) / prev_close * 100 if prev_close else 0.0
    logger.debug(
        "Forecast %s: %d days from %.2f, strength=%.4f vol=%.4f",
        series.symbol, days, current_price, initial_strength, volatility,
    )
    return PredictionResponse(
        predictions=predictions,
        last_real_data=LastRealData(
            date=last_bar.date,
            price=current_price,
            change_percent=change_percent,
        ),
    )
