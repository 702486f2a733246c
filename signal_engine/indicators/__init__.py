"""Technical indicators (pure math, no I/O)."""

from signal_engine.indicators.indicators import (
    sma,
    ema,
    wilder,
    highest,
    lowest,
    stddev,
    true_range,
    macd,
    kdj,
    rsi,
    bollinger,
    atr,
    dmi_adx,
    williams_r,
    roc,
    obv,
    cci,
    mfi,
    crossed_above,
    crossed_below,
    MACDResult,
    KDJResult,
    BollingerResult,
    DMIResult,
)
from signal_engine.indicators.calculator import IndicatorCalculator, IndicatorSeries

__all__ = [
    "sma",
    "ema",
    "wilder",
    "highest",
    "lowest",
    "stddev",
    "true_range",
    "macd",
    "kdj",
    "rsi",
    "bollinger",
    "atr",
    "dmi_adx",
    "williams_r",
    "roc",
    "obv",
    "cci",
    "mfi",
    "crossed_above",
    "crossed_below",
    "MACDResult",
    "KDJResult",
    "BollingerResult",
    "DMIResult",
    "IndicatorCalculator",
    "IndicatorSeries",
]
