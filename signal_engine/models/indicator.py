"""Per-bar indicator snapshot models."""

from __future__ import annotations

import datetime as dt
import math

from pydantic import BaseModel, ConfigDict


class IndicatorParams(BaseModel):
    """Indicator periods and thresholds."""

    model_config = ConfigDict(frozen=True)

    rsi_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    kdj_n: int = 9
    kdj_k: int = 3
    kdj_d: int = 3
    boll_period: int = 20
    boll_k: float = 2.0
    atr_period: int = 14
    dmi_period: int = 14
    williams_period: int = 14
    roc_period: int = 12
    cci_period: int = 20
    ma_periods: tuple[int, ...] = (5, 10, 20, 60)

    # Thresholds
    rsi_overbought: float = 70.0
    rsi_oversold: float = 30.0
    kdj_overbought: float = 80.0
    kdj_oversold: float = 20.0


class IndicatorSnapshot(BaseModel):
    """Indicator values for one bar on one timeframe.

    NaN marks a value that is still in its warm-up window. `complete`
    is False while any value is NaN.
    """

    model_config = ConfigDict(frozen=True)

    date: dt.date
    timeframe: str = "daily"
    close: float

    macd_dif: float
    macd_dea: float
    macd_hist: float
    kdj_k: float
    kdj_d: float
    kdj_j: float
    rsi: float
    atr: float
    boll_upper: float
    boll_mid: float
    boll_lower: float
    di_plus: float
    di_minus: float
    adx: float
    williams_r: float
    roc: float
    obv: float
    cci: float

    macd_golden_cross: bool = False
    macd_death_cross: bool = False
    kdj_golden_cross: bool = False
    kdj_death_cross: bool = False
    rsi_overbought: bool = False
    rsi_oversold: bool = False
    kdj_overbought: bool = False
    kdj_oversold: bool = False

    complete: bool = True
    provisional: bool = False

    @property
    def atr_pct(self) -> float:
        """ATR as a percent of close (NaN during warm-up)."""
        if math.isnan(self.atr) or self.close == 0:
            return math.nan
        return self.atr / self.close * 100
