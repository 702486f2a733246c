"""IndicatorCalculator: builds per-bar IndicatorSnapshots for a bar series."""

from __future__ import annotations

import logging
import math
from typing import NamedTuple, Sequence

import numpy as np

from signal_engine.errors import InsufficientData
from signal_engine.indicators.indicators import (
    atr,
    bollinger,
    cci,
    crossed_above,
    crossed_below,
    dmi_adx,
    kdj,
    macd,
    obv,
    roc,
    rsi,
    williams_r,
)
from signal_engine.models.bar import Bar
from signal_engine.models.indicator import IndicatorParams, IndicatorSnapshot

logger = logging.getLogger(__name__)

_VALUE_FIELDS = (
    "macd_dif", "macd_dea", "macd_hist",
    "kdj_k", "kdj_d", "kdj_j",
    "rsi", "atr",
    "boll_upper", "boll_mid", "boll_lower",
    "di_plus", "di_minus", "adx",
    "williams_r", "roc", "obv", "cci",
)


class IndicatorSeries(NamedTuple):
    """Snapshots aligned with the input bars plus the warnings raised computing them."""

    snapshots: list[IndicatorSnapshot]
    warnings: list[str]


class IndicatorCalculator:
    """Calculator for all per-bar indicators used by the analyzers.

    Stateless: warnings are returned with each result.
    """

    def __init__(self, params: IndicatorParams | None = None, timeframe: str = "daily"):
        self.params = params or IndicatorParams()
        self.timeframe = timeframe

    def calculate_arrays(
        self,
        highs: Sequence[float],
        lows: Sequence[float],
        closes: Sequence[float],
        volumes: Sequence[float],
    ) -> tuple[dict[str, np.ndarray], list[str]]:
        """
        Calculate every indicator as an aligned array.

        MACD with too little history is recovered here: its lines are
        returned as NaN and a warning is added.

        Returns:
            (dict of indicator name -> array aligned with the input, warnings)
        """
        p = self.params
        n = len(closes)
        warnings: list[str] = []

        try:
            m = macd(closes, p.macd_fast, p.macd_slow, p.macd_signal)
            dif, dea, hist = m.dif, m.dea, m.hist
        except InsufficientData as e:
            logger.debug(f"[{self.timeframe}] {e}")
            warnings.append(f"{self.timeframe}: {e}")
            dif = dea = hist = np.full(n, np.nan)

        k = kdj(highs, lows, closes, p.kdj_n, p.kdj_k, p.kdj_d)
        boll = bollinger(closes, p.boll_period, p.boll_k)
        dmi = dmi_adx(highs, lows, closes, p.dmi_period)

        arrays = {
            "macd_dif": dif,
            "macd_dea": dea,
            "macd_hist": hist,
            "kdj_k": k.k,
            "kdj_d": k.d,
            "kdj_j": k.j,
            "rsi": rsi(closes, p.rsi_period),
            "atr": atr(highs, lows, closes, p.atr_period),
            "boll_upper": boll.upper,
            "boll_mid": boll.mid,
            "boll_lower": boll.lower,
            "di_plus": dmi.di_plus,
            "di_minus": dmi.di_minus,
            "adx": dmi.adx,
            "williams_r": williams_r(highs, lows, closes, p.williams_period),
            "roc": roc(closes, p.roc_period),
            "obv": obv(closes, volumes),
            "cci": cci(highs, lows, closes, p.cci_period),
        }
        return arrays, warnings

    def calculate(
        self,
        bars: Sequence[Bar],
        provisional_last: bool = False,
    ) -> IndicatorSeries:
        """
        Calculate one IndicatorSnapshot per bar.

        Args:
            bars: Bars in date order (any object with date/high/low/close/volume)
            provisional_last: Mark the final snapshot provisional (partial period)

        Returns:
            IndicatorSeries of snapshots aligned 1:1 with bars and the warnings
        """
        if not bars:
            return IndicatorSeries([], [])

        highs = [b.high for b in bars]
        lows = [b.low for b in bars]
        closes = [b.close for b in bars]
        volumes = [b.volume for b in bars]
        arrays, warnings = self.calculate_arrays(highs, lows, closes, volumes)

        p = self.params
        dif, dea = arrays["macd_dif"], arrays["macd_dea"]
        k, d = arrays["kdj_k"], arrays["kdj_d"]
        last = len(bars) - 1

        snapshots = []
        for i, bar in enumerate(bars):
            values = {name: float(arrays[name][i]) for name in _VALUE_FIELDS}
            k_i = values["kdj_k"]
            rsi_i = values["rsi"]
            snapshots.append(
                IndicatorSnapshot(
                    date=bar.date,
                    timeframe=self.timeframe,
                    close=float(bar.close),
                    **values,
                    macd_golden_cross=crossed_above(dif, dea, i),
                    macd_death_cross=crossed_below(dif, dea, i),
                    kdj_golden_cross=crossed_above(k, d, i) and k_i < p.kdj_overbought,
                    kdj_death_cross=crossed_below(k, d, i) and k_i > p.kdj_oversold,
                    rsi_overbought=not math.isnan(rsi_i) and rsi_i > p.rsi_overbought,
                    rsi_oversold=not math.isnan(rsi_i) and rsi_i < p.rsi_oversold,
                    kdj_overbought=not math.isnan(k_i) and k_i > p.kdj_overbought,
                    kdj_oversold=not math.isnan(k_i) and k_i < p.kdj_oversold,
                    complete=not any(math.isnan(v) for v in values.values()),
                    provisional=provisional_last and i == last,
                )
            )
        return IndicatorSeries(snapshots, warnings)

    def latest(self, bars: Sequence[Bar]) -> IndicatorSnapshot | None:
        """Calculate the snapshot for the latest bar, or None for empty input."""
        snapshots = self.calculate(bars).snapshots
        return snapshots[-1] if snapshots else None
