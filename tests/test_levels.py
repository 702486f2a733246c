"""Tests for support/resistance level detection."""

import datetime as dt
import math

import pytest

from signal_engine.analysis.levels import (
    LevelParams,
    cluster_levels,
    detect_levels,
    fibonacci_levels,
    round_number_levels,
    round_number_step,
)
from signal_engine.models.analysis import LevelPosition
from signal_engine.models.bar import Bar


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_wave_bars(n: int = 120) -> list[Bar]:
    """Oscillating closes around a slow drift."""
    bars = []
    prev = None
    day = dt.date(2024, 1, 1)
    for i in range(n):
        while day.weekday() >= 5:
            day += dt.timedelta(days=1)
        close = 20 + 0.03 * i + 1.5 * math.sin(i / 6)
        open_ = prev if prev is not None else close
        bars.append(
            Bar(
                symbol="TEST",
                date=day,
                open=open_,
                high=max(open_, close) * 1.01,
                low=min(open_, close) * 0.99,
                close=close,
                volume=1000 + 300 * math.cos(i / 4),
                prev_close=prev,
            )
        )
        prev = close
        day += dt.timedelta(days=1)
    return bars


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

class TestLevelSources:
    """Tests for the individual level sources."""

    def test_round_number_step(self):
        assert round_number_step(23.0) == pytest.approx(5.0)
        assert round_number_step(70.0) == pytest.approx(10.0)
        assert round_number_step(1.2) == pytest.approx(0.5)

    def test_round_number_levels_bracket_price(self):
        prices = [lv for lv, _ in round_number_levels(23.0)]
        assert 20.0 in prices
        assert 25.0 in prices

    def test_fibonacci_levels(self):
        levels = dict((source, price) for price, source in fibonacci_levels(20.0, 10.0))
        assert levels["range_high"] == 20.0
        assert levels["range_low"] == 10.0
        assert levels["fib_0.382"] == pytest.approx(16.18)
        assert levels["fib_0.618"] == pytest.approx(13.82)

    def test_cluster_levels_merges_close_levels(self):
        """Levels within tolerance merge; strength counts the members."""
        clusters = cluster_levels(
            [(10.0, "ma5"), (10.05, "swing_low"), (11.0, "round_number")],
            price=10.0,
            tolerance=0.01,
        )
        assert len(clusters) == 2
        assert clusters[0].price == pytest.approx(10.025)
        assert clusters[0].strength == 2
        assert clusters[0].sources == ["ma5", "swing_low"]
        assert clusters[1].strength == 1


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

class TestDetectLevels:
    """Tests for detect_levels()."""

    def test_sides_and_band(self):
        """Supports sit below price, resistances above, all within the band."""
        bars = make_wave_bars()
        result = detect_levels(bars)
        price = bars[-1].close
        assert result.current_price == price
        for lv in result.support_levels:
            assert price * 0.85 < lv.price < price
        for lv in result.resistance_levels:
            assert price < lv.price < price * 1.15

    def test_nearest_first_and_capped(self):
        bars = make_wave_bars()
        result = detect_levels(bars)
        supports = [lv.price for lv in result.support_levels]
        resistances = [lv.price for lv in result.resistance_levels]
        assert supports == sorted(supports, reverse=True)
        assert resistances == sorted(resistances)
        assert len(supports) <= 5 and len(resistances) <= 5
        if supports:
            assert result.nearest_support == supports[0]

    def test_range_covers_lookback(self):
        bars = make_wave_bars()
        result = detect_levels(bars, LevelParams(range_lookback=60))
        tail = bars[-60:]
        assert result.range_high == pytest.approx(max(b.high for b in tail))
        assert result.range_low == pytest.approx(min(b.low for b in tail))

    def test_position_matches_nearest_levels(self):
        bars = make_wave_bars()
        result = detect_levels(bars)
        price = result.current_price
        if result.current_position == LevelPosition.NEAR_SUPPORT:
            assert (price - result.nearest_support) / price <= 0.02
        elif result.current_position == LevelPosition.NEAR_RESISTANCE:
            assert (result.nearest_resistance - price) / price <= 0.02

    def test_single_bar(self):
        bar = make_wave_bars(1)
        result = detect_levels(bar)
        assert result.current_price == bar[0].close

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            detect_levels([])
