"""Tests for indicator primitives and IndicatorCalculator."""

import datetime as dt
import math

import numpy as np
import pytest

from signal_engine.errors import InsufficientData
from signal_engine.indicators import (
    IndicatorCalculator,
    atr,
    bollinger,
    crossed_above,
    crossed_below,
    ema,
    kdj,
    macd,
    obv,
    rsi,
    sma,
    wilder,
)
from signal_engine.models.bar import Bar


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

START_DAY = dt.date(2024, 1, 1)  # Monday


def trading_days(n: int, start: dt.date = START_DAY) -> list[dt.date]:
    """n consecutive weekdays starting at start."""
    days = []
    day = start
    while len(days) < n:
        if day.weekday() < 5:
            days.append(day)
        day += dt.timedelta(days=1)
    return days


def make_bars(
    closes,
    symbol: str = "TEST",
    volumes=None,
    spread: float = 0.01,
) -> list[Bar]:
    """Bars whose open is the previous close and whose range is +/- spread."""
    bars = []
    prev = None
    for i, (day, close) in enumerate(zip(trading_days(len(closes)), closes)):
        close = float(close)
        open_ = prev if prev is not None else close
        bars.append(
            Bar(
                symbol=symbol,
                date=day,
                open=open_,
                high=max(open_, close) * (1 + spread),
                low=min(open_, close) * (1 - spread),
                close=close,
                volume=float(volumes[i]) if volumes is not None else 1000.0,
                prev_close=prev,
            )
        )
        prev = close
    return bars


def rising_closes() -> list[float]:
    """5 flat bars then a straight ramp: 35 bars total."""
    return [10.0] * 5 + list(np.linspace(11, 40, 30))


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------

class TestSMA:
    """Tests for sma()."""

    def test_sma_basic(self):
        """Window means, NaN during warm-up."""
        result = sma([1, 2, 3, 4, 5], 3)
        assert np.isnan(result[0]) and np.isnan(result[1])
        assert result[2:] == pytest.approx([2.0, 3.0, 4.0])

    def test_sma_shorter_than_period(self):
        """All NaN when fewer values than the period."""
        assert np.isnan(sma([1, 2], 5)).all()


class TestEMA:
    """Tests for ema()."""

    def test_ema_seeded_with_first_value(self):
        """EMA starts at the first value and follows the recurrence."""
        result = ema([1.0, 2.0, 3.0], 2)
        assert result[0] == pytest.approx(1.0)
        assert result[1] == pytest.approx(1 + 2 / 3)
        assert result[2] == pytest.approx(result[1] + 2 / 3 * (3 - result[1]))

    def test_ema_keeps_leading_nan(self):
        """Leading NaN input stays NaN; seeding starts at the first finite value."""
        result = ema([np.nan, np.nan, 4.0, 4.0], 3)
        assert np.isnan(result[0]) and np.isnan(result[1])
        assert result[2] == pytest.approx(4.0)
        assert result[3] == pytest.approx(4.0)


class TestWilder:
    """Tests for wilder()."""

    def test_wilder_seeded_with_sma(self):
        result = wilder([1, 2, 3, 4, 5], 3)
        assert np.isnan(result[:2]).all()
        assert result[2] == pytest.approx(2.0)
        assert result[3] == pytest.approx(2 + (4 - 2) / 3)
        assert result[4] == pytest.approx(result[3] + (5 - result[3]) / 3)


class TestRSI:
    """Tests for rsi()."""

    def test_flat_series_is_50(self):
        """No gains and no losses gives 50."""
        result = rsi([10.0] * 40)
        assert result[14:] == pytest.approx([50.0] * 26)

    def test_all_gains_is_100(self):
        """Strictly rising closes give 100 from the first valid index."""
        result = rsi(list(range(1, 21)))
        assert np.isnan(result[:14]).all()
        assert result[14] == pytest.approx(100.0)

    def test_bounded(self):
        """RSI stays within [0, 100]."""
        closes = [10 + math.sin(i / 3) * 2 for i in range(80)]
        values = rsi(closes)
        valid = values[~np.isnan(values)]
        assert (valid >= 0).all() and (valid <= 100).all()


class TestMACD:
    """Tests for macd()."""

    def test_insufficient_data(self):
        """Fewer than slow + signal bars raises InsufficientData."""
        with pytest.raises(InsufficientData) as exc:
            macd([10.0] * 30)
        assert exc.value.required == 35
        assert exc.value.available == 30
        assert str(exc.value) == "MACD needs at least 35 bars, got 30"

    def test_flat_series(self):
        """Flat closes give zero DIF, DEA and histogram after warm-up."""
        result = macd([10.0] * 40)
        assert np.isnan(result.dif[:25]).all()
        assert result.dif[25:] == pytest.approx([0.0] * 15)
        assert result.hist[25:] == pytest.approx([0.0] * 15)

    def test_dea_seeded_at_first_valid_dif(self):
        """DEA equals DIF at index slow-1."""
        result = macd(rising_closes())
        assert np.isnan(result.dea[:25]).all()
        assert result.dea[25] == pytest.approx(result.dif[25])

    def test_rising_series_golden_cross(self):
        """A ramp gives exactly one golden cross, right after the seed bar."""
        result = macd(rising_closes())
        crosses = [
            i for i in range(len(result.dif))
            if crossed_above(result.dif, result.dea, i)
        ]
        assert crosses == [26]
        assert result.dif[-1] > result.dea[-1]

    def test_input_not_mutated(self):
        """Callers' buffers are left untouched."""
        closes = np.array(rising_closes())
        original = closes.copy()
        macd(closes)
        rsi(closes)
        assert np.array_equal(closes, original)


class TestOtherIndicators:
    """Tests for kdj, bollinger, atr, obv."""

    def test_atr_constant_range(self):
        """Constant true range of 2 gives ATR 2."""
        closes = [10.0] * 30
        highs = [11.0] * 30
        lows = [9.0] * 30
        result = atr(highs, lows, closes, 14)
        assert np.isnan(result[:13]).all()
        assert result[13:] == pytest.approx([2.0] * 17)

    def test_kdj_midrange_is_50(self):
        """Closes in the middle of the window keep K and D at 50."""
        result = kdj([11.0] * 20, [9.0] * 20, [10.0] * 20)
        assert result.k[8:] == pytest.approx([50.0] * 12)
        assert result.j[8:] == pytest.approx([50.0] * 12)

    def test_bollinger_flat(self):
        """Zero deviation collapses the bands onto the mid line."""
        result = bollinger([10.0] * 25)
        assert result.upper[-1] == pytest.approx(10.0)
        assert result.lower[-1] == pytest.approx(10.0)

    def test_obv(self):
        result = obv([1, 2, 1, 1], [10, 20, 30, 40])
        assert list(result) == [0.0, 20.0, -10.0, -10.0]


class TestCrosses:
    """Tests for crossed_above / crossed_below."""

    def test_cross_above(self):
        assert crossed_above([1, 3], [2, 2], 1)
        assert not crossed_above([3, 3], [2, 2], 1)

    def test_cross_below(self):
        assert crossed_below([3, 1], [2, 2], 1)
        assert not crossed_below([1, 1], [2, 2], 1)

    def test_nan_and_first_index(self):
        """No cross at index 0 or when any value is NaN."""
        assert not crossed_above([1, 3], [2, 2], 0)
        assert not crossed_above([np.nan, 3], [2, 2], 1)


# ---------------------------------------------------------------------------
# Calculator
# ---------------------------------------------------------------------------

class TestIndicatorCalculator:
    """Tests for IndicatorCalculator."""

    def test_snapshots_aligned_with_bars(self):
        bars = make_bars(rising_closes())
        snapshots = IndicatorCalculator().calculate(bars).snapshots
        assert len(snapshots) == len(bars)
        assert [s.date for s in snapshots] == [b.date for b in bars]

    def test_golden_cross_flag(self):
        """Snapshot flags follow the MACD lines."""
        snapshots = IndicatorCalculator().calculate(make_bars(rising_closes())).snapshots
        flagged = [i for i, s in enumerate(snapshots) if s.macd_golden_cross]
        assert flagged == [26]
        assert not any(s.macd_death_cross for s in snapshots)

    def test_flat_series_no_cross(self):
        snapshots = IndicatorCalculator().calculate(make_bars([10.0] * 40)).snapshots
        last = snapshots[-1]
        assert last.rsi == pytest.approx(50.0)
        assert last.macd_hist == pytest.approx(0.0)
        assert not any(s.macd_golden_cross or s.macd_death_cross for s in snapshots)

    def test_warm_up_is_incomplete(self):
        """Early snapshots are flagged incomplete, never back-filled."""
        snapshots = IndicatorCalculator().calculate(make_bars(rising_closes())).snapshots
        assert not snapshots[0].complete
        assert math.isnan(snapshots[0].rsi)

    def test_short_history_recovers_macd(self):
        """MACD shortfall becomes a warning and NaN lines, not an exception."""
        snapshots, warnings = IndicatorCalculator().calculate(
            make_bars([10.0 + i * 0.1 for i in range(20)])
        )
        assert len(snapshots) == 20
        assert math.isnan(snapshots[-1].macd_dif)
        assert any("MACD needs at least 35 bars" in w for w in warnings)

    def test_empty_input(self):
        calc = IndicatorCalculator()
        assert calc.calculate([]) == ([], [])
        assert calc.latest([]) is None

    def test_warnings_do_not_accumulate(self):
        """Each call returns only its own warnings."""
        calc = IndicatorCalculator()
        short = make_bars([10.0 + i * 0.1 for i in range(20)])
        first = calc.calculate(short).warnings
        second = calc.calculate(short).warnings
        assert len(first) == len(second) == 1
        assert calc.calculate(make_bars(rising_closes())).warnings == []

    def test_thirty_flat_bars(self):
        """Thirty flat bars are too few for MACD: NaN histogram, RSI 50, no cross."""
        snapshots, warnings = IndicatorCalculator().calculate(make_bars([10.0] * 30))
        last = snapshots[-1]
        assert math.isnan(last.macd_hist)
        assert any("MACD" in w for w in warnings)
        assert last.rsi == pytest.approx(50.0)
        assert not any(s.macd_golden_cross or s.macd_death_cross for s in snapshots)

    def test_deterministic(self):
        """Same bars give identical snapshots."""
        bars = make_bars(rising_closes())
        first = [s.model_dump_json() for s in IndicatorCalculator().calculate(bars).snapshots]
        second = [s.model_dump_json() for s in IndicatorCalculator().calculate(bars).snapshots]
        assert first == second
