"""Tests for weekly/monthly resampling and the timeframe snapshot cache."""

import datetime as dt
import math

import pytest

from signal_engine.analysis import timeframe_trend
from signal_engine.errors import ConfigError
from signal_engine.models.analysis import Trend
from signal_engine.models.bar import Bar
from signal_engine.timeframe import (
    Granularity,
    TimeframeCache,
    build_caches,
    parse_granularities,
    period_end,
    resample,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

START_DAY = dt.date(2024, 1, 1)  # Monday


def trading_days(n: int, start: dt.date = START_DAY) -> list[dt.date]:
    days = []
    day = start
    while len(days) < n:
        if day.weekday() < 5:
            days.append(day)
        day += dt.timedelta(days=1)
    return days


def make_bars(n: int, base: float = 10.0, step: float = 0.1) -> list[Bar]:
    """n weekday bars with a steady drift; bar i has volume 100 + i."""
    bars = []
    prev = None
    for i, day in enumerate(trading_days(n)):
        close = base + i * step
        open_ = prev if prev is not None else close
        bars.append(
            Bar(
                symbol="TEST",
                date=day,
                open=open_,
                high=max(open_, close) + 0.05,
                low=min(open_, close) - 0.05,
                close=close,
                volume=100.0 + i,
                amount=1.0,
                prev_close=prev,
            )
        )
        prev = close
    return bars


# ---------------------------------------------------------------------------
# Resampling
# ---------------------------------------------------------------------------

class TestResample:
    """Tests for resample()."""

    def test_weekly_aggregation(self):
        """OHLCV rules: first open, max high, min low, last close, summed volume."""
        bars = make_bars(10)
        weekly = resample(bars, Granularity.WEEKLY)
        assert len(weekly) == 2

        first_week = bars[:5]
        w = weekly[0]
        assert w.date == dt.date(2024, 1, 5)
        assert w.period_end == dt.date(2024, 1, 7)
        assert w.open == first_week[0].open
        assert w.close == first_week[-1].close
        assert w.high == max(b.high for b in first_week)
        assert w.low == min(b.low for b in first_week)
        assert w.volume == sum(b.volume for b in first_week)
        assert w.amount == pytest.approx(5.0)
        assert w.bar_count == 5

    def test_weekly_prev_close_chains(self):
        weekly = resample(make_bars(10), Granularity.WEEKLY)
        assert weekly[1].prev_close == weekly[0].close

    def test_trailing_week_provisional(self):
        """A week that has not reached its last weekday is provisional."""
        weekly = resample(make_bars(12), Granularity.WEEKLY)
        assert len(weekly) == 3
        assert [w.provisional for w in weekly] == [False, False, True]
        assert weekly[-1].date == dt.date(2024, 1, 16)
        assert weekly[-1].bar_count == 2

    def test_complete_trailing_week(self):
        """A week ending on Friday is final."""
        weekly = resample(make_bars(10), Granularity.WEEKLY)
        assert not weekly[-1].provisional

    def test_monthly_aggregation(self):
        """January 2024 has 23 weekdays; two February bars stay provisional."""
        monthly = resample(make_bars(25), Granularity.MONTHLY)
        assert len(monthly) == 2
        assert monthly[0].date == dt.date(2024, 1, 31)
        assert monthly[0].bar_count == 23
        assert not monthly[0].provisional
        assert monthly[1].provisional
        assert monthly[1].period_end == dt.date(2024, 2, 29)

    def test_period_end(self):
        assert period_end(dt.date(2024, 1, 3), Granularity.WEEKLY) == dt.date(2024, 1, 7)
        assert period_end(dt.date(2023, 2, 10), Granularity.MONTHLY) == dt.date(2023, 2, 28)

    def test_empty(self):
        assert resample([], Granularity.WEEKLY) == []


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class TestTimeframeCache:
    """Tests for TimeframeCache lookups."""

    def test_period_not_visible_before_its_last_bar(self):
        cache = TimeframeCache(make_bars(12), Granularity.WEEKLY)
        assert cache.at(dt.date(2024, 1, 4)) is None
        assert cache.at(dt.date(2024, 1, 5)).date == dt.date(2024, 1, 5)

    def test_provisional_excluded_by_default(self):
        """The partial trailing week is never returned unless asked for."""
        cache = TimeframeCache(make_bars(12), Granularity.WEEKLY)
        snap = cache.at(dt.date(2024, 1, 16))
        assert snap.date == dt.date(2024, 1, 12)
        assert not snap.provisional
        assert len(cache) == 2

    def test_provisional_on_request(self):
        cache = TimeframeCache(make_bars(12), Granularity.WEEKLY)
        snap = cache.at(dt.date(2024, 1, 16), include_provisional=True)
        assert snap.provisional
        assert snap.date == dt.date(2024, 1, 16)
        assert cache.latest(include_provisional=True).provisional
        assert not cache.latest().provisional

    def test_get_by_period_end(self):
        cache = TimeframeCache(make_bars(12), Granularity.WEEKLY)
        assert cache.get(dt.date(2024, 1, 7)).date == dt.date(2024, 1, 5)
        assert cache.get(dt.date(2024, 1, 21)) is None

    def test_forward_fill(self):
        """Each daily row sees the latest completed week, never the partial one."""
        bars = make_bars(12)
        cache = TimeframeCache(bars, Granularity.WEEKLY)
        filled = cache.forward_fill([b.date for b in bars])
        assert len(filled) == 12
        assert filled[:4] == [None] * 4
        assert [s.date for s in filled[4:9]] == [dt.date(2024, 1, 5)] * 5
        assert [s.date for s in filled[9:]] == [dt.date(2024, 1, 12)] * 3
        assert not any(s.provisional for s in filled if s is not None)

    def test_completed_periods_unaffected_by_later_bars(self):
        """A completed week's snapshot does not change when more bars arrive."""
        short = TimeframeCache(make_bars(10), Granularity.WEEKLY)
        full = TimeframeCache(make_bars(40), Granularity.WEEKLY)
        week_end = dt.date(2024, 1, 14)
        assert short.get(week_end).model_dump_json() == full.get(week_end).model_dump_json()

    def test_short_history_warns(self):
        """Too few weeks for MACD is recorded, not raised."""
        cache = TimeframeCache(make_bars(20), Granularity.WEEKLY)
        assert any("MACD" in w for w in cache.warnings)

    def test_monthly_votes_before_macd_is_ready(self):
        """Two years of rising bars give a monthly vote from KDJ alone."""
        cache = TimeframeCache(make_bars(500), Granularity.MONTHLY)
        snap = cache.latest()
        assert math.isnan(snap.macd_hist)
        trend = timeframe_trend("monthly", snap)
        assert trend.available
        assert trend.trend == Trend.BULLISH

    def test_build_caches(self):
        caches = build_caches(make_bars(30), [Granularity.WEEKLY, Granularity.MONTHLY])
        assert set(caches) == {Granularity.WEEKLY, Granularity.MONTHLY}
        assert caches[Granularity.MONTHLY].granularity == Granularity.MONTHLY


class TestParseGranularities:
    """Tests for parse_granularities()."""

    def test_valid_and_deduplicated(self):
        result = parse_granularities(["weekly", "monthly", "weekly"])
        assert result == [Granularity.WEEKLY, Granularity.MONTHLY]

    @pytest.mark.parametrize("name", ["daily", "hourly", ""])
    def test_unknown_raises(self, name):
        with pytest.raises(ConfigError):
            parse_granularities([name])
