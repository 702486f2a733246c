"""Timeframe aggregation: daily bars into weekly/monthly bars.

Aggregation rules:
- Weekly: grouped by ISO (year, week), weeks start on Monday
- Monthly: grouped by calendar (year, month)
- open = first bar's open, close = last bar's close
- high = max, low = min, volume/amount = sum
- Bar date = last daily date in the period

The trailing period is flagged provisional while it can still receive
more daily bars. Indicators are computed per resampled series and the
completed snapshots are forward-filled onto daily rows through an index
keyed by period-end date.
"""

from __future__ import annotations

import bisect
import calendar
import datetime as dt
import logging
from enum import Enum
from typing import Sequence

from signal_engine.errors import ConfigError
from signal_engine.indicators.calculator import IndicatorCalculator
from signal_engine.models.bar import Bar
from signal_engine.models.indicator import IndicatorParams, IndicatorSnapshot

logger = logging.getLogger(__name__)


class Granularity(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ResampledBar(Bar):
    """A weekly or monthly bar built from daily bars."""

    granularity: Granularity
    period_end: dt.date
    bar_count: int
    provisional: bool = False


def parse_granularities(values: Sequence[str | Granularity]) -> list[Granularity]:
    """Validate a granularity list. Raises ConfigError on unknown names."""
    result = []
    for v in values:
        try:
            g = Granularity(v)
        except ValueError:
            raise ConfigError(
                f"unknown resample granularity '{v}', "
                f"expected a subset of {[g.value for g in Granularity]}"
            ) from None
        if g not in result:
            result.append(g)
    return result


def _period_key(day: dt.date, granularity: Granularity) -> tuple[int, int]:
    if granularity == Granularity.WEEKLY:
        iso = day.isocalendar()
        return (iso[0], iso[1])
    return (day.year, day.month)


def period_end(day: dt.date, granularity: Granularity) -> dt.date:
    """Calendar end of the period containing day (Sunday / last day of month)."""
    if granularity == Granularity.WEEKLY:
        return day + dt.timedelta(days=6 - day.weekday())
    last = calendar.monthrange(day.year, day.month)[1]
    return dt.date(day.year, day.month, last)


def _last_trading_day(day: dt.date, granularity: Granularity) -> dt.date:
    """Last weekday of the period containing day."""
    end = period_end(day, granularity)
    while end.weekday() >= 5:
        end -= dt.timedelta(days=1)
    return end


def resample(daily_bars: Sequence[Bar], granularity: Granularity) -> list[ResampledBar]:
    """
    Resample daily bars into weekly or monthly bars.

    Args:
        daily_bars: Daily bars in date order
        granularity: Target granularity

    Returns:
        Resampled bars in date order; only the last one can be provisional
    """
    groups: list[list[Bar]] = []
    current_key = None
    for bar in daily_bars:
        key = _period_key(bar.date, granularity)
        if key != current_key:
            groups.append([])
            current_key = key
        groups[-1].append(bar)

    result = []
    for idx, group in enumerate(groups):
        first, last = group[0], group[-1]
        is_last_group = idx == len(groups) - 1
        provisional = is_last_group and last.date < _last_trading_day(last.date, granularity)
        result.append(
            ResampledBar(
                symbol=first.symbol,
                date=last.date,
                open=first.open,
                high=max(b.high for b in group),
                low=min(b.low for b in group),
                close=last.close,
                volume=sum(b.volume for b in group),
                amount=sum(b.amount for b in group),
                prev_close=result[-1].close if result else first.prev_close,
                granularity=granularity,
                period_end=period_end(last.date, granularity),
                bar_count=len(group),
                provisional=provisional,
            )
        )
    return result


class TimeframeCache:
    """Indexed arena of higher-timeframe snapshots keyed by period-end date.

    Built once per bar history. Lookups never recompute indicators:
    `at()` is a bisect over the sorted last-bar dates, `forward_fill()`
    is a single merge pass over the daily dates.
    """

    def __init__(
        self,
        daily_bars: Sequence[Bar],
        granularity: Granularity,
        params: IndicatorParams | None = None,
    ):
        self.granularity = granularity
        self.bars = resample(daily_bars, granularity)

        calc = IndicatorCalculator(params, timeframe=granularity.value)
        provisional_last = bool(self.bars) and self.bars[-1].provisional
        snapshots, self.warnings = calc.calculate(self.bars, provisional_last=provisional_last)

        self._by_period_end: dict[dt.date, IndicatorSnapshot] = {}
        self._period_ends: list[dt.date] = []
        self._last_dates: list[dt.date] = []
        self._provisional: IndicatorSnapshot | None = None

        for bar, snap in zip(self.bars, snapshots):
            if bar.provisional:
                self._provisional = snap
                continue
            self._by_period_end[bar.period_end] = snap
            self._period_ends.append(bar.period_end)
            self._last_dates.append(bar.date)

        logger.debug(
            f"{granularity.value} cache: {len(self._period_ends)} completed periods"
            f"{' + 1 provisional' if self._provisional else ''}"
        )

    def get(self, period_end_date: dt.date) -> IndicatorSnapshot | None:
        """Snapshot of the completed period ending on period_end_date."""
        return self._by_period_end.get(period_end_date)

    def at(self, day: dt.date, include_provisional: bool = False) -> IndicatorSnapshot | None:
        """
        Latest completed snapshot visible on a daily row.

        A period is visible from its last daily bar onward. The provisional
        trailing period is only returned when include_provisional is set and
        no later completed period exists.
        """
        idx = bisect.bisect_right(self._last_dates, day) - 1
        completed = self._by_period_end[self._period_ends[idx]] if idx >= 0 else None
        if include_provisional and self._provisional is not None:
            if self._provisional.date <= day:
                return self._provisional
        return completed

    def latest(self, include_provisional: bool = False) -> IndicatorSnapshot | None:
        if include_provisional and self._provisional is not None:
            return self._provisional
        if not self._period_ends:
            return None
        return self._by_period_end[self._period_ends[-1]]

    def forward_fill(
        self,
        dates: Sequence[dt.date],
        include_provisional: bool = False,
    ) -> list[IndicatorSnapshot | None]:
        """Map each daily date (ascending) to its visible snapshot."""
        result: list[IndicatorSnapshot | None] = []
        idx = -1
        current = None
        for day in dates:
            while idx + 1 < len(self._last_dates) and self._last_dates[idx + 1] <= day:
                idx += 1
                current = self._by_period_end[self._period_ends[idx]]
            if (
                include_provisional
                and self._provisional is not None
                and self._provisional.date <= day
            ):
                result.append(self._provisional)
            else:
                result.append(current)
        return result

    def __len__(self) -> int:
        return len(self._period_ends)


def build_caches(
    daily_bars: Sequence[Bar],
    granularities: Sequence[Granularity],
    params: IndicatorParams | None = None,
) -> dict[Granularity, TimeframeCache]:
    """Build one TimeframeCache per requested granularity."""
    return {g: TimeframeCache(daily_bars, g, params) for g in granularities}
