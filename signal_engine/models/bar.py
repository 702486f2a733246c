"""Daily OHLCV bar models."""

from __future__ import annotations

import datetime as dt

import numpy as np
from pydantic import BaseModel, ConfigDict, Field


class Bar(BaseModel):
    """Daily OHLCV bar."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    date: dt.date
    open: float
    high: float
    low: float
    close: float
    volume: float
    amount: float = 0.0
    prev_close: float | None = None

    @property
    def change(self) -> float:
        """Absolute change versus the previous close (0 if unknown)."""
        if self.prev_close is None:
            return 0.0
        return self.close - self.prev_close

    @property
    def change_pct(self) -> float:
        """Percent change versus the previous close (0 if unknown)."""
        if not self.prev_close:
            return 0.0
        return (self.close - self.prev_close) / self.prev_close * 100

    @property
    def is_bullish(self) -> bool:
        """Check if this is a bullish (up) candle."""
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        """Check if this is a bearish (down) candle."""
        return self.close < self.open

    @property
    def body(self) -> float:
        """Get the absolute size of the candle body."""
        return abs(self.close - self.open)

    @property
    def upper_shadow(self) -> float:
        return self.high - max(self.open, self.close)

    @property
    def lower_shadow(self) -> float:
        return min(self.open, self.close) - self.low

    @property
    def range_size(self) -> float:
        """Get the full range (high - low) of the candle."""
        return self.high - self.low


class BarSeries(BaseModel):
    """Ordered, append-only daily bar history for one symbol.

    Dates strictly increase. The series is owned by the caller; every
    accessor returns a fresh numpy array so nothing downstream can write
    back into it.
    """

    symbol: str
    bars: list[Bar] = Field(default_factory=list)

    def model_post_init(self, __context) -> None:
        for prev, cur in zip(self.bars, self.bars[1:]):
            if cur.date <= prev.date:
                raise ValueError(
                    f"bars must be in strictly increasing date order: "
                    f"{cur.date} follows {prev.date}"
                )

    def append(self, bar: Bar) -> None:
        """Append a bar. Its date must be after the last bar's date."""
        if bar.symbol != self.symbol:
            raise ValueError(f"bar for {bar.symbol} appended to {self.symbol} series")
        if self.bars and bar.date <= self.bars[-1].date:
            raise ValueError(
                f"bar dated {bar.date} is not after last bar {self.bars[-1].date}"
            )
        self.bars.append(bar)

    def before(self, cutoff: dt.date) -> BarSeries:
        """Return a new series holding only bars strictly before cutoff."""
        return BarSeries(
            symbol=self.symbol,
            bars=[b for b in self.bars if b.date < cutoff],
        )

    def closes(self) -> np.ndarray:
        return np.array([b.close for b in self.bars], dtype=np.float64)

    def opens(self) -> np.ndarray:
        return np.array([b.open for b in self.bars], dtype=np.float64)

    def highs(self) -> np.ndarray:
        return np.array([b.high for b in self.bars], dtype=np.float64)

    def lows(self) -> np.ndarray:
        return np.array([b.low for b in self.bars], dtype=np.float64)

    def volumes(self) -> np.ndarray:
        return np.array([b.volume for b in self.bars], dtype=np.float64)

    def dates(self) -> list[dt.date]:
        return [b.date for b in self.bars]

    @property
    def last(self) -> Bar | None:
        return self.bars[-1] if self.bars else None

    def __len__(self) -> int:
        return len(self.bars)
