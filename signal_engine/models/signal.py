"""Buy/sell point models."""

from __future__ import annotations

import hashlib
import datetime as dt
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"


class PointType(str, Enum):
    """Setup that produced a buy/sell point."""

    RESONANCE_BUY = "resonance_buy"
    BREAKOUT_BUY = "breakout_buy"
    PULLBACK_BUY = "pullback_buy"
    TREND_BUY = "trend_buy"
    RESONANCE_SELL = "resonance_sell"
    BREAKDOWN_SELL = "breakdown_sell"
    RESISTANCE_SELL = "resistance_sell"

    @property
    def side(self) -> Side:
        return Side.SELL if self.value.endswith("_sell") else Side.BUY


def _generate_point_id(symbol: str, signal_date: dt.date, point_type: PointType) -> str:
    """Deterministic ID so a replayed bar yields the same record ID."""
    key = f"{symbol}:{signal_date.isoformat()}:{point_type.value}"
    return hashlib.sha256(key.encode()).hexdigest()[:32]


class BuySellPoint(BaseModel):
    """A discrete trade candidate. Immutable once emitted."""

    model_config = ConfigDict(frozen=True)

    id: str = ""  # Will be set in model_post_init
    symbol: str
    signal_date: dt.date
    point_type: PointType
    price_level: float
    stop_loss: float
    take_profit: list[float]
    reward_ratios: list[float] = Field(default_factory=list)
    risk_reward_ratio: float
    confidence: float = Field(ge=0.0, le=1.0)
    signal_strength: float = 0.0
    reasons: list[str] = Field(default_factory=list)

    def model_post_init(self, __context) -> None:
        """Generate deterministic ID after model initialization."""
        if not self.id:
            object.__setattr__(
                self,
                "id",
                _generate_point_id(self.symbol, self.signal_date, self.point_type),
            )

    @property
    def side(self) -> Side:
        return self.point_type.side

    @property
    def risk_amount(self) -> float:
        """Distance to stop loss."""
        if self.side == Side.BUY:
            return self.price_level - self.stop_loss
        return self.stop_loss - self.price_level

    @property
    def reward_amount(self) -> float:
        """Distance to the first take-profit target."""
        if self.side == Side.BUY:
            return self.take_profit[0] - self.price_level
        return self.price_level - self.take_profit[0]
