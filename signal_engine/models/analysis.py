"""Pattern, structure, volume, sentiment and multi-timeframe analysis results."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Trend(int, Enum):
    """Single-timeframe trend vote."""

    BULLISH = 1
    NONE = 0
    BEARISH = -1


class ResonanceDirection(str, Enum):
    """Direction of multi-timeframe agreement."""

    STRONG_BULLISH = "strong_bullish"
    BULLISH = "bullish"
    NEUTRAL = "neutral"
    BEARISH = "bearish"
    STRONG_BEARISH = "strong_bearish"

    @property
    def is_bullish(self) -> bool:
        return self in (
            ResonanceDirection.STRONG_BULLISH,
            ResonanceDirection.BULLISH,
        )

    @property
    def is_bearish(self) -> bool:
        return self in (
            ResonanceDirection.STRONG_BEARISH,
            ResonanceDirection.BEARISH,
        )


class MarketPhase(str, Enum):
    """Market phase derived from the fear-greed index."""

    OVERHEATED = "overheated"
    RISING = "rising"
    RANGING = "ranging"
    DECLINING = "declining"
    PANIC = "panic"


class PatternDirection(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class LevelPosition(str, Enum):
    """Where the current price sits relative to key levels."""

    NEAR_SUPPORT = "near_support"
    NEAR_RESISTANCE = "near_resistance"
    MIDDLE = "middle"


# =============================================================================
# Multi-timeframe
# =============================================================================

class TimeframeTrend(BaseModel):
    """Trend and MACD cross state for one timeframe."""

    model_config = ConfigDict(frozen=True)

    timeframe: str
    trend: Trend = Trend.NONE
    macd_golden_cross: bool = False
    macd_death_cross: bool = False
    macd_hist: float = 0.0
    available: bool = False


class MultiTimeframeSignal(BaseModel):
    """Daily/weekly/monthly trend agreement."""

    model_config = ConfigDict(frozen=True)

    daily: TimeframeTrend
    weekly: TimeframeTrend
    monthly: TimeframeTrend
    resonance_level: int = Field(ge=0, le=3)
    resonance_direction: ResonanceDirection
    signal_quality: float

    @property
    def is_bullish(self) -> bool:
        return self.resonance_direction.is_bullish

    @property
    def is_bearish(self) -> bool:
        return self.resonance_direction.is_bearish


# =============================================================================
# Candlestick patterns
# =============================================================================

class CandlePattern(BaseModel):
    """A recognized candlestick pattern."""

    model_config = ConfigDict(frozen=True)

    pattern_type: str
    direction: PatternDirection
    strength: float = Field(ge=0.0, le=1.0)
    reliability: float = Field(ge=0.0, le=1.0)
    position: int  # index of the pattern's last bar in the analyzed series
    confirmed: bool = False
    description: str = ""

    @property
    def is_bullish(self) -> bool:
        return self.direction == PatternDirection.BULLISH

    @property
    def signed_weight(self) -> float:
        """strength * reliability, negative for bearish, 0 for neutral."""
        if self.direction == PatternDirection.NEUTRAL:
            return 0.0
        sign = 1.0 if self.direction == PatternDirection.BULLISH else -1.0
        return sign * self.strength * self.reliability


# =============================================================================
# Support / resistance
# =============================================================================

class PriceLevel(BaseModel):
    """A clustered price level and the sources that corroborate it."""

    model_config = ConfigDict(frozen=True)

    price: float
    strength: int = 1  # corroboration count
    sources: list[str] = Field(default_factory=list)


class SupportResistance(BaseModel):
    """Support and resistance levels around the current price."""

    model_config = ConfigDict(frozen=True)

    current_price: float
    support_levels: list[PriceLevel] = Field(default_factory=list)
    resistance_levels: list[PriceLevel] = Field(default_factory=list)
    current_position: LevelPosition = LevelPosition.MIDDLE
    range_high: float | None = None
    range_low: float | None = None

    @property
    def nearest_support(self) -> float | None:
        return self.support_levels[0].price if self.support_levels else None

    @property
    def nearest_resistance(self) -> float | None:
        return self.resistance_levels[0].price if self.resistance_levels else None

    @property
    def key_support(self) -> float | None:
        """Strongest support (ties go to the nearer level)."""
        if not self.support_levels:
            return None
        return max(self.support_levels, key=lambda lv: lv.strength).price

    @property
    def key_resistance(self) -> float | None:
        """Strongest resistance (ties go to the nearer level)."""
        if not self.resistance_levels:
            return None
        return max(self.resistance_levels, key=lambda lv: lv.strength).price


# =============================================================================
# Volume
# =============================================================================

class VolumePriceDivergence(BaseModel):
    """Price vs OBV trend divergence."""

    model_config = ConfigDict(frozen=True)

    has_bullish_divergence: bool = False
    has_bearish_divergence: bool = False
    strength: float = 0.0
    price_slope: float = 0.0
    obv_slope: float = 0.0
    volume_price_sync: bool = True
    description: str = ""


class VolumeAnalysis(BaseModel):
    """Volume behaviour summary."""

    model_config = ConfigDict(frozen=True)

    volume_trend: str = "stable"  # expanding / shrinking / stable
    volume_price_sync: bool = True
    accumulation_signal: float = 0.0
    obv_trend: str = "insufficient"  # rising / falling / insufficient
    volume_ratio: float = 1.0
    mfi: float = 50.0
    abnormal_volume_days: list[int] = Field(default_factory=list)


# =============================================================================
# Sentiment
# =============================================================================

class SentimentAnalysis(BaseModel):
    """Fear-greed index and market phase."""

    model_config = ConfigDict(frozen=True)

    fear_greed_index: float
    sentiment_score: float
    market_phase: MarketPhase
    rsi_component: float = 50.0
    volume_component: float = 50.0
    momentum_component: float = 50.0
