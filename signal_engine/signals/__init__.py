"""Buy/sell point generation."""

from signal_engine.signals.generator import (
    AccuracyOracle,
    SignalGenerator,
    build_ladder,
    confidence_bucket,
    generate_trading_advice,
    reward_ratios,
    risk_band,
)

__all__ = [
    "AccuracyOracle",
    "SignalGenerator",
    "build_ladder",
    "confidence_bucket",
    "generate_trading_advice",
    "reward_ratios",
    "risk_band",
]
