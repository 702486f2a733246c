"""Exception hierarchy for the signal engine.

Only ConfigError and LookaheadViolation are fatal. The others are caught
close to where they happen and turned into warnings on the output record.
"""

from __future__ import annotations


class SignalEngineError(Exception):
    """Base class for all signal engine errors."""


class InsufficientData(SignalEngineError):
    """Input window is shorter than an indicator's minimum."""

    def __init__(self, indicator: str, required: int, available: int):
        self.indicator = indicator
        self.required = required
        self.available = available
        super().__init__(
            f"{indicator} needs at least {required} bars, got {available}"
        )


class ConfigError(SignalEngineError):
    """Malformed configuration. Raised before any computation.

    Deliberately not a ValueError: pydantic validators let it through as-is.
    """


class DegradedFactor(SignalEngineError):
    """A factor score was NaN or out of range and had to be clamped."""

    def __init__(self, factor: str, raw_value: float, clamped_to: float):
        self.factor = factor
        self.raw_value = raw_value
        self.clamped_to = clamped_to
        super().__init__(
            f"factor '{factor}' produced {raw_value!r}, clamped to {clamped_to:.2f}"
        )


class InsufficientModels(SignalEngineError):
    """Fewer model predictions than the ensemble requires."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            f"ensemble needs at least {required} predictions, got {available}"
        )


class LookaheadViolation(SignalEngineError):
    """A backtest step read a bar dated on or after its cursor."""

    def __init__(self, cursor, offending_date):
        self.cursor = cursor
        self.offending_date = offending_date
        super().__init__(
            f"bar dated {offending_date} visible at cursor {cursor}"
        )
