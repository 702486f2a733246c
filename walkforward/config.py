"""Walk-forward backtest configuration.

Environment defaults only; the CLI flags override them per run.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class BacktestSettings(BaseSettings):
    """Backtest defaults loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="WALKFORWARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Calendar days between two prediction cursors
    interval_days: int = 5
    # Trading days forecast (and verified) at each cursor
    prediction_days: int = 5
    # Bars required before a cursor is evaluated
    min_history: int = 60
    max_workers: int = 1


_settings: BacktestSettings | None = None


def get_backtest_settings() -> BacktestSettings:
    """Get cached backtest settings instance."""
    global _settings
    if _settings is None:
        _settings = BacktestSettings()
    return _settings
