"""Engine configuration.

EngineConfig is the validated configuration object passed into the
pipeline. EngineSettings supplies environment defaults (SIGNAL_ENGINE_*),
and load_engine_config() layers an optional signal_engine.yaml on top.

Any malformed value raises ConfigError before computation starts.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from signal_engine.errors import ConfigError
from signal_engine.models.ensemble import EnsembleStrategy
from signal_engine.models.indicator import IndicatorParams
from signal_engine.scoring.weights import validate_overrides
from signal_engine.timeframe import Granularity, parse_granularities

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "signal_engine.yaml"


class EngineConfig(BaseModel):
    """Validated engine configuration."""

    model_config = ConfigDict(frozen=True)

    ensemble_strategy: EnsembleStrategy = EnsembleStrategy.HYBRID
    min_models: int = 3
    confidence_threshold: float = 0.0
    remove_outliers: bool = False
    factor_weight_overrides: dict[str, float] | None = None
    resample_granularities: list[str] = Field(
        default_factory=lambda: [g.value for g in Granularity]
    )
    signal_threshold: float = 60.0
    min_risk_reward: float = 1.5
    atr_stop_multiple: float = 0.5
    prediction_days: int = 5
    indicators: IndicatorParams = Field(default_factory=IndicatorParams)

    @model_validator(mode="after")
    def _validate(self):
        if self.min_models < 1:
            raise ConfigError(f"min_models must be >= 1, got {self.min_models}")
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ConfigError(
                f"confidence_threshold must be in [0, 1], got {self.confidence_threshold}"
            )
        if not 0.0 <= self.signal_threshold <= 100.0:
            raise ConfigError(
                f"signal_threshold must be in [0, 100], got {self.signal_threshold}"
            )
        if self.min_risk_reward <= 0 or self.atr_stop_multiple < 0:
            raise ConfigError("min_risk_reward must be > 0 and atr_stop_multiple >= 0")
        if self.prediction_days < 1:
            raise ConfigError(f"prediction_days must be >= 1, got {self.prediction_days}")
        if self.factor_weight_overrides is not None:
            validate_overrides(self.factor_weight_overrides)
        parse_granularities(self.resample_granularities)
        return self

    @property
    def granularities(self) -> list[Granularity]:
        return parse_granularities(self.resample_granularities)


class EngineSettings(BaseSettings):
    """Environment defaults for the engine."""

    model_config = SettingsConfigDict(
        env_prefix="SIGNAL_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ensemble_strategy: str = EnsembleStrategy.HYBRID.value
    min_models: int = 3
    confidence_threshold: float = 0.0
    signal_threshold: float = 60.0
    config_path: str | None = None

    def engine_defaults(self) -> dict[str, Any]:
        return {
            "ensemble_strategy": self.ensemble_strategy,
            "min_models": self.min_models,
            "confidence_threshold": self.confidence_threshold,
            "signal_threshold": self.signal_threshold,
        }


@lru_cache
def get_settings() -> EngineSettings:
    """Get cached settings instance."""
    return EngineSettings()


def load_engine_config(path: Path | str | None = None) -> EngineConfig:
    """Build an EngineConfig from environment defaults and an optional YAML file.

    Keys in the YAML file override the environment. A missing file is not
    an error; the environment defaults are used alone.

    Raises:
        ConfigError: The file is not a mapping or any value fails validation
    """
    load_dotenv(override=False)
    settings = get_settings()

    if path is None:
        path = settings.config_path or DEFAULT_CONFIG_FILE
    config_path = Path(path)

    values = settings.engine_defaults()
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ConfigError(f"{config_path} must contain a mapping, got {type(raw).__name__}")
        values.update(raw)
        source = str(config_path)
    else:
        source = "environment"
        logger.info("No %s found, using environment defaults", config_path)

    try:
        config = EngineConfig(**values)
    except ValidationError as e:
        raise ConfigError(f"invalid engine config from {source}: {e}") from e

    logger.info(
        "Loaded engine config from %s: strategy=%s, min_models=%d, overrides=%s, granularities=%s",
        source,
        config.ensemble_strategy.value,
        config.min_models,
        "yes" if config.factor_weight_overrides else "no",
        config.resample_granularities,
    )
    return config
