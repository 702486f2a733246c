"""Tests for factor weight overrides, regime adjustment, blending and evaluation."""

import math

import pytest
from pydantic import ValidationError

from signal_engine.errors import ConfigError
from signal_engine.models.analysis import MarketPhase
from signal_engine.models.scoring import FactorName, FactorWeights
from signal_engine.scoring.weights import (
    DEFAULT_WEIGHTS,
    MAX_WEIGHT,
    MIN_WEIGHT,
    adjust_weights,
    blend_weights,
    clamp_and_normalize,
    evaluate_weights,
    regime_adjustments,
    resolve_weights,
    validate_overrides,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def assert_valid(weights: FactorWeights) -> None:
    """Unit sum and every weight inside [MIN_WEIGHT, MAX_WEIGHT]."""
    values = list(weights.as_dict().values())
    assert sum(values) == pytest.approx(1.0, abs=1e-6)
    for v in values:
        assert MIN_WEIGHT - 1e-9 <= v <= MAX_WEIGHT + 1e-9


PHASES = [None, *MarketPhase]
VOLATILITIES = [None, math.nan, 0.5, 4.0, 8.0]
ADX_VALUES = [None, math.nan, 10.0, 30.0, 55.0]


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

class TestDefaults:
    """Tests for the default weight vector."""

    def test_default_weights(self):
        w = DEFAULT_WEIGHTS
        assert w.trend == 0.22
        assert w.volume_price == 0.18
        assert w.resonance == 0.15
        assert w.momentum == 0.13
        assert w.pattern == 0.12
        assert w.support_resistance == 0.10
        assert w.sentiment == 0.07
        assert w.volatility == 0.03
        assert sum(w.as_dict().values()) == pytest.approx(1.0)

    def test_factor_order(self):
        assert list(DEFAULT_WEIGHTS.as_dict()) == list(FactorName)

    def test_rejects_bad_sum(self):
        with pytest.raises(ValidationError):
            FactorWeights(trend=0.5)


# ---------------------------------------------------------------------------
# Regime adjustment
# ---------------------------------------------------------------------------

class TestAdjustWeights:
    """Tests for adjust_weights()."""

    @pytest.mark.parametrize("phase", PHASES)
    @pytest.mark.parametrize("volatility", VOLATILITIES)
    @pytest.mark.parametrize("adx", ADX_VALUES)
    def test_bounds_and_sum_hold_for_every_regime(self, phase, volatility, adx):
        assert_valid(adjust_weights(DEFAULT_WEIGHTS, phase, volatility, adx))

    def test_strong_trend_favours_trend(self):
        adjusted = adjust_weights(DEFAULT_WEIGHTS, None, None, 50.0)
        assert adjusted.trend > DEFAULT_WEIGHTS.trend
        assert adjusted.pattern < DEFAULT_WEIGHTS.pattern

    def test_ranging_favours_levels(self):
        adjusted = adjust_weights(DEFAULT_WEIGHTS, MarketPhase.RANGING, None, None)
        assert adjusted.support_resistance > DEFAULT_WEIGHTS.support_resistance

    def test_no_regime_keeps_defaults(self):
        adjusted = adjust_weights(DEFAULT_WEIGHTS, None, None, None)
        for name in FactorName:
            assert adjusted[name] == pytest.approx(DEFAULT_WEIGHTS[name])

    def test_concentrated_override_is_clamped(self):
        """A single-factor override is pulled back inside the bounds."""
        base = validate_overrides({"trend": 1.0})
        adjusted = adjust_weights(base, MarketPhase.RISING, 6.0, 45.0)
        assert_valid(adjusted)
        assert adjusted.trend == pytest.approx(MAX_WEIGHT)

    def test_regime_order(self):
        labels = [label for label, _ in regime_adjustments(MarketPhase.PANIC, 6.0, 30.0)]
        assert labels == ["moderate_trend", "phase_panic", "high_volatility"]

    def test_input_not_modified(self):
        before = DEFAULT_WEIGHTS.as_dict()
        adjust_weights(DEFAULT_WEIGHTS, MarketPhase.OVERHEATED, 7.0, 60.0)
        assert DEFAULT_WEIGHTS.as_dict() == before


class TestClampAndNormalize:
    """Tests for clamp_and_normalize()."""

    def test_infeasible_bounds_raise(self):
        with pytest.raises(ConfigError):
            clamp_and_normalize({FactorName.TREND: 1.0, FactorName.MOMENTUM: 1.0})

    def test_zero_weights_share_remaining_mass(self):
        raw = {name: 0.0 for name in FactorName}
        raw[FactorName.TREND] = 1.0
        result = clamp_and_normalize(raw)
        assert result[FactorName.TREND] == pytest.approx(0.30)
        assert result[FactorName.VOLATILITY] == pytest.approx(0.10)


# ---------------------------------------------------------------------------
# Overrides
# ---------------------------------------------------------------------------

class TestOverrides:
    """Tests for validate_overrides() and resolve_weights()."""

    def test_bad_sum_raises(self):
        with pytest.raises(ConfigError, match="sum to 1.0"):
            validate_overrides({"trend": 0.5, "volume_price": 0.6})

    def test_unknown_factor_raises(self):
        with pytest.raises(ConfigError, match="unknown factors"):
            validate_overrides({"trend": 0.5, "alpha": 0.5})

    def test_negative_raises(self):
        with pytest.raises(ConfigError):
            validate_overrides({"trend": 1.2, "momentum": -0.2})

    def test_partial_map(self):
        """Factors missing from the map get weight 0."""
        weights = validate_overrides({"trend": 0.5, "momentum": 0.5})
        assert weights.trend == 0.5
        assert weights.momentum == 0.5
        assert weights.volatility == 0.0

    def test_within_tolerance(self):
        weights = validate_overrides({"trend": 0.5, "momentum": 0.5 + 5e-7})
        assert weights.trend == 0.5

    def test_resolve_defaults(self):
        assert resolve_weights(None) is DEFAULT_WEIGHTS

    def test_config_error_is_not_value_error(self):
        assert not issubclass(ConfigError, ValueError)


# ---------------------------------------------------------------------------
# Blending and evaluation
# ---------------------------------------------------------------------------

class TestBlendAndEvaluate:
    """Tests for blend_weights() and evaluate_weights()."""

    def test_blend_caps_learned_share(self):
        learned = validate_overrides({"trend": 1.0})
        blended = blend_weights(DEFAULT_WEIGHTS, learned, learning_confidence=1.0)
        assert blended.trend == pytest.approx(0.22 * 0.3 + 1.0 * 0.7)
        assert sum(blended.as_dict().values()) == pytest.approx(1.0)

    def test_blend_zero_confidence_is_default(self):
        learned = validate_overrides({"trend": 1.0})
        blended = blend_weights(DEFAULT_WEIGHTS, learned, learning_confidence=0.0)
        assert blended.trend == pytest.approx(0.22)

    def test_evaluate(self):
        perf = evaluate_weights([(1.0, 2.0), (-1.0, 1.0), (0.1, 0.2)])
        assert perf.sample_count == 3
        assert perf.mae == pytest.approx((1.0 + 2.0 + 0.1) / 3)
        assert perf.rmse == pytest.approx(math.sqrt((1.0 + 4.0 + 0.01) / 3))
        assert perf.direction_accuracy == pytest.approx(2 / 3)

    def test_evaluate_empty(self):
        perf = evaluate_weights([])
        assert perf.sample_count == 0
        assert perf.mae == 0.0
