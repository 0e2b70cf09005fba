"""Tests for the normalization curves."""

import math

import pytest

from product_scorer.errors import ConfigurationError
from product_scorer.normalizer import (
    NEUTRAL_UTILITY,
    boolean_utility,
    clamp_unit,
    coerce_bool,
    coerce_number,
    linear_utility,
    log_normal_utility,
    normalize,
    passthrough_utility,
    sigmoid_utility,
)
from product_scorer.schema import (
    BooleanCurve,
    Direction,
    LinearCurve,
    LogNormalCurve,
    PassthroughCurve,
    SigmoidCurve,
)

RAW_INPUTS = [-1e9, -500, -1, 0, 0.5, 1, 7, 49.9, 50, 50.1, 99, 100, 1e3, 1e6, 1e12]

CURVES = [
    LinearCurve(min=0, max=100),
    LinearCurve(min=-20, max=-10),
    SigmoidCurve(midpoint=50, steepness=0.1),
    SigmoidCurve(midpoint=0, steepness=50),
    LogNormalCurve(mu=3.0, sigma=0.8),
    LogNormalCurve.from_range(1500, 25000),
    PassthroughCurve(),
]


class TestCoercion:
    """Tests for raw value coercion."""

    def test_numbers_pass_through(self):
        assert coerce_number(3) == 3.0
        assert coerce_number(2.5) == 2.5

    def test_numeric_strings(self):
        assert coerce_number(" 42 ") == 42.0
        assert coerce_number("42,5") == 42.5

    def test_thousands_separators_are_not_decimal_marks(self):
        assert coerce_number("1,200") is None
        assert coerce_number("1,234,567") is None
        assert coerce_number("1.200,50") is None
        assert coerce_number("2,25") == 2.25

    def test_uncoercible_values_are_none(self):
        assert coerce_number("n/a") is None
        assert coerce_number(None) is None
        assert coerce_number([1, 2]) is None
        assert coerce_number(True) is None

    def test_nan_is_none(self):
        assert coerce_number(float("nan")) is None
        assert coerce_number("nan") is None

    def test_bool_strings(self):
        assert coerce_bool("Yes") is True
        assert coerce_bool("false") is False
        assert coerce_bool(1) is True
        assert coerce_bool(0) is False
        assert coerce_bool("maybe") is None
        assert coerce_bool(None) is None


class TestLinear:
    """Tests for min-max normalization."""

    def test_endpoints_and_midpoint(self):
        assert linear_utility(0, 0, 100) == 0.0
        assert linear_utility(50, 0, 100) == 0.5
        assert linear_utility(100, 0, 100) == 1.0

    def test_clamped_outside_range(self):
        assert linear_utility(-10, 0, 100) == 0.0
        assert linear_utility(150, 0, 100) == 1.0

    def test_minimize_inverts(self):
        assert linear_utility(5, 5, 50, Direction.MINIMIZE) == 1.0
        assert linear_utility(50, 5, 50, Direction.MINIMIZE) == 0.0

    def test_rejects_empty_range(self):
        with pytest.raises(ConfigurationError, match="max > min"):
            linear_utility(1, 5, 5)


class TestSigmoid:
    """Tests for the logistic curve."""

    def test_exactly_half_at_midpoint(self):
        assert sigmoid_utility(50, 50, 0.1) == pytest.approx(0.5, abs=1e-12)

    def test_minimize_at_midpoint_is_half(self):
        assert sigmoid_utility(50, 50, 0.1, Direction.MINIMIZE) == pytest.approx(0.5, abs=1e-12)

    def test_symmetry_around_midpoint(self):
        above = sigmoid_utility(60, 50, 0.1)
        below = sigmoid_utility(40, 50, 0.1)
        assert above + below == pytest.approx(1.0)

    def test_extreme_inputs_do_not_overflow(self):
        assert sigmoid_utility(1e9, 0, 10) == 1.0
        assert sigmoid_utility(-1e9, 0, 10) == 0.0

    def test_rejects_non_positive_steepness(self):
        with pytest.raises(ConfigurationError):
            sigmoid_utility(1, 0, 0)


class TestLogNormal:
    """Tests for the log-normal CDF."""

    def test_median_is_half(self):
        assert log_normal_utility(math.exp(3.0), 3.0, 0.8) == pytest.approx(0.5)

    def test_non_positive_values_at_bottom(self):
        assert log_normal_utility(0, 3.0, 0.8) == 0.0
        assert log_normal_utility(-5, 3.0, 0.8) == 0.0
        assert log_normal_utility(0, 3.0, 0.8, Direction.MINIMIZE) == 1.0

    def test_range_authoring_sets_percentiles(self):
        curve = LogNormalCurve.from_range(1500, 25000)
        assert log_normal_utility(1500, curve.mu, curve.sigma) == pytest.approx(0.05, abs=1e-6)
        assert log_normal_utility(25000, curve.mu, curve.sigma) == pytest.approx(0.95, abs=1e-6)

    def test_minimize_makes_cheap_better(self):
        curve = LogNormalCurve.from_range(1500, 25000)
        cheap = log_normal_utility(1800, curve.mu, curve.sigma, Direction.MINIMIZE)
        pricey = log_normal_utility(12000, curve.mu, curve.sigma, Direction.MINIMIZE)
        assert cheap > 0.9
        assert pricey < cheap


class TestBooleanAndPassthrough:
    """Tests for boolean and passthrough curves."""

    def test_boolean_utilities(self):
        assert boolean_utility(True) == 0.95
        assert boolean_utility(False) == 0.50
        assert boolean_utility(False, 0.9, 0.6) == 0.6

    def test_passthrough_clamps(self):
        assert passthrough_utility(0.3) == 0.3
        assert passthrough_utility(1.3) == 1.0
        assert passthrough_utility(0.3, Direction.MINIMIZE) == pytest.approx(0.7)


class TestNormalizeDispatch:
    """Tests for normalize() on raw fact values."""

    def test_numeric_string(self):
        assert normalize("42,5", LinearCurve(min=0, max=100), Direction.MAXIMIZE) == pytest.approx(0.425)

    def test_uncoercible_is_none(self):
        assert normalize("n/a", LinearCurve(min=0, max=100), Direction.MAXIMIZE) is None
        assert normalize(float("nan"), SigmoidCurve(midpoint=1, steepness=1), Direction.MAXIMIZE) is None

    def test_boolean_strings(self):
        curve = BooleanCurve(present_utility=0.9, absent_utility=0.2)
        assert normalize("yes", curve, Direction.MAXIMIZE) == 0.9
        assert normalize("no", curve, Direction.MAXIMIZE) == 0.2
        assert normalize("unknown", curve, Direction.MAXIMIZE) is None


class TestCurveProperties:
    """Boundedness and monotonicity over all curve kinds."""

    @pytest.mark.parametrize("curve", CURVES, ids=lambda c: c.kind)
    @pytest.mark.parametrize("direction", list(Direction))
    def test_bounded(self, curve, direction):
        for value in RAW_INPUTS:
            utility = normalize(value, curve, direction)
            assert 0.0 <= utility <= 1.0

    @pytest.mark.parametrize("curve", CURVES, ids=lambda c: c.kind)
    def test_monotonic(self, curve):
        inputs = sorted(RAW_INPUTS)
        up = [normalize(v, curve, Direction.MAXIMIZE) for v in inputs]
        down = [normalize(v, curve, Direction.MINIMIZE) for v in inputs]
        assert all(a <= b for a, b in zip(up, up[1:]))
        assert all(a >= b for a, b in zip(down, down[1:]))

    def test_clamp_unit(self):
        assert clamp_unit(-0.0001) == 0.0
        assert clamp_unit(1.0000001) == 1.0
        assert clamp_unit(NEUTRAL_UTILITY) == 0.5

    def test_clamp_unit_nan(self):
        assert clamp_unit(float("nan")) == 0.0
