"""Normalization curves - stage 1 of the scoring engine.

Maps a single raw attribute value onto a utility in [0, 1]. Every function
here is pure and deterministic, and every result is clamped: the sigmoid
and log-normal CDF can overshoot the unit interval by an epsilon.
"""

import math
from typing import Any, Optional

from .errors import ConfigurationError
from .schema import (
    BooleanCurve,
    Curve,
    Direction,
    LinearCurve,
    LogNormalCurve,
    PassthroughCurve,
    SigmoidCurve,
)

# Utility assigned by the impute_neutral missing value strategy
NEUTRAL_UTILITY = 0.5

TRUTHY_STRINGS = frozenset(["true", "yes", "y", "1", "on", "present"])
FALSY_STRINGS = frozenset(["false", "no", "n", "0", "off", "absent", "none", ""])


def clamp_unit(value: float) -> float:
    """Clamp a float to the closed unit interval; NaN maps to 0."""
    if math.isnan(value) or value < 0.0:
        return 0.0
    if value > 1.0:
        return 1.0
    return value


def coerce_number(value: Any) -> Optional[float]:
    """Coerce a raw fact into a float.

    Returns None for values that cannot be read as a number (including NaN),
    so the caller can apply the attribute's missing value strategy.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if "," in text:
            # A lone comma is a decimal mark unless it groups thousands
            whole, _, fraction = text.partition(",")
            if "," in fraction or "." in text or len(fraction) == 3:
                return None
            text = f"{whole}.{fraction}"
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number


def coerce_bool(value: Any) -> Optional[bool]:
    """Coerce a raw fact into a boolean (presence of a feature)."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return None
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUTHY_STRINGS:
            return True
        if lowered in FALSY_STRINGS:
            return False
    return None


def _orient(utility: float, direction: Direction) -> float:
    utility = clamp_unit(utility)
    if direction == Direction.MINIMIZE:
        return 1.0 - utility
    return utility


def linear_utility(
    value: float,
    minimum: float,
    maximum: float,
    direction: Direction = Direction.MAXIMIZE,
) -> float:
    """Min-max normalization, clamped to [0, 1].

    Raises:
        ConfigurationError: If ``maximum <= minimum``.
    """
    if maximum <= minimum:
        raise ConfigurationError(
            f"Linear curve requires max > min (got min={minimum}, max={maximum})"
        )
    return _orient((value - minimum) / (maximum - minimum), direction)


def sigmoid_utility(
    value: float,
    midpoint: float,
    steepness: float,
    direction: Direction = Direction.MAXIMIZE,
) -> float:
    """Logistic S-curve ``1 / (1 + e^(-k (x - midpoint)))``.

    Utility is exactly 0.5 at the midpoint. The two branches keep the
    exponent non-positive so large inputs never overflow.
    """
    if steepness <= 0:
        raise ConfigurationError(f"Sigmoid steepness must be positive (got {steepness})")
    z = steepness * (value - midpoint)
    if z >= 0:
        utility = 1.0 / (1.0 + math.exp(-z))
    else:
        e = math.exp(z)
        utility = e / (1.0 + e)
    return _orient(utility, direction)


def log_normal_utility(
    value: float,
    mu: float,
    sigma: float,
    direction: Direction = Direction.MAXIMIZE,
) -> float:
    """Log-normal CDF, for long right-tailed attributes such as price.

    Non-positive values sit at the bottom of the distribution (CDF = 0).
    """
    if sigma <= 0:
        raise ConfigurationError(f"Log-normal sigma must be positive (got {sigma})")
    if value <= 0:
        cdf = 0.0
    else:
        cdf = 0.5 * math.erfc(-(math.log(value) - mu) / (sigma * math.sqrt(2.0)))
    return _orient(cdf, direction)


def boolean_utility(
    present: bool,
    present_utility: float = 0.95,
    absent_utility: float = 0.50,
) -> float:
    """Map feature presence to one of two configured utilities."""
    return clamp_unit(present_utility if present else absent_utility)


def passthrough_utility(value: float, direction: Direction = Direction.MAXIMIZE) -> float:
    """Value already expressed on a 0-1 scale."""
    return _orient(value, direction)


def normalize(value: Any, curve: Curve, direction: Direction) -> Optional[float]:
    """Normalize a raw value with the given curve.

    Returns None when the raw value cannot be interpreted for this curve;
    the scorer then treats the attribute as missing.
    """
    if isinstance(curve, BooleanCurve):
        flag = coerce_bool(value)
        if flag is None:
            return None
        return boolean_utility(flag, curve.present_utility, curve.absent_utility)

    number = coerce_number(value)
    if number is None:
        return None

    if isinstance(curve, LinearCurve):
        return linear_utility(number, curve.min, curve.max, direction)
    if isinstance(curve, SigmoidCurve):
        return sigmoid_utility(number, curve.midpoint, curve.steepness, direction)
    if isinstance(curve, LogNormalCurve):
        return log_normal_utility(number, curve.mu, curve.sigma, direction)
    if isinstance(curve, PassthroughCurve):
        return passthrough_utility(number, direction)

    raise ConfigurationError(f"Unsupported curve kind: {curve.kind}")
