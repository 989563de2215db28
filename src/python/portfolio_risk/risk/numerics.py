"""Guards for zero denominators and non-finite results."""

import math

from ..models import NumericInstabilityError

DENOMINATOR_FLOOR = 0.01


def safe_denominator(value: float, floor: float = DENOMINATOR_FLOOR) -> float:
    """Return value, or floor when value is zero or not finite."""
    if value == 0 or not math.isfinite(value):
        return floor
    return value


def ensure_finite(name: str, value: float) -> float:
    """Raise NumericInstabilityError if value is NaN or infinite."""
    value = float(value)
    if not math.isfinite(value):
        raise NumericInstabilityError(f"{name} is not finite ({value})")
    return value
