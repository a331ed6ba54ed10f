import math
from decimal import Decimal, ROUND_HALF_UP

# Every float at or above this magnitude is already a whole number
_INTEGRAL_FLOATS = 2.0 ** 52


def finite_or_zero(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def round_half_up(value: float, decimals: int = 0) -> float:
    """Round like a dashboard does (2.5 -> 3), not like ``round`` (2.5 -> 2).

    Infinities and NaN round to zero.
    """
    if not math.isfinite(value):
        return 0.0
    if abs(value) >= _INTEGRAL_FLOATS:
        return float(value)
    quantum = Decimal(1).scaleb(-decimals)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def percentage(part: float, whole: float) -> float:
    """``part`` as a percentage of ``whole``; zero when there is no whole."""
    if whole <= 0:
        return 0.0
    return finite_or_zero(part / whole * 100.0)
