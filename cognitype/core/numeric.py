"""
Reproducible numeric helpers.

All analysers round through these so golden outputs match across platforms:
half-up rounding on the shortest decimal repr of the float, and statistics
that return 0 instead of raising on empty input.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal


def round_half_up(value: float, places: int = 3) -> float:
    """Round half away from zero on the decimal representation."""
    if not math.isfinite(value):
        return value
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round_ms(value: float) -> int:
    """Round a millisecond quantity to an integer."""
    return int(round_half_up(value, 0))


def safe_ratio(numerator: float, denominator: float) -> float:
    """numerator / denominator, or 0 when the denominator is 0."""
    if not denominator:
        return 0.0
    return numerator / denominator


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def population_variance(values: Sequence[float]) -> float:
    """Population variance; 0 with fewer than 2 samples."""
    if len(values) < 2:
        return 0.0
    avg = mean(values)
    return sum((v - avg) ** 2 for v in values) / len(values)


def population_std(values: Sequence[float]) -> float:
    return math.sqrt(population_variance(values))


def to_base36(number: int) -> str:
    """Lowercase base-36 encoding of a non-negative integer."""
    if number < 0:
        raise ValueError("base36 encoding requires a non-negative integer")
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if number == 0:
        return "0"
    out = []
    while number:
        number, rem = divmod(number, 36)
        out.append(digits[rem])
    return "".join(reversed(out))
