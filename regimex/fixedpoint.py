"""
Integer helpers for fixed-point feature math.

Division truncates toward zero so results do not depend on the sign
convention of Python's floor division.
"""

import math
from typing import Sequence


def div_trunc(numerator: int, denominator: int) -> int:
    """Integer division truncating toward zero. Returns 0 for a zero denominator."""
    if denominator == 0:
        return 0
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator > 0) else -quotient


def mean_int(values: Sequence[int]) -> int:
    if not values:
        return 0
    return div_trunc(sum(values), len(values))


def median_int(values: Sequence[int]) -> int:
    """Median; even-length input averages the two middle values."""
    if not values:
        return 0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return div_trunc(ordered[mid - 1] + ordered[mid], 2)


def isqrt(value: int) -> int:
    return math.isqrt(value) if value > 0 else 0


def pstdev_int(values: Sequence[int]) -> int:
    """Population standard deviation around the truncated integer mean."""
    if len(values) < 2:
        return 0
    mean = mean_int(values)
    variance = div_trunc(sum((v - mean) ** 2 for v in values), len(values))
    return isqrt(variance)


def ols_slope_scaled(values: Sequence[int], scale: int = 1000) -> int:
    """OLS slope of values against their index, multiplied by scale."""
    n = len(values)
    if n < 2:
        return 0
    sum_x = n * (n - 1) // 2
    sum_x2 = (n - 1) * n * (2 * n - 1) // 6
    sum_y = sum(values)
    sum_xy = sum(i * v for i, v in enumerate(values))
    denominator = n * sum_x2 - sum_x * sum_x
    return div_trunc(scale * (n * sum_xy - sum_x * sum_y), denominator)
