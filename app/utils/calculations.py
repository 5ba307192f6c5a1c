"""
Decimal helpers shared by consolidation, KPI and cashflow calculations.

Every division is guarded: a zero denominator gives zero, never an error
and never NaN.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Union

ZERO = Decimal("0")
HUNDRED = Decimal("100")

Number = Union[Decimal, int, str]


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_to(value: Number, places: int = 2) -> Decimal:
    """Round half-up to a fixed number of decimal places."""
    exponent = Decimal(1).scaleb(-places) if places > 0 else Decimal(1)
    return to_decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)


def safe_divide(numerator: Number, denominator: Number) -> Decimal:
    """numerator / denominator, or zero when the denominator is zero."""
    denominator = to_decimal(denominator)
    if denominator == 0:
        return ZERO
    return to_decimal(numerator) / denominator


def percentage(part: Number, whole: Number, places: int = 2) -> Decimal:
    """part as a percentage of whole, rounded."""
    return round_to(safe_divide(part, whole) * HUNDRED, places)


def total(values: Iterable[Number]) -> Decimal:
    return sum((to_decimal(v) for v in values), ZERO)
