"""
Money helpers.

All monetary arithmetic uses Decimal quantized to cents.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Numeric = Union[Decimal, int, str, float]


def to_money(value: Numeric | None) -> Decimal:
    """Convert to a cent-quantized Decimal (floats go through str)."""
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money_sum(values: Iterable[Numeric | None]) -> Decimal:
    return to_money(sum((to_money(v) for v in values), ZERO))


def line_amount(units: Numeric, rate: Numeric) -> Decimal:
    """Amount billed for a service line (units x rate)."""
    return to_money(Decimal(str(units)) * Decimal(str(rate)))


def is_fully_paid(total: Numeric, paid: Numeric, tolerance: Decimal) -> bool:
    """True when the unpaid remainder is below the rounding tolerance."""
    return to_money(total) - to_money(paid) < tolerance
