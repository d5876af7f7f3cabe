"""
Money Helpers

Decimal conversion and cent rounding for every monetary value the engine
exposes. Floats are only accepted at the boundary and are converted through
their string form, so no binary rounding noise enters a calculation.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation as DecimalError
from typing import Union

from .errors import ValidationError


Amount = Union[Decimal, int, float, str]

ZERO = Decimal('0')
CENT = Decimal('0.01')
PAYOFF_EPSILON = Decimal('0.005')  # Remaining balance treated as fully repaid


def to_decimal(value: Amount) -> Decimal:
    """Convert a boundary value to Decimal"""
    if isinstance(value, bool):
        raise ValidationError(f"Not a monetary amount: {value!r}")
    try:
        amount = Decimal(str(value))
    except (DecimalError, ValueError) as e:
        raise ValidationError(f"Not a monetary amount: {value!r}") from e
    if not amount.is_finite():
        raise ValidationError(f"Monetary amount must be finite: {value!r}")
    return amount


def round_money(value: Amount) -> Decimal:
    """Round to the cent using round-half-up"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def is_paid_off(balance: Amount, epsilon: Decimal = PAYOFF_EPSILON) -> bool:
    """Check whether a remaining balance is within the payoff epsilon"""
    return to_decimal(balance) <= epsilon


def require_non_negative(value: Amount, name: str) -> Decimal:
    """Convert and reject negative amounts"""
    amount = to_decimal(value)
    if amount < ZERO:
        raise ValidationError(f"{name} cannot be negative: {amount}")
    return amount
