# Overview: Exact decimal arithmetic for money, quantities and percentages.

"""
Money & quantity helpers

All monetary and quantity values are decimal.Decimal. Floats are never
accepted directly: a float that reaches this module is converted through
its shortest repr (str(0.1) == "0.1"), so 0.1 becomes Decimal("0.1") and
not the binary approximation.

ROUNDING:
- Line amounts and running totals stay exact (no rounding).
- Amounts that are persisted as settled money (discount applied amount,
  due total, converted tender) are quantised to cents, half-up.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable

from .errors import ValidationError

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")
QTY_STEP = Decimal("0.001")


def to_decimal(value, *, field: str = "value") -> Decimal:
    """Coerce int/str/Decimal (and floats via repr) to Decimal."""
    if value is None:
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be a number")
        try:
            result = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def quantize_qty(value: Decimal) -> Decimal:
    return value.quantize(QTY_STEP, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, percent: Decimal) -> Decimal:
    return amount * percent / HUNDRED


def sum_decimal(values: Iterable[Decimal]) -> Decimal:
    total = ZERO
    for value in values:
        total += value
    return total


def money_str(value: Decimal | None) -> str | None:
    """Serialize a money value for JSON (string, two decimals)."""
    if value is None:
        return None
    return str(quantize_money(value))


def decimal_str(value: Decimal | None) -> str | None:
    """Serialize a quantity/percentage for JSON without trailing zeros."""
    if value is None:
        return None
    normalized = value.normalize()
    # normalize() turns 10 into 1E+1
    if normalized == normalized.to_integral():
        return str(normalized.quantize(Decimal(1)))
    return str(normalized)
