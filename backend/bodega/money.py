"""
Exact decimal arithmetic for money and quantities.

Every monetary or quantity combination in the core goes through these helpers.
Inputs may be ints, floats, strings or Decimals; floats are converted through
their shortest repr so 0.1 becomes Decimal("0.1"), never the binary expansion.
All operations run at 28 significant digits with ROUND_HALF_UP.
"""

from __future__ import annotations

from decimal import Context, Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP, localcontext
from typing import Iterable, Union

Number = Union[int, float, str, Decimal]

PRECISION = 28
CONTEXT = Context(prec=PRECISION, rounding=ROUND_HALF_UP)

ZERO = Decimal("0")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Number | None) -> Decimal:
    """Convert a loosely-typed numeric value to Decimal. None and "" are zero."""
    if isinstance(value, Decimal):
        result = value
    elif value is None:
        return ZERO
    elif isinstance(value, bool):
        raise ValueError("booleans are not numeric values")
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    else:
        text = str(value).strip()
        if not text:
            return ZERO
        try:
            result = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"not a decimal value: {value!r}")

    if not result.is_finite():
        raise ValueError(f"not a finite decimal value: {value!r}")
    return result


def add(a: Number, b: Number) -> Decimal:
    with localcontext(CONTEXT):
        return to_decimal(a) + to_decimal(b)


def sub(a: Number, b: Number) -> Decimal:
    with localcontext(CONTEXT):
        return to_decimal(a) - to_decimal(b)


def mul(a: Number, b: Number) -> Decimal:
    with localcontext(CONTEXT):
        return to_decimal(a) * to_decimal(b)


def div(a: Number, b: Number) -> Decimal:
    """Divide a by b. A zero divisor yields 0 instead of raising."""
    divisor = to_decimal(b)
    if divisor == 0:
        return ZERO
    with localcontext(CONTEXT):
        return to_decimal(a) / divisor


def percent(amount: Number, pct: Number) -> Decimal:
    """pct percent of amount, e.g. percent(100, 16) == 16."""
    with localcontext(CONTEXT):
        return to_decimal(amount) * to_decimal(pct) / HUNDRED


def round_money(value: Number) -> Decimal:
    """Round to 2 decimal places, half up."""
    with localcontext(CONTEXT):
        return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def total(values: Iterable[Number]) -> Decimal:
    """Exact sum of an iterable of values."""
    result = ZERO
    for value in values:
        result = add(result, value)
    return result


def to_int(value: Number | None) -> int:
    """Integral part of a numeric value (stock counts are integers)."""
    return int(to_decimal(value).to_integral_value(rounding=ROUND_DOWN))
