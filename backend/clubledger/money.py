# Overview: Fixed-point helpers for currency and quantities.
"""
Money and quantities are decimal.Decimal end to end.

- Currency has 2 fractional digits, quantities 3 (crates split into bottles,
  litres, ...). Both round half-up.
- Floats are rejected at the boundary; JSON carries decimals as strings.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

MONEY_SCALE = 2
QUANTITY_SCALE = 3

CENT = Decimal(1).scaleb(-MONEY_SCALE)
MILLI = Decimal(1).scaleb(-QUANTITY_SCALE)
ZERO_MONEY = Decimal("0.00")
ZERO_QUANTITY = Decimal("0.000")


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, bool):
        raise TypeError("booleans are not amounts")
    elif isinstance(value, float):
        raise TypeError("binary floating point is not accepted for amounts")
    elif isinstance(value, (int, str)):
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"not a decimal: {value!r}") from exc
    else:
        raise TypeError(f"unsupported amount type: {type(value).__name__}")
    # NaN, sNaN and Infinity parse but cannot be compared or quantized
    if not number.is_finite():
        raise ValueError(f"not a finite decimal: {value!r}")
    return number


def _quantize(value, exponent: Decimal) -> Decimal:
    try:
        return _as_decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"out of range: {value!r}") from exc


def to_money(value) -> Decimal:
    if value is None:
        return ZERO_MONEY
    return _quantize(value, CENT)


def to_quantity(value) -> Decimal:
    if value is None:
        return ZERO_QUANTITY
    return _quantize(value, MILLI)


def format_eur(amount: Decimal) -> str:
    amount = to_money(amount)
    sign = "-" if amount < 0 else ""
    return f"{sign}€{abs(amount)}"


def format_quantity(quantity: Decimal) -> str:
    """Drop trailing zeros for display: 3.000 -> 3, 0.500 -> 0.5."""
    text = format(to_quantity(quantity).normalize(), "f")
    return text


def decimal_str(value: Decimal | None) -> str | None:
    return None if value is None else str(value)
