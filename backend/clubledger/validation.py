# Overview: Input coercion for service arguments and JSON payloads.
from __future__ import annotations

from datetime import date
from decimal import Decimal

from .money import to_money, to_quantity
from .services.errors import ValidationFailed
from .time_utils import parse_iso_date

# Largest accepted amount and quantity; keeps minor units well inside BigInteger
MAX_AMOUNT = Decimal("9999999.99")
MAX_QUANTITY = Decimal("9999999.999")


def money(value, field: str, *, allow_negative: bool = False, required: bool = True) -> Decimal | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationFailed(f"{field} is required")
        return None
    try:
        amount = to_money(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{field} must be a decimal amount", details={"field": field})
    if not allow_negative and amount < 0:
        raise ValidationFailed(f"{field} cannot be negative", details={"field": field})
    if abs(amount) > MAX_AMOUNT:
        raise ValidationFailed(f"{field} exceeds {MAX_AMOUNT}", details={"field": field})
    return amount


def quantity(value, field: str, *, positive: bool = False, allow_negative: bool = True) -> Decimal:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationFailed(f"{field} is required", details={"field": field})
    try:
        qty = to_quantity(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{field} must be a decimal quantity", details={"field": field})
    if positive and qty <= 0:
        raise ValidationFailed(f"{field} must be greater than 0", details={"field": field})
    if not allow_negative and qty < 0:
        raise ValidationFailed(f"{field} cannot be negative", details={"field": field})
    if abs(qty) > MAX_QUANTITY:
        raise ValidationFailed(f"{field} exceeds {MAX_QUANTITY}", details={"field": field})
    return qty


def choice(value, field: str, allowed) -> str:
    if value not in allowed:
        raise ValidationFailed(
            f"{field} must be one of {', '.join(allowed)}",
            details={"field": field, "allowed": list(allowed)},
        )
    return value


def iso_date(value, field: str, *, required: bool = True) -> date | None:
    if isinstance(value, date):
        return value
    try:
        parsed = parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{field} must be an ISO date (YYYY-MM-DD)", details={"field": field})
    if parsed is None and required:
        raise ValidationFailed(f"{field} is required", details={"field": field})
    return parsed


def integer_id(value, field: str, *, required: bool = True) -> int | None:
    if value is None:
        if required:
            raise ValidationFailed(f"{field} is required", details={"field": field})
        return None
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationFailed(f"{field} must be an integer", details={"field": field})
    try:
        return int(value)
    except ValueError:
        raise ValidationFailed(f"{field} must be an integer", details={"field": field})
