from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import BigInteger
from sqlalchemy.types import TypeDecorator

from ..money import MONEY_SCALE, QUANTITY_SCALE


class _FixedPoint(TypeDecorator):
    """
    Decimal persisted as a signed integer count of minor units.

    Exact on every backend (SQLite has no native decimal). SUM() over the
    column stays integral and is converted back on the way out.
    """
    impl = BigInteger
    cache_ok = True
    scale = 0

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, float):
            raise TypeError("binary floating point is not accepted for fixed-point columns")
        minor = Decimal(value).scaleb(self.scale)
        return int(minor.to_integral_value(rounding=ROUND_HALF_UP))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(int(value)).scaleb(-self.scale)


class Money(_FixedPoint):
    cache_ok = True
    scale = MONEY_SCALE


class Quantity(_FixedPoint):
    cache_ok = True
    scale = QUANTITY_SCALE
