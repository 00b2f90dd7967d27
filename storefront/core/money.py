from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")
CENT = Decimal("0.01")


class MoneyError(ValueError):
    pass


def to_money(value: Any) -> Decimal:
    """Coerce a price-like value to Decimal without passing through binary float."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise MoneyError("booleans are not money")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        # repr() keeps the shortest decimal text the caller typed.
        return Decimal(repr(value))
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation as exc:
            raise MoneyError(f"invalid money value: {value!r}") from exc
    raise MoneyError(f"unsupported money type: {type(value)!r}")


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    if high < low:
        high = low
    return max(low, min(value, high))


def ceil_half(days: int) -> int:
    return int((Decimal(days) / 2).to_integral_value(rounding=ROUND_CEILING))

