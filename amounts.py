import math
from decimal import Decimal, InvalidOperation
from typing import Union

from errors import InvalidAmount

CENT = Decimal("0.01")
# Numeric(12, 2) columns
MAX_AMOUNT = Decimal("9999999999.99")

AmountLike = Union[Decimal, int, float, str]


def to_amount(value: AmountLike) -> Decimal:
    """Coerce to a two-place Decimal, rejecting NaN, infinities and overflow."""
    if isinstance(value, bool):
        raise InvalidAmount(f"Invalid amount: {value!r}")
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidAmount(f"Invalid amount: {value!r}")
        # repr keeps the shortest round-tripping form, so 0.1 stays 0.1
        value = repr(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise InvalidAmount(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite() or abs(amount) > MAX_AMOUNT:
        raise InvalidAmount(f"Invalid amount: {value!r}")
    try:
        return amount.quantize(CENT)
    except InvalidOperation as exc:
        raise InvalidAmount(f"Invalid amount: {value!r}") from exc
