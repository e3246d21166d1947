from __future__ import annotations

from decimal import Decimal
from typing import NewType

from app.services.errors import InvalidValue

# Integer minor units (cents). Floats never enter the ledger.
Cents = NewType("Cents", int)

# $100,000,000.00; keeps every balance and balance + amount inside BIGINT
MAX_CENTS = 10_000_000_000


def to_cents(value: object, *, field: str = "value", allow_zero: bool = False, allow_negative: bool = False) -> Cents:
    if isinstance(value, bool):
        raise InvalidValue(f"{field} must be an integer amount in cents.")

    if isinstance(value, Decimal):
        if not value.is_finite() or value != value.to_integral_value():
            raise InvalidValue(f"{field} must be a whole number of cents.")
        value = int(value)

    if not isinstance(value, int):
        raise InvalidValue(f"{field} must be an integer amount in cents.")

    if value == 0 and not allow_zero:
        raise InvalidValue(f"{field} must not be 0.")
    if value < 0 and not allow_negative:
        raise InvalidValue(f"{field} must be greater than 0.")
    if abs(value) > MAX_CENTS:
        raise InvalidValue(f"{field} must not exceed {MAX_CENTS} cents.")

    return Cents(value)
