"""Number parsing utilities for cart input."""
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from pos_cart.exceptions import ValidationError


def parse_decimal(value: Any, field: str = 'value', allow_negative: bool = False) -> Decimal:
    """
    Parse a monetary or percentage value to Decimal.

    Accepts Decimal, int, float and plain strings ("12.50"). Floats are
    converted through ``str`` so 0.1 stays 0.1 instead of its binary
    expansion. Booleans are rejected even though they are ints.

    Raises:
        ValidationError: if the value is empty, not numeric, or negative
            while ``allow_negative`` is False.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f'Invalid {field}: a number is required')

    if isinstance(value, Decimal):
        number = value
    else:
        cleaned = str(value).strip()
        if not cleaned:
            raise ValidationError(f'Invalid {field}: a number is required')
        try:
            number = Decimal(cleaned)
        except (InvalidOperation, ValueError):
            raise ValidationError(f'Invalid {field}: {value!r} is not a number')

    if not number.is_finite():
        raise ValidationError(f'Invalid {field}: {value!r} is not a number')
    if number < 0 and not allow_negative:
        raise ValidationError(f'Invalid {field}: cannot be negative')

    return number


def parse_optional_decimal(value: Any, field: str = 'value') -> Optional[Decimal]:
    """Like parse_decimal but maps None to None."""
    if value is None:
        return None
    return parse_decimal(value, field)


def parse_quantity(value: Any, field: str = 'quantity') -> int:
    """
    Parse an integer quantity. Zero and negative values are allowed here;
    the cart decides what a non-positive quantity means.
    """
    number = parse_decimal(value, field, allow_negative=True)
    if number != number.to_integral_value():
        raise ValidationError(f'Invalid {field}: must be a whole number')
    return int(number)
