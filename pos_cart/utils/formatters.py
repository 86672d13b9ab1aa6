"""
Formatting helpers for cart amounts shown in the CLI.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union


def money(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Format an amount with two decimals and thousands separators.

    Examples:
        money(1500) -> "1,500.00"
        money(Decimal('7.5')) -> "7.50"
        money(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        num = Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    return f"{num:,.2f}"


def percent(value: Union[int, float, Decimal, str, None]) -> str:
    """Format a percentage without trailing zeros: 10.00 -> "10%"."""
    if value is None or value == "":
        return "-"
    try:
        num = Decimal(str(value)).normalize()
    except (InvalidOperation, ValueError, TypeError):
        return "-"
    return f"{num:f}%"
