"""Pricing Service - Pure derivation of cart totals.

Every function here is side-effect free and recomputes from the items and
discount it is given. Nothing is cached, so totals can never go stale after
a mutation. Values are exact Decimals; only ``summarize`` rounds, and only
for display.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, Optional

from pos_cart.models import Discount, DiscountKind, LineItem

ZERO = Decimal('0')
ONE = Decimal('1')
HUNDRED = Decimal('100')
CENTS = Decimal('0.01')


def _to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def line_total(item: LineItem) -> Decimal:
    """Unit price times quantity for one line."""
    return item.unit_price * item.quantity


def subtotal(items: Iterable[LineItem]) -> Decimal:
    """Sum of unit_price * quantity over all items."""
    return sum((line_total(item) for item in items), ZERO)


def taxable_subtotal(items: Iterable[LineItem]) -> Decimal:
    """Sum of unit_price * quantity over items not explicitly marked non-taxable."""
    return sum((line_total(item) for item in items if item.taxable is not False), ZERO)


def discount_amount(discount: Optional[Discount], cart_subtotal: Decimal) -> Decimal:
    """
    Convert the cart discount into money.

    Percentage: subtotal * value / 100. Fixed: min(value, subtotal).
    The result is clamped into [0, subtotal] so the pre-tax total can never
    go negative nor exceed what is being sold.
    """
    if discount is None or cart_subtotal <= 0:
        return ZERO

    if discount.kind is DiscountKind.PERCENTAGE:
        amount = cart_subtotal * discount.value / HUNDRED
    elif discount.kind is DiscountKind.FIXED:
        amount = min(discount.value, cart_subtotal)
    else:
        # Discount.__post_init__ rejects other kinds
        raise ValueError(f'Unsupported discount kind: {discount.kind!r}')

    return max(ZERO, min(amount, cart_subtotal))


def taxable_ratio(items: Iterable[LineItem]) -> Decimal:
    """
    Share of the subtotal that is taxable.

    An empty (zero) subtotal yields 1 so tax degrades to zero instead of
    dividing by zero.
    """
    items = list(items)
    cart_subtotal = subtotal(items)
    if cart_subtotal <= 0:
        return ONE
    return taxable_subtotal(items) / cart_subtotal


def tax_amount(items: Iterable[LineItem], discount: Optional[Discount], tax_rate: Decimal) -> Decimal:
    """
    Tax on the discounted cart, charged only on its taxable share.

    The discount is spread proportionally over taxable and non-taxable
    lines: taxable_amount = (subtotal - discount) * taxable_subtotal / subtotal.
    """
    items = list(items)
    cart_subtotal = subtotal(items)
    if cart_subtotal <= 0:
        return ZERO

    discounted = cart_subtotal - discount_amount(discount, cart_subtotal)
    taxable_amount = discounted * taxable_subtotal(items) / cart_subtotal
    return taxable_amount * Decimal(tax_rate) / HUNDRED


def total(items: Iterable[LineItem], discount: Optional[Discount], tax_rate: Decimal) -> Decimal:
    """subtotal - discount + tax."""
    items = list(items)
    cart_subtotal = subtotal(items)
    return (
        cart_subtotal
        - discount_amount(discount, cart_subtotal)
        + tax_amount(items, discount, tax_rate)
    )


def item_count(items: Iterable[LineItem]) -> int:
    """Total units across all lines."""
    return sum(item.quantity for item in items)


def summarize(items: Iterable[LineItem], discount: Optional[Discount], tax_rate: Decimal) -> Dict[str, Any]:
    """Calculate display totals for a cart, rounded to cents."""
    items = list(items)
    tax_rate = Decimal(tax_rate)
    cart_subtotal = subtotal(items)

    lines_details = []
    for item in items:
        lines_details.append({
            'product_id': item.product_id,
            'name': item.name,
            'sku': item.sku,
            'quantity': item.quantity,
            'unit_price': item.unit_price,
            'original_price': item.original_price,
            'taxable': item.taxable,
            'line_total': _to_cents(line_total(item)),
        })

    return {
        'subtotal': _to_cents(cart_subtotal),
        'discount_amount': _to_cents(discount_amount(discount, cart_subtotal)),
        'tax_rate': tax_rate,
        'tax_amount': _to_cents(tax_amount(items, discount, tax_rate)),
        'total': _to_cents(total(items, discount, tax_rate)),
        'item_count': item_count(items),
        'lines': lines_details,
    }
