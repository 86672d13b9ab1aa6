"""Models package - cart value types and SQLAlchemy models."""
# Cart value types
from pos_cart.models.cart import Cart, Customer, Discount, DiscountKind, LineItem

# SQLAlchemy models
from pos_cart.models.cart_snapshot import CartSnapshot

__all__ = [
    'Cart',
    'Customer',
    'Discount',
    'DiscountKind',
    'LineItem',
    'CartSnapshot',
]
