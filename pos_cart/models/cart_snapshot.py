"""Cart snapshot model for SQL-backed cart persistence."""
from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.sql import func
from pos_cart.database import Base


class CartSnapshot(Base):
    """
    Cart Snapshot - Serialized cart stored under a namespaced key.

    Active carts use ``{prefix}:register:{register_id}:cart`` and parked
    carts ``{prefix}:register:{register_id}:held:{hold_id}``.
    The payload never contains derived totals.
    """

    __tablename__ = 'cart_snapshot'

    key = Column(String(255), primary_key=True)
    payload = Column(Text, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<CartSnapshot(key={self.key})>"
