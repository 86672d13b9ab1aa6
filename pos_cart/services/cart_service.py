"""Cart Service - In-memory cart state with write-through snapshots."""

import logging
from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, Iterable, Iterator, List, Optional

from pos_cart.models import Cart, Customer, Discount, LineItem
from pos_cart.services import pricing_service
from pos_cart.services.persistence_service import CartPersistence, LoadStatus

logger = logging.getLogger(__name__)


class ItemCollection:
    """
    Line items keyed by product_id, in insertion order.

    A dict keyed by product_id makes duplicate rows impossible; replacing a
    value keeps its position, so quantity and price edits never reorder.
    """

    def __init__(self, items: Optional[Iterable[LineItem]] = None):
        self._items: Dict[str, LineItem] = {}
        for item in items or []:
            self.add(item, item.quantity)

    def __iter__(self) -> Iterator[LineItem]:
        return iter(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, product_id: str) -> bool:
        return product_id in self._items

    def get(self, product_id: str) -> Optional[LineItem]:
        return self._items.get(product_id)

    def add(self, item: LineItem, quantity: int = 1) -> None:
        """
        Add product to the collection or increase its quantity if already present.

        On a merge only the quantity changes; the incoming item's other
        fields are used only when a new row is created.
        """
        existing = self._items.get(item.product_id)
        if existing:
            self.update_quantity(item.product_id, existing.quantity + quantity)
            return
        if quantity <= 0:
            return
        self._items[item.product_id] = item.copy(quantity=quantity)

    def remove(self, product_id: str) -> None:
        self._items.pop(product_id, None)

    def update_quantity(self, product_id: str, quantity: int) -> None:
        """Set quantity in place; a quantity <= 0 removes the row."""
        if quantity <= 0:
            self.remove(product_id)
            return
        existing = self._items.get(product_id)
        if existing:
            self._items[product_id] = existing.copy(quantity=quantity)

    def adjust_quantity(self, product_id: str, delta: int) -> None:
        existing = self._items.get(product_id)
        if existing:
            self.update_quantity(product_id, existing.quantity + delta)

    def update_price(self, product_id: str, price: Decimal) -> None:
        """Set unit_price, remembering the first price in original_price."""
        existing = self._items.get(product_id)
        if not existing:
            return
        original_price = existing.original_price
        if original_price is None:
            original_price = existing.unit_price
        self._items[product_id] = existing.copy(unit_price=price, original_price=original_price)

    def clear(self) -> None:
        self._items.clear()

    def to_list(self) -> List[LineItem]:
        return [item.copy() for item in self._items.values()]


class CartStore:
    """
    The cart a cashier is working on.

    Owned by whoever creates it; there is no process-wide instance. Every
    mutation runs to completion and then writes a full snapshot through the
    injected persistence adapter. Totals are computed on each read.
    """

    def __init__(self, persistence: Optional[CartPersistence] = None, cart: Optional[Cart] = None):
        self._persistence = persistence
        self.load_status: Optional[LoadStatus] = None
        self.last_save_ok: Optional[bool] = None
        self._apply(cart or Cart())

    @classmethod
    def rehydrate(cls, persistence: CartPersistence) -> 'CartStore':
        """
        Build a store from the persisted snapshot.

        Falls back to an empty cart when the snapshot is missing, corrupt or
        unreachable; ``load_status`` tells which one happened.
        """
        result = persistence.load()
        store = cls(persistence, result.cart)
        store.load_status = result.status
        if result.status in (LoadStatus.CORRUPT, LoadStatus.UNAVAILABLE):
            logger.warning(f"[CART] Started empty: snapshot {persistence.key} is {result.status.value}")
        return store

    def _apply(self, cart: Cart) -> None:
        self._items = ItemCollection(cart.items)
        self._customer = cart.customer
        self._discount = cart.discount
        self._notes = cart.notes
        self._hold_id = cart.hold_id

    def _commit(self, operation: str) -> None:
        logger.debug(f"[CART] {operation}: lines={len(self._items)}")
        if self._persistence is not None:
            self.last_save_ok = self._persistence.save(self.snapshot())

    # -- state ---------------------------------------------------------------

    @property
    def persistence(self) -> Optional[CartPersistence]:
        return self._persistence

    @property
    def items(self) -> List[LineItem]:
        return self._items.to_list()

    @property
    def customer(self) -> Optional[Customer]:
        return self._customer

    @property
    def discount(self) -> Optional[Discount]:
        return self._discount

    @property
    def notes(self) -> str:
        return self._notes

    @property
    def hold_id(self) -> Optional[str]:
        return self._hold_id

    def get_item(self, product_id: str) -> Optional[LineItem]:
        item = self._items.get(product_id)
        return item.copy() if item else None

    def snapshot(self) -> Cart:
        """Copy of the persistable state."""
        return Cart(
            items=self._items.to_list(),
            customer=replace(self._customer) if self._customer else None,
            discount=replace(self._discount) if self._discount else None,
            notes=self._notes,
            hold_id=self._hold_id,
        )

    # -- mutations -----------------------------------------------------------

    def add_item(self, item: LineItem, quantity: int = 1) -> None:
        self._items.add(item, quantity)
        self._commit('add_item')

    def remove_item(self, product_id: str) -> None:
        self._items.remove(product_id)
        self._commit('remove_item')

    def update_quantity(self, product_id: str, quantity: int) -> None:
        self._items.update_quantity(product_id, quantity)
        self._commit('update_quantity')

    def adjust_quantity(self, product_id: str, delta: int) -> None:
        self._items.adjust_quantity(product_id, delta)
        self._commit('adjust_quantity')

    def update_item_price(self, product_id: str, price: Decimal) -> None:
        self._items.update_price(product_id, price)
        self._commit('update_item_price')

    def set_customer(self, customer: Optional[Customer]) -> None:
        self._customer = customer
        self._commit('set_customer')

    def set_discount(self, discount: Optional[Discount]) -> None:
        self._discount = discount
        self._commit('set_discount')

    def set_notes(self, notes: str) -> None:
        self._notes = notes
        self._commit('set_notes')

    def set_hold_id(self, hold_id: Optional[str]) -> None:
        self._hold_id = hold_id
        self._commit('set_hold_id')

    def restore(self, cart: Cart) -> None:
        """Replace the in-memory state without writing a snapshot."""
        self._apply(cart)

    def clear(self) -> None:
        """Reset every field to its empty default and persist the empty cart."""
        self._apply(Cart())
        self._commit('clear')

    def load_from_hold(
        self,
        items: Iterable[LineItem],
        customer: Optional[Customer],
        notes: str,
        hold_id: Optional[str]
    ) -> None:
        """
        Replace the cart with a held one.

        The discount is always dropped: a resumed cart must have its
        discount applied again.
        """
        self._apply(Cart(items=list(items), customer=customer, discount=None, notes=notes, hold_id=hold_id))
        self._commit('load_from_hold')

    # -- derived totals ------------------------------------------------------

    def subtotal(self) -> Decimal:
        return pricing_service.subtotal(self._items)

    def discount_amount(self) -> Decimal:
        return pricing_service.discount_amount(self._discount, self.subtotal())

    def taxable_ratio(self) -> Decimal:
        return pricing_service.taxable_ratio(self._items)

    def tax_amount(self, tax_rate: Decimal) -> Decimal:
        return pricing_service.tax_amount(self._items, self._discount, tax_rate)

    def total(self, tax_rate: Decimal) -> Decimal:
        return pricing_service.total(self._items, self._discount, tax_rate)

    def item_count(self) -> int:
        return pricing_service.item_count(self._items)

    def summary(self, tax_rate: Decimal) -> Dict[str, Any]:
        return pricing_service.summarize(self._items, self._discount, tax_rate)
