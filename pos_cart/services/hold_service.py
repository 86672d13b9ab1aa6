"""Hold Service - Park carts under a hold id and resume them later."""

import logging
import uuid
from typing import Any, Dict, List, Optional

from pos_cart.exceptions import HoldNotFoundError, SnapshotError, StorageUnavailableError, ValidationError
from pos_cart.models import Cart
from pos_cart.services.cart_service import CartStore
from pos_cart.services.persistence_service import (
    SnapshotBackend, deserialize_cart, serialize_cart, held_key, held_prefix
)

logger = logging.getLogger(__name__)


class HoldService:
    """
    Parked carts of one register, stored on the same backend as the active cart.

    Parking copies the cart under ``held:{hold_id}`` and empties the active
    cart. Resuming loads the copy back through ``CartStore.load_from_hold``
    (which drops the discount) and deletes it.
    """

    def __init__(self, backend: SnapshotBackend, prefix: str, register_id: str):
        self.backend = backend
        self.prefix = prefix
        self.register_id = register_id

    def _key(self, hold_id: str) -> str:
        return held_key(self.prefix, self.register_id, hold_id)

    def park(self, store: CartStore, hold_id: Optional[str] = None) -> str:
        """
        Save the active cart as held and clear it. Returns the hold id.

        The held copy is written before the active cart is cleared; a storage
        error propagates and leaves the active cart untouched. If the cleared
        cart cannot be saved, the held copy is removed again and
        StorageUnavailableError is raised, so the sale exists in one place only.
        """
        if not store.items:
            raise ValidationError('Cannot hold an empty cart')

        if hold_id is not None and not isinstance(hold_id, str):
            raise ValidationError('Hold id must be a string')
        hold_id = (hold_id or '').strip() or uuid.uuid4().hex[:8]
        if ':' in hold_id:
            raise ValidationError("Hold id cannot contain ':'")

        held = store.snapshot()
        held.hold_id = hold_id
        self.backend.write(self._key(hold_id), serialize_cart(held))
        active = store.snapshot()
        store.clear()
        if store.last_save_ok is False:
            self.backend.delete(self._key(hold_id))
            store.restore(active)
            raise StorageUnavailableError(f"Could not clear the active cart while parking {hold_id}")

        logger.info(f"[HOLD] Parked cart {hold_id} on register {self.register_id}")
        return hold_id

    def get(self, hold_id: str) -> Cart:
        raw = self.backend.read(self._key(hold_id))
        if raw is None:
            raise HoldNotFoundError(hold_id)
        return deserialize_cart(raw)

    def list_holds(self) -> List[Dict[str, Any]]:
        """Summaries of every parked cart, sorted by hold id."""
        prefix = held_prefix(self.prefix, self.register_id)
        holds = []
        for key in self.backend.keys(prefix):
            hold_id = key[len(prefix):]
            raw = self.backend.read(key)
            if raw is None:
                continue
            try:
                cart = deserialize_cart(raw)
            except SnapshotError as e:
                logger.warning(f"[HOLD] Skipping corrupt held cart {hold_id}: {e.message}")
                continue
            holds.append({
                'hold_id': hold_id,
                'item_count': sum(item.quantity for item in cart.items),
                'line_count': len(cart.items),
                'customer_name': cart.customer.name if cart.customer else None,
                'notes': cart.notes,
            })
        return sorted(holds, key=lambda h: h['hold_id'])

    def resume(self, store: CartStore, hold_id: str) -> Cart:
        """Load a parked cart into ``store`` and delete the parked copy."""
        cart = self.get(hold_id)
        store.load_from_hold(cart.items, cart.customer, cart.notes, hold_id)
        self.backend.delete(self._key(hold_id))
        logger.info(f"[HOLD] Resumed cart {hold_id} on register {self.register_id}")
        return cart

    def discard(self, hold_id: str) -> None:
        if self.backend.read(self._key(hold_id)) is None:
            raise HoldNotFoundError(hold_id)
        self.backend.delete(self._key(hold_id))
        logger.info(f"[HOLD] Discarded cart {hold_id} on register {self.register_id}")
