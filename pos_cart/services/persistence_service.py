"""
Cart Persistence Service.
Durable snapshotting of cart state over pluggable key-value backends.

Keys pattern: {prefix}:register:{register_id}:cart
              {prefix}:register:{register_id}:held:{hold_id}
"""

import enum
import json
import logging
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import redis
from redis.exceptions import RedisError
from flask import Flask, current_app
from sqlalchemy.exc import SQLAlchemyError

from pos_cart.exceptions import CartError, SnapshotError, StorageUnavailableError
from pos_cart.models import Cart, CartSnapshot

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------

def cart_key(prefix: str, register_id: str) -> str:
    """Key of the active cart for a register."""
    return f"{prefix}:register:{register_id}:cart"


def held_prefix(prefix: str, register_id: str) -> str:
    """Common prefix of every parked cart for a register."""
    return f"{prefix}:register:{register_id}:held:"


def held_key(prefix: str, register_id: str, hold_id: str) -> str:
    return f"{held_prefix(prefix, register_id)}{hold_id}"


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def _serialize(value: Any) -> str:
    """Serialize Python object to JSON string with Decimal precision."""
    def default_handler(obj: Any) -> Any:
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        elif isinstance(obj, Decimal):
            # Tagged so it comes back as Decimal, not float
            return {"__decimal__": str(obj)}
        raise TypeError(f"Object of type {type(obj)} is not JSON serializable")
    return json.dumps(value, default=default_handler)


def _deserialize(value: str) -> Any:
    """Deserialize JSON string to Python object, reconstructing Decimals."""
    def object_hook(dct: Dict[str, Any]) -> Any:
        if "__decimal__" in dct:
            return Decimal(dct["__decimal__"])
        return dct
    return json.loads(value, object_hook=object_hook)


def serialize_cart(cart: Cart) -> str:
    """Snapshot payload: items, customer, discount, notes, hold_id. No totals."""
    return _serialize(cart.to_dict())


def deserialize_cart(raw: str) -> Cart:
    """Rebuild a Cart from a snapshot payload, raising SnapshotError if it is unusable."""
    try:
        return Cart.from_dict(_deserialize(raw))
    except (ValueError, TypeError, KeyError, AttributeError, InvalidOperation, CartError) as e:
        # json.JSONDecodeError is a ValueError
        raise SnapshotError(f"Corrupt cart snapshot: {e}") from e


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------

class SnapshotBackend:
    """
    Minimal string key-value store used for cart snapshots.

    Implementations raise StorageUnavailableError when the underlying store
    cannot be reached, and return None from ``read`` for a missing key.
    """

    name = 'abstract'

    def read(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def write(self, key: str, payload: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def keys(self, prefix: str) -> List[str]:
        raise NotImplementedError


class MemorySnapshotBackend(SnapshotBackend):
    """Process-local backend. State is lost on restart; meant for tests and development."""

    name = 'memory'

    def __init__(self):
        self._data: Dict[str, str] = {}

    def read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def write(self, key: str, payload: str) -> None:
        self._data[key] = payload

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str) -> List[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


def _escape_glob(text: str) -> str:
    """Escape Redis MATCH metacharacters so a prefix matches literally."""
    return re.sub(r'([*?\[\]\\])', r'\\\1', text)


class RedisSnapshotBackend(SnapshotBackend):
    """Redis-backed snapshots. A TTL of 0 keeps keys until they are overwritten or deleted."""

    name = 'redis'

    def __init__(self, client: redis.Redis, ttl: int = 0):
        self.client = client
        self.ttl = ttl

    @classmethod
    def from_url(cls, redis_url: str, ttl: int = 0) -> 'RedisSnapshotBackend':
        """Build a client with the same connection settings the app uses everywhere."""
        client = redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=3,
            socket_timeout=3,
            socket_keepalive=True,
            max_connections=50,
            retry_on_timeout=True,
            health_check_interval=30
        )
        try:
            client.ping()
            logger.info(f"[SNAPSHOT] Redis connected: {redis_url}")
        except RedisError as e:
            logger.warning(f"[SNAPSHOT] Redis connection failed: {e}. Cart snapshots fail open until it recovers.")
        return cls(client, ttl)

    def read(self, key: str) -> Optional[str]:
        try:
            return self.client.get(key)
        except RedisError as e:
            raise StorageUnavailableError(f"Redis read failed: {e}") from e

    def write(self, key: str, payload: str) -> None:
        try:
            if self.ttl:
                self.client.set(key, payload, ex=self.ttl)
            else:
                self.client.set(key, payload)
        except RedisError as e:
            raise StorageUnavailableError(f"Redis write failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self.client.delete(key)
        except RedisError as e:
            raise StorageUnavailableError(f"Redis delete failed: {e}") from e

    def keys(self, prefix: str) -> List[str]:
        try:
            return sorted(self.client.scan_iter(match=f"{_escape_glob(prefix)}*", count=100))
        except RedisError as e:
            raise StorageUnavailableError(f"Redis scan failed: {e}") from e


class SqlSnapshotBackend(SnapshotBackend):
    """
    SQL-backed snapshots stored in the ``cart_snapshot`` table.

    Each write commits on its own so the snapshot is durable when the
    mutation returns.
    """

    name = 'sql'

    def __init__(self, session):
        self.session = session

    def read(self, key: str) -> Optional[str]:
        try:
            row = self.session.query(CartSnapshot).filter(CartSnapshot.key == key).first()
            return row.payload if row else None
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageUnavailableError(f"Snapshot read failed: {e}") from e

    def write(self, key: str, payload: str) -> None:
        try:
            row = self.session.query(CartSnapshot).filter(CartSnapshot.key == key).first()
            if row:
                row.payload = payload
            else:
                self.session.add(CartSnapshot(key=key, payload=payload))
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageUnavailableError(f"Snapshot write failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self.session.query(CartSnapshot).filter(CartSnapshot.key == key).delete()
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageUnavailableError(f"Snapshot delete failed: {e}") from e

    def keys(self, prefix: str) -> List[str]:
        try:
            rows = self.session.query(CartSnapshot.key).filter(
                CartSnapshot.key.startswith(prefix, autoescape=True)
            ).order_by(CartSnapshot.key).all()
            return [row.key for row in rows]
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageUnavailableError(f"Snapshot scan failed: {e}") from e


# ---------------------------------------------------------------------------
# Persistence adapter
# ---------------------------------------------------------------------------

class LoadStatus(str, enum.Enum):
    """Outcome of reading a snapshot."""
    LOADED = 'loaded'
    MISSING = 'missing'
    CORRUPT = 'corrupt'
    UNAVAILABLE = 'unavailable'


class LoadResult:
    """A loaded cart (or None) plus why, so an empty cart is never ambiguous."""

    def __init__(self, cart: Optional[Cart], status: LoadStatus, error: Optional[str] = None):
        self.cart = cart
        self.status = status
        self.error = error

    @property
    def ok(self) -> bool:
        return self.status is LoadStatus.LOADED

    def __repr__(self):
        return f"<LoadResult(status={self.status.value})>"


class CartPersistence:
    """Saves and loads one cart under one key of a SnapshotBackend."""

    def __init__(self, backend: SnapshotBackend, key: str):
        self.backend = backend
        self.key = key

    def save(self, cart: Cart) -> bool:
        """Write the full snapshot. Storage failures are logged and reported as False."""
        try:
            self.backend.write(self.key, serialize_cart(cart))
            return True
        except (StorageUnavailableError, TypeError) as e:
            logger.warning(f"[SNAPSHOT] Save failed for {self.key}: {e}")
            return False

    def load(self) -> LoadResult:
        """Read the snapshot. Never raises."""
        try:
            raw = self.backend.read(self.key)
        except StorageUnavailableError as e:
            logger.warning(f"[SNAPSHOT] Load failed for {self.key}: {e}")
            return LoadResult(None, LoadStatus.UNAVAILABLE, e.message)

        if raw is None:
            return LoadResult(None, LoadStatus.MISSING)

        try:
            return LoadResult(deserialize_cart(raw), LoadStatus.LOADED)
        except SnapshotError as e:
            logger.warning(f"[SNAPSHOT] Ignoring corrupt snapshot {self.key}: {e.message}")
            return LoadResult(None, LoadStatus.CORRUPT, e.message)

    def clear(self) -> bool:
        try:
            self.backend.delete(self.key)
            return True
        except StorageUnavailableError as e:
            logger.warning(f"[SNAPSHOT] Delete failed for {self.key}: {e}")
            return False


# ---------------------------------------------------------------------------
# Flask wiring
# ---------------------------------------------------------------------------

def build_backend(app: Flask) -> SnapshotBackend:
    """Create the backend selected by CART_BACKEND."""
    backend_name = app.config.get('CART_BACKEND', 'sql')

    if backend_name == 'memory':
        return MemorySnapshotBackend()
    if backend_name == 'redis':
        return RedisSnapshotBackend.from_url(
            app.config.get('REDIS_URL', 'redis://redis:6379/0'),
            ttl=app.config.get('CART_SNAPSHOT_TTL', 0)
        )
    if backend_name == 'sql':
        from pos_cart.database import get_session
        return SqlSnapshotBackend(get_session())

    raise ValueError(f"Unknown CART_BACKEND: {backend_name!r}")


def init_cart_storage(app: Flask) -> None:
    """Attach the snapshot backend to the app. Must run after init_db."""
    backend = build_backend(app)
    if not hasattr(app, 'extensions'):
        app.extensions = {}
    app.extensions['cart_backend'] = backend
    app.logger.info(f"[SNAPSHOT] Cart backend: {backend.name}")


def get_cart_backend() -> SnapshotBackend:
    """Get the snapshot backend of the current app."""
    backend = current_app.extensions.get('cart_backend')
    if backend is None:
        raise RuntimeError("Cart storage not initialized.")
    return backend
