import pytest
import re
from decimal import Decimal
from redis.exceptions import ConnectionError as RedisConnectionError

from config import TestConfig
from pos_cart import create_app
from pos_cart.models import Customer, Discount, LineItem
from pos_cart.services.cart_service import CartStore
from pos_cart.services.persistence_service import CartPersistence, MemorySnapshotBackend, cart_key


def _glob_match(pattern, key):
    """Redis MATCH semantics: * ? [class] and backslash escapes."""
    regex = ''
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == '\\' and i + 1 < len(pattern):
            regex += re.escape(pattern[i + 1])
            i += 2
            continue
        if char == '*':
            regex += '.*'
        elif char == '?':
            regex += '.'
        elif char == '[' and ']' in pattern[i + 1:]:
            end = pattern.index(']', i + 1)
            regex += '[' + re.escape(pattern[i + 1:end]) + ']'
            i = end + 1
            continue
        else:
            regex += re.escape(char)
        i += 1
    return re.fullmatch(regex, key) is not None


class FakeRedisClient:
    """Dict-backed stand-in for the few redis.Redis calls the snapshot backend makes."""

    def __init__(self):
        self.data = {}
        self.expirations = {}

    def ping(self):
        return True

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self.data[key] = value
        if ex:
            self.expirations[key] = ex
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    def scan_iter(self, match=None, count=None):
        for key in list(self.data):
            if match is None or _glob_match(match, key):
                yield key


class DownRedisClient:
    """Client whose every call fails as if Redis were unreachable."""

    def _fail(self, *args, **kwargs):
        raise RedisConnectionError('Connection refused')

    ping = get = set = delete = scan_iter = _fail


@pytest.fixture(scope='function')
def app():
    """Create application instance for testing."""
    app = create_app(TestConfig)
    return app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def memory_backend():
    return MemorySnapshotBackend()


@pytest.fixture(scope='function')
def persistence(memory_backend):
    """Persistence adapter for register R1 on an in-memory backend."""
    return CartPersistence(memory_backend, cart_key('test', 'R1'))


@pytest.fixture(scope='function')
def store(persistence):
    """Empty cart store wired to the in-memory persistence adapter."""
    return CartStore(persistence)


@pytest.fixture(scope='function')
def fake_redis():
    return FakeRedisClient()


@pytest.fixture(scope='function')
def down_redis():
    return DownRedisClient()


@pytest.fixture
def coffee():
    return LineItem(product_id='p1', name='Coffee', sku='COF-001', unit_price=Decimal('4.50'))


@pytest.fixture
def mug():
    return LineItem(
        product_id='p2', name='Mug', sku='MUG-001', unit_price=Decimal('12.00'),
        attributes={'color': 'red'}, barcode='7790001000012'
    )


@pytest.fixture
def gift_card():
    """Non-taxable item."""
    return LineItem(product_id='gc', name='Gift Card', sku='GC-25', unit_price=Decimal('25.00'), taxable=False)


@pytest.fixture
def customer():
    return Customer(id='c-42', name='Ada Lovelace', email='ada@example.com', phone='555-0100', pricing_tier='gold')


@pytest.fixture
def ten_off():
    return Discount(kind='fixed', value=Decimal('10'), code='TENOFF', reason='Loyalty')
