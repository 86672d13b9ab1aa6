"""
Integration tests for the cart HTTP API.
Every request rebuilds the cart from its snapshot, so these also cover
persistence across requests.
"""

import pytest
from decimal import Decimal

BASE = '/registers/R1/cart'


def _add(client, product_id, price, quantity=1, taxable=True, register='R1'):
    return client.post(f'/registers/{register}/cart/items', json={
        'item': {'product_id': product_id, 'name': product_id.title(), 'sku': product_id.upper(),
                 'unit_price': price, 'taxable': taxable},
        'quantity': quantity,
    })


class TestCartLines:
    """Tests for adding, updating and removing lines."""

    def test_empty_cart(self, client):
        response = client.get(BASE)
        assert response.status_code == 200
        data = response.get_json()
        assert data['cart'] == {'items': [], 'customer': None, 'discount': None, 'notes': '', 'hold_id': None}
        assert data['load_status'] == 'missing'
        assert Decimal(data['summary']['total']) == 0

    def test_add_twice_merges(self, client):
        assert _add(client, 'p1', '4.50', 2).status_code == 201
        response = _add(client, 'p1', '4.50', 2)

        items = response.get_json()['cart']['items']
        assert len(items) == 1
        assert items[0]['quantity'] == 4

        # A fresh request sees the persisted cart
        data = client.get(BASE).get_json()
        assert data['load_status'] == 'loaded'
        assert Decimal(data['summary']['subtotal']) == Decimal('18.00')

    def test_add_rejects_bad_input(self, client):
        assert client.post(f'{BASE}/items', json={'quantity': 1}).status_code == 400
        assert _add(client, 'p1', 'abc').status_code == 400
        assert _add(client, 'p1', '1', quantity=0).status_code == 400

        data = client.post(f'{BASE}/items', json={'item': {'name': 'x'}}).get_json()
        assert data['status'] == 'error'
        assert 'product_id' in data['message']

    def test_update_quantity_and_remove_by_zero(self, client):
        _add(client, 'p1', '2')
        _add(client, 'p2', '3')

        response = client.patch(f'{BASE}/items/p1', json={'quantity': 5})
        assert response.get_json()['cart']['items'][0]['quantity'] == 5

        response = client.patch(f'{BASE}/items/p1', json={'quantity': 0})
        assert [i['product_id'] for i in response.get_json()['cart']['items']] == ['p2']

    def test_adjust_quantity_with_delta(self, client):
        _add(client, 'p1', '2', 3)
        response = client.patch(f'{BASE}/items/p1', json={'delta': -1})
        assert response.get_json()['cart']['items'][0]['quantity'] == 2

    def test_price_override_keeps_original(self, client):
        _add(client, 'p1', '10.00')
        client.patch(f'{BASE}/items/p1', json={'unit_price': '8.00'})
        item = client.patch(f'{BASE}/items/p1', json={'unit_price': '7.00'}).get_json()['cart']['items'][0]

        assert Decimal(item['unit_price']) == Decimal('7.00')
        assert Decimal(item['original_price']) == Decimal('10.00')

    def test_patch_requires_exactly_one_field(self, client):
        _add(client, 'p1', '1')
        assert client.patch(f'{BASE}/items/p1', json={}).status_code == 400
        assert client.patch(f'{BASE}/items/p1', json={'quantity': 1, 'delta': 1}).status_code == 400

    def test_patch_unknown_product(self, client):
        assert client.patch(f'{BASE}/items/ghost', json={'quantity': 1}).status_code == 404

    def test_delete_item(self, client):
        _add(client, 'p1', '1')
        response = client.delete(f'{BASE}/items/p1')
        assert response.status_code == 200
        assert response.get_json()['cart']['items'] == []

    def test_registers_are_isolated(self, client):
        _add(client, 'p1', '1', register='R1')
        _add(client, 'p2', '1', register='R2')
        assert [i['product_id'] for i in client.get('/registers/R2/cart').get_json()['cart']['items']] == ['p2']

    def test_register_id_cannot_contain_colon(self, client):
        assert client.get('/registers/a:b/cart').status_code == 400


class TestPricingOverHttp:
    """Tests for discounts and tax through the API."""

    def test_mixed_cart_tax(self, client):
        _add(client, 'taxed', '100')
        _add(client, 'exempt', '100', taxable=False)
        client.put(f'{BASE}/discount', json={'discount': {'kind': 'fixed', 'value': '50'}})

        summary = client.get(f'{BASE}?tax_rate=10').get_json()['summary']

        assert Decimal(summary['subtotal']) == Decimal('200.00')
        assert Decimal(summary['discount_amount']) == Decimal('50.00')
        assert Decimal(summary['tax_amount']) == Decimal('7.50')
        assert Decimal(summary['total']) == Decimal('157.50')

    def test_default_tax_rate_from_config(self, client):
        _add(client, 'p1', '100')
        summary = client.get(BASE).get_json()['summary']
        assert Decimal(summary['tax_rate']) == Decimal('10')
        assert Decimal(summary['tax_amount']) == Decimal('10.00')

    def test_fixed_discount_clamped(self, client):
        _add(client, 'p1', '20')
        data = client.put(f'{BASE}/discount?tax_rate=0', json={'discount': {'kind': 'fixed', 'value': 500}}).get_json()
        assert Decimal(data['summary']['discount_amount']) == Decimal('20.00')
        assert Decimal(data['summary']['total']) == Decimal('0.00')

    @pytest.mark.parametrize('discount', [
        {'kind': 'bogo', 'value': 1},
        {'kind': 'percentage', 'value': 150},
        {'kind': 'fixed', 'value': -5},
        {'kind': 'fixed'},
        'ten percent',
    ])
    def test_invalid_discount_rejected(self, client, discount):
        response = client.put(f'{BASE}/discount', json={'discount': discount})
        assert response.status_code == 400
        assert client.get(BASE).get_json()['cart']['discount'] is None

    def test_remove_discount(self, client):
        _add(client, 'p1', '20')
        client.put(f'{BASE}/discount', json={'discount': {'kind': 'percentage', 'value': 10}})
        data = client.put(f'{BASE}/discount', json={'discount': None}).get_json()
        assert data['cart']['discount'] is None

    def test_bad_tax_rate(self, client):
        assert client.get(f'{BASE}?tax_rate=lots').status_code == 400

    def test_bad_tax_rate_leaves_cart_unchanged(self, client):
        response = client.post(f'{BASE}/items?tax_rate=lots', json={
            'item': {'product_id': 'p1', 'unit_price': '5'}, 'quantity': 2
        })
        assert response.status_code == 400
        assert client.get(BASE).get_json()['cart']['items'] == []

        _add(client, 'p1', '5')
        client.put(f'{BASE}/notes?tax_rate=-1', json={'notes': 'changed'})
        assert client.get(BASE).get_json()['cart']['notes'] == ''


class TestCartMetadata:
    """Tests for customer, notes, hold tag and clear."""

    def test_customer_notes_and_clear(self, client):
        _add(client, 'p1', '5')
        client.put(f'{BASE}/customer', json={'customer': {'id': 'c1', 'name': 'Grace'}})
        client.put(f'{BASE}/notes', json={'notes': 'fragile'})
        client.put(f'{BASE}/hold-id', json={'hold_id': 'H9'})
        client.put(f'{BASE}/discount', json={'discount': {'kind': 'fixed', 'value': 1}})

        cart = client.get(BASE).get_json()['cart']
        assert cart['customer']['name'] == 'Grace'
        assert cart['notes'] == 'fragile'
        assert cart['hold_id'] == 'H9'

        response = client.delete(BASE)
        assert response.get_json()['cart'] == {
            'items': [], 'customer': None, 'discount': None, 'notes': '', 'hold_id': None
        }
        assert client.get(BASE).get_json()['cart']['items'] == []

    def test_customer_required_key(self, client):
        assert client.put(f'{BASE}/customer', json={}).status_code == 400
        assert client.put(f'{BASE}/customer', json={'customer': None}).status_code == 200

    def test_notes_must_be_text(self, client):
        assert client.put(f'{BASE}/notes', json={'notes': 5}).status_code == 400


class TestHolds:
    """Tests for parking and resuming over HTTP."""

    def test_park_list_resume(self, client):
        _add(client, 'p1', '5', 2)
        client.put(f'{BASE}/customer', json={'customer': {'id': 'c1', 'name': 'Grace'}})
        client.put(f'{BASE}/discount', json={'discount': {'kind': 'percentage', 'value': 10}})

        response = client.post(f'{BASE}/holds', json={'hold_id': 'lunch'})
        assert response.status_code == 201
        assert response.get_json()['hold_id'] == 'lunch'
        assert response.get_json()['cart']['items'] == []

        holds = client.get(f'{BASE}/holds').get_json()['holds']
        assert holds == [{'hold_id': 'lunch', 'item_count': 2, 'line_count': 1,
                          'customer_name': 'Grace', 'notes': ''}]

        cart = client.post(f'{BASE}/holds/lunch/resume').get_json()['cart']
        assert cart['items'][0]['quantity'] == 2
        assert cart['hold_id'] == 'lunch'
        assert cart['discount'] is None
        assert client.get(f'{BASE}/holds').get_json()['holds'] == []

    def test_resume_requires_empty_cart(self, client):
        _add(client, 'p1', '5')
        client.post(f'{BASE}/holds', json={'hold_id': 'a'})
        _add(client, 'p2', '5')
        assert client.post(f'{BASE}/holds/a/resume').status_code == 400

    def test_unknown_hold(self, client):
        assert client.post(f'{BASE}/holds/nope/resume').status_code == 404
        assert client.delete(f'{BASE}/holds/nope').status_code == 404

    def test_park_empty_cart(self, client):
        assert client.post(f'{BASE}/holds', json={}).status_code == 400

    def test_discard(self, client):
        _add(client, 'p1', '5')
        hold_id = client.post(f'{BASE}/holds', json={}).get_json()['hold_id']
        assert client.delete(f'{BASE}/holds/{hold_id}').status_code == 200
        assert client.get(f'{BASE}/holds').get_json()['holds'] == []


class TestAppWiring:

    def test_unknown_route_is_json_404(self, client):
        response = client.get('/nowhere')
        assert response.status_code == 404
        assert response.get_json()['status'] == 'error'

    def test_metrics_endpoint(self, client):
        _add(client, 'p1', '1')
        response = client.get('/metrics')
        assert response.status_code == 200
        assert b'cart_mutations_total' in response.data

    def test_sql_backend_persists_between_requests(self):
        from config import TestConfig
        from pos_cart import create_app

        class SqlConfig(TestConfig):
            CART_BACKEND = 'sql'

        app = create_app(SqlConfig)
        client = app.test_client()
        _add(client, 'p1', '3', 2)

        data = client.get(BASE).get_json()
        assert data['load_status'] == 'loaded'
        assert data['cart']['items'][0]['quantity'] == 2
