"""Cart blueprint - JSON API over one register's cart and its held carts."""
from decimal import Decimal
from typing import Any, Dict, Optional

from flask import Blueprint, request, jsonify, current_app, g, Response

from pos_cart.blueprints.metrics import record_cart_mutation
from pos_cart.exceptions import InvalidDiscountError, NotFoundError, ValidationError
from pos_cart.models import Customer, Discount, DiscountKind, LineItem
from pos_cart.services.cart_service import CartStore
from pos_cart.services.hold_service import HoldService
from pos_cart.services.persistence_service import CartPersistence, cart_key, get_cart_backend
from pos_cart.utils.number_format import parse_decimal, parse_quantity

cart_bp = Blueprint('cart', __name__, url_prefix='/registers/<register_id>/cart')

HUNDRED = Decimal('100')


def _key_prefix() -> str:
    return current_app.config.get('CART_KEY_PREFIX', 'pos')


def _validate_register_id(register_id: str) -> str:
    if not register_id or ':' in register_id:
        raise ValidationError("Register id cannot be empty or contain ':'")
    return register_id


def _open_store(register_id: str) -> CartStore:
    """Rehydrate the register's cart from its snapshot."""
    register_id = _validate_register_id(register_id)
    persistence = CartPersistence(get_cart_backend(), cart_key(_key_prefix(), register_id))
    return CartStore.rehydrate(persistence)


def _hold_service(register_id: str) -> HoldService:
    return HoldService(get_cart_backend(), _key_prefix(), _validate_register_id(register_id))


def _payload() -> Dict[str, Any]:
    """JSON body as a dict; form bodies are accepted too."""
    if request.is_json:
        payload = request.get_json(silent=True)
        if payload is None:
            return {}
        if not isinstance(payload, dict):
            raise ValidationError('Request body must be a JSON object')
        return payload
    return request.form.to_dict()


def _tax_rate() -> Decimal:
    """Tax rate in percent: ?tax_rate= when given, else TAX_RATE from config."""
    raw = request.args.get('tax_rate')
    if raw is None or raw.strip() == '':
        return Decimal(current_app.config.get('TAX_RATE', 0))
    return parse_decimal(raw, 'tax_rate')


@cart_bp.before_request
def resolve_tax_rate():
    """Resolve the tax rate before the handler mutates anything."""
    g.cart_tax_rate = _tax_rate()


def _cart_response(store: CartStore, status_code: int = 200, **extra) -> Response:
    body = {
        'status': 'ok',
        'cart': store.snapshot().to_dict(),
        'summary': store.summary(g.cart_tax_rate),
        'load_status': store.load_status.value if store.load_status else None,
        'persisted': store.last_save_ok,
    }
    body.update(extra)
    return jsonify(body), status_code


def _mutated(store: CartStore, operation: str, status_code: int = 200, **extra) -> Response:
    record_cart_mutation(operation, store.last_save_ok)
    current_app.logger.info(
        f"[cart] {operation}: key={store.persistence.key}, "
        f"lines={len(store.items)}, persisted={store.last_save_ok}"
    )
    return _cart_response(store, status_code, **extra)


def _parse_discount(data: Optional[Dict[str, Any]]) -> Optional[Discount]:
    """Build a discount, enforcing the value range the engine expects."""
    if data is None:
        return None
    if not isinstance(data, dict):
        raise InvalidDiscountError('Discount must be an object or null')

    discount = Discount.from_dict(data)
    if discount.value < 0:
        raise InvalidDiscountError('Discount value cannot be negative')
    if discount.kind is DiscountKind.PERCENTAGE and discount.value > HUNDRED:
        raise InvalidDiscountError('Percentage discount cannot exceed 100')
    return discount


@cart_bp.route('', methods=['GET'])
def view_cart(register_id: str) -> Response:
    """Current cart with totals."""
    return _cart_response(_open_store(register_id))


@cart_bp.route('', methods=['DELETE'])
def clear_cart(register_id: str) -> Response:
    """Discard the cart (sale finalized or abandoned)."""
    store = _open_store(register_id)
    store.clear()
    return _mutated(store, 'clear')


@cart_bp.route('/items', methods=['POST'])
def add_item(register_id: str) -> Response:
    """Add product to cart or increase its quantity if already present."""
    payload = _payload()
    item_data = payload.get('item')
    if not isinstance(item_data, dict):
        raise ValidationError('Missing item object')

    item = LineItem.from_dict(item_data)
    quantity = parse_quantity(payload.get('quantity', 1))
    if quantity <= 0:
        raise ValidationError('Quantity must be greater than 0')

    store = _open_store(register_id)
    store.add_item(item, quantity)
    return _mutated(store, 'add_item', 201)


@cart_bp.route('/items/<product_id>', methods=['PATCH'])
def update_item(register_id: str, product_id: str) -> Response:
    """
    Update one line. Accepts exactly one of:
    - quantity: new quantity (<= 0 removes the line)
    - delta: amount to add to the current quantity
    - unit_price: new price (first price is kept in original_price)
    """
    payload = _payload()
    fields = [name for name in ('quantity', 'delta', 'unit_price') if name in payload]
    if len(fields) != 1:
        raise ValidationError('Send exactly one of quantity, delta or unit_price')

    store = _open_store(register_id)
    if store.get_item(product_id) is None:
        raise NotFoundError(f"Product '{product_id}' is not in the cart")

    operation = fields[0]
    if operation == 'quantity':
        store.update_quantity(product_id, parse_quantity(payload['quantity']))
        return _mutated(store, 'update_quantity')
    if operation == 'delta':
        store.adjust_quantity(product_id, parse_quantity(payload['delta'], 'delta'))
        return _mutated(store, 'adjust_quantity')

    store.update_item_price(product_id, parse_decimal(payload['unit_price'], 'unit_price'))
    return _mutated(store, 'update_item_price')


@cart_bp.route('/items/<product_id>', methods=['DELETE'])
def remove_item(register_id: str, product_id: str) -> Response:
    store = _open_store(register_id)
    store.remove_item(product_id)
    return _mutated(store, 'remove_item')


@cart_bp.route('/customer', methods=['PUT'])
def set_customer(register_id: str) -> Response:
    """Attach a customer; {"customer": null} detaches it."""
    payload = _payload()
    if 'customer' not in payload:
        raise ValidationError('Missing customer (use null to detach)')
    data = payload['customer']
    if data is not None and not isinstance(data, dict):
        raise ValidationError('Customer must be an object or null')

    customer = Customer.from_dict(data) if data is not None else None
    store = _open_store(register_id)
    store.set_customer(customer)
    return _mutated(store, 'set_customer')


@cart_bp.route('/discount', methods=['PUT'])
def set_discount(register_id: str) -> Response:
    """Replace the cart discount; {"discount": null} removes it."""
    payload = _payload()
    if 'discount' not in payload:
        raise ValidationError('Missing discount (use null to remove)')

    discount = _parse_discount(payload['discount'])
    store = _open_store(register_id)
    store.set_discount(discount)
    return _mutated(store, 'set_discount')


@cart_bp.route('/notes', methods=['PUT'])
def set_notes(register_id: str) -> Response:
    payload = _payload()
    notes = payload.get('notes')
    if notes is None:
        notes = ''
    if not isinstance(notes, str):
        raise ValidationError('Notes must be a string')

    store = _open_store(register_id)
    store.set_notes(notes)
    return _mutated(store, 'set_notes')


@cart_bp.route('/hold-id', methods=['PUT'])
def set_hold_id(register_id: str) -> Response:
    """Tag (or untag with null) the active cart with a hold id."""
    payload = _payload()
    hold_id = payload.get('hold_id')
    if hold_id is not None and not isinstance(hold_id, str):
        raise ValidationError('hold_id must be a string or null')

    store = _open_store(register_id)
    store.set_hold_id(hold_id or None)
    return _mutated(store, 'set_hold_id')


@cart_bp.route('/holds', methods=['GET'])
def list_holds(register_id: str) -> Response:
    holds = _hold_service(register_id).list_holds()
    return jsonify({'status': 'ok', 'holds': holds})


@cart_bp.route('/holds', methods=['POST'])
def park_cart(register_id: str) -> Response:
    """Park the active cart and start an empty one."""
    payload = _payload()
    store = _open_store(register_id)
    hold_id = _hold_service(register_id).park(store, payload.get('hold_id'))
    return _mutated(store, 'park', 201, hold_id=hold_id)


@cart_bp.route('/holds/<hold_id>/resume', methods=['POST'])
def resume_cart(register_id: str, hold_id: str) -> Response:
    """Load a parked cart into the active slot. Its discount is not restored."""
    store = _open_store(register_id)
    if store.items:
        raise ValidationError('Active cart is not empty; hold or clear it first')
    _hold_service(register_id).resume(store, hold_id)
    return _mutated(store, 'resume', hold_id=hold_id)


@cart_bp.route('/holds/<hold_id>', methods=['DELETE'])
def discard_hold(register_id: str, hold_id: str) -> Response:
    _hold_service(register_id).discard(hold_id)
    current_app.logger.info(f"[cart] discard_hold: register={register_id}, hold_id={hold_id}")
    return jsonify({'status': 'ok', 'hold_id': hold_id})
