"""Cart value types: line items, discount, customer and the cart snapshot."""
import enum
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pos_cart.exceptions import InvalidDiscountError, ValidationError
from pos_cart.utils.number_format import parse_decimal, parse_optional_decimal, parse_quantity


class DiscountKind(str, enum.Enum):
    """How a cart-wide discount value is interpreted."""
    PERCENTAGE = 'percentage'
    FIXED = 'fixed'


@dataclass
class LineItem:
    """
    One distinct product in the cart.

    ``original_price`` is captured the first time the price is edited and
    never overwritten afterwards. ``taxable`` defaults to True.
    """

    product_id: str
    name: str = ''
    sku: str = ''
    quantity: int = 1
    unit_price: Decimal = Decimal('0')
    original_price: Optional[Decimal] = None
    discount_per_item: Optional[Decimal] = None
    attributes: Optional[Dict[str, str]] = None
    barcode: Optional[str] = None
    taxable: bool = True

    def copy(self, **changes) -> 'LineItem':
        if 'attributes' not in changes and self.attributes is not None:
            changes['attributes'] = dict(self.attributes)
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'product_id': self.product_id,
            'name': self.name,
            'sku': self.sku,
            'quantity': self.quantity,
            'unit_price': self.unit_price,
            'original_price': self.original_price,
            'discount_per_item': self.discount_per_item,
            'attributes': dict(self.attributes) if self.attributes is not None else None,
            'barcode': self.barcode,
            'taxable': self.taxable,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LineItem':
        """Build a line item from a snapshot or request payload."""
        product_id = data.get('product_id')
        if product_id is None or str(product_id).strip() == '':
            raise ValidationError('Line item requires a product_id')

        attributes = data.get('attributes')
        if attributes is not None:
            if not isinstance(attributes, dict):
                raise ValidationError('Line item attributes must be an object')
            attributes = {str(k): str(v) for k, v in attributes.items()}

        return cls(
            product_id=str(product_id),
            name=str(data.get('name') or ''),
            sku=str(data.get('sku') or ''),
            quantity=parse_quantity(data.get('quantity', 1)),
            unit_price=parse_decimal(data.get('unit_price', 0), 'unit_price'),
            original_price=parse_optional_decimal(data.get('original_price'), 'original_price'),
            discount_per_item=parse_optional_decimal(data.get('discount_per_item'), 'discount_per_item'),
            attributes=attributes,
            barcode=data.get('barcode'),
            # Anything but an explicit False counts as taxable
            taxable=data.get('taxable', True) is not False,
        )


@dataclass
class Discount:
    """A single cart-wide discount. Unknown kinds are rejected on creation."""

    kind: DiscountKind
    value: Decimal
    code: Optional[str] = None
    reason: Optional[str] = None

    def __post_init__(self):
        try:
            self.kind = DiscountKind(self.kind)
        except ValueError:
            raise InvalidDiscountError(
                f"Unknown discount kind {self.kind!r}; expected 'percentage' or 'fixed'",
                {'kind': str(self.kind)}
            )
        self.value = parse_decimal(self.value, 'discount value', allow_negative=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'value': self.value,
            'code': self.code,
            'reason': self.reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Discount':
        if 'kind' not in data or 'value' not in data:
            raise InvalidDiscountError('Discount requires kind and value')
        return cls(
            kind=data['kind'],
            value=data['value'],
            code=data.get('code'),
            reason=data.get('reason'),
        )


@dataclass
class Customer:
    """Denormalized copy of the customer attached to the sale."""

    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    pricing_tier: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'pricing_tier': self.pricing_tier,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Customer':
        if data.get('id') is None or not data.get('name'):
            raise ValidationError('Customer requires id and name')
        return cls(
            id=str(data['id']),
            name=str(data['name']),
            email=data.get('email'),
            phone=data.get('phone'),
            pricing_tier=data.get('pricing_tier'),
        )


@dataclass
class Cart:
    """
    The persisted unit of cart state.

    Holds exactly what is snapshotted: items, customer, discount, notes and
    hold_id. Derived totals are never stored here.
    """

    items: List[LineItem] = field(default_factory=list)
    customer: Optional[Customer] = None
    discount: Optional[Discount] = None
    notes: str = ''
    hold_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'items': [item.to_dict() for item in self.items],
            'customer': self.customer.to_dict() if self.customer else None,
            'discount': self.discount.to_dict() if self.discount else None,
            'notes': self.notes,
            'hold_id': self.hold_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Cart':
        if not isinstance(data, dict):
            raise ValidationError('Cart snapshot must be an object')
        items = data.get('items') or []
        if not isinstance(items, list):
            raise ValidationError('Cart items must be a list')
        customer = data.get('customer')
        discount = data.get('discount')
        return cls(
            items=[LineItem.from_dict(item) for item in items],
            customer=Customer.from_dict(customer) if customer else None,
            discount=Discount.from_dict(discount) if discount else None,
            notes=str(data.get('notes') or ''),
            hold_id=data.get('hold_id'),
        )
