"""
Cart aggregate - the in-memory, pre-checkout representation of a sale.

One line per distinct product, in insertion order. Stock checks compare
against the stock observed when the product was last read from the catalog;
they are hints for the operator, the authoritative check happens at
checkout when stock is decremented.

The HTTP layer keeps one cart per operator in the Flask session through
to_dict()/from_dict(); money travels as strings to survive JSON.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from shopdesk.exceptions import ValidationError, InsufficientStockError
from shopdesk.models import DiscountType, ProductStatus
from shopdesk.services.pricing import ZERO, line_subtotal, money


@dataclass
class DiscountSpec:
    """Sale-level discount as entered; range checks happen when totals are computed."""
    type: DiscountType = DiscountType.NONE
    value: Decimal = ZERO


@dataclass
class CartLine:
    product_id: int
    name: str
    sku: str
    unit_price: Decimal
    stock: int  # last observed on-hand quantity
    quantity: int
    subtotal: Decimal = ZERO

    def __post_init__(self):
        self.recompute()

    def recompute(self) -> None:
        self.subtotal = line_subtotal(self.unit_price, self.quantity)

    def to_dict(self) -> dict:
        return {
            'product_id': self.product_id,
            'name': self.name,
            'sku': self.sku,
            'unit_price': str(self.unit_price),
            'stock': self.stock,
            'quantity': self.quantity,
            'subtotal': str(self.subtotal),
        }


def _parse_discount_type(discount_type) -> DiscountType:
    if isinstance(discount_type, DiscountType):
        return discount_type
    try:
        return DiscountType(str(discount_type).lower())
    except ValueError:
        raise ValidationError(f'Tipo de descuento inválido: {discount_type}')


def _parse_quantity(qty) -> int:
    if isinstance(qty, bool) or (isinstance(qty, float) and not qty.is_integer()):
        raise ValidationError(f'La cantidad debe ser un número entero: {qty!r}')
    try:
        return int(qty)
    except (TypeError, ValueError):
        raise ValidationError(f'Cantidad inválida: {qty!r}')


@dataclass
class Cart:
    lines: List[CartLine] = field(default_factory=list)
    discount: DiscountSpec = field(default_factory=DiscountSpec)
    customer_name: str = ''
    customer_phone: str = ''
    notes: str = ''

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_line(self, product_id: int) -> Optional[CartLine]:
        for line in self.lines:
            if line.product_id == product_id:
                return line
        return None

    def is_empty(self) -> bool:
        return not self.lines

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_item(self, item, qty=1) -> CartLine:
        """
        Add `qty` units of a catalog item.

        An item already in the cart has its quantity increased instead of
        getting a second line. Raises InsufficientStockError (cart unchanged)
        when the resulting quantity exceeds the item's stock.
        """
        qty = _parse_quantity(qty)
        if qty <= 0:
            raise ValidationError('La cantidad debe ser mayor a 0')
        if item.status != ProductStatus.ACTIVE:
            raise ValidationError(f'El producto "{item.name}" no está activo')

        line = self.get_line(item.id)
        new_qty = (line.quantity if line else 0) + qty
        if new_qty > item.stock:
            raise InsufficientStockError(item.name, new_qty, item.stock)

        if line:
            line.quantity = new_qty
            line.unit_price = money(item.price)
            line.stock = item.stock
            line.recompute()
            return line

        line = CartLine(
            product_id=item.id,
            name=item.name,
            sku=item.sku,
            unit_price=money(item.price),
            stock=item.stock,
            quantity=new_qty,
        )
        self.lines.append(line)
        return line

    def remove_item(self, product_id: int) -> None:
        self.lines = [line for line in self.lines if line.product_id != product_id]

    def set_quantity(self, product_id: int, qty) -> Optional[CartLine]:
        """Set a line's quantity; zero or less removes the line."""
        qty = _parse_quantity(qty)
        line = self.get_line(product_id)
        if line is None:
            return None

        if qty <= 0:
            self.remove_item(product_id)
            return None

        if qty > line.stock:
            raise InsufficientStockError(line.name, qty, line.stock)

        line.quantity = qty
        line.recompute()
        return line

    def clear(self) -> None:
        self.lines = []
        self.discount = DiscountSpec()
        self.customer_name = ''
        self.customer_phone = ''
        self.notes = ''

    def set_discount(self, discount_type, value=0) -> None:
        # Rounded to cents but not range-checked; see pricing.validate_discount
        self.discount = DiscountSpec(_parse_discount_type(discount_type), money(value))

    def set_customer_info(self, name: str = '', phone: str = '') -> None:
        self.customer_name = (name or '').strip()
        self.customer_phone = (phone or '').strip()

    def set_notes(self, notes: str = '') -> None:
        self.notes = (notes or '').strip()

    def refresh_stock(self, catalog) -> None:
        """Update each line's observed stock from a fresh catalog snapshot."""
        for line in self.lines:
            item = catalog.get(line.product_id)
            if item is not None:
                line.stock = item.stock

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            'lines': [line.to_dict() for line in self.lines],
            'discount_type': self.discount.type.value,
            'discount_value': str(self.discount.value),
            'customer_name': self.customer_name,
            'customer_phone': self.customer_phone,
            'notes': self.notes,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'Cart':
        if not data:
            return cls()
        lines = [
            CartLine(
                product_id=raw['product_id'],
                name=raw['name'],
                sku=raw.get('sku', ''),
                unit_price=Decimal(raw['unit_price']),
                stock=int(raw['stock']),
                quantity=int(raw['quantity']),
            )
            for raw in data.get('lines', [])
        ]
        return cls(
            lines=lines,
            discount=DiscountSpec(
                _parse_discount_type(data.get('discount_type', DiscountType.NONE)),
                Decimal(data.get('discount_value', '0')),
            ),
            customer_name=data.get('customer_name', ''),
            customer_phone=data.get('customer_phone', ''),
            notes=data.get('notes', ''),
        )
