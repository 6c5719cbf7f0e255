"""
Pricing engine for the point of sale.

Pure functions: they read a cart snapshot and never mutate it. Every currency
amount is a Decimal rounded half-up to cents at the line subtotal, the
discount amount and the totals.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, Union

from shopdesk.exceptions import ValidationError
from shopdesk.models import DiscountType

CENT = Decimal('0.01')
ZERO = Decimal('0.00')
HUNDRED = Decimal('100')

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    """Convert user or JSON input to a finite Decimal without float noise."""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationError(f'Importe inválido: {value!r}')
    # NaN and Infinity parse but cannot be compared or rounded
    if not result.is_finite():
        raise ValidationError(f'Importe inválido: {value!r}')
    return result


def money(value: Number) -> Decimal:
    """Round a currency amount to cents (half-up)."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_subtotal(unit_price: Number, quantity: int) -> Decimal:
    return money(to_decimal(unit_price) * quantity)


def calculate_discount(subtotal: Decimal, discount_type: DiscountType, discount_value: Number) -> Decimal:
    """
    Discount amount for a cart subtotal.

    A fixed discount never exceeds the subtotal. A percentage applies to the
    pre-discount subtotal and is clamped to [0, 100] so the total can never
    go negative; out-of-range specs are rejected by validate_discount before
    a sale is persisted.
    """
    value = to_decimal(discount_value)
    if discount_type == DiscountType.NONE or value <= 0 or subtotal <= 0:
        return ZERO

    if discount_type == DiscountType.PERCENTAGE:
        pct = min(value, HUNDRED)
        return money(subtotal * pct / HUNDRED)

    return money(min(value, subtotal))


def validate_discount(discount_type: DiscountType, discount_value: Number) -> None:
    """Reject a discount outside its declared range."""
    value = to_decimal(discount_value)
    if value < 0:
        raise ValidationError('El descuento no puede ser negativo')
    if discount_type == DiscountType.PERCENTAGE and value > HUNDRED:
        raise ValidationError('El descuento porcentual debe estar entre 0 y 100')


def calculate_totals(cart) -> Dict[str, Any]:
    """
    Derive subtotal, discount amount and total from a cart snapshot.

    Returns a dict with 'lines' (one dict per cart line), 'subtotal',
    'discount_amount' and 'total'.
    """
    lines = []
    subtotal = ZERO

    for line in cart.lines:
        amount = line_subtotal(line.unit_price, line.quantity)
        lines.append({
            'product_id': line.product_id,
            'name': line.name,
            'sku': line.sku,
            'unit_price': money(line.unit_price),
            'quantity': line.quantity,
            'subtotal': amount,
        })
        subtotal += amount

    subtotal = money(subtotal)
    discount_amount = calculate_discount(subtotal, cart.discount.type, cart.discount.value)

    return {
        'lines': lines,
        'subtotal': subtotal,
        'discount_amount': discount_amount,
        'total': money(subtotal - discount_amount),
    }
