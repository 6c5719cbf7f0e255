"""
Sales service - checkout and sales history.

Checkout writes the sale record, one conditional stock decrement per line and
one ledger movement per line inside a single database transaction. A line
whose stock no longer covers the requested quantity rolls everything back,
sale included, and surfaces StockConflictError; the cart is left untouched so
the operator can adjust and retry.
"""
import json
import logging
import secrets
import time
from datetime import datetime, date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from shopdesk.exceptions import (
    EmptyCartError, NotAuthenticatedError, NotFoundError,
    PersistenceError, StockConflictError, ValidationError,
)
from shopdesk.models import (
    Product, Sale, PaymentMethod,
    InventoryMovement, MovementType, MovementReferenceType,
)
from shopdesk.services.pricing import ZERO, calculate_totals, money, validate_discount
from shopdesk.blueprints.metrics import (
    checkout_duration_seconds, sales_completed_total, stock_conflicts_total,
)

logger = logging.getLogger(__name__)

SUMMARY_CACHE_MODULE = 'sales'


def _config(name: str, default):
    if has_app_context():
        return current_app.config.get(name, default)
    return default


def generate_sale_number(prefix: str = 'V', now: Optional[datetime] = None) -> str:
    """Human-readable sale number: prefix, YYMMDD and a 4-digit random suffix."""
    now = now or datetime.now()
    return f"{prefix}{now:%y%m%d}-{secrets.randbelow(10000):04d}"


def _next_sale_number(session) -> str:
    """
    Draw sale numbers until one is not taken yet.

    The unique constraint on sale.sale_number still guards the insert against
    a concurrent checkout drawing the same number.
    """
    prefix = _config('SALE_NUMBER_PREFIX', 'V')
    attempts = _config('SALE_NUMBER_MAX_ATTEMPTS', 5)
    for _ in range(attempts):
        candidate = generate_sale_number(prefix)
        taken = session.query(Sale.id).filter(Sale.sale_number == candidate).first()
        if not taken:
            return candidate
        logger.warning(f"Sale number collision on {candidate}, drawing again")
    raise PersistenceError('No se pudo generar un número de venta único')


def _parse_payment_method(method) -> PaymentMethod:
    if isinstance(method, PaymentMethod):
        return method
    try:
        return PaymentMethod(str(method).lower())
    except ValueError:
        raise ValidationError(f'Método de pago inválido: {method}')


def _normalize_payments(method: PaymentMethod, details: Optional[List[Dict[str, Any]]],
                        total: Decimal) -> Optional[List[Dict[str, str]]]:
    """Validate a payment split against the sale total."""
    if not details:
        if method == PaymentMethod.MIXED:
            raise ValidationError('Un pago mixto requiere el detalle de pagos')
        return None
    if not isinstance(details, list):
        raise ValidationError('Detalle de pagos inválido')

    normalized = []
    paid = ZERO
    for detail in details:
        if not isinstance(detail, dict):
            raise ValidationError('Detalle de pagos inválido')
        detail_method = _parse_payment_method(detail.get('method'))
        if detail_method == PaymentMethod.MIXED:
            raise ValidationError('Cada pago del detalle debe tener un método concreto')
        amount = money(detail.get('amount', 0))
        if amount <= 0:
            raise ValidationError('Cada pago debe ser mayor a 0')
        paid += amount
        normalized.append({'method': detail_method.value, 'amount': str(amount)})

    if paid != total:
        raise ValidationError(f'La suma de pagos (${paid}) no coincide con el total (${total})')
    return normalized


def _serialize_lines(lines: List[Dict[str, Any]]) -> str:
    return json.dumps([
        {
            'product_id': line['product_id'],
            'name': line['name'],
            'sku': line['sku'],
            'unit_price': str(line['unit_price']),
            'quantity': line['quantity'],
            'subtotal': str(line['subtotal']),
        }
        for line in lines
    ])


def _decrement_stock(session, sale: Sale, line, created_by: str) -> InventoryMovement:
    """Decrement only if the current stock covers the line; log the movement."""
    updated = session.query(Product).filter(
        Product.id == line.product_id,
        Product.stock >= line.quantity
    ).update(
        {Product.stock: Product.stock - line.quantity, Product.version: Product.version + 1},
        synchronize_session=False
    )

    if updated != 1:
        available = session.query(Product.stock).filter(Product.id == line.product_id).scalar()
        raise StockConflictError(line.product_id, line.name, line.quantity, available or 0)

    new_stock = session.query(Product.stock).filter(Product.id == line.product_id).scalar()
    movement = InventoryMovement(
        product_id=line.product_id,
        movement_type=MovementType.EXIT,
        quantity=line.quantity,
        previous_stock=new_stock + line.quantity,
        new_stock=new_stock,
        reference_type=MovementReferenceType.SALE,
        reference_id=sale.id,
        notes=f'Venta {sale.sale_number}',
        created_by=created_by,
    )
    session.add(movement)
    return movement


def complete_sale(cart, session, operator, payment_method,
                  payment_details: Optional[List[Dict[str, Any]]] = None,
                  catalog=None) -> Sale:
    """
    Turn the cart into a persisted sale plus stock decrements.

    Args:
        cart: Cart aggregate; cleared only after a successful commit
        session: Database session
        operator: Logged-in AppUser (None -> NotAuthenticatedError)
        payment_method: PaymentMethod or its string value
        payment_details: Optional split, list of {'method', 'amount'}
        catalog: Optional CatalogCache refreshed after the sale

    Returns:
        The persisted Sale
    """
    if cart is None or cart.is_empty():
        raise EmptyCartError()
    if operator is None:
        raise NotAuthenticatedError()

    method = _parse_payment_method(payment_method)
    validate_discount(cart.discount.type, cart.discount.value)
    totals = calculate_totals(cart)
    payments = _normalize_payments(method, payment_details, totals['total'])

    cashier_name = operator.display_name
    logger.info(
        f"Checkout started by {cashier_name}: {len(cart.lines)} lines, total {totals['total']}"
    )

    started = time.perf_counter()
    try:
        sale = Sale(
            sale_number=_next_sale_number(session),
            items=_serialize_lines(totals['lines']),
            subtotal=totals['subtotal'],
            discount_type=cart.discount.type,
            discount_value=cart.discount.value,
            discount_amount=totals['discount_amount'],
            total=totals['total'],
            payment_method=method,
            payment_details=json.dumps(payments) if payments else None,
            customer_name=cart.customer_name or None,
            customer_phone=cart.customer_phone or None,
            cashier_id=operator.id,
            cashier_name=cashier_name,
            sale_date=datetime.now(),
            notes=cart.notes or None,
        )
        session.add(sale)
        session.flush()

        for line in cart.lines:
            _decrement_stock(session, sale, line, cashier_name)

        session.commit()

    except StockConflictError as e:
        session.rollback()
        stock_conflicts_total.inc()
        checkout_duration_seconds.labels(outcome='conflict').observe(time.perf_counter() - started)
        logger.warning(f"Checkout aborted, stock conflict on product {e.product_id}: {e.message}")
        raise
    except PersistenceError:
        session.rollback()
        checkout_duration_seconds.labels(outcome='error').observe(time.perf_counter() - started)
        raise
    except SQLAlchemyError as e:
        session.rollback()
        checkout_duration_seconds.labels(outcome='error').observe(time.perf_counter() - started)
        logger.error(f"Checkout aborted, database error: {e}")
        raise PersistenceError('Error al registrar la venta. No se realizó ningún cargo.')

    checkout_duration_seconds.labels(outcome='completed').observe(time.perf_counter() - started)
    logger.info(f"Sale {sale.sale_number} completed (id={sale.id}, total={sale.total})")
    sales_completed_total.labels(payment_method=method.value).inc()

    cart.clear()

    if catalog is not None:
        try:
            catalog.refresh(session)
        except SQLAlchemyError as e:
            session.rollback()
            logger.warning(f"[CATALOG] Refresh after sale {sale.sale_number} failed: {e}")

    _invalidate_summary_cache()
    return sale


# =====================================================
# HISTORY
# =====================================================

def list_sales(session, limit: Optional[int] = None) -> List[Sale]:
    """Most recent sales first."""
    limit = limit or _config('SALES_HISTORY_LIMIT', 50)
    return session.query(Sale).order_by(Sale.sale_date.desc(), Sale.id.desc()).limit(limit).all()


def get_sale(session, sale_id: int) -> Sale:
    sale = session.query(Sale).filter(Sale.id == sale_id).first()
    if not sale:
        raise NotFoundError('Venta no encontrada')
    return sale


def get_sale_by_number(session, sale_number: str) -> Sale:
    sale = session.query(Sale).filter(Sale.sale_number == sale_number).first()
    if not sale:
        raise NotFoundError(f'Venta {sale_number} no encontrada')
    return sale


def _build_daily_summary(session, day: date) -> Dict[str, Any]:
    start = datetime.combine(day, datetime.min.time())
    end = start + timedelta(days=1)
    sales = session.query(Sale).filter(Sale.sale_date >= start, Sale.sale_date < end).all()

    by_method = {m.value: ZERO for m in PaymentMethod if m != PaymentMethod.MIXED}
    mixed_total = ZERO
    total_amount = ZERO
    discount_total = ZERO

    for sale in sales:
        total_amount += sale.total
        discount_total += sale.discount_amount
        if sale.payment_method == PaymentMethod.MIXED:
            mixed_total += sale.total
            for payment in sale.payment_list:
                by_method[payment['method']] += Decimal(payment['amount'])
        else:
            by_method[sale.payment_method.value] += sale.total

    count = len(sales)
    return {
        'date': day.isoformat(),
        'sales_count': count,
        'total_amount': money(total_amount),
        'discount_total': money(discount_total),
        'by_method': {k: money(v) for k, v in by_method.items()},
        'mixed_total': money(mixed_total),
        'average_ticket': money(total_amount / count) if count else ZERO,
    }


def daily_summary(session, day: Optional[date] = None) -> Dict[str, Any]:
    """Cash register closure figures for one day (cached)."""
    day = day or date.today()
    try:
        from shopdesk.services.cache_service import get_cache
        cache = get_cache()
    except RuntimeError:
        return _build_daily_summary(session, day)

    return cache.memoize(
        SUMMARY_CACHE_MODULE,
        f'summary:{day.isoformat()}',
        lambda: _build_daily_summary(session, day),
        ttl=_config('CACHE_SUMMARY_TTL', 120),
    )


def _invalidate_summary_cache() -> None:
    """Drop cached summaries; a cache outage only delays fresh figures."""
    try:
        from shopdesk.services.cache_service import get_cache
        get_cache().invalidate_module(SUMMARY_CACHE_MODULE)
    except RuntimeError as e:
        logger.debug(f"Summary cache not invalidated: {e}")
