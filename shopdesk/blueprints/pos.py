"""Point-of-sale blueprint: session cart and checkout."""
from flask import Blueprint, request, session, g, jsonify, current_app, Response
from typing import Optional, Tuple
from sqlalchemy.exc import SQLAlchemyError

from shopdesk.database import get_session
from shopdesk.exceptions import StockConflictError, ValidationError
from shopdesk.middleware import require_login
from shopdesk.services.cart import Cart
from shopdesk.services import catalog_service
from shopdesk.services.catalog_service import CatalogItem, get_catalog
from shopdesk.services.pricing import calculate_totals
from shopdesk.services.sales_service import complete_sale

pos_bp = Blueprint('pos', __name__, url_prefix='/pos')

CART_KEY = 'cart'


def get_cart() -> Cart:
    """Cart of the logged-in operator, rebuilt from the session."""
    return Cart.from_dict(session.get(CART_KEY))


def save_cart(cart: Cart) -> None:
    session[CART_KEY] = cart.to_dict()
    session.modified = True


def _payload() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def _product_id(payload: dict) -> int:
    if not payload.get('product_id'):
        raise ValidationError('Falta ID de producto')
    try:
        return int(payload['product_id'])
    except (ValueError, TypeError):
        raise ValidationError('ID de producto inválido')


def _resolve_item(product_id: int) -> CatalogItem:
    """
    Look the product up in the snapshot, reloading it once on a miss.

    The snapshot holds at most CATALOG_REFRESH_LIMIT rows, so a product still
    missing after the reload is read on its own (NotFoundError if absent).
    """
    catalog = get_catalog()
    item: Optional[CatalogItem] = catalog.get(product_id)
    if item is None:
        db_session = get_session()
        catalog.refresh(db_session)
        item = catalog.get(product_id)
        if item is None:
            item = CatalogItem.from_product(catalog_service.get_product(db_session, product_id))
    return item


def _cart_response(cart: Cart, status_code: int = 200) -> Tuple[Response, int]:
    totals = calculate_totals(cart)
    body = cart.to_dict()
    body.update({
        'status': 'ok',
        'item_count': cart.item_count,
        'subtotal': str(totals['subtotal']),
        'discount_amount': str(totals['discount_amount']),
        'total': str(totals['total']),
    })
    return jsonify(body), status_code


@pos_bp.route('/cart', methods=['GET'])
@require_login
def cart_view():
    return _cart_response(get_cart())


@pos_bp.route('/cart/add', methods=['POST'])
@require_login
def cart_add():
    payload = _payload()
    product_id = _product_id(payload)
    item = _resolve_item(product_id)

    cart = get_cart()
    cart.add_item(item, payload.get('qty', 1))
    save_cart(cart)

    current_app.logger.info(f"Cart add: product {product_id} by operator {g.user_id}")
    return _cart_response(cart)


@pos_bp.route('/cart/update', methods=['POST'])
@require_login
def cart_update():
    payload = _payload()
    product_id = _product_id(payload)
    if 'qty' not in payload:
        raise ValidationError('Falta la cantidad')

    cart = get_cart()
    cart.set_quantity(product_id, payload['qty'])
    save_cart(cart)
    return _cart_response(cart)


@pos_bp.route('/cart/remove', methods=['POST'])
@require_login
def cart_remove():
    product_id = _product_id(_payload())
    cart = get_cart()
    cart.remove_item(product_id)
    save_cart(cart)
    return _cart_response(cart)


@pos_bp.route('/cart/clear', methods=['POST'])
@require_login
def cart_clear():
    cart = get_cart()
    cart.clear()
    save_cart(cart)
    return _cart_response(cart)


@pos_bp.route('/cart/discount', methods=['POST'])
@require_login
def cart_discount():
    payload = _payload()
    cart = get_cart()
    cart.set_discount(payload.get('discount_type', 'none'), payload.get('discount_value', 0))
    save_cart(cart)
    return _cart_response(cart)


@pos_bp.route('/cart/customer', methods=['POST'])
@require_login
def cart_customer():
    payload = _payload()
    cart = get_cart()
    cart.set_customer_info(payload.get('customer_name', ''), payload.get('customer_phone', ''))
    save_cart(cart)
    return _cart_response(cart)


@pos_bp.route('/cart/notes', methods=['POST'])
@require_login
def cart_notes():
    cart = get_cart()
    cart.set_notes(_payload().get('notes', ''))
    save_cart(cart)
    return _cart_response(cart)


@pos_bp.route('/checkout', methods=['POST'])
@require_login
def checkout():
    """Complete the sale for the session cart."""
    payload = _payload()
    cart = get_cart()
    catalog = get_catalog()
    db_session = get_session()

    try:
        sale = complete_sale(
            cart,
            db_session,
            operator=g.user,
            payment_method=payload.get('payment_method', 'cash'),
            payment_details=payload.get('payment_details'),
            catalog=catalog
        )
    except StockConflictError:
        # Show the operator the stock that is actually left
        try:
            catalog.refresh(db_session)
            cart.refresh_stock(catalog)
            save_cart(cart)
        except SQLAlchemyError as refresh_error:
            db_session.rollback()
            current_app.logger.warning(f"Could not refresh cart stock after conflict: {refresh_error}")
        raise

    save_cart(cart)
    return jsonify({'status': 'ok', 'sale': sale.to_dict()}), 201
