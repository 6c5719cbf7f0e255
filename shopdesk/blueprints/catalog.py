"""Catalog blueprint for products and stock movements."""
from flask import Blueprint, request, g, jsonify, Response
from typing import Union, Tuple
import logging

from shopdesk.database import get_session
from shopdesk.exceptions import ValidationError
from shopdesk.forms.product_forms import ProductForm
from shopdesk.middleware import require_login
from shopdesk.services import catalog_service, inventory_service
from shopdesk.services.catalog_service import CatalogFilters, CatalogItem, get_catalog

logger = logging.getLogger(__name__)

catalog_bp = Blueprint('catalog', __name__, url_prefix='/catalog')


def _int_arg(value, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{name} inválido')


def _validated_product_payload() -> dict:
    form = ProductForm()
    if not form.validate():
        raise ValidationError('Datos de producto inválidos', payload={'errors': form.errors})
    return form.to_data()


@catalog_bp.route('/products', methods=['GET'])
@require_login
def list_products() -> Response:
    """
    List products.

    category/status/brand/min_price/max_price are applied by the database
    during the refresh; search and stock_status filter the snapshot.
    """
    filters = CatalogFilters.from_args(request.args)
    catalog = get_catalog()
    catalog.refresh(get_session(), filters)
    items = catalog.filtered(filters)
    return jsonify({
        'status': 'ok',
        'count': len(items),
        'loaded_at': catalog.loaded_at.isoformat(),
        'brands': catalog.brands(),
        'products': [item.to_dict() for item in items],
    })


@catalog_bp.route('/products/<int:product_id>', methods=['GET'])
@require_login
def product_detail(product_id: int) -> Response:
    product = catalog_service.get_product(get_session(), product_id)
    return jsonify({'status': 'ok', 'product': CatalogItem.from_product(product).to_dict()})


@catalog_bp.route('/products', methods=['POST'])
@require_login
def create_product() -> Tuple[Response, int]:
    data = _validated_product_payload()
    product = catalog_service.create_product(get_session(), data, operator=g.user, catalog=get_catalog())
    return jsonify({'status': 'ok', 'product': CatalogItem.from_product(product).to_dict()}), 201


@catalog_bp.route('/products/<int:product_id>', methods=['PUT'])
@require_login
def update_product(product_id: int) -> Response:
    data = _validated_product_payload()
    # Stock changes go through /catalog/movements
    data.pop('stock', None)
    product = catalog_service.update_product(get_session(), product_id, data, catalog=get_catalog())
    return jsonify({'status': 'ok', 'product': CatalogItem.from_product(product).to_dict()})


@catalog_bp.route('/products/<int:product_id>', methods=['DELETE'])
@require_login
def delete_product(product_id: int) -> Response:
    catalog_service.delete_product(get_session(), product_id, catalog=get_catalog())
    return jsonify({'status': 'ok'})


@catalog_bp.route('/alerts', methods=['GET'])
@require_login
def stock_alerts() -> Response:
    """Active products at or under their reorder threshold."""
    catalog = get_catalog()
    catalog.refresh(get_session())
    return jsonify({
        'status': 'ok',
        'low_stock': [item.to_dict() for item in catalog.low_stock()],
        'out_of_stock': [item.to_dict() for item in catalog.out_of_stock()],
    })


@catalog_bp.route('/refresh', methods=['POST'])
@require_login
def refresh() -> Response:
    catalog = get_catalog()
    items = catalog.refresh(get_session())
    return jsonify({'status': 'ok', 'count': len(items), 'loaded_at': catalog.loaded_at.isoformat()})


@catalog_bp.route('/movements', methods=['GET'])
@require_login
def list_movements() -> Response:
    product_id = request.args.get('product_id', type=int)
    limit = request.args.get('limit', default=100, type=int)
    movements = inventory_service.list_movements(get_session(), product_id=product_id, limit=limit)
    return jsonify({'status': 'ok', 'movements': [m.to_dict() for m in movements]})


@catalog_bp.route('/movements', methods=['POST'])
@require_login
def create_movement() -> Union[Response, Tuple[Response, int]]:
    payload = request.get_json(silent=True) or {}
    if not payload.get('product_id') or not payload.get('movement_type'):
        raise ValidationError('product_id y movement_type son requeridos')

    movement = inventory_service.record_movement(
        get_session(),
        product_id=_int_arg(payload['product_id'], 'product_id'),
        movement_type=payload['movement_type'],
        quantity=payload.get('quantity', 0),
        operator=g.user,
        unit_cost=payload.get('unit_cost'),
        reference_type=payload.get('reference_type'),
        reference_id=payload.get('reference_id'),
        notes=payload.get('notes'),
        catalog=get_catalog()
    )
    logger.info(f"Movement {movement.movement_type.value} x{movement.quantity} on product {movement.product_id} by operator {g.user_id}")
    return jsonify({'status': 'ok', 'movement': movement.to_dict()}), 201
