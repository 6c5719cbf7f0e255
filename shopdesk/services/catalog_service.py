"""
Catalog service - product snapshot cache and product maintenance.

The CatalogCache holds a read-only snapshot of sellable items. Every refresh
is one bulk read that replaces the snapshot wholesale; concurrent refreshes
are not coordinated and the last one to finish wins.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from flask import Flask, current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from shopdesk.exceptions import NotFoundError, PersistenceError, ValidationError
from shopdesk.models import (
    Product, ProductCategory, ProductStatus,
    InventoryMovement, MovementType, MovementReferenceType,
)
from shopdesk.services.pricing import money
from shopdesk.blueprints.metrics import catalog_items

logger = logging.getLogger(__name__)

ALL = 'all'
STOCK_STATUSES = ('in_stock', 'low_stock', 'out_of_stock')


@dataclass(frozen=True)
class CatalogItem:
    """Detached snapshot of one product row."""
    id: int
    name: str
    category: ProductCategory
    subcategory: Optional[str]
    brand: str
    model: Optional[str]
    sku: str
    barcode: Optional[str]
    price: Decimal
    cost: Decimal
    stock: int
    min_stock: int
    status: ProductStatus
    image_url: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_product(cls, product: Product) -> 'CatalogItem':
        return cls(
            id=product.id,
            name=product.name,
            category=product.category,
            subcategory=product.subcategory,
            brand=product.brand or '',
            model=product.model,
            sku=product.sku,
            barcode=product.barcode,
            price=money(product.price),
            cost=money(product.cost or 0),
            stock=product.stock,
            min_stock=product.min_stock,
            status=product.status,
            image_url=product.image_url,
            description=product.description,
        )

    @property
    def is_low_stock(self) -> bool:
        return 0 < self.stock <= self.min_stock

    @property
    def is_out_of_stock(self) -> bool:
        return self.stock <= 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'category': self.category.value,
            'subcategory': self.subcategory,
            'brand': self.brand,
            'model': self.model,
            'sku': self.sku,
            'barcode': self.barcode,
            'price': str(self.price),
            'cost': str(self.cost),
            'stock': self.stock,
            'min_stock': self.min_stock,
            'status': self.status.value,
            'image_url': self.image_url,
            'description': self.description,
            'low_stock': self.is_low_stock,
        }


@dataclass
class CatalogFilters:
    """Catalog filters; the value 'all' (or None) disables a filter."""
    search: str = ''
    category: str = ALL
    brand: str = ALL
    status: str = ALL
    stock_status: str = ALL
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None

    @classmethod
    def from_args(cls, args) -> 'CatalogFilters':
        """Build filters from a request.args-like mapping."""
        def price(name):
            raw = args.get(name)
            if raw in (None, ''):
                return None
            return money(raw)

        filters = cls(
            search=(args.get('search') or '').strip(),
            category=args.get('category') or ALL,
            brand=args.get('brand') or ALL,
            status=args.get('status') or ALL,
            stock_status=args.get('stock_status') or ALL,
            min_price=price('min_price'),
            max_price=price('max_price'),
        )
        filters.validate()
        return filters

    def validate(self) -> None:
        if self.category != ALL and self.category not in {c.value for c in ProductCategory}:
            raise ValidationError(f'Categoría inválida: {self.category}')
        if self.status != ALL and self.status not in {s.value for s in ProductStatus}:
            raise ValidationError(f'Estado inválido: {self.status}')
        if self.stock_status != ALL and self.stock_status not in STOCK_STATUSES:
            raise ValidationError(f'Filtro de stock inválido: {self.stock_status}')


class CatalogCache:
    """Process-local snapshot of the catalog."""

    def __init__(self, limit: int = 500):
        self.limit = limit
        self._items: List[CatalogItem] = []
        self._by_id: Dict[int, CatalogItem] = {}
        self.loaded_at: Optional[datetime] = None

    def init_app(self, app: Flask) -> None:
        self.limit = app.config.get('CATALOG_REFRESH_LIMIT', self.limit)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self, session, filters: Optional[CatalogFilters] = None) -> List[CatalogItem]:
        """Bulk-read products (server-side filtered) and replace the snapshot."""
        query = session.query(Product)

        if filters:
            if filters.category and filters.category != ALL:
                query = query.filter(Product.category == ProductCategory(filters.category))
            if filters.status and filters.status != ALL:
                query = query.filter(Product.status == ProductStatus(filters.status))
            if filters.brand and filters.brand != ALL:
                query = query.filter(Product.brand == filters.brand)
            if filters.min_price is not None:
                query = query.filter(Product.price >= filters.min_price)
            if filters.max_price is not None:
                query = query.filter(Product.price <= filters.max_price)

        products = query.order_by(Product.created_at.desc(), Product.id.desc()).limit(self.limit).all()
        items = [CatalogItem.from_product(p) for p in products]

        # Wholesale replacement; a slower concurrent refresh may overwrite this one
        self._items = items
        self._by_id = {item.id: item for item in items}
        self.loaded_at = datetime.now()
        catalog_items.set(len(items))

        logger.info(f"[CATALOG] Refreshed snapshot: {len(items)} items")
        return items

    # ------------------------------------------------------------------
    # Queries over the snapshot
    # ------------------------------------------------------------------

    @property
    def items(self) -> List[CatalogItem]:
        return list(self._items)

    @property
    def is_loaded(self) -> bool:
        return self.loaded_at is not None

    def get(self, item_id: int) -> Optional[CatalogItem]:
        return self._by_id.get(item_id)

    def filtered(self, filters: CatalogFilters) -> List[CatalogItem]:
        """Apply search and stock-status filters on top of the snapshot."""
        items = self._items
        if filters.search:
            needle = filters.search.lower()
            items = [
                i for i in items
                if needle in i.name.lower()
                or needle in i.sku.lower()
                or needle in (i.brand or '').lower()
                or needle in (i.model or '').lower()
                or (i.barcode and needle == i.barcode.lower())
            ]
        if filters.stock_status == 'in_stock':
            items = [i for i in items if i.stock > i.min_stock]
        elif filters.stock_status == 'low_stock':
            items = [i for i in items if i.is_low_stock]
        elif filters.stock_status == 'out_of_stock':
            items = [i for i in items if i.is_out_of_stock]
        return list(items)

    def low_stock(self) -> List[CatalogItem]:
        return [i for i in self._items if i.is_low_stock and i.status == ProductStatus.ACTIVE]

    def out_of_stock(self) -> List[CatalogItem]:
        return [i for i in self._items if i.is_out_of_stock and i.status == ProductStatus.ACTIVE]

    def brands(self) -> List[str]:
        return sorted({i.brand for i in self._items if i.brand})

    def categories(self) -> List[ProductCategory]:
        return sorted({i.category for i in self._items}, key=lambda c: c.value)


# =====================================================
# PRODUCT MAINTENANCE
# =====================================================

PRODUCT_FIELDS = (
    'name', 'category', 'subcategory', 'brand', 'model', 'sku', 'barcode',
    'price', 'cost', 'min_stock', 'status', 'image_url', 'description',
)
REQUIRED_TEXT_FIELDS = ('name', 'sku', 'brand')


def get_product(session, product_id: int) -> Product:
    product = session.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError('Producto no encontrado')
    return product


def _apply_fields(product: Product, data: Dict[str, Any]) -> None:
    for name in PRODUCT_FIELDS:
        if name not in data:
            continue
        value = data[name]
        if name == 'category':
            value = ProductCategory(value)
        elif name == 'status':
            value = ProductStatus(value)
        elif name in ('price', 'cost'):
            value = money(value)
        elif isinstance(value, str):
            value = value.strip()
            if not value and name not in REQUIRED_TEXT_FIELDS:
                value = None
        setattr(product, name, value)


def _ensure_unique_sku(session, sku: str, exclude_id: Optional[int] = None) -> None:
    query = session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ValidationError(f'Ya existe un producto con el SKU {sku}')


def create_product(session, data: Dict[str, Any], operator=None, catalog: Optional[CatalogCache] = None) -> Product:
    """
    Create a product. An initial stock is booked as an adjustment movement
    so the ledger explains every unit on hand.
    """
    _ensure_unique_sku(session, data['sku'])

    initial_stock = int(data.get('stock') or 0)
    if initial_stock < 0:
        raise ValidationError('El stock inicial no puede ser negativo')

    product = Product(stock=initial_stock, version=1)
    if 'min_stock' not in data or data['min_stock'] is None:
        data = dict(data, min_stock=current_app.config.get('LOW_STOCK_THRESHOLD', 5))
    _apply_fields(product, data)

    try:
        session.add(product)
        session.flush()
        if initial_stock:
            session.add(InventoryMovement(
                product_id=product.id,
                movement_type=MovementType.ENTRY,
                quantity=initial_stock,
                previous_stock=0,
                new_stock=initial_stock,
                unit_cost=product.cost,
                reference_type=MovementReferenceType.ADJUSTMENT,
                notes='Stock inicial',
                created_by=operator.display_name if operator else 'Sistema',
            ))
        session.commit()
    except IntegrityError as e:
        session.rollback()
        logger.warning(f"Integrity error creating product {data.get('sku')}: {e}")
        raise ValidationError(f"Ya existe un producto con el SKU {data.get('sku')}")
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error creating product: {e}")
        raise PersistenceError('Error al agregar producto')

    logger.info(f"Product created: {product.id} ({product.sku})")
    _refresh_quietly(catalog, session)
    return product


def update_product(session, product_id: int, data: Dict[str, Any], catalog: Optional[CatalogCache] = None) -> Product:
    """Update descriptive and pricing fields; stock only changes through movements."""
    product = get_product(session, product_id)
    if 'sku' in data and data['sku'] != product.sku:
        _ensure_unique_sku(session, data['sku'], exclude_id=product.id)

    _apply_fields(product, data)
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        logger.warning(f"Integrity error updating product {product_id}: {e}")
        raise ValidationError('Los datos del producto entran en conflicto con otro producto')
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error updating product {product_id}: {e}")
        raise PersistenceError('Error al actualizar producto')

    _refresh_quietly(catalog, session)
    return product


def delete_product(session, product_id: int, catalog: Optional[CatalogCache] = None) -> None:
    product = get_product(session, product_id)
    try:
        session.delete(product)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error deleting product {product_id}: {e}")
        raise PersistenceError('Error al eliminar producto')

    logger.info(f"Product deleted: {product_id}")
    _refresh_quietly(catalog, session)


def _refresh_quietly(catalog: Optional[CatalogCache], session) -> None:
    """Refresh after a write; a failed refresh only leaves the snapshot stale."""
    if catalog is None:
        return
    try:
        catalog.refresh(session)
    except SQLAlchemyError as e:
        session.rollback()
        logger.warning(f"[CATALOG] Refresh failed, snapshot left stale: {e}")


# =====================================================
# APP SINGLETON
# =====================================================

def init_catalog(app: Flask) -> None:
    """Attach a catalog cache to the app."""
    catalog = CatalogCache()
    catalog.init_app(app)
    app.extensions['catalog'] = catalog


def get_catalog() -> CatalogCache:
    """Get the app catalog cache."""
    catalog = current_app.extensions.get('catalog')
    if catalog is None:
        raise RuntimeError("Catalog not initialized.")
    return catalog
