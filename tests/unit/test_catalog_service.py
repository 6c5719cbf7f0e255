"""
Unit tests for the catalog cache and product maintenance.
"""

import pytest
from decimal import Decimal

from conftest import make_product
from shopdesk.exceptions import NotFoundError, ValidationError
from shopdesk.models import (
    InventoryMovement, MovementType, Product, ProductCategory, ProductStatus,
)
from shopdesk.services import catalog_service
from shopdesk.services.catalog_service import CatalogCache, CatalogFilters


class TestCatalogCache:
    """Tests for the catalog snapshot."""

    def test_refresh_loads_snapshot(self, session, phone, case):
        catalog = CatalogCache()
        assert not catalog.is_loaded

        items = catalog.refresh(session)

        assert catalog.is_loaded
        assert {item.id for item in items} == {phone.id, case.id}
        assert catalog.get(phone.id).price == Decimal('3500.00')

    def test_refresh_replaces_snapshot_wholesale(self, session, phone, case):
        catalog = CatalogCache()
        catalog.refresh(session)

        session.delete(case)
        session.commit()
        catalog.refresh(session)

        assert catalog.get(phone.id) is not None
        assert len(catalog.items) == 1

    def test_snapshot_is_detached_from_rows(self, session, phone):
        catalog = CatalogCache()
        catalog.refresh(session)

        phone.stock = 0
        session.commit()

        assert catalog.get(phone.id).stock == 3

    def test_refresh_limit(self, session):
        for i in range(5):
            make_product(session, sku=f'LIM-{i}')
        catalog = CatalogCache(limit=3)

        assert len(catalog.refresh(session)) == 3

    def test_server_side_filters(self, session, phone, case):
        catalog = CatalogCache()

        items = catalog.refresh(session, CatalogFilters(category='device'))
        assert [item.id for item in items] == [phone.id]

        items = catalog.refresh(session, CatalogFilters(max_price=Decimal('500')))
        assert [item.id for item in items] == [case.id]

        items = catalog.refresh(session, CatalogFilters(brand='Samsung'))
        assert [item.id for item in items] == [phone.id]

    def test_search_filter(self, catalog, phone):
        assert [i.id for i in catalog.filtered(CatalogFilters(search='galaxy'))] == [phone.id]
        assert [i.id for i in catalog.filtered(CatalogFilters(search='sam-a15'))] == [phone.id]
        assert [i.id for i in catalog.filtered(CatalogFilters(search='7501234567890'))] == [phone.id]
        assert catalog.filtered(CatalogFilters(search='7501234')) == []

    def test_stock_alerts(self, session):
        low = make_product(session, sku='LOW', stock=2, min_stock=2)
        out = make_product(session, sku='OUT', stock=0, min_stock=2)
        make_product(session, sku='OK', stock=20, min_stock=2)
        make_product(session, sku='OLD', stock=0, status=ProductStatus.DISCONTINUED)
        catalog = CatalogCache()
        catalog.refresh(session)

        assert [i.id for i in catalog.low_stock()] == [low.id]
        assert [i.id for i in catalog.out_of_stock()] == [out.id]
        assert [i.sku for i in catalog.filtered(CatalogFilters(stock_status='in_stock'))] == ['OK']

    def test_brands_and_categories(self, catalog):
        assert catalog.brands() == ['Genérica', 'Samsung']
        assert catalog.categories() == [ProductCategory.ACCESSORY, ProductCategory.DEVICE]

    def test_invalid_filter_values(self):
        with pytest.raises(ValidationError):
            CatalogFilters.from_args({'category': 'food'})
        with pytest.raises(ValidationError):
            CatalogFilters.from_args({'stock_status': 'plenty'})

    def test_filters_from_args(self):
        filters = CatalogFilters.from_args({'search': ' funda ', 'min_price': '10', 'max_price': ''})
        assert filters.search == 'funda'
        assert filters.min_price == Decimal('10.00')
        assert filters.max_price is None
        assert filters.category == 'all'


class TestProductMaintenance:
    """Tests for product create/update/delete."""

    def product_data(self, **overrides):
        data = {
            'name': 'Cargador 20W',
            'category': 'accessory',
            'brand': 'Apple',
            'sku': 'APL-20W',
            'price': Decimal('499.00'),
            'cost': Decimal('250.00'),
            'stock': 0,
        }
        data.update(overrides)
        return data

    def test_create_product_defaults(self, app, session):
        product = catalog_service.create_product(session, self.product_data())

        assert product.id is not None
        assert product.status == ProductStatus.ACTIVE
        assert product.min_stock == app.config['LOW_STOCK_THRESHOLD']
        assert product.version == 1
        assert session.query(InventoryMovement).count() == 0

    def test_initial_stock_is_booked_in_ledger(self, session, operator):
        product = catalog_service.create_product(session, self.product_data(stock=12), operator=operator)

        movement = session.query(InventoryMovement).filter_by(product_id=product.id).one()
        assert product.stock == 12
        assert movement.movement_type == MovementType.ENTRY
        assert movement.previous_stock == 0
        assert movement.new_stock == 12
        assert movement.created_by == operator.display_name

    def test_duplicate_sku_is_rejected(self, session, case):
        with pytest.raises(ValidationError):
            catalog_service.create_product(session, self.product_data(sku=case.sku))

    def test_negative_initial_stock_is_rejected(self, session):
        with pytest.raises(ValidationError):
            catalog_service.create_product(session, self.product_data(stock=-1))

    def test_create_refreshes_catalog(self, session):
        catalog = CatalogCache()
        product = catalog_service.create_product(session, self.product_data(), catalog=catalog)
        assert catalog.get(product.id) is not None

    def test_update_product(self, session, case):
        catalog = CatalogCache()
        catalog_service.update_product(
            session, case.id, {'price': '219.9', 'description': '  ', 'status': 'inactive'}, catalog=catalog
        )

        assert case.price == Decimal('219.90')
        assert case.description is None
        assert case.status == ProductStatus.INACTIVE
        assert catalog.get(case.id).price == Decimal('219.90')

    def test_update_to_taken_sku(self, session, phone, case):
        with pytest.raises(ValidationError):
            catalog_service.update_product(session, case.id, {'sku': phone.sku})

    def test_delete_product(self, session, case):
        case_id = case.id
        catalog_service.delete_product(session, case_id)
        assert session.get(Product, case_id) is None

    def test_missing_product(self, session):
        with pytest.raises(NotFoundError):
            catalog_service.get_product(session, 9999)
