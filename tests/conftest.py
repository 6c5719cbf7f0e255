import pytest
from decimal import Decimal
import uuid

from shopdesk import create_app
from shopdesk.database import create_all, drop_all, get_session
from shopdesk.models import AppUser, Product, ProductCategory, ProductStatus
from shopdesk.services.catalog_service import CatalogItem, get_catalog


@pytest.fixture(scope='function')
def app():
    """Create application instance for testing (fresh in-memory database)."""
    app = create_app('config.TestingConfig')
    with app.app_context():
        create_all()
        yield app
        get_session().remove()
        drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Create database session for testing."""
    session = get_session()
    yield session
    session.rollback()


def make_product(session, **overrides):
    """Insert a product row with sensible defaults."""
    data = dict(
        name='Funda genérica',
        category=ProductCategory.ACCESSORY,
        brand='Genérica',
        sku=f'SKU-{uuid.uuid4().hex[:8]}',
        price=Decimal('100.00'),
        cost=Decimal('60.00'),
        stock=10,
        min_stock=2,
        status=ProductStatus.ACTIVE,
    )
    data.update(overrides)
    product = Product(**data)
    session.add(product)
    session.commit()
    return product


def make_item(**overrides):
    """Build a catalog snapshot item without touching the database."""
    data = dict(
        id=1,
        name='Funda genérica',
        category=ProductCategory.ACCESSORY,
        subcategory=None,
        brand='Genérica',
        model=None,
        sku='SKU-001',
        barcode=None,
        price=Decimal('100.00'),
        cost=Decimal('60.00'),
        stock=10,
        min_stock=2,
        status=ProductStatus.ACTIVE,
    )
    data.update(overrides)
    return CatalogItem(**data)


@pytest.fixture(scope='function')
def operator(session):
    """Create a logged-in-capable operator."""
    user = AppUser(email='cajero@test.com', full_name='Caja Uno', active=True)
    user.set_password('password123')
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def phone(session):
    """Create an expensive device with little stock."""
    return make_product(
        session,
        name='Galaxy A15',
        category=ProductCategory.DEVICE,
        brand='Samsung',
        model='A15',
        sku='SAM-A15',
        barcode='7501234567890',
        price=Decimal('3500.00'),
        cost=Decimal('2800.00'),
        stock=3,
        min_stock=1,
    )


@pytest.fixture(scope='function')
def case(session):
    """Create a cheap accessory with plenty of stock."""
    return make_product(
        session,
        name='Funda silicón A15',
        sku='FUN-A15',
        price=Decimal('199.90'),
        cost=Decimal('80.00'),
        stock=10,
        min_stock=2,
    )


@pytest.fixture(scope='function')
def catalog(session, phone, case):
    """App catalog cache loaded with the fixture products."""
    catalog = get_catalog()
    catalog.refresh(session)
    return catalog


@pytest.fixture(scope='function')
def authenticated_client(client, operator):
    """Create a client with an operator session."""
    with client.session_transaction() as sess:
        sess['user_id'] = operator.id
    return client
