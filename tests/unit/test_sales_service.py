"""
Unit tests for checkout and sales history.
"""

import pytest
import re
from datetime import datetime, date
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError

from shopdesk.exceptions import (
    EmptyCartError, NotAuthenticatedError, NotFoundError,
    PersistenceError, StockConflictError, ValidationError,
)
from shopdesk.models import (
    InventoryMovement, MovementReferenceType, MovementType,
    PaymentMethod, Product, Sale, DiscountType,
)
from shopdesk.services import sales_service
from shopdesk.services.cart import Cart
from shopdesk.services.sales_service import complete_sale, generate_sale_number


@pytest.fixture(scope='function')
def cart(catalog, phone, case):
    """Cart with one phone and two cases (3500.00 + 399.80)."""
    cart = Cart()
    cart.add_item(catalog.get(phone.id), 1)
    cart.add_item(catalog.get(case.id), 2)
    return cart


class TestSaleNumber:
    """Tests for sale number generation."""

    def test_format(self):
        number = generate_sale_number('V', datetime(2026, 3, 7, 10, 30))
        assert re.match(r'^V260307-\d{4}$', number)

    def test_collision_draws_again(self, session, operator, monkeypatch):
        session.add(Sale(
            sale_number='V260307-0001', items='[]', subtotal=1, total=1,
            payment_method=PaymentMethod.CASH, cashier_name='x', sale_date=datetime.now(),
        ))
        session.commit()
        numbers = iter(['V260307-0001', 'V260307-0002'])
        monkeypatch.setattr(sales_service, 'generate_sale_number', lambda prefix: next(numbers))

        assert sales_service._next_sale_number(session) == 'V260307-0002'

    def test_gives_up_after_max_attempts(self, session, monkeypatch):
        session.add(Sale(
            sale_number='V260307-0001', items='[]', subtotal=1, total=1,
            payment_method=PaymentMethod.CASH, cashier_name='x', sale_date=datetime.now(),
        ))
        session.commit()
        monkeypatch.setattr(sales_service, 'generate_sale_number', lambda prefix: 'V260307-0001')

        with pytest.raises(PersistenceError):
            sales_service._next_sale_number(session)


class TestCompleteSale:
    """Tests for the checkout orchestrator."""

    def test_successful_checkout(self, session, operator, cart, phone, case, catalog):
        sale = complete_sale(cart, session, operator, 'cash', catalog=catalog)

        assert sale.id is not None
        assert sale.subtotal == Decimal('3899.80')
        assert sale.total == Decimal('3899.80')
        assert sale.payment_method == PaymentMethod.CASH
        assert sale.cashier_id == operator.id
        assert sale.cashier_name == 'Caja Uno'
        assert [line['quantity'] for line in sale.item_list] == [1, 2]

        assert session.get(Product, phone.id).stock == 2
        assert session.get(Product, case.id).stock == 8
        assert catalog.get(phone.id).stock == 2

    def test_cart_is_cleared_after_checkout(self, session, operator, cart):
        cart.set_discount('fixed', 100)
        cart.set_customer_info('Juan', '555')
        cart.set_notes('Regalo')

        complete_sale(cart, session, operator, 'card')

        assert cart.is_empty()
        assert cart.discount.type == DiscountType.NONE
        assert cart.customer_name == ''
        assert cart.notes == ''

    def test_movements_recorded_per_line(self, session, operator, cart, phone):
        sale = complete_sale(cart, session, operator, 'cash')

        movements = session.query(InventoryMovement).filter_by(reference_id=sale.id).all()
        assert len(movements) == 2
        assert all(m.movement_type == MovementType.EXIT for m in movements)
        assert all(m.reference_type == MovementReferenceType.SALE for m in movements)

        phone_movement = next(m for m in movements if m.product_id == phone.id)
        assert phone_movement.previous_stock == 3
        assert phone_movement.new_stock == 2

    def test_stock_version_bumped(self, session, operator, cart, phone):
        complete_sale(cart, session, operator, 'cash')
        assert session.get(Product, phone.id).version == 2

    def test_discount_applied(self, session, operator, cart):
        cart.set_discount('percentage', 10)
        sale = complete_sale(cart, session, operator, 'cash')

        assert sale.discount_type == DiscountType.PERCENTAGE
        assert sale.discount_amount == Decimal('389.98')
        assert sale.total == Decimal('3509.82')

    def test_empty_cart_makes_no_writes(self, session, operator):
        with pytest.raises(EmptyCartError):
            complete_sale(Cart(), session, operator, 'cash')

        assert session.query(Sale).count() == 0
        assert session.query(InventoryMovement).count() == 0

    def test_requires_operator(self, session, cart):
        with pytest.raises(NotAuthenticatedError):
            complete_sale(cart, session, None, 'cash')
        assert session.query(Sale).count() == 0

    def test_percentage_above_hundred_is_rejected(self, session, operator, cart):
        cart.set_discount('percentage', 150)

        with pytest.raises(ValidationError):
            complete_sale(cart, session, operator, 'cash')

        assert session.query(Sale).count() == 0
        assert not cart.is_empty()

    def test_invalid_payment_method(self, session, operator, cart):
        with pytest.raises(ValidationError):
            complete_sale(cart, session, operator, 'bitcoin')

    def test_stock_conflict_rolls_back_everything(self, session, operator, cart, phone, case):
        """Another checkout sold the last phones after they were added to this cart."""
        phone.stock = 0
        session.commit()

        with pytest.raises(StockConflictError) as exc_info:
            complete_sale(cart, session, operator, 'cash')

        assert exc_info.value.product_id == phone.id
        assert exc_info.value.requested == 1
        assert exc_info.value.available == 0
        assert exc_info.value.status_code == 409

        assert session.query(Sale).count() == 0
        assert session.query(InventoryMovement).count() == 0
        assert session.get(Product, case.id).stock == 10
        assert not cart.is_empty()

    def test_conflict_on_later_line_undoes_earlier_decrements(self, session, operator, cart, phone, case):
        case.stock = 1
        session.commit()

        with pytest.raises(StockConflictError):
            complete_sale(cart, session, operator, 'cash')

        assert session.get(Product, phone.id).stock == 3
        assert session.query(Sale).count() == 0


class TestPayments:
    """Tests for payment splits."""

    def test_mixed_payment(self, session, operator, cart):
        details = [
            {'method': 'cash', 'amount': '899.80'},
            {'method': 'card', 'amount': 3000},
        ]
        sale = complete_sale(cart, session, operator, 'mixed', payment_details=details)

        assert sale.payment_method == PaymentMethod.MIXED
        assert sale.payment_list == [
            {'method': 'cash', 'amount': '899.80'},
            {'method': 'card', 'amount': '3000.00'},
        ]

    def test_mixed_requires_details(self, session, operator, cart):
        with pytest.raises(ValidationError):
            complete_sale(cart, session, operator, 'mixed')

    def test_split_must_match_total(self, session, operator, cart):
        details = [{'method': 'cash', 'amount': '100'}, {'method': 'card', 'amount': '100'}]
        with pytest.raises(ValidationError):
            complete_sale(cart, session, operator, 'mixed', payment_details=details)
        assert session.query(Sale).count() == 0

    def test_split_rejects_nested_mixed(self, session, operator, cart):
        details = [{'method': 'mixed', 'amount': '3899.80'}]
        with pytest.raises(ValidationError):
            complete_sale(cart, session, operator, 'mixed', payment_details=details)


class TestSalesHistory:
    """Tests for listing sales and the daily summary."""

    def test_list_and_lookup(self, session, operator, cart):
        sale = complete_sale(cart, session, operator, 'cash')

        assert [s.id for s in sales_service.list_sales(session)] == [sale.id]
        assert sales_service.get_sale(session, sale.id).sale_number == sale.sale_number
        assert sales_service.get_sale_by_number(session, sale.sale_number).id == sale.id

    def test_missing_sale(self, session):
        with pytest.raises(NotFoundError):
            sales_service.get_sale(session, 123)
        with pytest.raises(NotFoundError):
            sales_service.get_sale_by_number(session, 'V000000-0000')

    def test_daily_summary(self, session, operator, catalog, phone, case):
        first = Cart()
        first.add_item(catalog.get(case.id), 1)
        complete_sale(first, session, operator, 'cash')

        second = Cart()
        second.add_item(catalog.get(case.id), 1)
        second.add_item(catalog.get(phone.id), 1)
        complete_sale(second, session, operator, 'mixed', payment_details=[
            {'method': 'card', 'amount': '3500.00'},
            {'method': 'cash', 'amount': '199.90'},
        ])

        summary = sales_service.daily_summary(session, date.today())

        assert summary['sales_count'] == 2
        assert summary['total_amount'] == Decimal('3899.80')
        assert summary['by_method']['cash'] == Decimal('399.80')
        assert summary['by_method']['card'] == Decimal('3500.00')
        assert summary['by_method']['transfer'] == Decimal('0.00')
        assert summary['mixed_total'] == Decimal('3699.90')
        assert summary['average_ticket'] == Decimal('1949.90')

    def test_daily_summary_empty_day(self, session):
        summary = sales_service.daily_summary(session, date(2020, 1, 1))
        assert summary['sales_count'] == 0
        assert summary['average_ticket'] == Decimal('0.00')


class TestCheckoutFailures:
    """Tests for database failures around the sale write."""

    def test_failed_sale_write_aborts_checkout(self, session, operator, cart, phone, case, monkeypatch):
        """A sale row that cannot be inserted leaves stock, ledger and cart as they were."""
        session.add(Sale(
            sale_number='V260307-0001', items='[]', subtotal=1, total=1,
            payment_method=PaymentMethod.CASH, cashier_name='x', sale_date=datetime.now(),
        ))
        session.commit()
        phone_id, case_id = phone.id, case.id
        before = cart.to_dict()
        # Skips the availability check so the unique constraint rejects the insert
        monkeypatch.setattr(sales_service, '_next_sale_number', lambda session: 'V260307-0001')

        with pytest.raises(PersistenceError) as exc_info:
            complete_sale(cart, session, operator, 'cash')

        assert exc_info.value.status_code == 503
        assert session.query(Sale).count() == 1
        assert session.query(InventoryMovement).count() == 0
        assert session.get(Product, phone_id).stock == 3
        assert session.get(Product, case_id).stock == 10
        assert cart.to_dict() == before

    def test_failed_catalog_refresh_still_returns_sale(self, session, operator, cart, phone):
        class UnreachableCatalog:
            def refresh(self, session):
                raise SQLAlchemyError('catálogo no disponible')

        phone_id = phone.id

        sale = complete_sale(cart, session, operator, 'cash', catalog=UnreachableCatalog())

        assert sale.id is not None
        assert session.query(Sale).count() == 1
        assert session.get(Product, phone_id).stock == 2
        assert cart.is_empty()


class TestPaymentDetailShape:
    """Tests for malformed payment splits."""

    @pytest.mark.parametrize('details', [
        'efectivo',
        {'method': 'cash', 'amount': '3899.80'},
        ['cash', 'card'],
        [{'method': 'cash', 'amount': '3899.80'}, 5],
    ])
    def test_malformed_details_are_rejected(self, session, operator, cart, details):
        with pytest.raises(ValidationError):
            complete_sale(cart, session, operator, 'mixed', payment_details=details)
        assert session.query(Sale).count() == 0

    @pytest.mark.parametrize('amount', ['NaN', 'Infinity'])
    def test_non_finite_amount_is_rejected(self, session, operator, cart, amount):
        with pytest.raises(ValidationError):
            complete_sale(cart, session, operator, 'cash', payment_details=[{'method': 'cash', 'amount': amount}])
        assert not cart.is_empty()


class TestStoredDiscount:
    """The sale keeps the discount value its amount was computed from."""

    def test_fractional_percentage_reproduces_amount(self, session, operator, cart):
        cart.set_discount('percentage', '12.345')

        sale = complete_sale(cart, session, operator, 'cash')

        assert sale.discount_value == Decimal('12.35')
        assert sale.discount_amount == Decimal('481.63')
        assert sale.discount_amount == (sale.subtotal * sale.discount_value / 100).quantize(Decimal('0.01'))
        assert sale.total == Decimal('3418.17')
