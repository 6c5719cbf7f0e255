"""Sale model (immutable record of a completed checkout)."""
import json
from sqlalchemy import Column, String, Numeric, DateTime, Enum, Text, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from shopdesk.database import Base, IdType
import enum


class DiscountType(str, enum.Enum):
    """Sale-level discount kinds."""
    NONE = 'none'
    PERCENTAGE = 'percentage'
    FIXED = 'fixed'


class PaymentMethod(str, enum.Enum):
    """Accepted payment methods."""
    CASH = 'cash'
    CARD = 'card'
    TRANSFER = 'transfer'
    MIXED = 'mixed'


class Sale(Base):
    """
    Sale record.

    Written once by the checkout service together with the stock decrements
    of its lines; there is no update path.
    """

    __tablename__ = 'sale'

    id = Column(IdType, primary_key=True, autoincrement=True)
    sale_number = Column(String(32), nullable=False, unique=True, index=True)

    # JSON snapshot of the cart lines at checkout time
    items = Column(Text, nullable=False)

    subtotal = Column(Numeric(10, 2), nullable=False)
    discount_type = Column(Enum(DiscountType, name='discount_type'), nullable=False,
                           default=DiscountType.NONE)
    discount_value = Column(Numeric(10, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False)

    payment_method = Column(Enum(PaymentMethod, name='payment_method'), nullable=False)
    # JSON list of {"method": ..., "amount": ...} for split payments
    payment_details = Column(Text, nullable=True)

    customer_name = Column(String(200), nullable=True)
    customer_phone = Column(String(50), nullable=True)

    cashier_id = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    cashier_name = Column(String(255), nullable=False)

    sale_date = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    cashier = relationship('AppUser')

    @property
    def item_list(self):
        """Decoded line snapshot."""
        return json.loads(self.items) if self.items else []

    @property
    def payment_list(self):
        """Decoded payment split (empty for single-method sales)."""
        return json.loads(self.payment_details) if self.payment_details else []

    def to_dict(self):
        return {
            'id': self.id,
            'sale_number': self.sale_number,
            'items': self.item_list,
            'subtotal': str(self.subtotal),
            'discount_type': self.discount_type.value,
            'discount_value': str(self.discount_value),
            'discount_amount': str(self.discount_amount),
            'total': str(self.total),
            'payment_method': self.payment_method.value,
            'payment_details': self.payment_list,
            'customer_name': self.customer_name,
            'customer_phone': self.customer_phone,
            'cashier_name': self.cashier_name,
            'sale_date': self.sale_date.isoformat() if self.sale_date else None,
            'notes': self.notes,
        }

    def __repr__(self):
        return f"<Sale(id={self.id}, sale_number='{self.sale_number}', total={self.total})>"
