"""Product model (sellable catalog item)."""
from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, Enum, Text, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from shopdesk.database import Base, IdType
import enum


class ProductCategory(str, enum.Enum):
    """Closed set of product categories."""
    DEVICE = 'device'
    ACCESSORY = 'accessory'
    PART = 'part'


class ProductStatus(str, enum.Enum):
    """Product lifecycle status."""
    ACTIVE = 'active'
    INACTIVE = 'inactive'
    DISCONTINUED = 'discontinued'


class Product(Base):
    """Product model."""

    __tablename__ = 'product'
    __table_args__ = (
        CheckConstraint('stock >= 0', name='ck_product_stock_non_negative'),
        CheckConstraint('min_stock >= 0', name='ck_product_min_stock_non_negative'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    category = Column(Enum(ProductCategory, name='product_category'), nullable=False)
    subcategory = Column(String(100), nullable=True)
    brand = Column(String(100), nullable=False, default='')
    model = Column(String(100), nullable=True)
    sku = Column(String(64), nullable=False, unique=True)
    barcode = Column(String(64), nullable=True, index=True)
    price = Column(Numeric(10, 2), nullable=False)
    cost = Column(Numeric(10, 2), nullable=False, default=0, server_default='0.00')
    stock = Column(Integer, nullable=False, default=0, server_default='0')
    min_stock = Column(Integer, nullable=False, default=0, server_default='0')
    status = Column(Enum(ProductStatus, name='product_status'), nullable=False,
                    default=ProductStatus.ACTIVE)
    image_url = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    # Bumped on every stock write
    version = Column(Integer, nullable=False, default=1, server_default='1')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    movements = relationship('InventoryMovement', back_populates='product',
                             cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', sku='{self.sku}', stock={self.stock})>"

    @property
    def is_active(self):
        return self.status == ProductStatus.ACTIVE
