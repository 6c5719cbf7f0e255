"""Inventory movement model (append-only stock ledger)."""
from sqlalchemy import Column, Integer, Numeric, DateTime, Enum, Text, String, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from shopdesk.database import Base, IdType
import enum


class MovementType(str, enum.Enum):
    """Stock movement type enum."""
    ENTRY = 'entry'
    EXIT = 'exit'
    ADJUSTMENT = 'adjustment'


class MovementReferenceType(str, enum.Enum):
    """What caused the movement."""
    PURCHASE = 'purchase'
    SALE = 'sale'
    ADJUSTMENT = 'adjustment'


class InventoryMovement(Base):
    """Inventory movement (one row per stock change)."""

    __tablename__ = 'inventory_movement'

    id = Column(IdType, primary_key=True, autoincrement=True)
    product_id = Column(IdType, ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    movement_type = Column(Enum(MovementType, name='movement_type'), nullable=False)
    quantity = Column(Integer, nullable=False)
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)
    unit_cost = Column(Numeric(10, 2), nullable=True)
    reference_type = Column(Enum(MovementReferenceType, name='movement_reference_type'), nullable=True)
    reference_id = Column(IdType, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    product = relationship('Product', back_populates='movements')

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'movement_type': self.movement_type.value,
            'quantity': self.quantity,
            'previous_stock': self.previous_stock,
            'new_stock': self.new_stock,
            'unit_cost': str(self.unit_cost) if self.unit_cost is not None else None,
            'reference_type': self.reference_type.value if self.reference_type else None,
            'reference_id': self.reference_id,
            'notes': self.notes,
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return (
            f"<InventoryMovement(id={self.id}, product_id={self.product_id}, "
            f"type={self.movement_type.value}, qty={self.quantity})>"
        )
