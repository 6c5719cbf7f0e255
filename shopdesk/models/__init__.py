"""Models package - exports all SQLAlchemy models."""
from shopdesk.models.app_user import AppUser
from shopdesk.models.product import Product, ProductCategory, ProductStatus
from shopdesk.models.sale import Sale, DiscountType, PaymentMethod
from shopdesk.models.inventory_movement import (
    InventoryMovement, MovementType, MovementReferenceType
)

__all__ = [
    'AppUser',
    'Product', 'ProductCategory', 'ProductStatus',
    'Sale', 'DiscountType', 'PaymentMethod',
    'InventoryMovement', 'MovementType', 'MovementReferenceType',
]
