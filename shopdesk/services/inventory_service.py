"""Inventory ledger service - manual stock movements."""
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from shopdesk.exceptions import (
    NotAuthenticatedError, NotFoundError, PersistenceError,
    StockConflictError, ValidationError,
)
from shopdesk.models import (
    Product, InventoryMovement, MovementType, MovementReferenceType,
)
from shopdesk.services.pricing import money

logger = logging.getLogger(__name__)


def record_movement(
    session,
    product_id: int,
    movement_type,
    quantity: int,
    operator,
    unit_cost=None,
    reference_type=None,
    reference_id: Optional[int] = None,
    notes: Optional[str] = None,
    catalog=None
) -> InventoryMovement:
    """
    Apply a stock movement and append it to the ledger in one transaction.

    entry adds `quantity`, exit removes it (only if enough stock is on hand)
    and adjustment sets the on-hand count to `quantity`.
    """
    if operator is None:
        raise NotAuthenticatedError()

    try:
        movement_type = MovementType(movement_type)
        reference_type = MovementReferenceType(reference_type) if reference_type else None
    except ValueError as e:
        raise ValidationError(f'Tipo de movimiento inválido: {e}')

    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError(f'Cantidad inválida: {quantity!r}')
    if quantity < 0 or (quantity == 0 and movement_type != MovementType.ADJUSTMENT):
        raise ValidationError('La cantidad debe ser mayor a 0')

    product = session.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError('Producto no encontrado')

    try:
        previous = product.stock
        if movement_type == MovementType.EXIT:
            # Same conditional write as checkout
            updated = session.query(Product).filter(
                Product.id == product_id,
                Product.stock >= quantity
            ).update(
                {Product.stock: Product.stock - quantity, Product.version: Product.version + 1},
                synchronize_session=False
            )
            if updated != 1:
                raise StockConflictError(product_id, product.name, quantity, previous)
            new_stock = previous - quantity
        else:
            new_stock = previous + quantity if movement_type == MovementType.ENTRY else quantity
            updated = session.query(Product).filter(
                Product.id == product_id,
                Product.version == product.version
            ).update(
                {Product.stock: new_stock, Product.version: Product.version + 1},
                synchronize_session=False
            )
            if updated != 1:
                raise StockConflictError(product_id, product.name, quantity, previous)

        movement = InventoryMovement(
            product_id=product_id,
            movement_type=movement_type,
            quantity=quantity,
            previous_stock=previous,
            new_stock=new_stock,
            unit_cost=money(unit_cost) if unit_cost not in (None, '') else None,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes,
            created_by=operator.display_name,
        )
        session.add(movement)
        session.commit()
    except StockConflictError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error recording movement for product {product_id}: {e}")
        raise PersistenceError('Error al registrar el movimiento de inventario')

    logger.info(
        f"Movement {movement_type.value} x{quantity} on product {product_id}: {previous} -> {new_stock}"
    )

    if catalog is not None:
        try:
            catalog.refresh(session)
        except SQLAlchemyError as e:
            session.rollback()
            logger.warning(f"[CATALOG] Refresh after movement failed: {e}")

    return movement


def list_movements(session, product_id: Optional[int] = None, limit: int = 100) -> List[InventoryMovement]:
    """Most recent movements first, optionally for one product."""
    query = session.query(InventoryMovement)
    if product_id is not None:
        query = query.filter(InventoryMovement.product_id == product_id)
    return query.order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc()).limit(limit).all()
