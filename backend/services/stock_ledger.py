"""Movement ledger: atomic stock changes, movement records and ledger queries."""

import logging
import uuid
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import InvalidTransactionError, PartialApplicationError, ReferenceNotFoundError
from db.inventory.movement import MOVEMENT_TYPES, InventoryMovement
from db.product import Product

logger = logging.getLogger(__name__)


QUANTITY_STEP = Decimal("0.001")


def to_quantity(value) -> Decimal:
    """Round to the three decimals stock and ledger columns hold."""
    return Decimal(value).quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def cancel_reference(transaction_number: str) -> str:
    return f"{settings.cancel_reference_prefix}{transaction_number}"


async def lock_product(db: AsyncSession, product_id: UUID) -> Optional[Product]:
    """Load a product for update, refreshing containers from the row just locked.

    Soft-deleted products are returned too; callers decide whether that is allowed.
    """
    res = await db.execute(
        select(Product)
        .where(Product.id == product_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def apply_stock_change(db: AsyncSession, product_id: UUID, change: Decimal) -> None:
    # increment in SQL, never read-modify-write
    await db.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(current_stock=Product.current_stock + to_quantity(change))
        .execution_options(synchronize_session="fetch")
    )


def record_movement(
    db: AsyncSession,
    *,
    product: Product,
    movement_type: str,
    change: Decimal,
    reference: str,
    batch_id: UUID,
    line_no: int,
    created_by: str,
    created_at: datetime,
    movement_id: Optional[UUID] = None,
    source_type: Optional[str] = None,
    source_id: Optional[str] = None,
    container_tracked: bool = False,
    reversal_of_id: Optional[UUID] = None,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
) -> InventoryMovement:
    if movement_type not in MOVEMENT_TYPES:
        raise InvalidTransactionError(f"Unknown movement type '{movement_type}'")
    change = to_quantity(change)
    m = InventoryMovement(
        id=movement_id or uuid.uuid4(),
        product_id=product.id,
        product_name=product.name,
        movement_type=movement_type,
        quantity=abs(change),
        change=change,
        unit_name=product.unit_name,
        reference=reference,
        source_type=source_type,
        source_id=source_id,
        batch_id=batch_id,
        line_no=line_no,
        container_tracked=container_tracked,
        reversal_of_id=reversal_of_id,
        reason=reason,
        notes=notes,
        created_at=created_at,
        created_by=created_by,
    )
    db.add(m)
    return m


async def adjust_stock(
    db: AsyncSession,
    product_id: UUID,
    change: Decimal,
    reason: str,
    actor_id: str,
) -> InventoryMovement:
    """Administrative override: apply ``change`` to current stock with an ``adjustment`` movement."""
    change = to_quantity(change)
    reason = (reason or "").strip()
    if change == 0:
        raise InvalidTransactionError("change must be non-zero")
    if not reason:
        raise InvalidTransactionError("reason is required")

    batch_id = uuid.uuid4()
    try:
        product = await lock_product(db, product_id)
        if product is None or product.is_deleted:
            raise ReferenceNotFoundError("Product", product_id)

        await apply_stock_change(db, product.id, change)
        movement = record_movement(
            db,
            product=product,
            movement_type="adjustment",
            change=change,
            reference=f"ADJ-{batch_id.hex[:12].upper()}",
            batch_id=batch_id,
            line_no=0,
            created_by=actor_id,
            created_at=utcnow(),
            reason=reason,
        )
        await db.commit()
    except ReferenceNotFoundError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("stock adjustment failed", extra={"product_id": product_id, "batch_id": batch_id}, exc_info=True)
        raise PartialApplicationError("adjustment", batch_id, str(e)) from e

    logger.info("stock adjusted by %s: %s", change, reason, extra={"product_id": product_id, "actor_id": actor_id})
    return movement


async def list_movements(
    db: AsyncSession,
    product_id: Optional[UUID] = None,
    reference: Optional[str] = None,
    movement_type: Optional[str] = None,
    limit: int = 200,
) -> List[InventoryMovement]:
    stmt = select(InventoryMovement)
    if product_id is not None:
        stmt = stmt.where(InventoryMovement.product_id == product_id)
    if reference:
        stmt = stmt.where(InventoryMovement.reference == reference)
    if movement_type:
        stmt = stmt.where(InventoryMovement.movement_type == movement_type)
    stmt = stmt.order_by(InventoryMovement.created_at.asc(), InventoryMovement.line_no.asc()).limit(limit)
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def transaction_net_effect(db: AsyncSession, transaction_number: str) -> List[Dict]:
    """Signed stock effect per product over a transaction and its cancellation."""
    refs = [transaction_number, cancel_reference(transaction_number)]
    res = await db.execute(
        select(
            InventoryMovement.product_id,
            func.max(InventoryMovement.product_name),
            func.sum(InventoryMovement.change),
        )
        .where(InventoryMovement.reference.in_(refs))
        .group_by(InventoryMovement.product_id)
    )
    return [
        {"product_id": pid, "product_name": name, "net_change": Decimal(total or 0)}
        for pid, name, total in res.all()
    ]
