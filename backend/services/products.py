import logging
import uuid
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import InvalidTransactionError, PartialApplicationError, ReferenceNotFoundError
from db.inventory.container import Container, ContainerSale
from db.inventory.movement import InventoryMovement
from db.product import Product
from services.containers import container_summary, is_sealed, receive_sealed, sealed_count
from services.stock_ledger import apply_stock_change, lock_product, record_movement, utcnow

logger = logging.getLogger(__name__)


async def get_product(db: AsyncSession, product_id: UUID) -> Product:
    res = await db.execute(select(Product).where(Product.id == product_id))
    product = res.scalar_one_or_none()
    if product is None:
        raise ReferenceNotFoundError("Product", product_id)
    return product


async def soft_delete_product(
    db: AsyncSession,
    product_id: UUID,
    actor_id: str,
    reason: Optional[str] = None,
) -> Product:
    """Deactivate a product. Its movements stay, so it can still be reversed against."""
    product = await get_product(db, product_id)
    if product.is_deleted:
        return product

    product.is_deleted = True
    product.is_active = False
    product.deleted_at = utcnow()
    product.deleted_by = actor_id
    product.delete_reason = reason
    await db.commit()
    logger.info("product soft-deleted", extra={"product_id": product.id, "actor_id": actor_id})
    return product


async def receive_containers(
    db: AsyncSession,
    product_id: UUID,
    count: int,
    actor_id: str,
    batch_number: Optional[str] = None,
) -> InventoryMovement:
    """Take in ``count`` sealed containers of a volume-tracked product.

    Without a batch number the untracked sealed pool grows. With one, each
    container gets its own row so the batch stays traceable. Either way stock
    rises by ``count`` x capacity through an ``adjustment`` movement.
    """
    if count <= 0:
        raise InvalidTransactionError("count must be > 0")
    batch_number = (batch_number or "").strip() or None

    batch_id = uuid.uuid4()
    try:
        product = await lock_product(db, product_id)
        if product is None or product.is_deleted:
            raise ReferenceNotFoundError("Product", product_id)
        if not product.tracks_containers:
            raise InvalidTransactionError(f"Product {product.name} is not tracked by container")

        now = utcnow()
        if batch_number:
            receive_sealed(product, count, batch_number, now)
        else:
            product.full_containers = (product.full_containers or 0) + count

        change = Decimal(product.container_capacity) * count
        await apply_stock_change(db, product.id, change)
        movement = record_movement(
            db,
            product=product,
            movement_type="adjustment",
            change=change,
            reference=f"RCV-{batch_id.hex[:12].upper()}",
            batch_id=batch_id,
            line_no=0,
            created_by=actor_id,
            created_at=now,
            source_type="container_intake",
            source_id=batch_number,
            reason=f"Received {count} container(s)",
        )
        await db.commit()
    except (ReferenceNotFoundError, InvalidTransactionError):
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("container intake failed", extra={"product_id": product_id, "batch_id": batch_id}, exc_info=True)
        raise PartialApplicationError("container intake", batch_id, str(e)) from e

    logger.info("received %d container(s)", count, extra={"product_id": product_id, "actor_id": actor_id})
    return movement


async def get_product_containers(db: AsyncSession, product_id: UUID) -> dict:
    product = await get_product(db, product_id)
    return {
        "product_id": product.id,
        "product_name": product.name,
        "container_capacity": product.container_capacity,
        "full": sealed_count(product),
        "partial": [c.to_schema for c in product.containers if not is_sealed(c)],
        "sealed": [c.to_schema for c in product.containers if is_sealed(c)],
        "summary": container_summary(product),
    }


async def get_container_sale_history(db: AsyncSession, container_id: str) -> List[ContainerSale]:
    container = await db.get(Container, container_id)
    if container is None:
        raise ReferenceNotFoundError("Container", container_id)
    res = await db.execute(
        select(ContainerSale)
        .where(ContainerSale.container_id == container_id)
        .order_by(ContainerSale.entry_no.asc())
    )
    return list(res.scalars().all())
