"""Applies a finished transaction to stock, and replays its ledger to undo it.

Every call runs inside one database transaction on the caller's session:
all products, containers, blend counters and movements of the call commit
together, or the whole batch is rolled back. Movements written by one call
share a ``batch_id`` and are numbered by ``line_no`` in item order.
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import (
    AlreadyReversedError,
    InvalidTransactionError,
    InventoryValidationError,
    PartialApplicationError,
    ReferenceNotFoundError,
)
from db.inventory.movement import SALE_MOVEMENT_TYPES, InventoryMovement
from db.product import Product
from schemas.inventory import MovementOut
from schemas.transactions import InventoryDeductionResult, InventoryReversalResult, TransactionIn
from services.containers import draw_from_containers, restore_to_containers
from services.item_resolver import ItemResolver, StockDelta
from services.stock_ledger import (
    apply_stock_change,
    cancel_reference,
    lock_product,
    record_movement,
    to_quantity,
    utcnow,
)

logger = logging.getLogger(__name__)


def _out(movements: List[InventoryMovement]) -> List[MovementOut]:
    return [MovementOut(**m.to_schema) for m in movements]


class TransactionInventoryService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.resolver = ItemResolver(db)

    async def _movements_for(self, reference: str) -> List[InventoryMovement]:
        res = await self.db.execute(
            select(InventoryMovement)
            .where(InventoryMovement.reference == reference)
            .order_by(InventoryMovement.created_at.asc(), InventoryMovement.line_no.asc())
        )
        return list(res.scalars().all())

    async def _existing_sales(self, number: str) -> List[InventoryMovement]:
        return [m for m in await self._movements_for(number) if m.movement_type in SALE_MOVEMENT_TYPES]

    async def _count_reversals(self, cancel_ref: str) -> int:
        return await self.db.scalar(
            select(func.count()).select_from(InventoryMovement).where(InventoryMovement.reference == cancel_ref)
        )

    async def _lock_products(self, product_ids: Iterable[UUID]) -> Dict[UUID, Optional[Product]]:
        """Lock each product once, in id order, so two batches never wait on each other crosswise."""
        locked = {}
        for product_id in sorted(set(product_ids), key=str):
            locked[product_id] = await lock_product(self.db, product_id)
        return locked

    @staticmethod
    def _already_processed(number: str, existing: List[InventoryMovement]) -> InventoryDeductionResult:
        return InventoryDeductionResult(
            success=True,
            batch_id=existing[0].batch_id,
            movements=_out(existing),
            warnings=[f"Inventory already processed for transaction {number}"],
        )

    async def process_transaction_inventory(self, transaction: TransactionIn, actor_id: str) -> InventoryDeductionResult:
        """Deduct stock for every stock-bearing item of ``transaction``.

        Missing references and malformed items reject the whole transaction:
        nothing is applied and the result carries the message in ``errors``.
        Negative stock is not an error. A transaction number that already has
        sale movements is not applied a second time; this is checked again
        once the product locks are held.
        """
        number = (transaction.transaction_number or "").strip()
        batch_id = uuid.uuid4()
        ctx = {"transaction_number": number, "batch_id": batch_id, "actor_id": actor_id}

        try:
            if not number:
                raise InvalidTransactionError("transaction_number is required")

            existing = await self._existing_sales(number)
            if existing:
                logger.warning("inventory already processed, skipping", extra=ctx)
                return self._already_processed(number, existing)

            resolution = await self.resolver.resolve(transaction.items)
            locked = await self._lock_products(d.product_id for d in resolution.deltas)

            # a concurrent call may have committed while we waited on the locks
            existing = await self._existing_sales(number)
            if existing:
                result = self._already_processed(number, existing)
                await self.db.rollback()
                logger.warning("inventory processed concurrently, skipping", extra=ctx)
                return result

            now = utcnow()
            movements = []
            for line_no, delta in enumerate(resolution.deltas):
                product = locked.get(delta.product_id)
                movements.append(await self._apply_sale(product, delta, number, batch_id, line_no, actor_id, now))

            for template, units in resolution.blend_usage:
                template.usage_count = Decimal(template.usage_count or 0) + units
                template.last_used = now

            await self.db.commit()
        except InventoryValidationError as e:
            await self.db.rollback()
            logger.warning("inventory processing rejected: %s", e, extra=ctx)
            return InventoryDeductionResult(success=False, batch_id=batch_id, errors=[str(e)])
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("inventory processing failed, batch rolled back", extra=ctx, exc_info=True)
            raise PartialApplicationError(number, batch_id, str(e)) from e

        logger.info("processed inventory: %d movement(s)", len(movements), extra=ctx)
        return InventoryDeductionResult(success=True, batch_id=batch_id, movements=_out(movements))

    async def _apply_sale(
        self,
        product: Optional[Product],
        delta: StockDelta,
        reference: str,
        batch_id,
        line_no: int,
        actor_id: str,
        now: datetime,
    ) -> InventoryMovement:
        if product is None or product.is_deleted:
            raise ReferenceNotFoundError("Product", delta.product_id, delta.item_index)

        # containers, stock and ledger all see the same rounded amount
        quantity = to_quantity(delta.quantity)
        movement_id = uuid.uuid4()
        tracked = delta.sale_type == "volume" and product.tracks_containers
        if tracked:
            draw_from_containers(
                product,
                quantity,
                reference=reference,
                actor_id=actor_id,
                movement_id=movement_id,
                sold_at=now,
                container_id=delta.container_id,
            )

        change = -quantity
        await apply_stock_change(self.db, product.id, change)
        movement = record_movement(
            self.db,
            product=product,
            movement_type=delta.movement_type,
            change=change,
            reference=reference,
            batch_id=batch_id,
            line_no=line_no,
            created_by=actor_id,
            created_at=now,
            movement_id=movement_id,
            source_type=delta.source_type,
            source_id=delta.source_id,
            container_tracked=tracked,
            notes=delta.notes,
        )
        if product.current_stock < 0:
            logger.warning(
                "product oversold, stock now %s",
                product.current_stock,
                extra={"product_id": product.id, "reference": reference},
            )
        return movement

    async def reverse_transaction_inventory(self, transaction_number: str, actor_id: str) -> InventoryReversalResult:
        """Undo a transaction by replaying its recorded movements inverted.

        Quantities come only from the ledger, never from the current state of
        the transaction, blend or bundle. Each original movement gets one
        ``return`` movement under the cancellation reference. Raises
        ``AlreadyReversedError`` if cancellation movements already exist,
        checked before and again after the product locks are taken.
        """
        number = (transaction_number or "").strip()
        if not number:
            raise InvalidTransactionError("transaction_number is required")

        cancel_ref = cancel_reference(number)
        batch_id = uuid.uuid4()
        ctx = {"transaction_number": number, "batch_id": batch_id, "actor_id": actor_id}

        already = await self._count_reversals(cancel_ref)
        if already:
            logger.warning("transaction already reversed", extra=ctx)
            raise AlreadyReversedError(number, already)

        try:
            originals = await self._movements_for(number)
            if not originals:
                logger.warning("no inventory movements to reverse", extra=ctx)
                return InventoryReversalResult(
                    success=True,
                    batch_id=batch_id,
                    warnings=[f"No inventory movements found for {number}"],
                )

            locked = await self._lock_products(m.product_id for m in originals)
            already = await self._count_reversals(cancel_ref)
            if already:
                await self.db.rollback()
                logger.warning("transaction reversed concurrently", extra=ctx)
                raise AlreadyReversedError(number, already)

            now = utcnow()
            returns = []
            for line_no, original in enumerate(originals):
                product = locked.get(original.product_id)
                returns.append(await self._reverse_one(product, original, cancel_ref, batch_id, line_no, actor_id, now))
            await self.db.commit()
        except InventoryValidationError as e:
            await self.db.rollback()
            logger.warning("inventory reversal rejected: %s", e, extra=ctx)
            return InventoryReversalResult(success=False, batch_id=batch_id, errors=[str(e)])
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("inventory reversal failed, batch rolled back", extra=ctx, exc_info=True)
            raise PartialApplicationError(number, batch_id, str(e)) from e

        logger.info("reversed inventory: %d movement(s)", len(returns), extra=ctx)
        return InventoryReversalResult(
            success=True,
            batch_id=batch_id,
            reversed_count=len(returns),
            original_movement_count=len(originals),
            movements=_out(returns),
        )

    async def _reverse_one(
        self,
        product: Optional[Product],
        original: InventoryMovement,
        reference: str,
        batch_id,
        line_no: int,
        actor_id: str,
        now: datetime,
    ) -> InventoryMovement:
        # soft-deleted products can still be reversed against
        if product is None:
            raise ReferenceNotFoundError("Product", original.product_id, line_no)

        movement_id = uuid.uuid4()
        change = -Decimal(original.change)
        if original.container_tracked:
            restore_to_containers(
                product,
                original.id,
                Decimal(original.quantity),
                reference=reference,
                actor_id=actor_id,
                movement_id=movement_id,
                restored_at=now,
            )

        await apply_stock_change(self.db, product.id, change)
        return record_movement(
            self.db,
            product=product,
            movement_type="return",
            change=change,
            reference=reference,
            batch_id=batch_id,
            line_no=line_no,
            created_by=actor_id,
            created_at=now,
            movement_id=movement_id,
            source_type=original.source_type,
            source_id=original.source_id,
            container_tracked=original.container_tracked,
            reversal_of_id=original.id,
            reason=f"Reversal of {original.reference}",
        )
