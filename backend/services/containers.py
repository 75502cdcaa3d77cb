"""Per-container draw-down for products sold by volume.

These functions only mutate the ``Product`` aggregate loaded in the session
(its ``full_containers`` counter and ``containers`` list). The caller holds
the product row lock and flushes with the rest of the batch.
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from core.config import settings
from db.inventory.container import Container, ContainerSale
from db.product import Product

logger = logging.getLogger(__name__)


def status_for(remaining: Decimal, capacity: Optional[Decimal] = None) -> str:
    if capacity is not None and remaining == capacity:
        return "full"
    if remaining > 0:
        return "partial"
    if remaining == 0:
        return "empty"
    return "oversold"


def is_sealed(container: Container) -> bool:
    """A received container that nothing has been drawn from yet."""
    return container.opened_at is None


def new_container_id() -> str:
    return f"{settings.container_id_prefix}_{uuid.uuid4().hex[:12].upper()}"


def _open_container(product: Product, opened_at: datetime, *, remaining: Optional[Decimal] = None, notes=None) -> Container:
    capacity = Decimal(product.container_capacity)
    c = Container(
        id=new_container_id(),
        product_id=product.id,
        position=len(product.containers),
        capacity=capacity,
        remaining=capacity if remaining is None else remaining,
        opened_at=opened_at,
        notes=notes,
    )
    c.status = status_for(c.remaining, capacity)
    product.containers.append(c)
    return c


def open_full_container(product: Product, opened_at: datetime) -> Container:
    """Open the next sealed container: untracked pool first, then received batch rows."""
    if (product.full_containers or 0) > 0:
        product.full_containers -= 1
        return _open_container(product, opened_at)
    sealed = next(c for c in product.containers if is_sealed(c))
    sealed.opened_at = opened_at
    return sealed


def sealed_count(product: Product) -> int:
    return (product.full_containers or 0) + sum(1 for c in product.containers or [] if is_sealed(c))


def receive_sealed(product: Product, count: int, batch_number: str, received_at: datetime) -> List[Container]:
    """Add ``count`` tracked sealed containers carrying a batch number."""
    capacity = Decimal(product.container_capacity)
    received = []
    for _ in range(count):
        c = Container(
            id=new_container_id(),
            product_id=product.id,
            position=len(product.containers),
            capacity=capacity,
            remaining=capacity,
            status="full",
            batch_number=batch_number,
            notes=f"Received {received_at.date().isoformat()}",
        )
        product.containers.append(c)
        received.append(c)
    return received


def _record(container: Container, quantity: Decimal, *, reference: str, actor_id: str, movement_id, at: datetime) -> ContainerSale:
    if container.opened_at is None:
        container.opened_at = at
    container.remaining = Decimal(container.remaining) - quantity
    container.status = status_for(container.remaining, Decimal(container.capacity))
    entry = ContainerSale(
        container_id=container.id,
        entry_no=len(container.sales),
        transaction_ref=reference,
        quantity_sold=quantity,
        sold_at=at,
        sold_by=actor_id,
        movement_id=movement_id,
    )
    container.sales.append(entry)
    return entry


def _find(product: Product, container_id: Optional[str]) -> Optional[Container]:
    if not container_id:
        return None
    return next((c for c in product.containers if c.id == container_id), None)


def draw_from_containers(
    product: Product,
    quantity: Decimal,
    *,
    reference: str,
    actor_id: str,
    movement_id,
    sold_at: datetime,
    container_id: Optional[str] = None,
) -> List[ContainerSale]:
    """Deduct ``quantity`` from the product's containers and return the history entries written.

    Draw order: the requested container if it still holds volume, then the
    first opened container with volume left, then freshly opened sealed
    containers. A sale larger than what is left in one container spills into
    the next one. When nothing is left the remainder is taken from the last
    known container (or a synthetic one), which then goes negative.
    """
    entries: List[ContainerSale] = []
    left = Decimal(quantity)

    current = _find(product, container_id)
    if container_id and current is None:
        logger.warning("container %s not found, using draw order", container_id, extra={"product_id": product.id})

    while left > 0:
        if current is None or current.remaining <= 0:
            current = next((c for c in product.containers if not is_sealed(c) and c.remaining > 0), None)
        if current is None and sealed_count(product) > 0:
            current = open_full_container(product, sold_at)

        if current is None:
            if product.containers:
                current = product.containers[-1]
            else:
                current = _open_container(product, sold_at, remaining=Decimal("0"), notes="synthetic container for oversell")
            entries.append(_record(current, left, reference=reference, actor_id=actor_id, movement_id=movement_id, at=sold_at))
            logger.warning(
                "no container volume left, %s oversold by %s",
                current.id,
                -current.remaining,
                extra={"product_id": product.id, "reference": reference},
            )
            break

        take = min(left, Decimal(current.remaining))
        entries.append(_record(current, take, reference=reference, actor_id=actor_id, movement_id=movement_id, at=sold_at))
        left -= take

    return entries


def restore_to_containers(
    product: Product,
    original_movement_id,
    quantity: Decimal,
    *,
    reference: str,
    actor_id: str,
    movement_id,
    restored_at: datetime,
) -> List[ContainerSale]:
    """Give back volume drawn by one movement, appending negative history entries.

    Volume returns to the container that the sale drew from. A tracked
    movement without history entries (recorded before entries carried a
    movement id, or whose entries were pruned) gives its volume to the most
    recently opened partial container, and failing that to a newly opened
    one. Restored containers stay opened; the sealed count is not touched.
    """
    drawn = [
        (c, s)
        for c in product.containers
        for s in c.sales
        if s.movement_id == original_movement_id and s.quantity_sold > 0
    ]
    if not drawn:
        drawn = [(None, None)]

    entries: List[ContainerSale] = []
    left = Decimal(quantity)
    for container, sale in drawn:
        amount = Decimal(sale.quantity_sold) if sale is not None else left
        amount = min(amount, left)
        if amount <= 0:
            break
        if container is None:
            container = next(
                (c for c in reversed(product.containers) if c.status == "partial" and not is_sealed(c)),
                None,
            )
        if container is None:
            container = _open_container(product, restored_at, remaining=Decimal("0"))
        entries.append(
            _record(container, -amount, reference=reference, actor_id=actor_id, movement_id=movement_id, at=restored_at)
        )
        left -= amount

    return entries


def container_summary(product: Product) -> dict:
    containers = list(product.containers or [])
    return {
        "total_full": (product.full_containers or 0) + sum(1 for c in containers if c.status == "full"),
        "total_partial": sum(1 for c in containers if c.status == "partial"),
        "total_empty": sum(1 for c in containers if c.status == "empty"),
        "total_oversold": sum(1 for c in containers if c.status == "oversold"),
        "total_remaining": sum((Decimal(c.remaining) for c in containers if c.remaining > 0), Decimal("0")),
    }
