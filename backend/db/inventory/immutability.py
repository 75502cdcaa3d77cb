"""ORM guard that keeps inventory movements append-only.

Movements are the source of truth for reversal. Corrections are new rows
(``return`` / ``adjustment``), never edits. The listeners below fire on
flush, before any SQL reaches the database.
"""

import logging

from sqlalchemy import event

from core.exceptions import ImmutableMovementError
from db.inventory.movement import InventoryMovement

logger = logging.getLogger(__name__)


def _block_movement_update(mapper, connection, target):
    logger.error("blocked update of inventory movement", extra={"reference": target.reference})
    raise ImmutableMovementError(target.id, "modified")


def _block_movement_delete(mapper, connection, target):
    logger.error("blocked delete of inventory movement", extra={"reference": target.reference})
    raise ImmutableMovementError(target.id, "deleted")


def register_movement_guard() -> None:
    if not event.contains(InventoryMovement, "before_update", _block_movement_update):
        event.listen(InventoryMovement, "before_update", _block_movement_update)
    if not event.contains(InventoryMovement, "before_delete", _block_movement_delete):
        event.listen(InventoryMovement, "before_delete", _block_movement_delete)
