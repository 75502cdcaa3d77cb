"""
Typed exceptions for the inventory movement engine.

Every exception carries a ``code`` class attribute so callers (routers,
collaborating services) can branch on type or code instead of parsing text.

    InventoryError
    |
    +-- InventoryValidationError        (caller's input is wrong; nothing applied)
    |   +-- ReferenceNotFoundError
    |   +-- InvalidTransactionError
    |
    +-- ReversalError
    |   +-- AlreadyReversedError
    |
    +-- InventorySystemError            (store failure; rolled back, propagate)
        +-- PartialApplicationError
        +-- ImmutableMovementError
"""

from typing import Optional


class InventoryError(Exception):
    code: str = "INVENTORY_ERROR"


# Validation-class


class InventoryValidationError(InventoryError):
    code: str = "INVENTORY_VALIDATION_ERROR"


class ReferenceNotFoundError(InventoryValidationError):
    """A product, blend template or bundle named by a transaction item does not exist."""

    code: str = "REFERENCE_NOT_FOUND"

    def __init__(self, reference_type: str, reference_id, item_index: Optional[int] = None):
        self.reference_type = reference_type
        self.reference_id = str(reference_id)
        self.item_index = item_index
        where = f" (item #{item_index + 1})" if item_index is not None else ""
        super().__init__(f"{reference_type} not found: {self.reference_id}{where}")


class InvalidTransactionError(InventoryValidationError):
    code: str = "INVALID_TRANSACTION"


# Reversal


class ReversalError(InventoryError):
    code: str = "REVERSAL_ERROR"


class AlreadyReversedError(ReversalError):
    code: str = "ALREADY_REVERSED"

    def __init__(self, transaction_number: str, existing_count: int = 0):
        self.transaction_number = transaction_number
        self.existing_count = existing_count
        super().__init__(
            f"Transaction {transaction_number} already has {existing_count} reversal movement(s)"
        )


# System-class


class InventorySystemError(InventoryError):
    code: str = "INVENTORY_SYSTEM_ERROR"


class PartialApplicationError(InventorySystemError):
    """The store failed part-way through a batch; the whole batch was rolled back."""

    code: str = "PARTIAL_APPLICATION"

    def __init__(self, transaction_number: str, batch_id, reason: str = ""):
        self.transaction_number = transaction_number
        self.batch_id = str(batch_id)
        self.reason = reason
        super().__init__(
            f"Inventory batch {self.batch_id} for {transaction_number} rolled back: {reason}"
        )


class ImmutableMovementError(InventorySystemError):
    code: str = "IMMUTABLE_MOVEMENT"

    def __init__(self, movement_id, operation: str):
        self.movement_id = str(movement_id)
        self.operation = operation
        super().__init__(f"Inventory movement {self.movement_id} cannot be {operation}")
