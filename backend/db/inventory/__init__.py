"""
Inventory ledger.

Models:
- Container / ContainerSale (opened bottles of volume-sold products and their draw-down history)
- InventoryMovement (append-only signed stock changes, keyed by transaction reference)
"""
