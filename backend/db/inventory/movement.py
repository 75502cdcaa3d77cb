import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid

from ..database import Base


# Types that deduct stock and are replayed by a cancellation.
SALE_MOVEMENT_TYPES = (
    "sale",
    "bundle_sale",
    "fixed_blend",
    "bundle_blend_ingredient",
    "blend_ingredient",
    "custom_blend",
)
MOVEMENT_TYPES = SALE_MOVEMENT_TYPES + ("return", "adjustment", "transfer")


class InventoryMovement(Base):
    """Append-only ledger entry of one stock change to one product.

    ``quantity`` is the positive magnitude in product base units; ``change``
    is the signed delta that was applied to ``Product.current_stock``.
    """
    __tablename__ = "inventory_movements"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    product_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    product_name = Column(String, nullable=True)

    movement_type = Column(Text, nullable=False, index=True)
    quantity = Column(Numeric(14, 3), nullable=False)
    change = Column(Numeric(14, 3), nullable=False)
    unit_name = Column(String, nullable=False, default="unit")

    # transaction number, or CANCEL-<transaction number> for reversals
    reference = Column(String, nullable=False, index=True)
    source_type = Column(Text, nullable=True)
    source_id = Column(String, nullable=True)

    batch_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    line_no = Column(Integer, nullable=False, default=0)

    container_tracked = Column(Boolean, nullable=False, default=False)
    reversal_of_id = Column(Uuid(as_uuid=True), ForeignKey("inventory_movements.id", ondelete="RESTRICT"), nullable=True)

    reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)
    created_by = Column(String, nullable=False)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "change": self.change,
            "unit_name": self.unit_name,
            "reference": self.reference,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "batch_id": self.batch_id,
            "line_no": self.line_no,
            "container_tracked": self.container_tracked,
            "reversal_of_id": self.reversal_of_id,
            "reason": self.reason,
            "notes": self.notes,
            "created_at": self.created_at,
            "created_by": self.created_by,
        }
