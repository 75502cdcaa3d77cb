import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from ..database import Base


class Container(Base):
    """One physical container (bottle) of a volume-sold product.

    A container enters this table exactly once: when it is first drawn from,
    when it is synthesized for an oversell, or when it is received sealed
    with a batch number (``opened_at`` stays null until the first draw). It
    is never removed, so its sale history stays queryable after it runs empty.
    """
    __tablename__ = "product_containers"

    id = Column(String, primary_key=True)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    # open order within the product; partial list is ordered by this
    position = Column(Integer, nullable=False, default=0)

    capacity = Column(Numeric(14, 3), nullable=False)
    remaining = Column(Numeric(14, 3), nullable=False)
    # 'full' | 'partial' | 'empty' | 'oversold'
    status = Column(Text, nullable=False, default="partial", index=True)

    opened_at = Column(DateTime(timezone=True), nullable=True)
    batch_number = Column(String, nullable=True)
    notes = Column(Text, nullable=True)

    product = relationship("Product", back_populates="containers")
    sales = relationship(
        "ContainerSale",
        back_populates="container",
        cascade="all, delete-orphan",
        order_by="ContainerSale.entry_no",
        lazy="selectin",
    )

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "position": self.position,
            "capacity": self.capacity,
            "remaining": self.remaining,
            "status": self.status,
            "opened_at": self.opened_at,
            "batch_number": self.batch_number,
            "sale_count": len(self.sales or []),
        }


class ContainerSale(Base):
    """Append-only sale history entry of a container.

    Reversals append an entry with a negative ``quantity_sold`` under the
    cancellation reference, so capacity == sum(quantity_sold) + remaining
    holds for every container opened from the sealed pool.
    """
    __tablename__ = "container_sales"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    container_id = Column(String, ForeignKey("product_containers.id", ondelete="CASCADE"), nullable=False, index=True)
    entry_no = Column(Integer, nullable=False, default=0)

    transaction_ref = Column(String, nullable=False, index=True)
    quantity_sold = Column(Numeric(14, 3), nullable=False)
    sold_at = Column(DateTime(timezone=True), nullable=False)
    sold_by = Column(String, nullable=True)

    movement_id = Column(Uuid(as_uuid=True), nullable=True, index=True)

    container = relationship("Container", back_populates="sales")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "container_id": self.container_id,
            "entry_no": self.entry_no,
            "transaction_ref": self.transaction_ref,
            "quantity_sold": self.quantity_sold,
            "sold_at": self.sold_at,
            "sold_by": self.sold_by,
            "movement_id": self.movement_id,
        }
