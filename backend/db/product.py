import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from .database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Product(Base):
    """Sellable stock-keeping unit.

    ``current_stock`` is signed and may go negative (oversell). It is only
    changed through the movement ledger, except for administrative adjustments.
    Volume-sold products also track physical containers: ``full_containers``
    sealed units plus the ordered ``containers`` list of opened ones.
    """
    __tablename__ = "products"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sku = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)

    unit_of_measurement_id = Column(
        Uuid(as_uuid=True), ForeignKey("units_of_measurement.id", ondelete="RESTRICT"), nullable=True, index=True
    )

    current_stock = Column(Numeric(14, 3), nullable=False, default=0)
    reserved_stock = Column(Numeric(14, 3), nullable=False, default=0)
    reorder_point = Column(Numeric(14, 3), nullable=False, default=10)

    # Volume per physical container; NULL for products not sold by volume.
    container_capacity = Column(Numeric(14, 3), nullable=True)
    full_containers = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)
    is_deleted = Column(Boolean, nullable=False, default=False, index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(String, nullable=True)
    delete_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    unit_of_measurement = relationship("UnitOfMeasurement", lazy="selectin")
    containers = relationship(
        "Container",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="Container.position",
        lazy="selectin",
    )

    @property
    def tracks_containers(self) -> bool:
        return self.container_capacity is not None and Decimal(self.container_capacity) > 0

    @property
    def unit_name(self) -> str:
        u = self.unit_of_measurement
        return getattr(u, "abbreviation", None) or "unit"

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "unit_name": self.unit_name,
            "current_stock": self.current_stock,
            "reserved_stock": self.reserved_stock,
            "reorder_point": self.reorder_point,
            "container_capacity": self.container_capacity,
            "full_containers": self.full_containers,
            "is_active": self.is_active,
            "is_deleted": self.is_deleted,
        }
