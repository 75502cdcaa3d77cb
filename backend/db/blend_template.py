import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from .database import Base


class BlendTemplate(Base):
    """Named fixed recipe. Selling one unit deducts each ingredient's quantity_per_unit."""
    __tablename__ = "blend_templates"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    batch_size = Column(Numeric(14, 3), nullable=False, default=1)

    # sale-driven counters; reversals leave them alone
    usage_count = Column(Numeric(14, 3), nullable=False, default=0)
    last_used = Column(DateTime(timezone=True), nullable=True)

    ingredients = relationship(
        "BlendIngredient",
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="BlendIngredient.sort_order",
        lazy="selectin",
    )

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "name": self.name,
            "is_active": self.is_active,
            "batch_size": self.batch_size,
            "usage_count": self.usage_count,
            "last_used": self.last_used,
            "ingredients": [i.to_schema for i in (self.ingredients or [])],
        }


class BlendIngredient(Base):
    __tablename__ = "blend_ingredients"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    template_id = Column(Uuid(as_uuid=True), ForeignKey("blend_templates.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)

    name = Column(String, nullable=True)
    quantity_per_unit = Column(Numeric(14, 3), nullable=False)
    unit_of_measurement_id = Column(Uuid(as_uuid=True), ForeignKey("units_of_measurement.id"), nullable=True)
    unit_name = Column(String, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)

    template = relationship("BlendTemplate", back_populates="ingredients")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "quantity_per_unit": self.quantity_per_unit,
            "unit_name": self.unit_name,
            "sort_order": self.sort_order,
        }
