import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from .database import Base


class Bundle(Base):
    """Fixed basket of products and blends sold as one priced unit."""
    __tablename__ = "bundles"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    sku = Column(String, nullable=True, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)

    bundle_products = relationship(
        "BundleProduct",
        back_populates="bundle",
        cascade="all, delete-orphan",
        order_by="BundleProduct.sort_order",
        lazy="selectin",
    )


class BundleProduct(Base):
    """Bundle member: either a product or a fixed blend, never both."""
    __tablename__ = "bundle_products"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    bundle_id = Column(Uuid(as_uuid=True), ForeignKey("bundles.id", ondelete="CASCADE"), nullable=False, index=True)

    # 'product' | 'fixed_blend'
    product_type = Column(Text, nullable=False, default="product")
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id", ondelete="RESTRICT"), nullable=True)
    blend_template_id = Column(Uuid(as_uuid=True), ForeignKey("blend_templates.id", ondelete="RESTRICT"), nullable=True)

    name = Column(String, nullable=True)
    quantity_per_unit = Column(Numeric(14, 3), nullable=False, default=1)
    sort_order = Column(Integer, nullable=False, default=0)

    bundle = relationship("Bundle", back_populates="bundle_products")
