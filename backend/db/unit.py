import uuid
from sqlalchemy import Boolean, Column, Numeric, String, Text, Uuid

from .database import Base


class UnitOfMeasurement(Base):
    __tablename__ = "units_of_measurement"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False, unique=True)
    abbreviation = Column(String, nullable=False)
    # 'volume' | 'weight' | 'count' | 'length'
    kind = Column(Text, nullable=False, default="count")
    conversion_rate = Column(Numeric(14, 6), nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)

    @property
    def is_volume(self) -> bool:
        return (self.kind or "").lower() == "volume"
