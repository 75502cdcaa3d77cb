from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class MovementOut(BaseModel):
    id: UUID
    product_id: UUID
    product_name: Optional[str] = None
    movement_type: str
    quantity: Decimal
    change: Decimal
    unit_name: str
    reference: str
    source_type: Optional[str] = None
    source_id: Optional[str] = None
    batch_id: UUID
    line_no: int
    container_tracked: bool = False
    reversal_of_id: Optional[UUID] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    created_by: str


class StockAdjustmentCreate(BaseModel):
    product_id: UUID
    change: Decimal = Field(decimal_places=3)
    reason: str
    actor_id: Optional[str] = None

    @field_validator("change")
    @classmethod
    def _non_zero(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("change must be non-zero")
        return v

    @field_validator("reason")
    @classmethod
    def _strip_reason(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("reason is required")
        return v


class NetEffectLine(BaseModel):
    product_id: UUID
    product_name: Optional[str] = None
    net_change: Decimal


class ContainerSaleOut(BaseModel):
    id: UUID
    container_id: str
    entry_no: int
    transaction_ref: str
    quantity_sold: Decimal
    sold_at: datetime
    sold_by: Optional[str] = None
    movement_id: Optional[UUID] = None


class ContainerOut(BaseModel):
    id: str
    product_id: UUID
    position: int
    capacity: Decimal
    remaining: Decimal
    status: str
    opened_at: Optional[datetime] = None
    batch_number: Optional[str] = None
    sale_count: int = 0


class ContainerSummary(BaseModel):
    total_full: int
    total_partial: int
    total_empty: int
    total_oversold: int
    total_remaining: Decimal


class ProductContainersOut(BaseModel):
    product_id: UUID
    product_name: str
    container_capacity: Optional[Decimal] = None
    full: int
    partial: List[ContainerOut]
    sealed: List[ContainerOut] = Field(default_factory=list)
    summary: ContainerSummary


class ContainerReceiveCreate(BaseModel):
    count: int = Field(gt=0)
    batch_number: Optional[str] = None
    actor_id: Optional[str] = None


class ProductSoftDelete(BaseModel):
    reason: Optional[str] = None
    actor_id: Optional[str] = None


class ProductOut(BaseModel):
    id: UUID
    sku: str
    name: str
    unit_name: str
    current_stock: Decimal
    reserved_stock: Decimal
    reorder_point: Decimal
    container_capacity: Optional[Decimal] = None
    full_containers: int
    is_active: bool
    is_deleted: bool
