from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from schemas.inventory import MovementOut


ItemType = Literal[
    "product",
    "fixed_blend",
    "custom_blend",
    "bundle",
    "service",
    "consultation",
    "miscellaneous",
]
SaleType = Literal["quantity", "volume"]

INERT_ITEM_TYPES = ("service", "consultation", "miscellaneous")


class CustomBlendIngredientIn(BaseModel):
    product_id: UUID
    quantity: Decimal = Field(decimal_places=3)
    name: Optional[str] = None

    @field_validator("quantity")
    @classmethod
    def _positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("quantity must be > 0")
        return v


class TransactionItemIn(BaseModel):
    item_type: ItemType = "product"
    quantity: Decimal = Field(decimal_places=3)
    sale_type: SaleType = "quantity"

    product_id: Optional[UUID] = None
    blend_template_id: Optional[UUID] = None
    bundle_id: Optional[UUID] = None

    name: Optional[str] = None
    # volume sales may target a specific opened container
    container_id: Optional[str] = None
    # quantity already expressed in the product's base unit
    converted_quantity: Optional[Decimal] = Field(default=None, decimal_places=3)
    custom_blend_ingredients: Optional[List[CustomBlendIngredientIn]] = None

    @field_validator("quantity")
    @classmethod
    def _quantity_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("quantity must be > 0")
        return v

    @field_validator("converted_quantity")
    @classmethod
    def _converted_positive(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is not None and v <= 0:
            raise ValueError("converted_quantity must be > 0")
        return v

    @field_validator("container_id")
    @classmethod
    def _strip_container(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class TransactionIn(BaseModel):
    transaction_number: str
    items: List[TransactionItemIn] = Field(default_factory=list)
    actor_id: Optional[str] = None

    @field_validator("transaction_number")
    @classmethod
    def _strip_number(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("transaction_number is required")
        return v


class ReverseTransactionIn(BaseModel):
    actor_id: Optional[str] = None


class InventoryDeductionResult(BaseModel):
    success: bool
    batch_id: Optional[UUID] = None
    movements: List[MovementOut] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class InventoryReversalResult(BaseModel):
    success: bool
    batch_id: Optional[UUID] = None
    reversed_count: int = 0
    original_movement_count: int = 0
    movements: List[MovementOut] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
