"""Expansion of transaction line items into elementary stock deltas.

Each item type has its own expansion function; all of them return the same
``StockDelta`` list so the caller applies every shape the same way. Lookups
happen here, before anything is written, so a missing reference aborts the
transaction with nothing applied.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import InvalidTransactionError, ReferenceNotFoundError
from db.blend_template import BlendTemplate
from db.bundle import Bundle
from db.product import Product
from schemas.transactions import INERT_ITEM_TYPES, TransactionItemIn

logger = logging.getLogger(__name__)


@dataclass
class StockDelta:
    """One stock change for one product. ``quantity`` is the positive magnitude."""

    product_id: UUID
    quantity: Decimal
    movement_type: str
    source_type: str
    source_id: Optional[str] = None
    item_index: int = 0
    sale_type: str = "quantity"
    container_id: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class Resolution:
    deltas: List[StockDelta] = field(default_factory=list)
    # (template, units sold) pairs; counters are bumped on sale only
    blend_usage: List[Tuple[BlendTemplate, Decimal]] = field(default_factory=list)

    def extend(self, other: "Resolution") -> None:
        self.deltas.extend(other.deltas)
        self.blend_usage.extend(other.blend_usage)


class ItemResolver:
    def __init__(self, db: AsyncSession):
        self.db = db
        self._handlers = {
            "product": self._resolve_product,
            "fixed_blend": self._resolve_fixed_blend,
            "custom_blend": self._resolve_custom_blend,
            "bundle": self._resolve_bundle,
        }

    async def resolve(self, items: List[TransactionItemIn]) -> Resolution:
        """Resolve every item in order. Raises on the first missing reference."""
        out = Resolution()
        for index, item in enumerate(items):
            out.extend(await self.resolve_item(item, index))
        return out

    async def resolve_item(self, item: TransactionItemIn, index: int) -> Resolution:
        if item.item_type in INERT_ITEM_TYPES:
            return Resolution()
        handler = self._handlers.get(item.item_type)
        if handler is None:
            raise InvalidTransactionError(f"Unsupported item type '{item.item_type}' (item #{index + 1})")
        return await handler(item, index)

    # Lookups

    async def _get_product(self, product_id: Optional[UUID], index: int) -> Product:
        if product_id is None:
            raise InvalidTransactionError(f"product_id is required (item #{index + 1})")
        res = await self.db.execute(select(Product).where(Product.id == product_id))
        product = res.scalar_one_or_none()
        if product is None or product.is_deleted:
            raise ReferenceNotFoundError("Product", product_id, index)
        return product

    async def _get_template(self, template_id: Optional[UUID], index: int) -> BlendTemplate:
        if template_id is None:
            raise InvalidTransactionError(f"blend_template_id is required (item #{index + 1})")
        res = await self.db.execute(select(BlendTemplate).where(BlendTemplate.id == template_id))
        template = res.scalar_one_or_none()
        if template is None:
            raise ReferenceNotFoundError("BlendTemplate", template_id, index)
        return template

    async def _get_bundle(self, bundle_id: Optional[UUID], index: int) -> Bundle:
        if bundle_id is None:
            raise InvalidTransactionError(f"bundle_id is required (item #{index + 1})")
        res = await self.db.execute(select(Bundle).where(Bundle.id == bundle_id))
        bundle = res.scalar_one_or_none()
        if bundle is None:
            raise ReferenceNotFoundError("Bundle", bundle_id, index)
        return bundle

    # Expansion per item type

    async def _resolve_product(self, item: TransactionItemIn, index: int, source_type: str = "product") -> Resolution:
        product = await self._get_product(item.product_id, index)
        qty = item.converted_quantity if item.converted_quantity is not None else item.quantity
        return Resolution(
            deltas=[
                StockDelta(
                    product_id=product.id,
                    quantity=qty,
                    movement_type="sale",
                    source_type=source_type,
                    item_index=index,
                    sale_type=item.sale_type,
                    container_id=item.container_id,
                )
            ]
        )

    async def _blend_deltas(
        self,
        template: BlendTemplate,
        multiplier: Decimal,
        index: int,
        movement_type: str,
        source_type: str,
        source_id: str,
    ) -> List[StockDelta]:
        deltas = []
        for ing in template.ingredients or []:
            await self._get_product(ing.product_id, index)
            deltas.append(
                StockDelta(
                    product_id=ing.product_id,
                    quantity=Decimal(ing.quantity_per_unit) * multiplier,
                    movement_type=movement_type,
                    source_type=source_type,
                    source_id=source_id,
                    item_index=index,
                    notes=f"Blend ingredient of {template.name}",
                )
            )
        if not deltas:
            logger.warning("blend template %s has no ingredients", template.id)
        return deltas

    async def _resolve_fixed_blend(self, item: TransactionItemIn, index: int) -> Resolution:
        template = await self._get_template(item.blend_template_id, index)
        deltas = await self._blend_deltas(
            template, item.quantity, index, "sale", "fixed_blend", str(template.id)
        )
        return Resolution(deltas=deltas, blend_usage=[(template, item.quantity)])

    async def _resolve_custom_blend(self, item: TransactionItemIn, index: int) -> Resolution:
        if not item.custom_blend_ingredients:
            # no recipe attached: sold as a plain stock item, volume sales included
            return await self._resolve_product(item, index, source_type="custom_blend")

        source_id = str(item.product_id) if item.product_id else None
        deltas = []
        for ing in item.custom_blend_ingredients:
            product = await self._get_product(ing.product_id, index)
            deltas.append(
                StockDelta(
                    product_id=product.id,
                    quantity=ing.quantity * item.quantity,
                    movement_type="sale",
                    source_type="custom_blend",
                    source_id=source_id,
                    item_index=index,
                    notes=f"Custom blend ingredient of {item.name}" if item.name else None,
                )
            )
        return Resolution(deltas=deltas)

    async def _resolve_bundle(self, item: TransactionItemIn, index: int) -> Resolution:
        bundle = await self._get_bundle(item.bundle_id, index)
        source_id = str(bundle.id)

        # direct product members collapse to one delta per distinct product
        direct: Dict[UUID, StockDelta] = {}
        deltas: List[StockDelta] = []
        for member in bundle.bundle_products or []:
            multiplier = Decimal(member.quantity_per_unit) * item.quantity
            if member.product_type == "fixed_blend":
                template = await self._get_template(member.blend_template_id, index)
                deltas.extend(
                    await self._blend_deltas(template, multiplier, index, "bundle_sale", "bundle", source_id)
                )
                continue

            product = await self._get_product(member.product_id, index)
            existing = direct.get(product.id)
            if existing is not None:
                existing.quantity += multiplier
                continue
            delta = StockDelta(
                product_id=product.id,
                quantity=multiplier,
                movement_type="bundle_sale",
                source_type="bundle",
                source_id=source_id,
                item_index=index,
                notes=f"Bundle member of {bundle.name}",
            )
            direct[product.id] = delta
            deltas.append(delta)
        return Resolution(deltas=deltas)
