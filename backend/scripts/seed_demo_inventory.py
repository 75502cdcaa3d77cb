"""
Seed a small demo catalog: units, simple products, a bottled product,
a blend template and a bundle.

Run locally:
  python backend/scripts/seed_demo_inventory.py

It uses the same DATABASE_URL env var as the backend (dotenv supported by core.config).
Existing rows (matched by SKU / name) are left alone, so the script can be re-run.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.blend_template import BlendIngredient, BlendTemplate
from db.bundle import Bundle, BundleProduct
from db.database import async_session_maker, create_db_and_tables
from db.product import Product
from db.unit import UnitOfMeasurement


@dataclass(frozen=True)
class SeedProduct:
    sku: str
    name: str
    unit: str
    stock: Decimal
    container_capacity: Optional[Decimal] = None
    full_containers: int = 0


SEED_UNITS = [
    ("Milliliter", "ml", "volume"),
    ("Gram", "g", "weight"),
    ("Unit", "unit", "count"),
]

SEED_PRODUCTS: list[SeedProduct] = [
    SeedProduct(sku="TAB-PARA-500", name="Paracetamol 500mg", unit="unit", stock=Decimal("200")),
    SeedProduct(sku="HERB-CHAM", name="Chamomile (dried)", unit="g", stock=Decimal("1000")),
    SeedProduct(sku="HERB-PEPP", name="Peppermint (dried)", unit="g", stock=Decimal("1000")),
    SeedProduct(
        sku="TINC-ECH-50",
        name="Echinacea tincture",
        unit="ml",
        stock=Decimal("250"),
        container_capacity=Decimal("50"),
        full_containers=5,
    ),
]


async def _unit_by_abbr(db: AsyncSession) -> dict[str, UnitOfMeasurement]:
    out = {}
    for name, abbr, kind in SEED_UNITS:
        res = await db.execute(select(UnitOfMeasurement).where(UnitOfMeasurement.name == name))
        u = res.scalar_one_or_none()
        if u is None:
            u = UnitOfMeasurement(name=name, abbreviation=abbr, kind=kind)
            db.add(u)
        out[abbr] = u
    await db.flush()
    return out


async def seed(db: AsyncSession) -> dict[str, int]:
    created = {"products": 0, "blend_templates": 0, "bundles": 0}
    units = await _unit_by_abbr(db)

    products: dict[str, Product] = {}
    for p in SEED_PRODUCTS:
        res = await db.execute(select(Product).where(Product.sku == p.sku))
        row = res.scalar_one_or_none()
        if row is None:
            row = Product(
                sku=p.sku,
                name=p.name,
                unit_of_measurement_id=units[p.unit].id,
                current_stock=p.stock,
                container_capacity=p.container_capacity,
                full_containers=p.full_containers,
            )
            db.add(row)
            created["products"] += 1
        products[p.sku] = row
    await db.flush()

    res = await db.execute(select(BlendTemplate).where(BlendTemplate.name == "Calming tea"))
    tea = res.scalar_one_or_none()
    if tea is None:
        tea = BlendTemplate(
            name="Calming tea",
            ingredients=[
                BlendIngredient(product_id=products["HERB-CHAM"].id, name="Chamomile", quantity_per_unit=Decimal("10"), unit_name="g", sort_order=0),
                BlendIngredient(product_id=products["HERB-PEPP"].id, name="Peppermint", quantity_per_unit=Decimal("5"), unit_name="g", sort_order=1),
            ],
        )
        db.add(tea)
        created["blend_templates"] += 1
    await db.flush()

    res = await db.execute(select(Bundle).where(Bundle.sku == "BNDL-COLD"))
    if res.scalar_one_or_none() is None:
        db.add(
            Bundle(
                name="Cold season pack",
                sku="BNDL-COLD",
                bundle_products=[
                    BundleProduct(product_type="product", product_id=products["TAB-PARA-500"].id, name="Paracetamol", quantity_per_unit=Decimal("1"), sort_order=0),
                    BundleProduct(product_type="fixed_blend", blend_template_id=tea.id, name="Calming tea", quantity_per_unit=Decimal("2"), sort_order=1),
                ],
            )
        )
        created["bundles"] += 1

    await db.commit()
    return created


async def main() -> None:
    await create_db_and_tables()
    async with async_session_maker() as db:
        created = await seed(db)
        print(
            f"Seeded {created['products']} product(s), "
            f"{created['blend_templates']} blend template(s), {created['bundles']} bundle(s)"
        )


if __name__ == "__main__":
    asyncio.run(main())
