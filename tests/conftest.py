"""
Shared fixtures for the inventory engine tests.

Each test gets a fresh in-memory SQLite database (aiosqlite, one shared
connection through StaticPool) with the full schema, plus a ``factory``
that builds units, products, bottled products, blend templates, bundles
and transaction payloads.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from db.database import Base, import_models
from db.blend_template import BlendIngredient, BlendTemplate
from db.bundle import Bundle, BundleProduct
from db.inventory.container import Container
from db.product import Product
from db.unit import UnitOfMeasurement
from schemas.transactions import TransactionIn, TransactionItemIn

import_models()


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine):
    maker = async_sessionmaker(engine, expire_on_commit=False)
    async with maker() as session:
        yield session


async def fetch_product(db, product_id) -> Product:
    """Re-read a product, its containers and their history from the database."""
    res = await db.execute(
        select(Product).where(Product.id == product_id).execution_options(populate_existing=True)
    )
    return res.scalar_one()


class Factory:
    def __init__(self, db):
        self.db = db
        self._units = {}

    async def unit(self, abbreviation: str = "unit", kind: str = "count") -> UnitOfMeasurement:
        if abbreviation in self._units:
            return self._units[abbreviation]
        u = UnitOfMeasurement(name=f"unit-{abbreviation}", abbreviation=abbreviation, kind=kind)
        self.db.add(u)
        await self.db.commit()
        self._units[abbreviation] = u
        return u

    async def product(
        self,
        name: str = "Test Product",
        stock="100",
        *,
        sku: Optional[str] = None,
        unit: str = "unit",
        reorder_point="10",
        container_capacity=None,
        full_containers: int = 0,
        partial=None,
    ) -> Product:
        kind = "volume" if unit == "ml" else "count"
        u = await self.unit(unit, kind)
        p = Product(
            sku=sku or f"SKU-{uuid.uuid4().hex[:8]}",
            name=name,
            unit_of_measurement=u,
            current_stock=Decimal(str(stock)),
            reorder_point=Decimal(str(reorder_point)),
            container_capacity=Decimal(str(container_capacity)) if container_capacity is not None else None,
            full_containers=full_containers,
            containers=[],
        )
        for position, (container_id, remaining) in enumerate(partial or []):
            remaining = Decimal(str(remaining))
            p.containers.append(
                Container(
                    id=container_id,
                    position=position,
                    capacity=p.container_capacity,
                    remaining=remaining,
                    status="partial" if remaining > 0 else "empty",
                    opened_at=datetime.now(timezone.utc),
                    sales=[],
                )
            )
        self.db.add(p)
        await self.db.commit()
        return p

    async def bottled_product(self, name: str = "Tincture", capacity="50", full: int = 5, partial=None, stock=None) -> Product:
        if stock is None:
            stock = Decimal(str(capacity)) * full + sum(Decimal(str(r)) for _, r in (partial or []))
        return await self.product(
            name,
            stock,
            unit="ml",
            container_capacity=capacity,
            full_containers=full,
            partial=partial,
        )

    async def blend_template(self, name: str = "House Blend", ingredients=()) -> BlendTemplate:
        """``ingredients`` is a sequence of (product, quantity_per_unit)."""
        t = BlendTemplate(
            name=name,
            ingredients=[
                BlendIngredient(
                    product_id=p.id,
                    name=p.name,
                    quantity_per_unit=Decimal(str(q)),
                    sort_order=i,
                )
                for i, (p, q) in enumerate(ingredients)
            ],
        )
        self.db.add(t)
        await self.db.commit()
        return t

    async def bundle(self, name: str = "Starter Pack", products=(), blends=()) -> Bundle:
        """``products`` / ``blends`` are sequences of (product or template, quantity_per_unit)."""
        members = [
            BundleProduct(product_type="product", product_id=p.id, name=p.name, quantity_per_unit=Decimal(str(q)))
            for p, q in products
        ] + [
            BundleProduct(product_type="fixed_blend", blend_template_id=t.id, name=t.name, quantity_per_unit=Decimal(str(q)))
            for t, q in blends
        ]
        for i, m in enumerate(members):
            m.sort_order = i
        b = Bundle(name=name, sku=f"BNDL-{uuid.uuid4().hex[:8]}", bundle_products=members)
        self.db.add(b)
        await self.db.commit()
        return b

    @staticmethod
    def item(item_type: str = "product", quantity="1", **kwargs) -> TransactionItemIn:
        return TransactionItemIn(item_type=item_type, quantity=Decimal(str(quantity)), **kwargs)

    @staticmethod
    def transaction(items, number: Optional[str] = None) -> TransactionIn:
        return TransactionIn(transaction_number=number or f"TXN-{uuid.uuid4().hex[:8].upper()}", items=list(items))


@pytest.fixture
def factory(db):
    return Factory(db)
