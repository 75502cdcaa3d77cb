from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import InventorySystemError, InventoryValidationError, ReferenceNotFoundError
from db.database import get_async_session
from routers.transactions import resolve_actor
from schemas.inventory import (
    ContainerReceiveCreate,
    ContainerSaleOut,
    MovementOut,
    NetEffectLine,
    ProductContainersOut,
    ProductOut,
    ProductSoftDelete,
    StockAdjustmentCreate,
)
from services import products as product_service
from services import stock_ledger

router = APIRouter()


@router.get("/movements", response_model=List[MovementOut])
async def list_movements(
    product_id: Optional[UUID] = Query(default=None),
    reference: Optional[str] = Query(default=None),
    movement_type: Optional[str] = Query(default=None),
    limit: int = Query(default=200, ge=1, le=1000),
    db: AsyncSession = Depends(get_async_session),
):
    rows = await stock_ledger.list_movements(
        db, product_id=product_id, reference=reference, movement_type=movement_type, limit=limit
    )
    return [MovementOut(**m.to_schema) for m in rows]


@router.get("/transactions/{transaction_number}/net-effect", response_model=List[NetEffectLine])
async def transaction_net_effect(
    transaction_number: str,
    db: AsyncSession = Depends(get_async_session),
):
    rows = await stock_ledger.transaction_net_effect(db, transaction_number)
    return [NetEffectLine(**r) for r in rows]


@router.post("/adjustments", response_model=MovementOut, status_code=status.HTTP_201_CREATED)
async def create_adjustment(
    payload: StockAdjustmentCreate,
    db: AsyncSession = Depends(get_async_session),
    x_actor_id: Optional[str] = Header(default=None),
):
    actor = resolve_actor(payload.actor_id, x_actor_id)
    try:
        m = await stock_ledger.adjust_stock(db, payload.product_id, payload.change, payload.reason, actor)
    except ReferenceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InventoryValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except InventorySystemError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return MovementOut(**m.to_schema)


@router.get("/products/{product_id}/containers", response_model=ProductContainersOut)
async def get_product_containers(
    product_id: UUID,
    db: AsyncSession = Depends(get_async_session),
):
    try:
        data = await product_service.get_product_containers(db, product_id)
    except ReferenceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return ProductContainersOut(**data)


@router.post(
    "/products/{product_id}/containers",
    response_model=MovementOut,
    status_code=status.HTTP_201_CREATED,
)
async def receive_containers(
    product_id: UUID,
    payload: ContainerReceiveCreate,
    db: AsyncSession = Depends(get_async_session),
    x_actor_id: Optional[str] = Header(default=None),
):
    actor = resolve_actor(payload.actor_id, x_actor_id)
    try:
        m = await product_service.receive_containers(
            db, product_id, payload.count, actor, batch_number=payload.batch_number
        )
    except ReferenceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InventoryValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except InventorySystemError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return MovementOut(**m.to_schema)


@router.get("/containers/{container_id}/history", response_model=List[ContainerSaleOut])
async def get_container_history(
    container_id: str,
    db: AsyncSession = Depends(get_async_session),
):
    try:
        rows = await product_service.get_container_sale_history(db, container_id)
    except ReferenceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return [ContainerSaleOut(**s.to_schema) for s in rows]


@router.delete("/products/{product_id}", response_model=ProductOut)
async def delete_product(
    product_id: UUID,
    payload: Optional[ProductSoftDelete] = None,
    db: AsyncSession = Depends(get_async_session),
    x_actor_id: Optional[str] = Header(default=None),
):
    actor = resolve_actor(payload.actor_id if payload else None, x_actor_id)
    try:
        product = await product_service.soft_delete_product(
            db, product_id, actor, reason=payload.reason if payload else None
        )
    except ReferenceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return ProductOut(**product.to_schema)
