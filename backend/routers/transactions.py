from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import AlreadyReversedError, InventorySystemError, InventoryValidationError
from db.database import get_async_session
from schemas.transactions import (
    InventoryDeductionResult,
    InventoryReversalResult,
    ReverseTransactionIn,
    TransactionIn,
)
from services.transaction_inventory import TransactionInventoryService

router = APIRouter()


def resolve_actor(body_actor: Optional[str], header_actor: Optional[str]) -> str:
    actor = (body_actor or header_actor or "").strip()
    return actor or "system"


@router.post("/process", response_model=InventoryDeductionResult)
async def process_transaction(
    payload: TransactionIn,
    db: AsyncSession = Depends(get_async_session),
    x_actor_id: Optional[str] = Header(default=None),
):
    actor = resolve_actor(payload.actor_id, x_actor_id)
    try:
        result = await TransactionInventoryService(db).process_transaction_inventory(payload, actor)
    except InventorySystemError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    if not result.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.errors)
    return result


@router.post("/{transaction_number}/reverse", response_model=InventoryReversalResult)
async def reverse_transaction(
    transaction_number: str,
    payload: Optional[ReverseTransactionIn] = None,
    db: AsyncSession = Depends(get_async_session),
    x_actor_id: Optional[str] = Header(default=None),
):
    actor = resolve_actor(payload.actor_id if payload else None, x_actor_id)
    try:
        result = await TransactionInventoryService(db).reverse_transaction_inventory(transaction_number, actor)
    except AlreadyReversedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except InventoryValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except InventorySystemError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    if not result.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.errors)
    return result
