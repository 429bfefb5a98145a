"""Settlement endpoints for the API."""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from components.core.init_db import get_db
from components.core.schemas import ErrorResponse
from components.remittance import schemas as remittance_schemas
from components.remittance.repository import LedgerStore
from components.settlement import schemas
from components.settlement.executor import SettlementExecutor
from components.settlement.matcher import SettlementStrategy
from restapi.endpoints.actor import get_actor_id

router = APIRouter(
    prefix="/settlements",
    tags=["settlements"],
    responses={404: {"description": "Not found", "model": ErrorResponse}},
)


@router.post("", response_model=remittance_schemas.Settlement, status_code=201)
async def create_settlement(
    body: schemas.SettlementCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """
    Settle part of an outgoing debt with an incoming remittance.

    Both balances and the settlement record are written together; on any
    error nothing changes.
    """
    return await SettlementExecutor(db).execute_settlement(
        body.outgoing_remittance_id,
        body.incoming_remittance_id,
        body.amount_irr,
        notes=body.notes,
        created_by=actor_id,
    )


@router.get("/suggestions/{incoming_id}", response_model=List[schemas.SettlementSuggestion])
async def get_suggestions(
    incoming_id: int,
    strategy: SettlementStrategy = Query(SettlementStrategy.FIFO),
    limit: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
):
    """
    Ranked settlement suggestions for an incoming remittance.

    Read-only: calling it any number of times changes nothing.
    """
    return await SettlementExecutor(db).suggest(incoming_id, strategy=strategy, limit=limit)


@router.post("/auto-settle/{incoming_id}", response_model=schemas.AutoSettleResult)
async def auto_settle(
    incoming_id: int,
    body: Optional[schemas.AutoSettleRequest] = None,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """Settle an incoming remittance against open debts until it is used up."""
    strategy = body.strategy if body else SettlementStrategy.FIFO
    result = await SettlementExecutor(db).auto_settle(incoming_id, strategy=strategy, created_by=actor_id)
    return schemas.AutoSettleResult.model_validate(result)


@router.get("/history/{remittance_id}", response_model=List[remittance_schemas.Settlement])
async def get_history(
    remittance_id: int,
    side: str = Query("outgoing", pattern="^(outgoing|incoming)$"),
    db: AsyncSession = Depends(get_db),
):
    """Settlements of one remittance, newest first."""
    store = LedgerStore(db)
    if side == "incoming":
        await store.require_incoming(remittance_id)
        return await store.settlement_history(incoming_id=remittance_id)
    await store.require_outgoing(remittance_id)
    return await store.settlement_history(outgoing_id=remittance_id)
