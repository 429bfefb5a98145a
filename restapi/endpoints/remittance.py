"""Remittance endpoints for the API."""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from components.core.init_db import get_db
from components.core.schemas import ErrorResponse
from components.remittance.repository import LedgerStore
from components.remittance import schemas
from restapi.endpoints.actor import get_actor_id

router = APIRouter(
    prefix="/remittances",
    tags=["remittances"],
    responses={404: {"description": "Not found", "model": ErrorResponse}},
)


@router.post("/outgoing", response_model=schemas.OutgoingRemittance, status_code=201)
async def create_outgoing(
    remittance: schemas.OutgoingRemittanceCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """
    Register money owed to a recipient abroad.

    The CAD equivalent is derived from the buy rate; the full amount starts
    out as remaining debt.
    """
    return await LedgerStore(db).create_outgoing(remittance, created_by=actor_id)


@router.get("/outgoing", response_model=List[schemas.OutgoingRemittance])
async def list_outgoing(
    status: Optional[str] = Query(None, description="Filter by status (PENDING, PARTIAL, COMPLETED, CANCELLED)"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List outgoing remittances, newest first."""
    return await LedgerStore(db).list_outgoing(status=status, skip=skip, limit=limit)


@router.get("/outgoing/{remittance_id}", response_model=schemas.OutgoingRemittanceDetail)
async def get_outgoing(remittance_id: int, db: AsyncSession = Depends(get_db)):
    """Get an outgoing remittance with its settlement history."""
    return await LedgerStore(db).require_outgoing(remittance_id)


@router.post("/outgoing/{remittance_id}/cancel", response_model=schemas.OutgoingRemittance)
async def cancel_outgoing(
    remittance_id: int,
    body: schemas.CancelRemittance,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """Cancel an outgoing remittance. Only allowed while nothing is settled."""
    return await LedgerStore(db).cancel_outgoing(remittance_id, body.reason, cancelled_by=actor_id)


@router.post("/incoming", response_model=schemas.IncomingRemittance, status_code=201)
async def create_incoming(
    remittance: schemas.IncomingRemittanceCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """Register funds received for payout in Iran."""
    return await LedgerStore(db).create_incoming(remittance, created_by=actor_id)


@router.get("/incoming", response_model=List[schemas.IncomingRemittance])
async def list_incoming(
    status: Optional[str] = Query(None, description="Filter by status (PENDING, PARTIAL, COMPLETED, PAID, CANCELLED)"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List incoming remittances, newest first."""
    return await LedgerStore(db).list_incoming(status=status, skip=skip, limit=limit)


@router.get("/incoming/{remittance_id}", response_model=schemas.IncomingRemittanceDetail)
async def get_incoming(remittance_id: int, db: AsyncSession = Depends(get_db)):
    """Get an incoming remittance with its settlement history."""
    return await LedgerStore(db).require_incoming(remittance_id)


@router.post("/incoming/{remittance_id}/cancel", response_model=schemas.IncomingRemittance)
async def cancel_incoming(
    remittance_id: int,
    body: schemas.CancelRemittance,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """Cancel an incoming remittance. Only allowed while nothing is allocated."""
    return await LedgerStore(db).cancel_incoming(remittance_id, body.reason, cancelled_by=actor_id)


@router.post("/incoming/{remittance_id}/mark-paid", response_model=schemas.IncomingRemittance)
async def mark_incoming_paid(
    remittance_id: int,
    body: schemas.MarkIncomingPaid,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """Record that a fully allocated incoming remittance was paid out."""
    return await LedgerStore(db).mark_incoming_paid(
        remittance_id,
        payment_method=body.payment_method,
        payment_reference=body.payment_reference,
        paid_by=actor_id,
    )
