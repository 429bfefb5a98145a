"""Payment endpoints for the API."""

from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from components.allocation import schemas as allocation_schemas
from components.allocation.service import BatchPaymentService
from components.core.init_db import get_db
from components.core.schemas import ErrorResponse
from components.transaction.repository import TransactionRepository
from components.transaction import schemas
from restapi.endpoints.actor import get_actor_id

router = APIRouter(
    prefix="/payments",
    tags=["payments"],
    responses={404: {"description": "Not found", "model": ErrorResponse}},
)


@router.post("/batch/preview", response_model=allocation_schemas.BatchPreview)
async def preview_batch(
    request: allocation_schemas.BatchPaymentRequest,
    db: AsyncSession = Depends(get_db),
):
    """Show how a payment would be split over the given transactions. Nothing is stored."""
    return await BatchPaymentService(db).preview(request.transaction_ids, request.total_amount, request.strategy)


@router.post("/batch", response_model=allocation_schemas.BatchResult, status_code=201)
async def commit_batch(
    request: allocation_schemas.BatchPaymentRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """
    Split a payment over the given transactions and record it.

    One payment is created per transaction that receives a share; a failure
    on one transaction is reported in ``failed_payments`` without undoing
    the others.
    """
    return await BatchPaymentService(db).commit(
        request.transaction_ids,
        request.total_amount,
        strategy=request.strategy,
        payment_method=request.payment_method,
        receipt_number=request.receipt_number,
        notes=request.notes,
        paid_by=actor_id,
    )


@router.put("/{payment_id}", response_model=schemas.Payment)
async def edit_payment(
    payment_id: int,
    changes: schemas.PaymentUpdate,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """Edit an active payment; the transaction totals follow."""
    return await TransactionRepository(db).edit_payment(payment_id, changes, edited_by=actor_id)


@router.post("/{payment_id}/cancel", response_model=schemas.Payment)
async def cancel_payment(
    payment_id: int,
    body: schemas.PaymentCancel,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """Cancel a payment. It stays on record but no longer counts as paid."""
    return await TransactionRepository(db).cancel_payment(payment_id, body.reason, cancelled_by=actor_id)
