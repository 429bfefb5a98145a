"""Transaction endpoints for the API."""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from components.core.init_db import get_db
from components.core.schemas import ErrorResponse
from components.transaction.repository import TransactionRepository
from components.transaction import schemas
from restapi.endpoints.actor import get_actor_id

router = APIRouter(
    prefix="/transactions",
    tags=["transactions"],
    responses={404: {"description": "Not found", "model": ErrorResponse}},
)


@router.post("", response_model=schemas.Transaction, status_code=201)
async def create_transaction(
    transaction: schemas.TransactionCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """Create a transaction that can be paid off over several payments."""
    return await TransactionRepository(db).create(transaction, created_by=actor_id)


@router.get("", response_model=List[schemas.Transaction])
async def list_transactions(
    payment_status: Optional[str] = Query(None, description="Filter by status (OPEN, PARTIAL, FULLY_PAID)"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List transactions, newest first."""
    return await TransactionRepository(db).get_all(payment_status=payment_status, skip=skip, limit=limit)


@router.get("/pending", response_model=List[schemas.Transaction])
async def list_pending(db: AsyncSession = Depends(get_db)):
    """Transactions still accepting payments, oldest first."""
    return await TransactionRepository(db).get_pending()


@router.get("/{transaction_id}", response_model=schemas.TransactionDetail)
async def get_transaction(transaction_id: int, db: AsyncSession = Depends(get_db)):
    """Get a transaction with all of its payments."""
    return await TransactionRepository(db).require(transaction_id)


@router.get("/{transaction_id}/payments", response_model=List[schemas.Payment])
async def list_payments(transaction_id: int, db: AsyncSession = Depends(get_db)):
    """All payments of a transaction, cancelled ones included."""
    return await TransactionRepository(db).get_payments(transaction_id)


@router.post("/{transaction_id}/payments", response_model=schemas.Payment, status_code=201)
async def add_payment(
    transaction_id: int,
    payment: schemas.PaymentCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """
    Record a payment against a transaction.

    The payment is converted to the transaction currency with its exchange
    rate and may not take the total paid above the amount received.
    """
    return await TransactionRepository(db).add_payment(transaction_id, payment, paid_by=actor_id)


@router.post("/{transaction_id}/complete", response_model=schemas.Transaction)
async def complete_transaction(
    transaction_id: int,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """Finalize a transaction whose remaining balance is within tolerance."""
    return await TransactionRepository(db).complete_transaction(transaction_id, finalized_by=actor_id)
