"""Batch payments: preview an allocation, then commit it payment by payment."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from components.allocation.allocator import (
    Allocation,
    AllocationCandidate,
    AllocationStrategy,
    allocate,
)
from components.core.database import utcnow
from components.core.errors import LedgerError, ValidationError
from components.core.money import ZERO, to_decimal
from components.transaction import schemas as transaction_schemas
from components.transaction.models import PaymentMethod, PaymentStatus, Transaction
from components.transaction.repository import TransactionRepository

logger = logging.getLogger(__name__)


@dataclass
class BatchPreview:
    strategy: AllocationStrategy
    currency: str
    allocations: List[Allocation]
    total_allocated: Decimal
    unallocated: Decimal
    transactions_paid: int


@dataclass
class BatchResult:
    allocations: List[Allocation]
    payments_created: int = 0
    total_paid: Decimal = ZERO
    payment_ids: List[int] = field(default_factory=list)
    failed_payments: List[int] = field(default_factory=list)
    processed_at: datetime = field(default_factory=utcnow)


def _is_eligible(transaction: Transaction) -> bool:
    return (
        transaction.allow_partial_payment
        and not transaction.is_finalized
        and transaction.payment_status != PaymentStatus.FULLY_PAID.value
    )


class BatchPaymentService:
    """Distribute one payment over several transactions."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.transactions = TransactionRepository(session)

    async def preview(
        self,
        transaction_ids: Sequence[int],
        amount,
        strategy: AllocationStrategy = AllocationStrategy.FIFO,
    ) -> BatchPreview:
        """Work out the allocation without storing anything."""
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise ValidationError("Batch payment amount must be greater than 0")
        if not transaction_ids:
            raise ValidationError("At least one transaction is required")
        if len(set(transaction_ids)) != len(transaction_ids):
            raise ValidationError("Transaction ids must be unique")

        eligible = []
        for transaction_id in transaction_ids:
            transaction = await self.transactions.require(transaction_id)
            if _is_eligible(transaction):
                eligible.append(transaction)
        if not eligible:
            raise ValidationError("No transactions eligible for payment")

        currencies = {t.received_currency for t in eligible}
        if len(currencies) > 1:
            raise ValidationError(f"Transactions use different currencies: {', '.join(sorted(currencies))}")
        currency = currencies.pop()

        candidates = [
            AllocationCandidate(
                transaction_id=t.id,
                remaining_balance=t.remaining_balance,
                currency=t.received_currency,
            )
            for t in eligible
        ]
        allocations = allocate(candidates, amount, strategy, currency)
        total_allocated = sum((a.allocated_amount for a in allocations), ZERO)
        return BatchPreview(
            strategy=AllocationStrategy(strategy),
            currency=currency,
            allocations=allocations,
            total_allocated=total_allocated,
            unallocated=amount - total_allocated,
            transactions_paid=sum(1 for a in allocations if a.allocated_amount > ZERO),
        )

    async def commit(
        self,
        transaction_ids: Sequence[int],
        amount,
        strategy: AllocationStrategy = AllocationStrategy.FIFO,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        receipt_number: Optional[str] = None,
        notes: Optional[str] = None,
        paid_by: Optional[int] = None,
    ) -> BatchResult:
        """Create one payment per non-zero allocation, in order.

        Each payment commits on its own; a failing one is recorded and the
        rest still go through.
        """
        preview = await self.preview(transaction_ids, amount, strategy)
        result = BatchResult(allocations=preview.allocations)

        for allocation in preview.allocations:
            if allocation.allocated_amount <= ZERO:
                continue
            payment = transaction_schemas.PaymentCreate(
                amount=allocation.allocated_amount,
                currency=preview.currency,
                payment_method=payment_method,
                receipt_number=receipt_number,
                notes=f"Batch payment: {notes}" if notes else "Batch payment",
            )
            try:
                created = await self.transactions.add_payment(allocation.transaction_id, payment, paid_by=paid_by)
            except LedgerError as exc:
                logger.warning(
                    "batch payment failed for transaction",
                    extra={"transaction_id": allocation.transaction_id, "error": exc.message},
                )
                result.failed_payments.append(allocation.transaction_id)
                continue
            result.payments_created += 1
            result.total_paid += created.amount_in_base
            result.payment_ids.append(created.id)

        logger.info(
            "batch payment processed",
            extra={
                "payments_created": result.payments_created,
                "total_paid": result.total_paid,
                "failed": len(result.failed_payments),
            },
        )
        return result
