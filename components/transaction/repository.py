"""Repository for partial-payment transactions and their payments."""

import logging
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from components.core.config import get_settings
from components.core.database import utcnow
from components.core.errors import (
    ConcurrencyConflictError,
    NotFoundError,
    TransactionLockedError,
    ValidationError,
)
from components.core.money import ZERO, minor_unit, quantize
from components.transaction import schemas
from components.transaction.models import (
    Payment,
    PaymentMethod,
    PaymentRecordStatus,
    PaymentStatus,
    Transaction,
)
from components.transaction.status import can_complete, derive_payment_status, remaining_balance

logger = logging.getLogger(__name__)

# Methods that need a reference number on the payment
_REFERENCE_REQUIRED = {
    PaymentMethod.BANK_TRANSFER.value: "A reference number is required for bank transfers",
    PaymentMethod.CHEQUE.value: "A cheque number is required for cheque payments",
}


class TransactionRepository:
    """Repository for transactions and the payments made against them.

    Every payment mutation rewrites the parent transaction's totals with a
    version check and stores the payment change in the same commit, so
    ``total_paid`` always equals the sum of active payments.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session
        self.tolerance = get_settings().PAYMENT_COMPLETION_TOLERANCE

    async def create(self, transaction: schemas.TransactionCreate, created_by: Optional[int] = None) -> Transaction:
        """Create a new transaction with nothing paid yet."""
        db_transaction = Transaction(
            **transaction.model_dump(),
            total_paid=ZERO,
            remaining_balance=transaction.total_received,
            payment_status=PaymentStatus.OPEN.value,
            is_finalized=False,
            created_by=created_by,
        )
        db_transaction.received_currency = db_transaction.received_currency.upper()
        self.session.add(db_transaction)
        await self.session.commit()
        await self.session.refresh(db_transaction)
        logger.info("transaction created", extra={"transaction_id": db_transaction.id})
        return db_transaction

    async def get_by_id(self, transaction_id: int) -> Optional[Transaction]:
        """Get transaction by ID with its payments."""
        result = await self.session.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .options(selectinload(Transaction.payments))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def require(self, transaction_id: int) -> Transaction:
        transaction = await self.get_by_id(transaction_id)
        if transaction is None:
            raise NotFoundError("Transaction", transaction_id)
        return transaction

    async def get_all(
        self,
        payment_status: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Transaction]:
        """Get transactions, newest first, with optional payment status filter."""
        query = select(Transaction)
        if payment_status:
            query = query.where(Transaction.payment_status == payment_status.upper())
        query = query.order_by(Transaction.created_at.desc(), Transaction.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def get_pending(self) -> List[Transaction]:
        """Transactions still accepting payments, oldest first."""
        result = await self.session.execute(
            select(Transaction)
            .where(
                Transaction.allow_partial_payment.is_(True),
                Transaction.is_finalized.is_(False),
                Transaction.payment_status.in_([PaymentStatus.OPEN.value, PaymentStatus.PARTIAL.value]),
            )
            .order_by(Transaction.created_at, Transaction.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_payments(self, transaction_id: int) -> List[Payment]:
        """All payments of a transaction, including cancelled ones."""
        await self.require(transaction_id)
        result = await self.session.execute(
            select(Payment)
            .where(Payment.transaction_id == transaction_id)
            .order_by(Payment.paid_at.desc(), Payment.id.desc())
        )
        return list(result.scalars().all())

    async def get_payment(self, payment_id: int) -> Optional[Payment]:
        result = await self.session.execute(
            select(Payment).where(Payment.id == payment_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def conditional_update(self, transaction_id: int, expected_version: int, **values: Any) -> bool:
        """Apply ``values`` only if the transaction still has ``expected_version``."""
        result = await self.session.execute(
            update(Transaction)
            .where(Transaction.id == transaction_id, Transaction.version == expected_version)
            .values(version=expected_version + 1, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def add_payment(
        self, transaction_id: int, payment: schemas.PaymentCreate, paid_by: Optional[int] = None
    ) -> Payment:
        """Record a payment and recompute the transaction's totals."""
        try:
            transaction = await self.require(transaction_id)
            self._ensure_unlocked(transaction)
            if not transaction.allow_partial_payment:
                raise ValidationError("This transaction does not support partial payments")
            if transaction.payment_status == PaymentStatus.FULLY_PAID.value:
                raise ValidationError("Transaction is already fully paid")
            method = PaymentMethod(payment.payment_method).value
            self._validate_method(method, payment.receipt_number)

            amount_in_base = quantize(payment.amount * payment.exchange_rate, minor_unit(transaction.received_currency))
            new_paid = transaction.total_paid + amount_in_base
            if new_paid > transaction.total_received:
                raise ValidationError(
                    f"Payment exceeds remaining balance. Remaining: "
                    f"{transaction.remaining_balance} {transaction.received_currency}"
                )

            await self._apply_totals(transaction, new_paid)
            db_payment = Payment(
                transaction_id=transaction.id,
                amount=payment.amount,
                currency=(payment.currency or transaction.received_currency).upper(),
                exchange_rate=payment.exchange_rate,
                amount_in_base=amount_in_base,
                payment_method=method,
                status=PaymentRecordStatus.ACTIVE.value,
                receipt_number=payment.receipt_number,
                notes=payment.notes,
                paid_by=paid_by,
                paid_at=payment.paid_at or utcnow(),
            )
            self.session.add(db_payment)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            "payment added",
            extra={"transaction_id": transaction_id, "payment_id": db_payment.id, "amount_in_base": amount_in_base},
        )
        return db_payment

    async def edit_payment(
        self, payment_id: int, changes: schemas.PaymentUpdate, edited_by: Optional[int] = None
    ) -> Payment:
        """Edit an active payment, keeping an audit trail of the edit."""
        try:
            db_payment = await self.get_payment(payment_id)
            if db_payment is None:
                raise NotFoundError("Payment", payment_id)
            if db_payment.status == PaymentRecordStatus.CANCELLED.value:
                raise ValidationError("Cannot edit cancelled payment")
            transaction = await self.require(db_payment.transaction_id)
            self._ensure_unlocked(transaction)

            amount = changes.amount if changes.amount is not None else db_payment.amount
            rate = changes.exchange_rate if changes.exchange_rate is not None else db_payment.exchange_rate
            method = PaymentMethod(changes.payment_method or db_payment.payment_method).value
            receipt_number = (
                changes.receipt_number if changes.receipt_number is not None else db_payment.receipt_number
            )
            self._validate_method(method, receipt_number)

            amount_in_base = quantize(amount * rate, minor_unit(transaction.received_currency))
            new_paid = transaction.total_paid - db_payment.amount_in_base + amount_in_base
            if new_paid > transaction.total_received:
                raise ValidationError(
                    f"Updated payment exceeds total. Remaining: "
                    f"{transaction.remaining_balance} {transaction.received_currency}"
                )

            await self._apply_totals(transaction, new_paid)
            db_payment.amount = amount
            db_payment.exchange_rate = rate
            db_payment.amount_in_base = amount_in_base
            db_payment.payment_method = method
            db_payment.receipt_number = receipt_number
            if changes.currency is not None:
                db_payment.currency = changes.currency.upper()
            if changes.notes is not None:
                db_payment.notes = changes.notes
            db_payment.is_edited = True
            db_payment.edited_at = utcnow()
            db_payment.edited_by = edited_by
            db_payment.edit_reason = changes.reason
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info("payment edited", extra={"payment_id": payment_id, "amount_in_base": amount_in_base})
        return db_payment

    async def cancel_payment(self, payment_id: int, reason: str, cancelled_by: Optional[int] = None) -> Payment:
        """Soft-cancel a payment; it stays on record but no longer counts."""
        try:
            if not reason or not reason.strip():
                raise ValidationError("A cancellation reason is required")
            db_payment = await self.get_payment(payment_id)
            if db_payment is None:
                raise NotFoundError("Payment", payment_id)
            if db_payment.status == PaymentRecordStatus.CANCELLED.value:
                raise ValidationError("Payment is already cancelled")
            transaction = await self.require(db_payment.transaction_id)
            self._ensure_unlocked(transaction)

            await self._apply_totals(transaction, transaction.total_paid - db_payment.amount_in_base)
            db_payment.status = PaymentRecordStatus.CANCELLED.value
            db_payment.cancelled_at = utcnow()
            db_payment.cancelled_by = cancelled_by
            db_payment.cancel_reason = reason.strip()
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info("payment cancelled", extra={"payment_id": payment_id, "transaction_id": db_payment.transaction_id})
        return db_payment

    async def complete_transaction(self, transaction_id: int, finalized_by: Optional[int] = None) -> Transaction:
        """Finalize a transaction whose remaining balance is within tolerance."""
        try:
            transaction = await self.require(transaction_id)
            self._ensure_unlocked(transaction)
            if not can_complete(
                transaction.remaining_balance,
                transaction.total_received,
                self.tolerance,
                transaction.received_currency,
            ):
                raise ValidationError(
                    f"Cannot complete transaction with remaining balance: "
                    f"{transaction.remaining_balance} {transaction.received_currency}"
                )
            applied = await self.conditional_update(
                transaction.id,
                transaction.version,
                payment_status=PaymentStatus.FULLY_PAID.value,
                is_finalized=True,
                finalized_at=utcnow(),
                finalized_by=finalized_by,
            )
            if not applied:
                raise ConcurrencyConflictError(f"Transaction {transaction_id} changed while completing; retry")
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info("transaction completed", extra={"transaction_id": transaction_id})
        return await self.require(transaction_id)

    async def _apply_totals(self, transaction: Transaction, new_paid: Decimal) -> None:
        status = derive_payment_status(new_paid, transaction.total_received, transaction.received_currency)
        applied = await self.conditional_update(
            transaction.id,
            transaction.version,
            total_paid=new_paid,
            remaining_balance=remaining_balance(transaction.total_received, new_paid),
            payment_status=status.value,
        )
        if not applied:
            raise ConcurrencyConflictError(f"Transaction {transaction.id} changed concurrently; retry")

    @staticmethod
    def _ensure_unlocked(transaction: Transaction) -> None:
        if transaction.is_finalized:
            raise TransactionLockedError(f"Transaction {transaction.id} is finalized and cannot be changed")

    @staticmethod
    def _validate_method(method: str, receipt_number: Optional[str]) -> None:
        message = _REFERENCE_REQUIRED.get(method)
        if message and not (receipt_number and receipt_number.strip()):
            raise ValidationError(message)
