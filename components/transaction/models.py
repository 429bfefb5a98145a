"""Transaction and payment models for the database."""

import enum

from sqlalchemy import Boolean, Column, Integer, String, Text, DateTime, ForeignKey, Numeric
from sqlalchemy.orm import relationship

from components.core.database import Base, utcnow


class PaymentStatus(str, enum.Enum):
    """Payment progress of a partial-payment transaction."""
    OPEN = "OPEN"
    PARTIAL = "PARTIAL"
    FULLY_PAID = "FULLY_PAID"


class PaymentRecordStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    CARD = "CARD"
    CHEQUE = "CHEQUE"
    ONLINE = "ONLINE"
    OTHER = "OTHER"


class Transaction(Base):
    """Transfer order that may be paid out in several payments."""
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    client_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # 3 decimals so KWD/BHD-style currencies keep their minor unit
    total_received = Column(Numeric(20, 3), nullable=False)
    received_currency = Column(String(10), nullable=False)
    total_paid = Column(Numeric(20, 3), nullable=False, default=0)
    remaining_balance = Column(Numeric(20, 3), nullable=False)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.OPEN.value, index=True)
    allow_partial_payment = Column(Boolean, nullable=False, default=True)

    is_finalized = Column(Boolean, nullable=False, default=False)
    finalized_at = Column(DateTime, nullable=True)
    finalized_by = Column(Integer, nullable=True)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Optimistic concurrency stamp, bumped by every conditional update
    version = Column(Integer, nullable=False, default=1)

    # Relationships
    payments = relationship("Payment", back_populates="transaction", order_by="Payment.id")


class Payment(Base):
    """One contribution toward a transaction; cancelled, never deleted."""
    __tablename__ = "transaction_payments"

    id = Column(Integer, primary_key=True, index=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False, index=True)

    amount = Column(Numeric(20, 3), nullable=False)
    currency = Column(String(10), nullable=False)
    exchange_rate = Column(Numeric(20, 6), nullable=False, default=1)  # to the transaction currency
    amount_in_base = Column(Numeric(20, 3), nullable=False)
    payment_method = Column(String(50), nullable=False, default=PaymentMethod.CASH.value)
    status = Column(String(20), nullable=False, default=PaymentRecordStatus.ACTIVE.value, index=True)
    receipt_number = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    paid_by = Column(Integer, nullable=True)
    paid_at = Column(DateTime, nullable=False, default=utcnow)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    # Edit audit
    is_edited = Column(Boolean, nullable=False, default=False)
    edited_at = Column(DateTime, nullable=True)
    edited_by = Column(Integer, nullable=True)
    edit_reason = Column(Text, nullable=True)

    # Cancellation audit
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(Integer, nullable=True)
    cancel_reason = Column(Text, nullable=True)

    # Relationships
    transaction = relationship("Transaction", back_populates="payments")
