"""Pydantic schemas for transaction and payment data validation."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field

from components.transaction.models import PaymentMethod


class TransactionBase(BaseModel):
    """Base transaction schema."""
    client_name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    total_received: Decimal = Field(..., gt=0)
    received_currency: str = Field(..., min_length=3, max_length=10)
    allow_partial_payment: bool = True


class TransactionCreate(TransactionBase):
    """Schema for transaction creation."""
    pass


class Transaction(TransactionBase):
    """Schema for transaction response."""
    id: int
    total_paid: Decimal
    remaining_balance: Decimal
    payment_status: str
    is_finalized: bool
    finalized_at: Optional[datetime] = None
    created_at: datetime
    version: int

    class Config:
        from_attributes = True


class PaymentCreate(BaseModel):
    """Schema for adding a payment to a transaction."""
    amount: Decimal = Field(..., gt=0)
    currency: Optional[str] = None  # defaults to the transaction currency
    exchange_rate: Decimal = Field(Decimal("1"), gt=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    receipt_number: Optional[str] = None
    notes: Optional[str] = None
    paid_at: Optional[datetime] = None


class PaymentUpdate(BaseModel):
    """Schema for editing a payment; omitted fields are left as they are."""
    amount: Optional[Decimal] = Field(None, gt=0)
    currency: Optional[str] = None
    exchange_rate: Optional[Decimal] = Field(None, gt=0)
    payment_method: Optional[PaymentMethod] = None
    receipt_number: Optional[str] = None
    notes: Optional[str] = None
    reason: Optional[str] = None


class PaymentCancel(BaseModel):
    """Schema for cancelling a payment."""
    reason: str = Field(..., min_length=1)


class Payment(BaseModel):
    """Schema for payment response."""
    id: int
    transaction_id: int
    amount: Decimal
    currency: str
    exchange_rate: Decimal
    amount_in_base: Decimal
    payment_method: str
    status: str
    receipt_number: Optional[str] = None
    notes: Optional[str] = None
    paid_by: Optional[int] = None
    paid_at: datetime
    is_edited: bool
    edited_at: Optional[datetime] = None
    edited_by: Optional[int] = None
    edit_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[int] = None
    cancel_reason: Optional[str] = None

    class Config:
        from_attributes = True


class TransactionDetail(Transaction):
    """Transaction with every payment, active and cancelled."""
    payments: List[Payment] = []
