"""Pydantic schemas for batch payment allocation."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field

from components.allocation.allocator import AllocationStrategy
from components.transaction.models import PaymentMethod


class BatchPaymentRequest(BaseModel):
    """Schema for a payment split over several transactions."""
    transaction_ids: List[int] = Field(..., min_length=1)
    total_amount: Decimal = Field(..., gt=0)
    strategy: AllocationStrategy = AllocationStrategy.FIFO
    payment_method: PaymentMethod = PaymentMethod.CASH
    receipt_number: Optional[str] = None
    notes: Optional[str] = None


class Allocation(BaseModel):
    """Schema for one transaction's share of a batch payment."""
    transaction_id: int
    remaining_balance: Decimal
    allocated_amount: Decimal
    is_full_payment: bool
    currency: str

    class Config:
        from_attributes = True


class BatchPreview(BaseModel):
    """Schema for a batch payment preview."""
    strategy: AllocationStrategy
    currency: str
    allocations: List[Allocation]
    total_allocated: Decimal
    unallocated: Decimal
    transactions_paid: int

    class Config:
        from_attributes = True


class BatchResult(BaseModel):
    """Schema for a committed batch payment."""
    allocations: List[Allocation]
    payments_created: int
    total_paid: Decimal
    payment_ids: List[int]
    failed_payments: List[int]
    processed_at: datetime

    class Config:
        from_attributes = True
