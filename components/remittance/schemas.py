"""Pydantic schemas for remittance data validation."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field


class OutgoingRemittanceBase(BaseModel):
    """Base outgoing remittance schema."""
    sender_name: str = Field(..., min_length=1, max_length=255)
    sender_phone: Optional[str] = None
    recipient_name: str = Field(..., min_length=1, max_length=255)
    recipient_phone: Optional[str] = None
    recipient_iban: Optional[str] = None
    recipient_bank: Optional[str] = None
    amount_irr: Decimal = Field(..., gt=0)
    buy_rate_cad: Decimal = Field(..., gt=0)
    received_cad: Optional[Decimal] = Field(None, ge=0)
    fee_cad: Decimal = Field(Decimal("0"), ge=0)
    notes: Optional[str] = None


class OutgoingRemittanceCreate(OutgoingRemittanceBase):
    """Schema for outgoing remittance creation."""
    pass


class OutgoingRemittance(OutgoingRemittanceBase):
    """Schema for outgoing remittance response."""
    id: int
    remittance_code: str
    equivalent_cad: Decimal
    received_cad: Decimal
    settled_amount_irr: Decimal
    remaining_irr: Decimal
    total_profit_cad: Decimal
    status: str
    created_by: Optional[int] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    version: int

    class Config:
        from_attributes = True


class IncomingRemittanceBase(BaseModel):
    """Base incoming remittance schema."""
    sender_name: str = Field(..., min_length=1, max_length=255)
    sender_phone: Optional[str] = None
    recipient_name: str = Field(..., min_length=1, max_length=255)
    recipient_phone: Optional[str] = None
    amount_irr: Decimal = Field(..., gt=0)
    sell_rate_cad: Decimal = Field(..., gt=0)
    fee_cad: Decimal = Field(Decimal("0"), ge=0)
    payment_method: str = "CASH"
    notes: Optional[str] = None


class IncomingRemittanceCreate(IncomingRemittanceBase):
    """Schema for incoming remittance creation."""
    pass


class IncomingRemittance(IncomingRemittanceBase):
    """Schema for incoming remittance response."""
    id: int
    remittance_code: str
    equivalent_cad: Decimal
    paid_cad: Decimal
    allocated_irr: Decimal
    remaining_irr: Decimal
    status: str
    payment_reference: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    version: int

    class Config:
        from_attributes = True


class Settlement(BaseModel):
    """Schema for settlement response."""
    id: int
    outgoing_remittance_id: int
    incoming_remittance_id: int
    settled_amount_irr: Decimal
    outgoing_buy_rate: Decimal
    incoming_sell_rate: Decimal
    profit_cad: Decimal
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class OutgoingRemittanceDetail(OutgoingRemittance):
    """Outgoing remittance with its settlement history."""
    settlements: List[Settlement] = []


class IncomingRemittanceDetail(IncomingRemittance):
    """Incoming remittance with its settlement history."""
    settlements: List[Settlement] = []


class CancelRemittance(BaseModel):
    """Schema for remittance cancellation."""
    reason: str = Field(..., min_length=1)


class MarkIncomingPaid(BaseModel):
    """Schema for marking an incoming remittance as paid out."""
    payment_method: str = "CASH"
    payment_reference: Optional[str] = None
