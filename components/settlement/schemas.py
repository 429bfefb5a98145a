"""Pydantic schemas for settlement requests and results."""

from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field

from components.remittance.schemas import Settlement
from components.settlement.matcher import SettlementStrategy


class SettlementCreate(BaseModel):
    """Schema for settling part of an outgoing debt with an incoming remittance."""
    outgoing_remittance_id: int
    incoming_remittance_id: int
    amount_irr: Decimal = Field(..., gt=0)
    notes: Optional[str] = None


class SettlementSuggestion(BaseModel):
    """Schema for one ranked settlement suggestion."""
    outgoing_id: int
    outgoing_code: Optional[str] = None
    suggested_amount: Decimal
    estimated_profit: Decimal
    remaining_amount: Decimal
    priority: int
    days_outstanding: int
    match_score: float
    reason: str

    class Config:
        from_attributes = True


class AutoSettleRequest(BaseModel):
    """Schema for running auto-settlement on an incoming remittance."""
    strategy: SettlementStrategy = SettlementStrategy.FIFO


class AutoSettleResult(BaseModel):
    """Schema for the outcome of an auto-settlement run."""
    incoming_id: int
    settled_count: int
    total_settled: Decimal
    total_profit: Decimal
    remaining_amount: Decimal
    conflicts_retried: int
    settlements: List[Settlement] = []

    class Config:
        from_attributes = True
