"""Pydantic schemas for ledger reports."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel


class DailyProfit(BaseModel):
    """Profit of the settlements made on one day."""
    day: date
    settlement_count: int
    settled_amount_irr: Decimal
    profit_cad: Decimal


class ProfitSummary(BaseModel):
    """Schema for profit report over a period."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    settlement_count: int
    total_settled_irr: Decimal
    total_profit_cad: Decimal
    average_profit_cad: Decimal
    by_day: List[DailyProfit] = []


class UnsettledGroup(BaseModel):
    """Open debt aggregated over one status or age bucket."""
    key: str
    count: int
    remaining_irr: Decimal


class UnsettledSummary(BaseModel):
    """Schema for the open outgoing debt report."""
    as_of: datetime
    total_count: int
    total_remaining_irr: Decimal
    by_status: List[UnsettledGroup] = []
    by_age: List[UnsettledGroup] = []
