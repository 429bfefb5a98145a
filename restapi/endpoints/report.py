"""Report endpoints for the API."""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from components.core.init_db import get_db
from components.report.repository import ReportRepository
from components.report import schemas

router = APIRouter(
    prefix="/reports",
    tags=["reports"],
)


@router.get("/profit", response_model=schemas.ProfitSummary)
async def get_profit(
    start: Optional[datetime] = Query(None, description="Include settlements from this moment"),
    end: Optional[datetime] = Query(None, description="Include settlements before this moment"),
    db: AsyncSession = Depends(get_db),
):
    """
    Profit made by settlements in a period.

    Returns totals, the average profit per settlement and a per-day
    breakdown. Without bounds every settlement is included.
    """
    return await ReportRepository(db).profit_summary(start, end)


@router.get("/unsettled", response_model=schemas.UnsettledSummary)
async def get_unsettled(
    as_of: Optional[datetime] = Query(None, description="Reference moment (defaults to now)"),
    db: AsyncSession = Depends(get_db),
):
    """Open outgoing debt grouped by status and by age."""
    return await ReportRepository(db).unsettled_summary(as_of)
