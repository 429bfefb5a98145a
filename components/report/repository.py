"""Repository for read-only ledger reports."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

import pandas as pd
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from components.core.database import utcnow
from components.core.money import ZERO, quantize
from components.remittance.models import OPEN_STATUSES, OutgoingRemittance, Settlement
from components.report import schemas

AGE_BUCKETS = ["0-7 days", "8-14 days", "15-30 days", "30+ days"]
_AGE_EDGES = [-1, 7, 14, 30, float("inf")]


def _decimal_sum(values) -> Decimal:
    # amounts are Decimal objects, keep them exact
    return sum(values, ZERO)


class ReportRepository:
    """Repository for profit and open-debt reports."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def profit_summary(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> schemas.ProfitSummary:
        """
        Profit made by settlements created in ``[start, end)``.

        Returns:
        - Number of settlements and total Toman settled
        - Total and average CAD profit
        - A per-day breakdown, oldest day first
        """
        query = select(Settlement).execution_options(populate_existing=True)
        if start is not None:
            query = query.where(Settlement.created_at >= start)
        if end is not None:
            query = query.where(Settlement.created_at < end)
        result = await self.session.execute(query)
        settlements = result.scalars().all()

        if not settlements:
            return schemas.ProfitSummary(
                start=start,
                end=end,
                settlement_count=0,
                total_settled_irr=ZERO,
                total_profit_cad=ZERO,
                average_profit_cad=ZERO,
            )

        df = pd.DataFrame(
            [
                {
                    "day": s.created_at.date(),
                    "settled_amount_irr": s.settled_amount_irr,
                    "profit_cad": s.profit_cad,
                }
                for s in settlements
            ]
        )
        total_profit = _decimal_sum(df["profit_cad"])
        daily = (
            df.groupby("day", sort=True)
            .agg(
                settlement_count=("profit_cad", "size"),
                settled_amount_irr=("settled_amount_irr", _decimal_sum),
                profit_cad=("profit_cad", _decimal_sum),
            )
            .reset_index()
        )

        return schemas.ProfitSummary(
            start=start,
            end=end,
            settlement_count=len(df),
            total_settled_irr=_decimal_sum(df["settled_amount_irr"]),
            total_profit_cad=total_profit,
            average_profit_cad=quantize(total_profit / len(df)),
            by_day=[
                schemas.DailyProfit(
                    day=row.day,
                    settlement_count=int(row.settlement_count),
                    settled_amount_irr=row.settled_amount_irr,
                    profit_cad=row.profit_cad,
                )
                for row in daily.itertuples(index=False)
            ],
        )

    async def unsettled_summary(self, as_of: Optional[datetime] = None) -> schemas.UnsettledSummary:
        """
        Open outgoing debt as of ``as_of`` (defaults to now).

        Groups the remaining Toman by remittance status and by how long the
        debt has been outstanding. Every age bucket is listed, empty or not.
        """
        as_of = as_of or utcnow()
        result = await self.session.execute(
            select(OutgoingRemittance).where(
                OutgoingRemittance.status.in_(OPEN_STATUSES),
                OutgoingRemittance.remaining_irr > 0,
                OutgoingRemittance.created_at <= as_of,
            )
            .execution_options(populate_existing=True)
        )
        remittances = result.scalars().all()

        if not remittances:
            return schemas.UnsettledSummary(
                as_of=as_of,
                total_count=0,
                total_remaining_irr=ZERO,
                by_age=[schemas.UnsettledGroup(key=bucket, count=0, remaining_irr=ZERO) for bucket in AGE_BUCKETS],
            )

        df = pd.DataFrame(
            [
                {
                    "status": r.status,
                    "days": max(0, (as_of - r.created_at).days),
                    "remaining_irr": r.remaining_irr,
                }
                for r in remittances
            ]
        )
        df["age"] = pd.cut(df["days"], bins=_AGE_EDGES, labels=AGE_BUCKETS)

        return schemas.UnsettledSummary(
            as_of=as_of,
            total_count=len(df),
            total_remaining_irr=_decimal_sum(df["remaining_irr"]),
            by_status=self._group(df, "status"),
            by_age=self._group(df, "age"),
        )

    @staticmethod
    def _group(df: pd.DataFrame, column: str) -> List[schemas.UnsettledGroup]:
        grouped = df.groupby(column, observed=False, sort=True)["remaining_irr"]
        counts = grouped.size()
        totals = grouped.agg(_decimal_sum)
        groups = []
        for key in counts.index:
            total = totals.get(key, ZERO)
            if pd.isna(total):
                total = ZERO  # unobserved age bucket
            groups.append(schemas.UnsettledGroup(key=str(key), count=int(counts[key]), remaining_irr=total))
        return groups
