"""Settlement matching: rank open outgoing debts against one incoming remittance.

Everything in this module is pure. It works on whatever remittance objects it
is handed (ORM rows or plain snapshots) and never touches the database, so it
is safe to call repeatedly or abandon halfway.

Profit is the CAD margin the exchange keeps on the settled slice::

    cost    = amount / outgoing.buy_rate_cad    # CAD collected for the debt
    revenue = amount / incoming.sell_rate_cad   # CAD paid out for the funds
    profit  = cost - revenue
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from components.core.database import utcnow
from components.core.money import ZERO, quantize
from components.remittance.models import OPEN_STATUSES


class SettlementStrategy(str, enum.Enum):
    FIFO = "FIFO"  # oldest debt first
    LIFO = "LIFO"  # newest debt first
    BEST_RATE = "BEST_RATE"  # highest margin first


@dataclass(frozen=True)
class SettlementSuggestion:
    outgoing_id: int
    outgoing_code: Optional[str]
    suggested_amount: Decimal
    estimated_profit: Decimal
    remaining_amount: Decimal
    priority: int
    days_outstanding: int
    match_score: float
    reason: str
    outgoing_version: Optional[int] = None  # row version the amount was computed from


def estimate_profit(amount: Decimal, buy_rate: Decimal, sell_rate: Decimal) -> Decimal:
    """CAD profit of settling ``amount`` Toman bought at ``buy_rate`` and sold at ``sell_rate``."""
    if buy_rate <= 0 or sell_rate <= 0:
        raise ValueError("exchange rates must be positive")
    cost = amount / buy_rate
    revenue = amount / sell_rate
    return quantize(cost - revenue)


def _unit_margin(outgoing, incoming) -> Decimal:
    return Decimal(1) / outgoing.buy_rate_cad - Decimal(1) / incoming.sell_rate_cad


def _sort(outgoings: List, incoming, strategy: SettlementStrategy) -> List:
    if strategy == SettlementStrategy.LIFO:
        # newest first, ties still by ascending id
        ordered = sorted(outgoings, key=lambda o: o.id)
        return sorted(ordered, key=lambda o: o.created_at, reverse=True)
    if strategy == SettlementStrategy.BEST_RATE:
        return sorted(outgoings, key=lambda o: (-_unit_margin(o, incoming), o.created_at, o.id))
    return sorted(outgoings, key=lambda o: (o.created_at, o.id))


def _match_score(outgoing, incoming, days_outstanding: int) -> float:
    score = 50.0
    if days_outstanding > 0:
        score += min(float(days_outstanding), 30.0)
    margin_pct = float(_unit_margin(outgoing, incoming) * 100)
    if margin_pct > 0:
        score += min(margin_pct * 10, 20.0)
    if outgoing.remaining_irr <= incoming.remaining_irr:
        score += 10
    return min(score, 100.0)


def _reason(strategy: SettlementStrategy, outgoing, days_outstanding: int) -> str:
    if strategy == SettlementStrategy.FIFO:
        if days_outstanding > 30:
            return "Oldest debt - outstanding for over 30 days"
        if days_outstanding > 14:
            return f"Priority - outstanding for {days_outstanding} days"
        return f"FIFO order - created {outgoing.created_at:%b %d}"
    if strategy == SettlementStrategy.BEST_RATE:
        return "Optimized for profit"
    return f"Suggested by {strategy.value} strategy"


def is_eligible(outgoing) -> bool:
    return outgoing.status in OPEN_STATUSES and outgoing.remaining_irr > 0


def suggest_settlements(
    incoming,
    outgoings: Iterable,
    strategy: SettlementStrategy = SettlementStrategy.FIFO,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[SettlementSuggestion]:
    """Propose settlements for ``incoming`` in priority order.

    Each suggestion takes ``min(outgoing.remaining, left to allocate)``, where
    "left to allocate" starts at the incoming's remaining balance and shrinks
    with every earlier suggestion. Returns an empty list when nothing is
    eligible.
    """
    if incoming.remaining_irr <= 0 or incoming.status not in OPEN_STATUSES:
        return []

    now = now or utcnow()
    candidates = _sort([o for o in outgoings if is_eligible(o)], incoming, SettlementStrategy(strategy))

    suggestions: List[SettlementSuggestion] = []
    left = incoming.remaining_irr
    for outgoing in candidates:
        if left <= ZERO:
            break
        if limit and len(suggestions) >= limit:
            break

        amount = min(left, outgoing.remaining_irr)
        days_outstanding = max(0, (now - outgoing.created_at).days)
        suggestions.append(
            SettlementSuggestion(
                outgoing_id=outgoing.id,
                outgoing_code=outgoing.remittance_code,
                suggested_amount=amount,
                estimated_profit=estimate_profit(amount, outgoing.buy_rate_cad, incoming.sell_rate_cad),
                remaining_amount=outgoing.remaining_irr,
                priority=len(suggestions) + 1,
                days_outstanding=days_outstanding,
                match_score=round(_match_score(outgoing, incoming, days_outstanding), 2),
                reason=_reason(SettlementStrategy(strategy), outgoing, days_outstanding),
                outgoing_version=getattr(outgoing, "version", None),
            )
        )
        left -= amount

    return suggestions
