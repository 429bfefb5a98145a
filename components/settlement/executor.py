"""Settlement executor: the only code path that moves remittance balances."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from components.core.config import get_settings
from components.core.database import utcnow
from components.core.errors import ConcurrencyConflictError, ValidationError
from components.core.money import ZERO, Number, quantize, to_decimal
from components.remittance.models import (
    IncomingRemittance,
    OutgoingRemittance,
    RemittanceStatus,
    Settlement,
)
from components.remittance.repository import LedgerStore
from components.settlement.matcher import (
    SettlementStrategy,
    SettlementSuggestion,
    estimate_profit,
    suggest_settlements,
)

logger = logging.getLogger(__name__)


@dataclass
class AutoSettleResult:
    incoming_id: int
    settlements: List[Settlement] = field(default_factory=list)
    total_settled: Decimal = ZERO
    total_profit: Decimal = ZERO
    remaining_amount: Decimal = ZERO
    conflicts_retried: int = 0

    @property
    def settled_count(self) -> int:
        return len(self.settlements)


class SettlementExecutor:
    """Suggest, execute and auto-run settlements against the ledger store.

    ``execute_settlement`` reads both remittances, validates the amount
    against what it read, then writes both balances with a version check and
    appends the settlement in the same database transaction. Any failure rolls
    the whole unit back, so callers either get a committed Settlement or an
    exception with nothing changed.
    """

    def __init__(self, session: AsyncSession, max_retries: Optional[int] = None):
        self.session = session
        self.store = LedgerStore(session)
        self.max_retries = get_settings().SETTLEMENT_MAX_RETRIES if max_retries is None else max_retries

    async def suggest(
        self,
        incoming_id: int,
        strategy: SettlementStrategy = SettlementStrategy.FIFO,
        limit: Optional[int] = None,
    ) -> List[SettlementSuggestion]:
        """Ranked settlement suggestions for one incoming remittance. No side effects."""
        incoming = await self.store.require_incoming(incoming_id)
        outgoings = await self.store.open_outgoing()
        return suggest_settlements(incoming, outgoings, strategy=strategy, limit=limit)

    async def execute_settlement(
        self,
        outgoing_id: int,
        incoming_id: int,
        amount: Number,
        notes: Optional[str] = None,
        created_by: Optional[int] = None,
        outgoing_version: Optional[int] = None,
        incoming_version: Optional[int] = None,
    ) -> Settlement:
        """Settle ``amount`` Toman of an outgoing debt with an incoming remittance.

        ``outgoing_version``/``incoming_version`` are the versions the amount
        was worked out from. If either row has moved since, the amount may no
        longer fit, so this raises ConcurrencyConflictError instead of
        validating a stale amount.
        """
        amount = quantize(to_decimal(amount))
        try:
            outgoing = await self.store.require_outgoing(outgoing_id)
            incoming = await self.store.require_incoming(incoming_id)
            if (outgoing_version is not None and outgoing.version != outgoing_version) or (
                incoming_version is not None and incoming.version != incoming_version
            ):
                raise ConcurrencyConflictError(
                    f"Remittance balance changed since outgoing {outgoing_id} was suggested "
                    f"for incoming {incoming_id}; retry"
                )
            self._validate(outgoing, incoming, amount)

            # rates are taken from the rows just read, not from any earlier suggestion
            profit = estimate_profit(amount, outgoing.buy_rate_cad, incoming.sell_rate_cad)
            now = utcnow()

            outgoing_remaining = outgoing.remaining_irr - amount
            outgoing_values = dict(
                settled_amount_irr=outgoing.settled_amount_irr + amount,
                remaining_irr=outgoing_remaining,
                total_profit_cad=outgoing.total_profit_cad + profit,
                status=self._next_status(outgoing_remaining),
            )
            if outgoing_remaining == ZERO:
                outgoing_values["completed_at"] = now

            incoming_remaining = incoming.remaining_irr - amount
            incoming_values = dict(
                allocated_irr=incoming.allocated_irr + amount,
                remaining_irr=incoming_remaining,
                status=self._next_status(incoming_remaining),
            )

            applied = await self.store.conditional_update(
                OutgoingRemittance, outgoing.id, outgoing.version, **outgoing_values
            ) and await self.store.conditional_update(
                IncomingRemittance, incoming.id, incoming.version, **incoming_values
            )
            if not applied:
                raise ConcurrencyConflictError(
                    f"Remittance balance changed while settling outgoing {outgoing_id} "
                    f"against incoming {incoming_id}; retry"
                )

            settlement = self.store.append_settlement(
                outgoing_remittance_id=outgoing.id,
                incoming_remittance_id=incoming.id,
                settled_amount_irr=amount,
                outgoing_buy_rate=outgoing.buy_rate_cad,
                incoming_sell_rate=incoming.sell_rate_cad,
                profit_cad=profit,
                notes=notes,
                created_by=created_by,
                created_at=now,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        # balances were written behind the identity map
        await self.session.refresh(outgoing)
        await self.session.refresh(incoming)
        logger.info(
            "settlement executed",
            extra={
                "settlement_id": settlement.id,
                "outgoing_id": outgoing_id,
                "incoming_id": incoming_id,
                "amount_irr": amount,
                "profit_cad": profit,
            },
        )
        return settlement

    @staticmethod
    def _validate(outgoing: OutgoingRemittance, incoming: IncomingRemittance, amount: Decimal) -> None:
        if amount <= ZERO:
            raise ValidationError("Settlement amount must be greater than 0")
        if outgoing.status == RemittanceStatus.CANCELLED.value:
            raise ValidationError(f"Outgoing remittance {outgoing.id} is cancelled")
        if incoming.status == RemittanceStatus.CANCELLED.value:
            raise ValidationError(f"Incoming remittance {incoming.id} is cancelled")
        if amount > outgoing.remaining_irr:
            raise ValidationError(
                f"Settlement amount ({amount}) exceeds remaining debt ({outgoing.remaining_irr})"
            )
        if amount > incoming.remaining_irr:
            raise ValidationError(
                f"Settlement amount ({amount}) exceeds incoming remaining ({incoming.remaining_irr})"
            )

    @staticmethod
    def _next_status(remaining: Decimal) -> str:
        if remaining == ZERO:
            return RemittanceStatus.COMPLETED.value
        return RemittanceStatus.PARTIAL.value

    async def auto_settle(
        self,
        incoming_id: int,
        strategy: SettlementStrategy = SettlementStrategy.FIFO,
        created_by: Optional[int] = None,
    ) -> AutoSettleResult:
        """Settle the incoming remittance against open debts until it is used up.

        Each step takes the top suggestion and commits it on its own, so an
        interruption leaves only whole, valid settlements behind and a rerun
        picks up where it stopped. A step that loses a race is re-suggested
        from fresh balances, at most ``max_retries`` times in a row.
        """
        incoming = await self.store.require_incoming(incoming_id)
        if incoming.status == RemittanceStatus.CANCELLED.value:
            raise ValidationError(f"Incoming remittance {incoming_id} is cancelled")

        result = AutoSettleResult(incoming_id=incoming_id)
        failures = 0
        while True:
            incoming = await self.store.require_incoming(incoming_id)
            incoming_version = incoming.version
            outgoings = await self.store.open_outgoing()
            suggestions = suggest_settlements(incoming, outgoings, strategy=strategy, limit=1)
            if not suggestions:
                break
            top = suggestions[0]
            try:
                settlement = await self.execute_settlement(
                    top.outgoing_id,
                    incoming_id,
                    top.suggested_amount,
                    notes=f"Auto-settlement ({SettlementStrategy(strategy).value})",
                    created_by=created_by,
                    outgoing_version=top.outgoing_version,
                    incoming_version=incoming_version,
                )
            except ConcurrencyConflictError:
                # balances moved under us between suggestion and commit
                failures += 1
                result.conflicts_retried += 1
                if failures > self.max_retries:
                    logger.warning(
                        "auto-settlement giving up",
                        extra={"incoming_id": incoming_id, "attempts": failures},
                    )
                    raise
                logger.warning(
                    "auto-settlement step conflicted, retrying",
                    extra={"incoming_id": incoming_id, "outgoing_id": top.outgoing_id, "attempt": failures},
                )
                continue

            failures = 0
            result.settlements.append(settlement)
            result.total_settled += settlement.settled_amount_irr
            result.total_profit += settlement.profit_cad

        incoming = await self.store.require_incoming(incoming_id)
        result.remaining_amount = incoming.remaining_irr
        logger.info(
            "auto-settlement finished",
            extra={
                "incoming_id": incoming_id,
                "settled_count": result.settled_count,
                "total_settled_irr": result.total_settled,
                "total_profit_cad": result.total_profit,
            },
        )
        return result
