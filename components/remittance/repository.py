"""Repository for remittance ledger operations."""

import logging
from datetime import datetime
from typing import Any, List, Optional, Type, Union

from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from components.core.database import utcnow
from components.core.errors import ConcurrencyConflictError, NotFoundError, ValidationError
from components.core.money import ZERO, quantize
from components.remittance import schemas
from components.remittance.models import (
    OPEN_STATUSES,
    IncomingRemittance,
    OutgoingRemittance,
    RemittanceStatus,
    Settlement,
)

logger = logging.getLogger(__name__)

Remittance = Union[OutgoingRemittance, IncomingRemittance]


class LedgerStore:
    """Repository for outgoing/incoming remittances and their settlements.

    Balances are only ever changed through ``conditional_update``, which
    applies the new values only if the row still carries the version the
    caller read. Nothing here commits a settlement; that is the executor's job.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def create_outgoing(
        self, remittance: schemas.OutgoingRemittanceCreate, created_by: Optional[int] = None
    ) -> OutgoingRemittance:
        """Register a new outgoing remittance (debt owed abroad)."""
        equivalent_cad = quantize(remittance.amount_irr / remittance.buy_rate_cad)
        received_cad = remittance.received_cad
        if received_cad is None:
            received_cad = equivalent_cad + remittance.fee_cad

        db_remittance = OutgoingRemittance(
            **remittance.model_dump(exclude={"received_cad"}),
            received_cad=received_cad,
            equivalent_cad=equivalent_cad,
            settled_amount_irr=ZERO,
            remaining_irr=remittance.amount_irr,
            total_profit_cad=ZERO,
            status=RemittanceStatus.PENDING.value,
            created_by=created_by,
        )
        self.session.add(db_remittance)
        await self.session.flush()
        db_remittance.remittance_code = f"OUT-{db_remittance.id:06d}"
        await self.session.commit()
        await self.session.refresh(db_remittance)
        logger.info(
            "outgoing remittance created",
            extra={"remittance_id": db_remittance.id, "amount_irr": db_remittance.amount_irr},
        )
        return db_remittance

    async def create_incoming(
        self, remittance: schemas.IncomingRemittanceCreate, created_by: Optional[int] = None
    ) -> IncomingRemittance:
        """Register a new incoming remittance (funds available to allocate)."""
        db_remittance = IncomingRemittance(
            **remittance.model_dump(),
            equivalent_cad=quantize(remittance.amount_irr / remittance.sell_rate_cad),
            paid_cad=ZERO,
            allocated_irr=ZERO,
            remaining_irr=remittance.amount_irr,
            status=RemittanceStatus.PENDING.value,
            created_by=created_by,
        )
        self.session.add(db_remittance)
        await self.session.flush()
        db_remittance.remittance_code = f"IN-{db_remittance.id:06d}"
        await self.session.commit()
        await self.session.refresh(db_remittance)
        logger.info(
            "incoming remittance created",
            extra={"remittance_id": db_remittance.id, "amount_irr": db_remittance.amount_irr},
        )
        return db_remittance

    async def get_outgoing(self, remittance_id: int) -> Optional[OutgoingRemittance]:
        """Get outgoing remittance by ID, always reading the stored row."""
        return await self._get(OutgoingRemittance, remittance_id)

    async def get_incoming(self, remittance_id: int) -> Optional[IncomingRemittance]:
        """Get incoming remittance by ID, always reading the stored row."""
        return await self._get(IncomingRemittance, remittance_id)

    async def require_outgoing(self, remittance_id: int) -> OutgoingRemittance:
        remittance = await self.get_outgoing(remittance_id)
        if remittance is None:
            raise NotFoundError("Outgoing remittance", remittance_id)
        return remittance

    async def require_incoming(self, remittance_id: int) -> IncomingRemittance:
        remittance = await self.get_incoming(remittance_id)
        if remittance is None:
            raise NotFoundError("Incoming remittance", remittance_id)
        return remittance

    async def _get(self, model: Type[Remittance], remittance_id: int) -> Optional[Remittance]:
        result = await self.session.execute(
            select(model)
            .where(model.id == remittance_id)
            .options(selectinload(model.settlements))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_outgoing(
        self, status: Optional[str] = None, skip: int = 0, limit: int = 100
    ) -> List[OutgoingRemittance]:
        """Get outgoing remittances, newest first, with optional status filter."""
        return await self._list(OutgoingRemittance, status, skip, limit)

    async def list_incoming(
        self, status: Optional[str] = None, skip: int = 0, limit: int = 100
    ) -> List[IncomingRemittance]:
        """Get incoming remittances, newest first, with optional status filter."""
        return await self._list(IncomingRemittance, status, skip, limit)

    async def _list(self, model, status, skip, limit):
        query = select(model)
        if status:
            query = query.where(model.status == status.upper())
        query = (
            query.order_by(model.created_at.desc(), model.id.desc())
            .offset(skip)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def open_outgoing(self) -> List[OutgoingRemittance]:
        """Outgoing remittances that can still be settled, oldest first."""
        result = await self.session.execute(
            select(OutgoingRemittance)
            .where(
                OutgoingRemittance.status.in_(OPEN_STATUSES),
                OutgoingRemittance.remaining_irr > 0,
            )
            .order_by(OutgoingRemittance.created_at, OutgoingRemittance.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def conditional_update(
        self, model: Type[Remittance], remittance_id: int, expected_version: int, **values: Any
    ) -> bool:
        """Apply ``values`` only if the row still has ``expected_version``.

        Bumps the version on success. Returns False when another writer got
        there first; the caller decides whether to roll back or retry.
        """
        result = await self.session.execute(
            update(model)
            .where(model.id == remittance_id, model.version == expected_version)
            .values(version=expected_version + 1, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def append_settlement(self, **fields: Any) -> Settlement:
        """Stage a new settlement entry in the current unit of work."""
        settlement = Settlement(**fields)
        self.session.add(settlement)
        return settlement

    async def settlement_history(
        self,
        outgoing_id: Optional[int] = None,
        incoming_id: Optional[int] = None,
    ) -> List[Settlement]:
        """Settlements touching the given remittance(s), newest first."""
        conditions = []
        if outgoing_id is not None:
            conditions.append(Settlement.outgoing_remittance_id == outgoing_id)
        if incoming_id is not None:
            conditions.append(Settlement.incoming_remittance_id == incoming_id)
        query = select(Settlement)
        if conditions:
            query = query.where(or_(*conditions))
        result = await self.session.execute(query.order_by(Settlement.created_at.desc(), Settlement.id.desc()))
        return list(result.scalars().all())

    async def cancel_outgoing(self, remittance_id: int, reason: str, cancelled_by: Optional[int] = None) -> OutgoingRemittance:
        """Cancel an outgoing remittance that has not been settled at all."""
        remittance = await self.require_outgoing(remittance_id)
        if remittance.status == RemittanceStatus.CANCELLED.value:
            raise ValidationError(f"Outgoing remittance {remittance_id} is already cancelled")
        if remittance.settled_amount_irr > 0:
            raise ValidationError("Cannot cancel: remittance has been partially or fully settled")
        await self._cancel(OutgoingRemittance, remittance, reason, cancelled_by)
        return await self.require_outgoing(remittance_id)

    async def cancel_incoming(self, remittance_id: int, reason: str, cancelled_by: Optional[int] = None) -> IncomingRemittance:
        """Cancel an incoming remittance that has not been allocated at all."""
        remittance = await self.require_incoming(remittance_id)
        if remittance.status == RemittanceStatus.CANCELLED.value:
            raise ValidationError(f"Incoming remittance {remittance_id} is already cancelled")
        if remittance.allocated_irr > 0:
            raise ValidationError("Cannot cancel: remittance has been partially or fully allocated")
        await self._cancel(IncomingRemittance, remittance, reason, cancelled_by)
        return await self.require_incoming(remittance_id)

    async def _cancel(self, model, remittance, reason, cancelled_by) -> None:
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required")
        # plain values: a rollback expires the instance
        remittance_id, version = remittance.id, remittance.version
        try:
            applied = await self.conditional_update(
                model,
                remittance_id,
                version,
                status=RemittanceStatus.CANCELLED.value,
                cancelled_at=utcnow(),
                cancelled_by=cancelled_by,
                cancellation_reason=reason.strip(),
            )
            if not applied:
                raise ConcurrencyConflictError(f"Remittance {remittance_id} changed while cancelling; retry")
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        logger.info("remittance cancelled", extra={"table": model.__tablename__, "remittance_id": remittance_id})

    async def mark_incoming_paid(
        self,
        remittance_id: int,
        payment_method: str = "CASH",
        payment_reference: Optional[str] = None,
        paid_by: Optional[int] = None,
        paid_at: Optional[datetime] = None,
    ) -> IncomingRemittance:
        """Record the payout of a fully allocated incoming remittance."""
        remittance = await self.require_incoming(remittance_id)
        if remittance.status != RemittanceStatus.COMPLETED.value or remittance.remaining_irr > 0:
            raise ValidationError("Cannot mark as paid: remittance not fully allocated")

        applied = await self.conditional_update(
            IncomingRemittance,
            remittance.id,
            remittance.version,
            status=RemittanceStatus.PAID.value,
            paid_at=paid_at or utcnow(),
            paid_by=paid_by,
            paid_cad=remittance.equivalent_cad - remittance.fee_cad,
            payment_method=payment_method,
            payment_reference=payment_reference,
        )
        if not applied:
            await self.session.rollback()
            raise ConcurrencyConflictError(f"Incoming remittance {remittance_id} changed while marking paid")
        await self.session.commit()
        logger.info("incoming remittance paid out", extra={"remittance_id": remittance_id})
        return await self.require_incoming(remittance_id)
