from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from components.core.errors import (
    ConcurrencyConflictError,
    ImmutableRecordError,
    NotFoundError,
    ValidationError,
)
from components.remittance.models import IncomingRemittance, OutgoingRemittance, Settlement
from components.settlement.executor import SettlementExecutor


async def test_settle_part_of_debt_with_whole_incoming(session, store, make_outgoing, make_incoming):
    o1 = await make_outgoing(amount="1000000", buy_rate="85000")
    i1 = await make_incoming(amount="600000", sell_rate="86500")

    settlement = await SettlementExecutor(session).execute_settlement(o1.id, i1.id, Decimal("600000"))

    assert settlement.id is not None
    assert settlement.settled_amount_irr == Decimal("600000")
    assert settlement.outgoing_buy_rate == Decimal("85000")
    assert settlement.incoming_sell_rate == Decimal("86500")
    assert settlement.profit_cad == Decimal("0.12")

    o1 = await store.require_outgoing(o1.id)
    i1 = await store.require_incoming(i1.id)
    assert o1.remaining_irr == Decimal("400000")
    assert o1.settled_amount_irr == Decimal("600000")
    assert o1.total_profit_cad == Decimal("0.12")
    assert o1.status == "PARTIAL"
    assert o1.completed_at is None
    assert i1.remaining_irr == 0
    assert i1.allocated_irr == Decimal("600000")
    assert i1.status == "COMPLETED"
    assert len(o1.settlements) == 1
    assert len(await store.settlement_history(outgoing_id=o1.id)) == 1


async def test_settling_the_rest_completes_outgoing(session, store, make_outgoing, make_incoming):
    o1 = await make_outgoing(amount="1000000")
    executor = SettlementExecutor(session)
    await executor.execute_settlement(o1.id, (await make_incoming(amount="600000")).id, "600000")
    await executor.execute_settlement(o1.id, (await make_incoming(amount="500000")).id, "400000")

    o1 = await store.require_outgoing(o1.id)
    assert o1.remaining_irr == 0
    assert o1.status == "COMPLETED"
    assert o1.completed_at is not None
    assert o1.version == 3


@pytest.mark.parametrize("amount", ["600001", "1000001"])
async def test_amount_over_remaining_is_rejected_without_changes(session, store, make_outgoing, make_incoming, amount):
    outgoing_id = (await make_outgoing(amount="1000000")).id
    incoming_id = (await make_incoming(amount="600000")).id

    with pytest.raises(ValidationError):
        await SettlementExecutor(session).execute_settlement(outgoing_id, incoming_id, Decimal(amount))

    o1 = await store.require_outgoing(outgoing_id)
    i1 = await store.require_incoming(incoming_id)
    assert o1.remaining_irr == Decimal("1000000")
    assert i1.remaining_irr == Decimal("600000")
    assert o1.version == 1 and i1.version == 1
    assert await store.settlement_history(outgoing_id=outgoing_id) == []


async def test_non_positive_amount_is_rejected(session, make_outgoing, make_incoming):
    o1 = await make_outgoing()
    i1 = await make_incoming()
    with pytest.raises(ValidationError):
        await SettlementExecutor(session).execute_settlement(o1.id, i1.id, Decimal("0"))


async def test_unknown_remittance_is_not_found(session, make_outgoing, make_incoming):
    outgoing_id = (await make_outgoing()).id
    incoming_id = (await make_incoming()).id
    executor = SettlementExecutor(session)
    with pytest.raises(NotFoundError):
        await executor.execute_settlement(999, incoming_id, Decimal("1000"))
    with pytest.raises(NotFoundError):
        await executor.execute_settlement(outgoing_id, 999, Decimal("1000"))


async def test_cancelled_remittance_cannot_be_settled(session, store, make_outgoing, make_incoming):
    outgoing_id = (await make_outgoing()).id
    incoming_id = (await make_incoming()).id
    await store.cancel_outgoing(outgoing_id, "customer withdrew")

    with pytest.raises(ValidationError):
        await SettlementExecutor(session).execute_settlement(outgoing_id, incoming_id, Decimal("1000"))
    assert (await store.require_incoming(incoming_id)).remaining_irr == Decimal("600000")


async def test_concurrent_change_raises_conflict_and_rolls_back(session, store, make_outgoing, make_incoming, monkeypatch):
    outgoing_id = (await make_outgoing(amount="1000000")).id
    incoming_id = (await make_incoming(amount="600000")).id
    original_require_incoming = store.require_incoming

    executor = SettlementExecutor(session)

    async def read_then_lose_race(remittance_id):
        remittance = await original_require_incoming(remittance_id)
        # another writer bumps the version after our read
        await session.execute(
            update(IncomingRemittance)
            .where(IncomingRemittance.id == remittance_id)
            .values(version=IncomingRemittance.version + 1)
            .execution_options(synchronize_session=False)
        )
        return remittance

    monkeypatch.setattr(executor.store, "require_incoming", read_then_lose_race)

    with pytest.raises(ConcurrencyConflictError):
        await executor.execute_settlement(outgoing_id, incoming_id, Decimal("100000"))

    o1 = await store.require_outgoing(outgoing_id)
    i1 = await store.require_incoming(incoming_id)
    assert o1.remaining_irr == Decimal("1000000")
    assert o1.version == 1
    assert i1.remaining_irr == Decimal("600000")
    assert await store.settlement_history(outgoing_id=outgoing_id) == []


async def test_settled_total_never_exceeds_outgoing_amount(session, store, make_outgoing, make_incoming):
    outgoing_id = (await make_outgoing(amount="1000000")).id
    executor = SettlementExecutor(session)
    for amount in ("300000", "300000", "300000", "300000"):
        incoming_id = (await make_incoming(amount=amount)).id
        try:
            await executor.execute_settlement(outgoing_id, incoming_id, amount)
        except ValidationError:
            pass

    total = (
        await session.execute(
            select(func.sum(Settlement.settled_amount_irr)).where(Settlement.outgoing_remittance_id == outgoing_id)
        )
    ).scalar_one()
    assert Decimal(str(total)) == Decimal("900000")
    assert (await store.require_outgoing(outgoing_id)).remaining_irr == Decimal("100000")


async def test_settlements_are_immutable(session, make_outgoing, make_incoming):
    o1 = await make_outgoing()
    i1 = await make_incoming()
    settlement = await SettlementExecutor(session).execute_settlement(o1.id, i1.id, Decimal("1000"))

    settlement.settled_amount_irr = Decimal("5")
    with pytest.raises(ImmutableRecordError):
        await session.flush()
    await session.rollback()

    settlement = (await session.execute(select(Settlement))).scalar_one()
    await session.delete(settlement)
    with pytest.raises(ImmutableRecordError):
        await session.flush()
    await session.rollback()


async def test_settlement_refreshes_remittances_held_by_the_session(session, make_outgoing, make_incoming):
    o1 = await make_outgoing(amount="1000000")
    i1 = await make_incoming(amount="600000")

    await SettlementExecutor(session).execute_settlement(o1.id, i1.id, Decimal("250000"))

    assert o1.remaining_irr == Decimal("750000")
    assert o1.version == 2
    assert i1.remaining_irr == Decimal("350000")
    assert i1.status == "PARTIAL"


async def test_cancel_that_loses_a_race_raises_conflict(session, store, make_outgoing, monkeypatch):
    outgoing_id = (await make_outgoing()).id
    original_require_outgoing = store.require_outgoing
    raced = []

    async def read_then_lose_race(remittance_id):
        remittance = await original_require_outgoing(remittance_id)
        if not raced:
            raced.append(remittance_id)
            await session.execute(
                update(OutgoingRemittance)
                .where(OutgoingRemittance.id == remittance_id)
                .values(version=OutgoingRemittance.version + 1)
                .execution_options(synchronize_session=False)
            )
        return remittance

    monkeypatch.setattr(store, "require_outgoing", read_then_lose_race)

    with pytest.raises(ConcurrencyConflictError, match=f"Remittance {outgoing_id} changed"):
        await store.cancel_outgoing(outgoing_id, "customer withdrew")

    remittance = await store.require_outgoing(outgoing_id)
    assert remittance.status == "PENDING"
    assert remittance.cancellation_reason is None
