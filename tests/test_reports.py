from datetime import timedelta
from decimal import Decimal

from components.core.database import utcnow
from components.report.repository import AGE_BUCKETS, ReportRepository
from components.settlement.executor import SettlementExecutor


async def test_profit_summary(session, make_outgoing, make_incoming):
    executor = SettlementExecutor(session)
    debt = await make_outgoing(amount="1000000", buy_rate="30000")
    await executor.execute_settlement(debt.id, (await make_incoming(amount="600000", sell_rate="31000")).id, "600000")
    await executor.execute_settlement(debt.id, (await make_incoming(amount="300000", sell_rate="31000")).id, "300000")

    summary = await ReportRepository(session).profit_summary()

    assert summary.settlement_count == 2
    assert summary.total_settled_irr == Decimal("900000")
    assert summary.total_profit_cad == Decimal("0.97")
    assert summary.average_profit_cad == Decimal("0.49")
    assert len(summary.by_day) == 1
    assert summary.by_day[0].settlement_count == 2
    assert summary.by_day[0].profit_cad == Decimal("0.97")


async def test_profit_summary_respects_period(session, make_outgoing, make_incoming):
    debt = await make_outgoing()
    await SettlementExecutor(session).execute_settlement(debt.id, (await make_incoming()).id, "1000")

    summary = await ReportRepository(session).profit_summary(start=utcnow() + timedelta(days=1))

    assert summary.settlement_count == 0
    assert summary.total_profit_cad == 0
    assert summary.by_day == []


async def test_unsettled_summary_groups_by_status_and_age(session, make_outgoing, make_incoming):
    await make_outgoing(amount="100000", days_old=3)
    await make_outgoing(amount="200000", days_old=10)
    partial = await make_outgoing(amount="300000", days_old=45)
    await SettlementExecutor(session).execute_settlement(partial.id, (await make_incoming(amount="50000")).id, "50000")

    summary = await ReportRepository(session).unsettled_summary()

    assert summary.total_count == 3
    assert summary.total_remaining_irr == Decimal("550000")
    by_status = {group.key: (group.count, group.remaining_irr) for group in summary.by_status}
    assert by_status == {
        "PARTIAL": (1, Decimal("250000")),
        "PENDING": (2, Decimal("300000")),
    }
    assert [group.key for group in summary.by_age] == AGE_BUCKETS
    by_age = {group.key: (group.count, group.remaining_irr) for group in summary.by_age}
    assert by_age["0-7 days"] == (1, Decimal("100000"))
    assert by_age["8-14 days"] == (1, Decimal("200000"))
    assert by_age["15-30 days"] == (0, Decimal("0"))
    assert by_age["30+ days"] == (1, Decimal("250000"))


async def test_unsettled_summary_when_everything_is_settled(session):
    summary = await ReportRepository(session).unsettled_summary()
    assert summary.total_count == 0
    assert [group.count for group in summary.by_age] == [0, 0, 0, 0]
