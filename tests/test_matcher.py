from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from components.settlement.matcher import SettlementStrategy, estimate_profit, suggest_settlements

NOW = datetime(2024, 6, 1, 12, 0, 0)


def outgoing(id, remaining, buy_rate="85000", days_old=0, status="PENDING"):
    return SimpleNamespace(
        id=id,
        remittance_code=f"OUT-{id:06d}",
        remaining_irr=Decimal(remaining),
        buy_rate_cad=Decimal(buy_rate),
        created_at=NOW - timedelta(days=days_old),
        status=status,
    )


def incoming(remaining, sell_rate="86500", status="PENDING"):
    return SimpleNamespace(
        id=1,
        remaining_irr=Decimal(remaining),
        sell_rate_cad=Decimal(sell_rate),
        status=status,
    )


def test_estimate_profit_uses_rate_spread():
    assert estimate_profit(Decimal("600000"), Decimal("85000"), Decimal("86500")) == Decimal("0.12")
    assert estimate_profit(Decimal("600000"), Decimal("30000"), Decimal("31000")) == Decimal("0.65")


def test_estimate_profit_is_negative_when_sold_cheaper_than_bought():
    assert estimate_profit(Decimal("1000000"), Decimal("31000"), Decimal("30000")) < 0


def test_estimate_profit_rejects_non_positive_rate():
    with pytest.raises(ValueError):
        estimate_profit(Decimal("1000"), Decimal("0"), Decimal("86500"))


def test_fifo_orders_oldest_first():
    debts = [outgoing(1, "100000", days_old=2), outgoing(2, "100000", days_old=10), outgoing(3, "100000", days_old=5)]
    result = suggest_settlements(incoming("1000000"), debts, now=NOW)
    assert [s.outgoing_id for s in result] == [2, 3, 1]
    assert [s.priority for s in result] == [1, 2, 3]


def test_fifo_ties_broken_by_id():
    debts = [outgoing(5, "100000", days_old=3), outgoing(4, "100000", days_old=3)]
    result = suggest_settlements(incoming("1000000"), debts, now=NOW)
    assert [s.outgoing_id for s in result] == [4, 5]


def test_lifo_orders_newest_first():
    debts = [outgoing(1, "100000", days_old=2), outgoing(2, "100000", days_old=10), outgoing(3, "100000", days_old=5)]
    result = suggest_settlements(incoming("1000000"), debts, strategy=SettlementStrategy.LIFO, now=NOW)
    assert [s.outgoing_id for s in result] == [1, 3, 2]


def test_best_rate_orders_highest_margin_first():
    debts = [
        outgoing(1, "100000", buy_rate="86000"),
        outgoing(2, "100000", buy_rate="84000"),
        outgoing(3, "100000", buy_rate="85000"),
    ]
    result = suggest_settlements(incoming("1000000"), debts, strategy=SettlementStrategy.BEST_RATE, now=NOW)
    assert [s.outgoing_id for s in result] == [2, 3, 1]
    assert result[0].reason == "Optimized for profit"


def test_suggested_amounts_never_exceed_what_is_left_to_allocate():
    debts = [outgoing(1, "600000", days_old=3), outgoing(2, "700000", days_old=2), outgoing(3, "50000", days_old=1)]
    result = suggest_settlements(incoming("1000000"), debts, now=NOW)
    assert [s.suggested_amount for s in result] == [Decimal("600000"), Decimal("400000")]
    assert result[1].remaining_amount == Decimal("700000")
    assert sum(s.suggested_amount for s in result) <= Decimal("1000000")


def test_limit_caps_number_of_suggestions():
    debts = [outgoing(i, "1000", days_old=10 - i) for i in range(1, 6)]
    result = suggest_settlements(incoming("1000000"), debts, limit=2, now=NOW)
    assert [s.outgoing_id for s in result] == [1, 2]


def test_closed_or_empty_debts_are_not_suggested():
    debts = [
        outgoing(1, "1000", status="COMPLETED"),
        outgoing(2, "1000", status="CANCELLED"),
        outgoing(3, "0", status="PARTIAL"),
        outgoing(4, "1000", status="PARTIAL"),
    ]
    result = suggest_settlements(incoming("1000000"), debts, now=NOW)
    assert [s.outgoing_id for s in result] == [4]


def test_no_suggestions_for_exhausted_or_cancelled_incoming():
    debts = [outgoing(1, "1000")]
    assert suggest_settlements(incoming("0"), debts, now=NOW) == []
    assert suggest_settlements(incoming("1000", status="CANCELLED"), debts, now=NOW) == []
    assert suggest_settlements(incoming("1000"), [], now=NOW) == []


def test_suggesting_twice_gives_same_result_and_leaves_inputs_alone():
    debts = [outgoing(1, "600000", days_old=3), outgoing(2, "700000", days_old=2)]
    funds = incoming("1000000")
    first = suggest_settlements(funds, debts, now=NOW)
    second = suggest_settlements(funds, debts, now=NOW)
    assert first == second
    assert funds.remaining_irr == Decimal("1000000")
    assert [d.remaining_irr for d in debts] == [Decimal("600000"), Decimal("700000")]


def test_match_score_and_reason_for_old_debt():
    debts = [outgoing(1, "100000", buy_rate="30000", days_old=40)]
    (suggestion,) = suggest_settlements(incoming("1000000", sell_rate="31000"), debts, now=NOW)
    assert suggestion.days_outstanding == 40
    assert suggestion.match_score == 90.0
    assert suggestion.reason == "Oldest debt - outstanding for over 30 days"


def test_match_score_capped_at_hundred():
    debts = [outgoing(1, "100000", buy_rate="10", days_old=90)]
    (suggestion,) = suggest_settlements(incoming("1000000", sell_rate="20"), debts, now=NOW)
    assert suggestion.match_score == 100.0
