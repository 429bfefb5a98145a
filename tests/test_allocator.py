from decimal import Decimal

import pytest

from components.allocation.allocator import AllocationCandidate, AllocationStrategy, allocate


def candidates(*balances, currency="CAD"):
    return [
        AllocationCandidate(transaction_id=i, remaining_balance=Decimal(balance), currency=currency)
        for i, balance in enumerate(balances, start=1)
    ]


def test_fifo_fills_transactions_in_order():
    result = allocate(candidates("300", "500"), Decimal("400"))

    assert [a.allocated_amount for a in result] == [Decimal("300"), Decimal("100")]
    assert [a.is_full_payment for a in result] == [True, False]


def test_fifo_lists_untouched_transactions_with_zero():
    result = allocate(candidates("300", "500", "200"), Decimal("300"))
    assert [a.allocated_amount for a in result] == [Decimal("300"), Decimal("0"), Decimal("0")]
    assert [a.is_full_payment for a in result] == [True, False, False]


def test_amount_above_total_pays_everything_off():
    for strategy in AllocationStrategy:
        result = allocate(candidates("300", "500"), Decimal("1000"), strategy)
        assert [a.allocated_amount for a in result] == [Decimal("300"), Decimal("500")]
        assert all(a.is_full_payment for a in result)


def test_proportional_splits_by_remaining_balance():
    result = allocate(candidates("300", "500"), Decimal("400"), AllocationStrategy.PROPORTIONAL)
    assert [a.allocated_amount for a in result] == [Decimal("150.00"), Decimal("250.00")]
    assert not any(a.is_full_payment for a in result)


def test_proportional_rounding_leftover_goes_to_first():
    result = allocate(candidates("100", "100", "100"), Decimal("100"), AllocationStrategy.PROPORTIONAL)
    assert [a.allocated_amount for a in result] == [Decimal("33.34"), Decimal("33.33"), Decimal("33.33")]
    assert sum(a.allocated_amount for a in result) == Decimal("100")


def test_proportional_respects_zero_decimal_currency():
    result = allocate(
        candidates("100", "100", "100", currency="IRR"), Decimal("100"), AllocationStrategy.PROPORTIONAL
    )
    assert [a.allocated_amount for a in result] == [Decimal("34"), Decimal("33"), Decimal("33")]


@pytest.mark.parametrize("strategy", list(AllocationStrategy))
@pytest.mark.parametrize("amount", ["0.01", "1", "123.45", "799.99", "800"])
def test_allocations_sum_to_amount_and_stay_within_balances(strategy, amount):
    pool = candidates("0.05", "299.95", "500")
    result = allocate(pool, Decimal(amount), strategy)

    assert sum(a.allocated_amount for a in result) == Decimal(amount)
    for allocation, candidate in zip(result, pool):
        assert Decimal("0") <= allocation.allocated_amount <= candidate.remaining_balance


def test_zero_amount_allocates_nothing():
    result = allocate(candidates("300"), Decimal("0"))
    assert result[0].allocated_amount == 0
    assert not result[0].is_full_payment


def test_empty_candidates_and_negative_amount():
    assert allocate([], Decimal("100")) == []
    with pytest.raises(ValueError):
        allocate(candidates("300"), Decimal("-1"))
