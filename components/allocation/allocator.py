"""Split one payment amount across several open transactions.

``allocate`` is a pure preview; nothing is stored until the batch service
commits the allocations one payment at a time.
"""

import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Sequence

from components.core.money import ZERO, minor_unit, to_decimal, truncate


class AllocationStrategy(str, enum.Enum):
    FIFO = "FIFO"
    PROPORTIONAL = "PROPORTIONAL"


@dataclass(frozen=True)
class AllocationCandidate:
    transaction_id: int
    remaining_balance: Decimal
    currency: str = ""


@dataclass(frozen=True)
class Allocation:
    transaction_id: int
    remaining_balance: Decimal
    allocated_amount: Decimal
    is_full_payment: bool
    currency: str = ""


def _fifo(candidates: Sequence[AllocationCandidate], amount: Decimal) -> List[Decimal]:
    shares = []
    left = amount
    for candidate in candidates:
        share = min(max(candidate.remaining_balance, ZERO), left)
        shares.append(share)
        left -= share
    return shares


def _proportional(candidates: Sequence[AllocationCandidate], amount: Decimal, unit: Decimal) -> List[Decimal]:
    balances = [max(c.remaining_balance, ZERO) for c in candidates]
    total_remaining = sum(balances, ZERO)
    if amount >= total_remaining:
        return balances

    shares = [truncate(amount * balance / total_remaining, unit) for balance in balances]
    # rounding leftovers go to the first candidate, spilling over only if it is full
    leftover = amount - sum(shares, ZERO)
    for index, balance in enumerate(balances):
        if leftover <= ZERO:
            break
        room = balance - shares[index]
        extra = min(room, leftover)
        shares[index] += extra
        leftover -= extra
    return shares


def allocate(
    candidates: Sequence[AllocationCandidate],
    amount,
    strategy: AllocationStrategy = AllocationStrategy.FIFO,
    currency: str = "",
) -> List[Allocation]:
    """Allocate ``amount`` over ``candidates`` in the order given.

    The result has one entry per candidate (zero where nothing is allocated),
    never gives a candidate more than its remaining balance, and always sums
    to ``min(amount, sum of remaining balances)``.
    """
    amount = to_decimal(amount)
    if amount < ZERO:
        raise ValueError("amount to allocate cannot be negative")
    if not candidates:
        return []

    currency = currency or candidates[0].currency
    unit = minor_unit(currency)
    if AllocationStrategy(strategy) == AllocationStrategy.PROPORTIONAL:
        shares = _proportional(candidates, amount, unit)
    else:
        shares = _fifo(candidates, amount)

    return [
        Allocation(
            transaction_id=candidate.transaction_id,
            remaining_balance=candidate.remaining_balance,
            allocated_amount=share,
            is_full_payment=share > ZERO and share == candidate.remaining_balance,
            currency=candidate.currency,
        )
        for candidate, share in zip(candidates, shares)
    ]
