"""Payment status rules for partial-payment transactions."""

from decimal import Decimal

from components.core.money import ZERO, is_within_tolerance, minor_unit, to_decimal
from components.transaction.models import PaymentStatus


def remaining_balance(total: Decimal, paid: Decimal) -> Decimal:
    """Open balance, never below zero."""
    return max(ZERO, to_decimal(total) - to_decimal(paid))


def derive_payment_status(paid: Decimal, total: Decimal, currency: str = "") -> PaymentStatus:
    """Status as a pure function of what has been paid against the total.

    A balance within one minor unit of the currency counts as settled.
    """
    paid = to_decimal(paid)
    if paid <= ZERO:
        return PaymentStatus.OPEN
    if paid >= total or is_within_tolerance(remaining_balance(total, paid), currency):
        return PaymentStatus.FULLY_PAID
    return PaymentStatus.PARTIAL


def can_complete(remaining: Decimal, total: Decimal, tolerance: Decimal, currency: str = "") -> bool:
    """Whether a transaction may be finalized with ``remaining`` still open.

    Allowed when nothing is left, or when what is left fits within
    ``total * tolerance`` (or one minor unit, whichever is larger).
    """
    remaining = to_decimal(remaining)
    if remaining <= ZERO:
        return True
    allowance = max(to_decimal(total) * to_decimal(tolerance), minor_unit(currency))
    return remaining <= allowance
