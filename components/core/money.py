"""Decimal helpers for monetary amounts."""

from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Union

Number = Union[Decimal, int, float, str]

ZERO = Decimal("0")
CENT = Decimal("0.01")

# Smallest monetary unit per currency; anything not listed uses cents.
_MINOR_UNITS = {
    # zero-decimal currencies
    "IRR": Decimal("1"),
    "JPY": Decimal("1"),
    "KRW": Decimal("1"),
    "VND": Decimal("1"),
    "IDR": Decimal("1"),
    "IQD": Decimal("1"),
    # three-decimal currencies
    "KWD": Decimal("0.001"),
    "BHD": Decimal("0.001"),
    "OMR": Decimal("0.001"),
    "JOD": Decimal("0.001"),
    "TND": Decimal("0.001"),
    "LYD": Decimal("0.001"),
}


def to_decimal(value: Number) -> Decimal:
    """Convert a number to Decimal without picking up float noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def minor_unit(currency: str) -> Decimal:
    return _MINOR_UNITS.get((currency or "").upper(), CENT)


def quantize(amount: Number, places: Decimal = CENT, rounding: str = ROUND_HALF_UP) -> Decimal:
    return to_decimal(amount).quantize(places, rounding=rounding)


def truncate(amount: Number, places: Decimal = CENT) -> Decimal:
    return quantize(amount, places, ROUND_DOWN)


def is_within_tolerance(amount: Number, currency: str) -> bool:
    """True when ``amount`` is effectively zero for ``currency``."""
    return abs(to_decimal(amount)) <= minor_unit(currency)
