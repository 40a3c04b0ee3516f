"""Fixed-point currency helpers. Amounts are stored as integer cents."""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")


def to_amount(value: Union[Decimal, int, str]) -> Decimal:
    """Normalize a value to a two-decimal Decimal."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(amount: Union[Decimal, int, str]) -> int:
    """Convert an amount to integer cents."""
    return int(to_amount(amount) * 100)


def from_cents(cents: int) -> Decimal:
    """Convert integer cents back to a two-decimal amount."""
    return (Decimal(cents) / 100).quantize(CENT)


def total_price(unit_price: Decimal, participants: int) -> Decimal:
    """Fixed per-participant pricing."""
    return to_amount(to_amount(unit_price) * participants)
