# Overview: Decimal money helpers. Amounts are stored as integer cents.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_EVEN

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def round2(value: Decimal) -> Decimal:
    """Round half-even to 2 decimal places."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_EVEN)


def to_cents(amount: Decimal) -> int:
    return int(round2(amount) * 100)


def from_cents(cents: int | None) -> Decimal | None:
    if cents is None:
        return None
    return (Decimal(cents) / 100).quantize(CENT)


def cents_to_float(cents: int | None) -> float | None:
    """JSON representation of a cents column (12.7 for 1270)."""
    amount = from_cents(cents)
    return float(amount) if amount is not None else None


def pct_to_bps(pct: Decimal) -> int:
    """Percent with 2 decimals -> integer basis points (12.5% -> 1250)."""
    return int(round2(pct) * 100)


def bps_to_pct(bps: int | None) -> Decimal:
    if not bps:
        return ZERO
    return (Decimal(bps) / 100).quantize(CENT)
