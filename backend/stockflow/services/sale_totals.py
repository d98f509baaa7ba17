# Overview: Pure sale totalization over a draft; no database access.

"""
line_total = round2(unit_price * quantity * (1 - item_discount_pct / 100))
subtotal   = round2(sum(line_total))
total      = round2(max(0, subtotal + tax - discount))

Every step rounds half-even to 2 places. Each line is rounded on its own
before summing, so the result does not depend on item order. Totals sent by
a client are never read.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from ..money import ZERO, round2

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class SaleDraftItem:
    product_id: int
    quantity: int
    unit_price: Decimal
    item_discount_pct: Decimal = ZERO


@dataclass(frozen=True)
class SaleDraft:
    location_id: int
    items: tuple[SaleDraftItem, ...]
    tax: Decimal = ZERO
    discount: Decimal = ZERO
    payment_method: str = "cash"
    customer_name: str | None = None
    customer_contact: str | None = None
    customer_email: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class SaleTotals:
    line_totals: tuple[Decimal, ...] = field(default_factory=tuple)
    subtotal: Decimal = ZERO
    tax: Decimal = ZERO
    discount: Decimal = ZERO
    total: Decimal = ZERO


def line_total(item: SaleDraftItem) -> Decimal:
    factor = (HUNDRED - Decimal(item.item_discount_pct)) / HUNDRED
    return round2(Decimal(item.unit_price) * item.quantity * factor)


def compute_sale_totals(draft: SaleDraft) -> SaleTotals:
    lines = tuple(line_total(item) for item in draft.items)
    subtotal = round2(sum(lines, ZERO))
    tax = round2(draft.tax)
    discount = round2(draft.discount)
    total = round2(max(ZERO, subtotal + tax - discount))
    return SaleTotals(
        line_totals=lines,
        subtotal=subtotal,
        tax=tax,
        discount=discount,
        total=total,
    )
