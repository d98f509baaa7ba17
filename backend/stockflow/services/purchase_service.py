# Overview: Service-layer operations for purchases; creation, receipt into warehouse stock, payments.

"""
Purchase lifecycle

  draft ──┐
          ├─> pending ─> partially_received ─> received
          └─────────┴──> cancelled (only before any receipt)

Receipt is allowed from pending and partially_received. By default every
remaining unit of every line is received; an explicit item list receives
part of the order and leaves the purchase partially_received until the
last unit arrives. Each received line upserts the warehouse stock row and
appends one purchase_received event.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from ..errors import BadRequest, InvalidState, NotFound
from ..extensions import db
from ..models import Purchase, PurchaseItem
from ..models.inventory import ACTION_PURCHASE_RECEIVED
from ..models.purchases import (
    PURCHASE_STATUS_CANCELLED,
    PURCHASE_STATUS_DRAFT,
    PURCHASE_STATUS_PARTIALLY_RECEIVED,
    PURCHASE_STATUS_PENDING,
    PURCHASE_STATUS_RECEIVED,
    PURCHASE_STATUSES,
)
from ..money import ZERO, from_cents, pct_to_bps, round2, to_cents
from ..time_utils import utcnow
from . import activity_service, notifications
from .authorization import Principal, authorize
from .concurrency import begin_write, lock_for_update, run_with_retry
from .repositories import get_or_404, paginate, scoped_query
from .stock_service import apply_movement, get_or_create_row, require_active_location, require_active_product


RECEIVABLE_STATUSES = (PURCHASE_STATUS_PENDING, PURCHASE_STATUS_PARTIALLY_RECEIVED)
CANCELLABLE_STATUSES = (PURCHASE_STATUS_DRAFT, PURCHASE_STATUS_PENDING)
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class PurchaseLineInput:
    product_id: int
    quantity: int
    unit_cost: Decimal
    discount: Decimal = ZERO
    tax_rate: Decimal = ZERO


def payment_status_for(grand_total_cents: int, amount_paid_cents: int) -> str:
    if amount_paid_cents >= grand_total_cents:
        return "paid"
    if amount_paid_cents > 0:
        return "partial"
    return "unpaid"


def _line_amounts(line: PurchaseLineInput) -> tuple[Decimal, Decimal]:
    """(tax, line_total) for one line; tax applies after the line discount."""
    net = round2(line.unit_cost * line.quantity - line.discount)
    tax = round2(net * line.tax_rate / HUNDRED)
    return tax, round2(net + tax)


def next_purchase_number(purchase_date: datetime) -> str:
    """PO-YYYYMMDD-NNNN, sequential per day. Call inside the write transaction."""
    prefix = f"PO-{purchase_date:%Y%m%d}-"
    latest = (
        db.session.query(Purchase.purchase_number)
        .filter(Purchase.purchase_number.like(f"{prefix}%"))
        .order_by(Purchase.purchase_number.desc())
        .first()
    )
    seq = 1
    if latest is not None:
        suffix = latest[0][len(prefix):]
        if suffix.isdigit():
            seq = int(suffix) + 1
    return f"{prefix}{seq:04d}"


def create_purchase(
    principal: Principal,
    *,
    supplier_id: int,
    warehouse_id: int,
    items: list[PurchaseLineInput],
    order_tax: Decimal = ZERO,
    discount: Decimal = ZERO,
    shipping: Decimal = ZERO,
    amount_paid: Decimal = ZERO,
    status: str = PURCHASE_STATUS_PENDING,
    purchase_number: str | None = None,
    reference_number: str | None = None,
    purchase_date: datetime | None = None,
    due_date: datetime | None = None,
    notes: str | None = None,
) -> Purchase:
    """
    Create a purchase order. Nothing enters stock until it is received.

    Raises:
        Forbidden: no purchase access to the warehouse
        BadRequest: empty or invalid lines, overpayment, bad status
        NotFound: warehouse or a product missing or inactive
        Conflict: purchase_number already used
    """
    authorize("CREATE_PURCHASE", principal, warehouse_id)
    if status not in (PURCHASE_STATUS_DRAFT, PURCHASE_STATUS_PENDING):
        raise BadRequest("status must be draft or pending", {"field": "status"})
    if not items:
        raise BadRequest("A purchase needs at least one item", {"field": "items"})
    for index, line in enumerate(items):
        if line.quantity <= 0:
            raise BadRequest("quantity must be > 0", {"field": f"items[{index}].quantity"})
        if line.unit_cost < 0:
            raise BadRequest("unit_cost must be >= 0", {"field": f"items[{index}].unit_cost"})
        if line.discount > line.unit_cost * line.quantity:
            raise BadRequest("discount exceeds line amount", {"field": f"items[{index}].discount"})

    lines = [(line, *_line_amounts(line)) for line in items]
    subtotal = round2(sum((total for _, _, total in lines), ZERO))
    grand_total = round2(subtotal + order_tax - discount + shipping)
    if grand_total < 0:
        raise BadRequest("discount exceeds purchase total", {"field": "discount"})
    if amount_paid > grand_total:
        raise BadRequest("amount_paid exceeds grand total", {"field": "amount_paid"})

    def _op():
        begin_write()
        require_active_location(warehouse_id, "warehouse_id")
        for line in items:
            require_active_product(line.product_id)

        when = purchase_date or utcnow()
        purchase = Purchase(
            purchase_number=purchase_number or next_purchase_number(when),
            supplier_id=supplier_id,
            warehouse_id=warehouse_id,
            reference_number=reference_number,
            subtotal_cents=to_cents(subtotal),
            order_tax_cents=to_cents(order_tax),
            discount_cents=to_cents(discount),
            shipping_cents=to_cents(shipping),
            grand_total_cents=to_cents(grand_total),
            amount_paid_cents=to_cents(amount_paid),
            amount_due_cents=to_cents(grand_total - amount_paid),
            status=status,
            payment_status=payment_status_for(to_cents(grand_total), to_cents(amount_paid)),
            purchase_date=when,
            due_date=due_date,
            notes=notes,
            created_by_user_id=principal.user_id,
        )
        for position, (line, tax, total) in enumerate(lines, start=1):
            purchase.items.append(PurchaseItem(
                position=position,
                product_id=line.product_id,
                quantity=line.quantity,
                received_quantity=0,
                unit_cost_cents=to_cents(line.unit_cost),
                discount_cents=to_cents(line.discount),
                tax_rate_bps=pct_to_bps(line.tax_rate),
                tax_cents=to_cents(tax),
                line_total_cents=to_cents(total),
            ))
        db.session.add(purchase)
        db.session.commit()
        return purchase

    purchase = run_with_retry(_op)

    activity_service.record_activity(
        "purchase_created",
        principal,
        "purchase",
        entity_id=purchase.id,
        entity_name=purchase.purchase_number,
        description=f"Purchase {purchase.purchase_number} created for warehouse {warehouse_id}",
        changes={"before": None, "after": {"grand_total": str(grand_total), "status": status}, "fields": ["status"]},
        location_id=warehouse_id,
    )
    return purchase


def _lock_purchase(purchase_id: int) -> Purchase:
    purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
    if purchase is None:
        raise NotFound(f"Purchase {purchase_id} not found")
    return purchase


def _receipt_plan(purchase: Purchase, requested: list[tuple[int, int]] | None) -> list[tuple[PurchaseItem, int]]:
    """Pair each purchase line with the quantity to receive now, in line order."""
    if requested is None:
        return [(item, item.remaining_quantity) for item in purchase.items if item.remaining_quantity > 0]

    wanted: dict[int, int] = {}
    for product_id, quantity in requested:
        if quantity <= 0:
            raise BadRequest("quantity must be > 0", {"field": "items.quantity", "product_id": product_id})
        wanted[product_id] = wanted.get(product_id, 0) + quantity

    known = {item.product_id for item in purchase.items}
    unknown = sorted(set(wanted) - known)
    if unknown:
        raise BadRequest("Product is not part of this purchase", {"product_id": unknown[0]})

    plan = []
    for item in purchase.items:
        take = min(wanted.get(item.product_id, 0), item.remaining_quantity)
        if take > 0:
            plan.append((item, take))
            wanted[item.product_id] -= take
    over = sorted(pid for pid, left in wanted.items() if left > 0)
    if over:
        raise BadRequest("Received quantity exceeds quantity outstanding", {"product_id": over[0]})
    return plan


def receive_purchase(
    purchase_id: int,
    principal: Principal,
    items: list[tuple[int, int]] | None = None,
) -> Purchase:
    """
    Receive a purchase into its warehouse.

    items: optional [(product_id, quantity)] for a partial receipt.

    Raises:
        NotFound: purchase missing
        Forbidden: no receipt access to the warehouse
        InvalidState: purchase is not pending or partially_received
        BadRequest: partial quantities exceed what is outstanding
    """
    def _op():
        begin_write()
        purchase = _lock_purchase(purchase_id)
        authorize("RECEIVE_PURCHASE", principal, purchase.warehouse_id)
        if purchase.status not in RECEIVABLE_STATUSES:
            raise InvalidState(
                f"Cannot receive a purchase in status {purchase.status}",
                {"status": purchase.status},
            )

        plan = _receipt_plan(purchase, items)
        if not plan:
            raise BadRequest("Nothing left to receive")

        changes = []
        for item, quantity in plan:
            row, _ = get_or_create_row(item.product_id, purchase.warehouse_id, user_id=principal.user_id)
            changes.append(apply_movement(
                row, quantity, ACTION_PURCHASE_RECEIVED,
                user_id=principal.user_id,
                note=f"Purchase {purchase.purchase_number}",
                purchase_id=purchase.id,
            ))
            item.received_quantity = (item.received_quantity or 0) + quantity

        if all(item.remaining_quantity == 0 for item in purchase.items):
            purchase.status = PURCHASE_STATUS_RECEIVED
            purchase.received_date = utcnow()
        else:
            purchase.status = PURCHASE_STATUS_PARTIALLY_RECEIVED
        purchase.received_by_user_id = principal.user_id
        purchase.updated_at = utcnow()

        db.session.commit()
        return purchase, changes

    purchase, changes = run_with_retry(_op)

    snapshot = purchase.to_dict()
    activity_service.record_activity(
        "purchase_received",
        principal,
        "purchase",
        entity_id=purchase.id,
        entity_name=purchase.purchase_number,
        description=(
            f"Purchase {purchase.purchase_number} {purchase.status.replace('_', ' ')}: "
            f"{sum(c.adjustment for c in changes)} units into warehouse {purchase.warehouse_id}"
        ),
        changes={"before": None, "after": {"status": purchase.status}, "fields": ["status"]},
        location_id=purchase.warehouse_id,
        quantity_change=sum(c.adjustment for c in changes),
    )
    activity_service.record_stock_changes(principal, changes, f"Received from purchase {purchase.purchase_number}")

    events = [notifications.inventory_event(c, purchase_id=purchase.id) for c in changes]
    events.append(notifications.purchase_event(snapshot, changes))
    notifications.publish(events)
    return purchase


def record_payment(purchase_id: int, principal: Principal, amount: Decimal) -> Purchase:
    """Apply a supplier payment; amount must be > 0 and not exceed what is due."""
    if amount <= 0:
        raise BadRequest("amount must be > 0", {"field": "amount"})

    def _op():
        begin_write()
        purchase = _lock_purchase(purchase_id)
        authorize("RECORD_PURCHASE_PAYMENT", principal, purchase.warehouse_id)
        if purchase.status == PURCHASE_STATUS_CANCELLED:
            raise InvalidState("Cannot pay a cancelled purchase", {"status": purchase.status})

        cents = to_cents(amount)
        if cents > purchase.amount_due_cents:
            raise BadRequest(
                "amount exceeds amount due",
                {"field": "amount", "amount_due": str(from_cents(purchase.amount_due_cents))},
            )
        before = purchase.amount_paid_cents
        purchase.amount_paid_cents += cents
        purchase.amount_due_cents = purchase.grand_total_cents - purchase.amount_paid_cents
        purchase.payment_status = payment_status_for(purchase.grand_total_cents, purchase.amount_paid_cents)
        purchase.updated_at = utcnow()
        db.session.commit()
        return purchase, before

    purchase, before = run_with_retry(_op)

    activity_service.record_activity(
        "purchase_payment",
        principal,
        "purchase",
        entity_id=purchase.id,
        entity_name=purchase.purchase_number,
        description=f"Payment of {amount} recorded on purchase {purchase.purchase_number}",
        changes={
            "before": {"amount_paid": str(from_cents(before))},
            "after": {"amount_paid": str(from_cents(purchase.amount_paid_cents))},
            "fields": ["amount_paid", "payment_status"],
        },
        urgency_level="low",
        location_id=purchase.warehouse_id,
    )
    return purchase


def cancel_purchase(purchase_id: int, principal: Principal, reason: str | None = None) -> Purchase:
    def _op():
        begin_write()
        purchase = _lock_purchase(purchase_id)
        authorize("CANCEL_PURCHASE", principal, purchase.warehouse_id)
        if purchase.status not in CANCELLABLE_STATUSES:
            raise InvalidState(
                f"Cannot cancel a purchase in status {purchase.status}",
                {"status": purchase.status},
            )
        purchase.status = PURCHASE_STATUS_CANCELLED
        purchase.cancelled_at = utcnow()
        purchase.cancellation_reason = reason
        purchase.updated_at = utcnow()
        db.session.commit()
        return purchase

    purchase = run_with_retry(_op)

    activity_service.record_activity(
        "purchase_cancelled",
        principal,
        "purchase",
        entity_id=purchase.id,
        entity_name=purchase.purchase_number,
        description=f"Purchase {purchase.purchase_number} cancelled",
        changes={"before": None, "after": {"status": PURCHASE_STATUS_CANCELLED, "reason": reason}, "fields": ["status"]},
        location_id=purchase.warehouse_id,
    )
    return purchase


def get_purchase(purchase_id: int, principal: Principal) -> Purchase:
    purchase = get_or_404(Purchase, purchase_id, "Purchase")
    authorize("VIEW_PURCHASES", principal, purchase.warehouse_id)
    return purchase


def list_purchases(
    principal: Principal,
    *,
    status: str | None = None,
    warehouse_id: int | None = None,
    supplier_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    if status is not None and status not in PURCHASE_STATUSES:
        raise BadRequest(f"status must be one of {', '.join(PURCHASE_STATUSES)}", {"field": "status"})
    query = scoped_query(Purchase, principal, "VIEW_PURCHASES", Purchase.warehouse_id, location_id=warehouse_id)
    if status:
        query = query.filter(Purchase.status == status)
    if supplier_id is not None:
        query = query.filter(Purchase.supplier_id == supplier_id)
    if start_date is not None:
        query = query.filter(Purchase.purchase_date >= start_date)
    if end_date is not None:
        query = query.filter(Purchase.purchase_date <= end_date)
    return paginate(query.order_by(Purchase.purchase_date.desc(), Purchase.id.desc()), page, limit)
