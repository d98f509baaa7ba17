# Overview: Service-layer operations for sales; recording, deletion and sale-linked income.

"""
Sales Invariants

- a sale decrements the stock row of each item at the sale's location in
  the same transaction that persists the sale
- a completed sale with a non-zero total owns exactly one Income row with
  source=Sale and related_sale_id = sale.id
- totals are recomputed from the items on every write (sale_totals)
- deleting a sale returns the stock, removes its Income and then the sale,
  all in one transaction

Rows are locked in product-id order so two sales touching the same
products cannot deadlock; movements are applied in item order so the
audit log follows the order items were presented.
"""
from __future__ import annotations

from collections import OrderedDict
from datetime import datetime

from ..errors import BadRequest, Conflict, InsufficientStock, NotFound
from ..extensions import db
from ..models import Income, Sale, SaleItem
from ..models.inventory import ACTION_SALE, ACTION_SALE_DELETED
from ..models.sales import PAYMENT_METHODS
from ..money import cents_to_float, pct_to_bps, to_cents
from . import activity_service, notifications
from .authorization import Principal, authorize
from .concurrency import begin_write, lock_for_update, run_with_retry
from .repositories import get_or_404, paginate, scoped_query
from .sale_totals import SaleDraft, compute_sale_totals
from .stock_service import (
    apply_movement,
    find_row_for_update,
    require_active_location,
    require_active_product,
)


def _validate_draft(draft: SaleDraft) -> None:
    if not draft.items:
        raise BadRequest("A sale needs at least one item", {"field": "items"})
    if draft.payment_method not in PAYMENT_METHODS:
        raise BadRequest(
            f"payment_method must be one of {', '.join(PAYMENT_METHODS)}",
            {"field": "payment_method"},
        )
    if draft.tax < 0:
        raise BadRequest("tax must be >= 0", {"field": "tax"})
    if draft.discount < 0:
        raise BadRequest("discount must be >= 0", {"field": "discount"})
    for index, item in enumerate(draft.items):
        if item.quantity <= 0:
            raise BadRequest("quantity must be > 0", {"field": f"items[{index}].quantity"})
        if item.unit_price <= 0:
            raise BadRequest("unit_price must be > 0", {"field": f"items[{index}].unit_price"})
        if not 0 <= item.item_discount_pct <= 100:
            raise BadRequest(
                "item_discount_pct must be between 0 and 100",
                {"field": f"items[{index}].item_discount_pct"},
            )


def record_sale(draft: SaleDraft, principal: Principal) -> Sale:
    """
    Record a completed sale and take its items out of stock.

    Raises:
        Forbidden: no sale access to draft.location_id
        BadRequest: invalid items, amounts or payment method
        NotFound: location or a product missing or inactive
        InsufficientStock: any item exceeds the stock at the location
    """
    authorize("CREATE_SALE", principal, draft.location_id)
    _validate_draft(draft)

    # quantity needed per product, in first-seen order
    needed: OrderedDict[int, int] = OrderedDict()
    for item in draft.items:
        needed[item.product_id] = needed.get(item.product_id, 0) + item.quantity

    def _op():
        begin_write()
        require_active_location(draft.location_id)

        rows = {}
        shortages = []
        for product_id in sorted(needed):
            require_active_product(product_id)
            row = find_row_for_update(product_id, draft.location_id)
            rows[product_id] = row
            available = row.quantity if row is not None else 0
            if available < needed[product_id]:
                shortages.append({
                    "product_id": product_id,
                    "available": available,
                    "requested": needed[product_id],
                })
        if shortages:
            raise InsufficientStock(
                "Insufficient stock for one or more items",
                {"location_id": draft.location_id, "items": shortages},
            )

        totals = compute_sale_totals(draft)
        sale = Sale(
            location_id=draft.location_id,
            subtotal_cents=to_cents(totals.subtotal),
            tax_cents=to_cents(totals.tax),
            discount_cents=to_cents(totals.discount),
            total_cents=to_cents(totals.total),
            status="completed",
            payment_method=draft.payment_method,
            customer_name=draft.customer_name,
            customer_contact=draft.customer_contact,
            customer_email=draft.customer_email,
            notes=draft.notes,
            created_by_user_id=principal.user_id,
        )
        for position, (item, line) in enumerate(zip(draft.items, totals.line_totals), start=1):
            sale.items.append(SaleItem(
                position=position,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price_cents=to_cents(item.unit_price),
                item_discount_bps=pct_to_bps(item.item_discount_pct),
                line_total_cents=to_cents(line),
            ))
        db.session.add(sale)
        db.session.flush()

        changes = [
            apply_movement(
                rows[item.product_id], -item.quantity, ACTION_SALE,
                user_id=principal.user_id, note=f"Sale #{sale.id}", sale_id=sale.id,
            )
            for item in draft.items
        ]

        if sale.total_cents > 0:
            db.session.add(Income(
                source="Sale",
                description=f"Income from sale #{sale.id}",
                amount_cents=sale.total_cents,
                date=sale.created_at,
                related_sale_id=sale.id,
                location_id=sale.location_id,
                created_by_user_id=principal.user_id,
            ))

        db.session.commit()
        return sale, changes

    sale, changes = run_with_retry(_op)

    total = cents_to_float(sale.total_cents)
    activity_service.record_activity(
        "sale_created",
        principal,
        "sale",
        entity_id=sale.id,
        entity_name=f"Sale #{sale.id}",
        description=f"Sale #{sale.id} recorded at location {sale.location_id} for {total:.2f}",
        changes={"before": None, "after": {"total": total, "items": len(changes)}, "fields": ["total"]},
        location_id=sale.location_id,
        quantity_change=sum(c.adjustment for c in changes),
    )
    activity_service.record_stock_changes(principal, changes, f"Sold in sale #{sale.id}")

    events = [notifications.inventory_event(c, sale_id=sale.id) for c in changes]
    events.append(notifications.sale_event(
        "newSale", sale.id, sale.location_id,
        total=total,
        items=[{"product_id": c.product_id, "quantity": -c.adjustment} for c in changes],
        delta=f"sale of {-sum(c.adjustment for c in changes)} units",
    ))
    notifications.publish(events)
    return sale


def delete_sale(sale_id: int, principal: Principal) -> dict:
    """
    Delete a sale and return its items to stock.

    Raises:
        NotFound: sale missing
        Forbidden: principal may not delete sales at the sale's location
        Conflict: a stock row the sale drew from no longer exists
    """
    def _op():
        begin_write()
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFound(f"Sale {sale_id} not found")
        authorize("DELETE_SALE", principal, sale.location_id)

        snapshot = sale.to_dict()
        changes = []
        for item in sale.items:
            row = find_row_for_update(item.product_id, sale.location_id)
            if row is None:
                raise Conflict(
                    "Stock row for a sold product no longer exists",
                    {"product_id": item.product_id, "location_id": sale.location_id},
                )
            changes.append(apply_movement(
                row, item.quantity, ACTION_SALE_DELETED,
                user_id=principal.user_id, note=f"Sale #{sale.id} deleted", sale_id=sale.id,
            ))

        db.session.query(Income).filter_by(related_sale_id=sale.id).delete(synchronize_session=False)
        db.session.delete(sale)
        db.session.commit()
        return snapshot, changes

    snapshot, changes = run_with_retry(_op)

    activity_service.record_activity(
        "sale_deleted",
        principal,
        "sale",
        entity_id=snapshot["id"],
        entity_name=f"Sale #{snapshot['id']}",
        description=f"Sale #{snapshot['id']} deleted; {sum(c.adjustment for c in changes)} units returned to stock",
        changes={"before": {"total": snapshot["total"]}, "after": None, "fields": ["total"]},
        urgency_level="high",
        location_id=snapshot["location_id"],
        quantity_change=sum(c.adjustment for c in changes),
    )
    activity_service.record_stock_changes(principal, changes, f"Returned by deletion of sale #{snapshot['id']}")

    events = [notifications.inventory_event(c, sale_id=snapshot["id"]) for c in changes]
    events.append(notifications.sale_event(
        "saleDeleted", snapshot["id"], snapshot["location_id"],
        delta=f"sale reversed, {sum(c.adjustment for c in changes)} units returned",
    ))
    notifications.publish(events)
    return snapshot


def get_sale(sale_id: int, principal: Principal) -> Sale:
    sale = get_or_404(Sale, sale_id, "Sale")
    authorize("VIEW_SALES", principal, sale.location_id)
    return sale


def list_sales(
    principal: Principal,
    *,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    location_id: int | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    query = scoped_query(Sale, principal, "VIEW_SALES", Sale.location_id, location_id=location_id)
    if start_date is not None:
        query = query.filter(Sale.created_at >= start_date)
    if end_date is not None:
        query = query.filter(Sale.created_at <= end_date)
    return paginate(query.order_by(Sale.created_at.desc(), Sale.id.desc()), page, limit)

