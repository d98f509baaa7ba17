# Overview: Stock engine; the only writer of StockRow.quantity and the per-row audit log.

"""
Stock Invariants (authoritative)

- quantity >= 0 for every row; a movement that would go negative raises
  InsufficientStock and nothing is written
- at most one row per (product_id, location_id)
- every movement appends exactly one StockEvent in the same transaction,
  with new_quantity = previous new_quantity + adjustment (first event from 0)
- rows are never hard-deleted

Multi-entity operations (sales, purchase receipt, transfers) live in their
own services but change stock only through apply_movement() and
get_or_create_row() below, inside a run_with_retry() transaction opened
with begin_write().

Events are published and the activity trail written only after commit.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from ..errors import BadRequest, Conflict, InsufficientStock, NotFound
from ..extensions import db
from ..models import Location, Product, StockEvent, StockRow
from ..models.inventory import (
    ACTION_ADDED_TO_LOCATION,
    ACTION_ADJUSTMENT,
    DEFAULT_MIN_STOCK,
)
from ..time_utils import utcnow
from . import activity_service, notifications
from .authorization import Principal, authorize
from .concurrency import begin_write, lock_for_update, run_with_retry
from .repositories import get_or_404, paginate, scoped_query


@dataclass(frozen=True)
class StockChange:
    """Committed-safe snapshot of one movement, used for events and the trail."""
    row_id: int
    product_id: int
    location_id: int
    action: str
    adjustment: int
    new_quantity: int
    notify_at: int
    product_name: str | None = None


# =============================================================================
# Guards
# =============================================================================

def require_active_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound(f"Product {product_id} not found", {"field": "product_id"})
    if not product.is_active:
        raise NotFound(f"Product {product_id} is inactive", {"field": "product_id"})
    return product


def require_active_location(location_id: int, field: str = "location_id") -> Location:
    location = db.session.get(Location, location_id)
    if location is None:
        raise NotFound(f"Location {location_id} not found", {"field": field})
    if not location.is_active:
        raise NotFound(f"Location {location_id} is inactive", {"field": field})
    return location


# =============================================================================
# Primitives (call inside a write transaction)
# =============================================================================

def lock_row(row_id: int) -> StockRow:
    row = lock_for_update(db.session.query(StockRow).filter_by(id=row_id)).first()
    if row is None:
        raise NotFound(f"Stock row {row_id} not found")
    return row


def find_row_for_update(product_id: int, location_id: int) -> StockRow | None:
    return lock_for_update(
        db.session.query(StockRow).filter_by(product_id=product_id, location_id=location_id)
    ).first()


def get_or_create_row(
    product_id: int,
    location_id: int,
    *,
    user_id: int | None,
    min_stock: int | None = None,
    notify_at: int | None = None,
) -> tuple[StockRow, bool]:
    """
    Locked row for (product, location), creating an empty one when absent.

    Implicit creation (purchase receipt, transfer receipt) appends no event
    of its own: the first event is the movement that caused it, so the
    audit fold still starts from 0.

    No active check: callers are completing a transfer or purchase that
    was validated when it was opened, and a deactivation in between must
    not strand units already in flight.
    """
    row = find_row_for_update(product_id, location_id)
    if row is not None:
        return row, False

    min_stock = DEFAULT_MIN_STOCK if min_stock is None else min_stock
    try:
        with db.session.begin_nested():
            row = StockRow(
                product_id=product_id,
                location_id=location_id,
                quantity=0,
                min_stock=min_stock,
                notify_at=min_stock if notify_at is None else notify_at,
                created_by_user_id=user_id,
            )
            db.session.add(row)
    except IntegrityError:
        # created concurrently by another writer
        row = find_row_for_update(product_id, location_id)
        if row is None:
            raise
        return row, False
    return row, True


def apply_movement(
    row: StockRow,
    delta: int,
    action: str,
    *,
    user_id: int | None,
    note: str | None = None,
    sale_id: int | None = None,
    transfer_id: int | None = None,
    purchase_id: int | None = None,
) -> StockChange:
    """
    Change row.quantity by delta and append the matching StockEvent.

    Raises InsufficientStock (and writes nothing) if the result is negative.
    """
    new_quantity = row.quantity + delta
    if new_quantity < 0:
        raise InsufficientStock(
            "Insufficient stock",
            {
                "product_id": row.product_id,
                "location_id": row.location_id,
                "available": row.quantity,
                "requested": -delta,
            },
        )

    row.quantity = new_quantity
    row.updated_at = utcnow()
    db.session.add(StockEvent(
        stock_row_id=row.id,
        user_id=user_id,
        action=action,
        adjustment=delta,
        note=note,
        new_quantity=new_quantity,
        related_sale_id=sale_id,
        related_transfer_id=transfer_id,
        related_purchase_id=purchase_id,
        timestamp=utcnow(),
    ))

    return StockChange(
        row_id=row.id,
        product_id=row.product_id,
        location_id=row.location_id,
        action=action,
        adjustment=delta,
        new_quantity=new_quantity,
        notify_at=row.notify_at,
        product_name=row.product.name if row.product is not None else None,
    )


# =============================================================================
# Stock row operations
# =============================================================================

def create_stock_row(
    product_id: int,
    location_id: int,
    principal: Principal,
    *,
    quantity: int = 0,
    min_stock: int | None = None,
    notify_at: int | None = None,
    expiry_date: datetime | None = None,
) -> StockRow:
    """
    Add a product to a location.

    Appends one added_to_location event (adjustment=quantity, even when 0).

    Raises:
        Forbidden: principal cannot create rows at the location
        NotFound: product or location missing or inactive
        Conflict: a row already exists for the pair
        BadRequest: negative quantity or thresholds
    """
    authorize("CREATE_STOCK_ROW", principal, location_id)
    if quantity < 0:
        raise BadRequest("initial_quantity must be >= 0", {"field": "initial_quantity"})
    if min_stock is not None and min_stock < 0:
        raise BadRequest("min_stock must be >= 0", {"field": "min_stock"})
    if notify_at is not None and notify_at < 0:
        raise BadRequest("notify_at must be >= 0", {"field": "notify_at"})

    def _op():
        begin_write()
        require_active_product(product_id)
        require_active_location(location_id)
        if find_row_for_update(product_id, location_id) is not None:
            raise Conflict(
                "Product already exists at this location",
                {"product_id": product_id, "location_id": location_id},
            )

        resolved_min = DEFAULT_MIN_STOCK if min_stock is None else min_stock
        row = StockRow(
            product_id=product_id,
            location_id=location_id,
            quantity=0,
            min_stock=resolved_min,
            notify_at=resolved_min if notify_at is None else notify_at,
            expiry_date=expiry_date,
            created_by_user_id=principal.user_id,
        )
        db.session.add(row)
        db.session.flush()

        change = apply_movement(
            row, quantity, ACTION_ADDED_TO_LOCATION,
            user_id=principal.user_id, note="Added to location",
        )
        db.session.commit()
        return row, change

    row, change = run_with_retry(_op)

    activity_service.record_activity(
        "inventory_created",
        principal,
        "inventory",
        entity_id=change.row_id,
        entity_name=change.product_name,
        description=f"Added {change.product_name} to location {location_id} with quantity {quantity}",
        changes={"before": None, "after": {"quantity": quantity}, "fields": ["quantity"]},
        urgency_level="medium",
        location_id=location_id,
        quantity_change=quantity,
    )
    notifications.publish([notifications.inventory_event(change, "inventoryAdded")])
    return row


def adjust_stock(row_id: int, delta: int, principal: Principal, note: str | None = None) -> StockRow:
    """
    Manual correction of a row's quantity.

    Raises:
        BadRequest: delta == 0
        NotFound: row missing
        Forbidden: no write access to the row's location
        InsufficientStock: quantity would go negative
    """
    if delta == 0:
        raise BadRequest("adjustment must be non-zero", {"field": "adjustment"})

    def _op():
        begin_write()
        row = lock_row(row_id)
        authorize("ADJUST_STOCK", principal, row.location_id)
        change = apply_movement(
            row, delta, ACTION_ADJUSTMENT,
            user_id=principal.user_id, note=note or "Manual adjustment",
        )
        db.session.commit()
        return row, change

    row, change = run_with_retry(_op)

    activity_service.record_stock_changes(
        principal, [change],
        f"Adjusted {change.product_name} by {delta:+d} to {change.new_quantity}",
    )
    notifications.publish([
        notifications.inventory_event(change, "inventoryAdjusted", note=note),
        notifications.inventory_event(change),
    ])
    return row


def update_stock_settings(
    row_id: int,
    principal: Principal,
    *,
    fields: dict,
) -> StockRow:
    """Change min_stock / notify_at / expiry_date. Quantity is untouched."""
    allowed = {"min_stock", "notify_at", "expiry_date"}
    unknown = sorted(set(fields) - allowed)
    if unknown:
        raise BadRequest(f"Field not allowed: {unknown[0]}", {"field": unknown[0]})
    if not fields:
        raise BadRequest("No settings to update")
    for key in ("min_stock", "notify_at"):
        if key in fields and (fields[key] is None or fields[key] < 0):
            raise BadRequest(f"{key} must be >= 0", {"field": key})

    def _op():
        begin_write()
        row = lock_row(row_id)
        authorize("UPDATE_STOCK_SETTINGS", principal, row.location_id)
        before = {k: getattr(row, k) for k in fields}
        for key, value in fields.items():
            setattr(row, key, value)
        row.updated_at = utcnow()
        db.session.commit()
        return row, before

    row, before = run_with_retry(_op)

    activity_service.record_activity(
        "inventory_settings_updated",
        principal,
        "inventory",
        entity_id=row.id,
        entity_name=row.product.name if row.product else None,
        description=f"Updated stock settings for row {row.id}",
        changes={
            "before": {k: str(v) if isinstance(v, datetime) else v for k, v in before.items()},
            "after": {k: str(v) if isinstance(v, datetime) else v for k, v in fields.items()},
            "fields": sorted(fields),
        },
        urgency_level="low",
        location_id=row.location_id,
    )
    return row


# =============================================================================
# Reads (scoped to the principal)
# =============================================================================

def get_stock_row(row_id: int, principal: Principal) -> StockRow:
    row = get_or_404(StockRow, row_id, "Stock row")
    authorize("VIEW_INVENTORY", principal, row.location_id)
    return row


def list_row_events(row_id: int, principal: Principal, page: int, limit: int) -> dict:
    """Full audit history of a row, oldest first, paged."""
    get_stock_row(row_id, principal)
    query = db.session.query(StockEvent).filter_by(stock_row_id=row_id).order_by(StockEvent.id.asc())
    return paginate(query, page, limit)


def _inventory_query(principal: Principal, location_id: int | None):
    return scoped_query(
        StockRow, principal, "VIEW_INVENTORY", StockRow.location_id, location_id=location_id,
    )


def list_stock_rows(
    principal: Principal,
    *,
    product_id: int | None = None,
    location_id: int | None = None,
    low_stock: bool = False,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    query = _inventory_query(principal, location_id)
    if product_id is not None:
        query = query.filter(StockRow.product_id == product_id)
    if low_stock:
        query = query.filter(StockRow.quantity > 0, StockRow.quantity <= StockRow.notify_at)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.join(Product, Product.id == StockRow.product_id).filter(
            db.or_(Product.name.ilike(pattern), Product.sku.ilike(pattern), Product.barcode.ilike(pattern))
        )
    return paginate(query.order_by(StockRow.id.asc()), page, limit)


def list_low_stock(principal: Principal, location_id: int | None = None) -> list[StockRow]:
    return (
        _inventory_query(principal, location_id)
        .filter(StockRow.quantity > 0, StockRow.quantity <= StockRow.notify_at)
        .order_by(StockRow.quantity.asc(), StockRow.id.asc())
        .all()
    )


def list_out_of_stock(principal: Principal, location_id: int | None = None) -> list[StockRow]:
    return (
        _inventory_query(principal, location_id)
        .filter(StockRow.quantity == 0)
        .order_by(StockRow.id.asc())
        .all()
    )


def list_expired(principal: Principal, location_id: int | None = None) -> list[StockRow]:
    return (
        _inventory_query(principal, location_id)
        .filter(
            StockRow.expiry_date.isnot(None),
            StockRow.expiry_date <= utcnow(),
            StockRow.quantity > 0,
        )
        .order_by(StockRow.expiry_date.asc(), StockRow.id.asc())
        .all()
    )
