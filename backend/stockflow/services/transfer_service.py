# backend/stockflow/services/transfer_service.py
"""
Inter-location transfer service.

Moves one product between two locations in two phases so stock is never
in two places at once and never in none:

LIFECYCLE:
1. Pending: requested; availability at the source is checked but not
   reserved (re-verified at ship time)
2. Shipped: source row decremented (transfer_out)
3. Received: destination row upserted and incremented (transfer_in)
4. Cancelled: abandoned while Pending, no stock effect

Received and Cancelled are terminal. Any other transition raises
InvalidState and leaves stock untouched.
"""
from __future__ import annotations

import uuid

from ..errors import BadRequest, InsufficientStock, InvalidState, NotFound
from ..extensions import db
from ..models import StockRow, StockTransfer
from ..models.inventory import ACTION_TRANSFER_IN, ACTION_TRANSFER_OUT
from ..models.transfers import (
    TRANSFER_STATUS_CANCELLED,
    TRANSFER_STATUS_PENDING,
    TRANSFER_STATUS_RECEIVED,
    TRANSFER_STATUS_SHIPPED,
    TRANSFER_STATUSES,
)
from ..time_utils import utcnow
from . import activity_service, notifications
from .authorization import Principal, authorize
from .concurrency import begin_write, lock_for_update, run_with_retry
from .repositories import get_or_404, paginate, scoped_query
from .stock_service import (
    apply_movement,
    find_row_for_update,
    get_or_create_row,
    require_active_location,
    require_active_product,
)


def new_transfer_number() -> str:
    return f"TR-{uuid.uuid4().hex[:8].upper()}"


def _lock_transfer(transfer_id: int) -> StockTransfer:
    transfer = lock_for_update(db.session.query(StockTransfer).filter_by(id=transfer_id)).first()
    if transfer is None:
        raise NotFound(f"Transfer {transfer_id} not found")
    return transfer


def _require_status(transfer: StockTransfer, expected: str, verb: str) -> None:
    if transfer.status != expected:
        raise InvalidState(
            f"Cannot {verb} a transfer in status {transfer.status}",
            {"status": transfer.status, "expected": expected},
        )


def _after_transition(principal: Principal, transfer: dict, action: str, event_name: str, changes=()) -> None:
    activity_service.record_activity(
        action,
        principal,
        "transfer",
        entity_id=transfer["id"],
        entity_name=transfer["transfer_number"],
        description=(
            f"Transfer {transfer['transfer_number']} of {transfer['quantity']} units "
            f"from location {transfer['from_location_id']} to {transfer['to_location_id']}: "
            f"{transfer['status']}"
        ),
        changes={"before": None, "after": {"status": transfer["status"]}, "fields": ["status"]},
        location_id=transfer["from_location_id"],
    )
    if changes:
        activity_service.record_stock_changes(principal, changes, f"Transfer {transfer['transfer_number']}")

    events = [notifications.inventory_event(c, transfer_id=transfer["id"]) for c in changes]
    events.append(notifications.transfer_event(event_name, transfer))
    notifications.publish(events)


def request_transfer(
    product_id: int,
    quantity: int,
    from_location_id: int,
    to_location_id: int,
    principal: Principal,
    notes: str | None = None,
) -> StockTransfer:
    """
    Create a Pending transfer. No stock moves yet.

    Raises:
        BadRequest: same source and destination, quantity <= 0
        Forbidden: no transfer access to the source location
        NotFound: product or either location missing or inactive
        InsufficientStock: source holds less than quantity (advisory check)
    """
    if from_location_id == to_location_id:
        raise BadRequest("Source and destination must differ", {"field": "to_location_id"})
    if quantity <= 0:
        raise BadRequest("quantity must be > 0", {"field": "quantity"})
    authorize("REQUEST_TRANSFER", principal, from_location_id)

    def _op():
        begin_write()
        require_active_product(product_id)
        require_active_location(from_location_id, "from_location_id")
        require_active_location(to_location_id, "to_location_id")

        row = (
            db.session.query(StockRow)
            .filter_by(product_id=product_id, location_id=from_location_id)
            .first()
        )
        available = row.quantity if row is not None else 0
        if available < quantity:
            raise InsufficientStock(
                "Insufficient stock at source location",
                {
                    "product_id": product_id,
                    "location_id": from_location_id,
                    "available": available,
                    "requested": quantity,
                },
            )

        transfer = StockTransfer(
            transfer_number=new_transfer_number(),
            product_id=product_id,
            quantity=quantity,
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            status=TRANSFER_STATUS_PENDING,
            notes=notes,
            requested_by_user_id=principal.user_id,
            requested_at=utcnow(),
        )
        db.session.add(transfer)
        db.session.commit()
        return transfer

    transfer = run_with_retry(_op)
    _after_transition(principal, transfer.to_dict(), "transfer_requested", "transferCreated")
    return transfer


def ship_transfer(transfer_id: int, principal: Principal) -> StockTransfer:
    """Pending -> Shipped; decrements the source row (transfer_out)."""
    def _op():
        begin_write()
        transfer = _lock_transfer(transfer_id)
        authorize("SHIP_TRANSFER", principal, transfer.from_location_id)
        _require_status(transfer, TRANSFER_STATUS_PENDING, "ship")

        row = find_row_for_update(transfer.product_id, transfer.from_location_id)
        if row is None or row.quantity < transfer.quantity:
            raise InsufficientStock(
                "Insufficient stock at source location",
                {
                    "product_id": transfer.product_id,
                    "location_id": transfer.from_location_id,
                    "available": row.quantity if row is not None else 0,
                    "requested": transfer.quantity,
                },
            )
        change = apply_movement(
            row, -transfer.quantity, ACTION_TRANSFER_OUT,
            user_id=principal.user_id,
            note=f"Transfer {transfer.transfer_number} to location {transfer.to_location_id}",
            transfer_id=transfer.id,
        )

        transfer.status = TRANSFER_STATUS_SHIPPED
        transfer.shipped_by_user_id = principal.user_id
        transfer.shipped_at = utcnow()
        db.session.commit()
        return transfer, change

    transfer, change = run_with_retry(_op)
    _after_transition(principal, transfer.to_dict(), "transfer_shipped", "transferUpdated", [change])
    return transfer


def receive_transfer(transfer_id: int, principal: Principal) -> StockTransfer:
    """Shipped -> Received; upserts and increments the destination row (transfer_in)."""
    def _op():
        begin_write()
        transfer = _lock_transfer(transfer_id)
        authorize("RECEIVE_TRANSFER", principal, transfer.to_location_id)
        _require_status(transfer, TRANSFER_STATUS_SHIPPED, "receive")

        row, _ = get_or_create_row(transfer.product_id, transfer.to_location_id, user_id=principal.user_id)
        change = apply_movement(
            row, transfer.quantity, ACTION_TRANSFER_IN,
            user_id=principal.user_id,
            note=f"Transfer {transfer.transfer_number} from location {transfer.from_location_id}",
            transfer_id=transfer.id,
        )

        transfer.status = TRANSFER_STATUS_RECEIVED
        transfer.received_by_user_id = principal.user_id
        transfer.received_at = utcnow()
        db.session.commit()
        return transfer, change

    transfer, change = run_with_retry(_op)
    _after_transition(principal, transfer.to_dict(), "transfer_received", "transferUpdated", [change])
    return transfer


def cancel_transfer(transfer_id: int, principal: Principal, reason: str | None = None) -> StockTransfer:
    """
    Pending -> Cancelled. Allowed for admins, anyone with access to either
    location, and the original requester.
    """
    def _op():
        begin_write()
        transfer = _lock_transfer(transfer_id)
        authorize(
            "CANCEL_TRANSFER", principal, transfer.location_ids(),
            owner_user_id=transfer.requested_by_user_id,
        )
        _require_status(transfer, TRANSFER_STATUS_PENDING, "cancel")

        transfer.status = TRANSFER_STATUS_CANCELLED
        transfer.cancelled_by_user_id = principal.user_id
        transfer.cancelled_at = utcnow()
        transfer.cancellation_reason = reason
        db.session.commit()
        return transfer

    transfer = run_with_retry(_op)
    _after_transition(principal, transfer.to_dict(), "transfer_cancelled", "transferUpdated")
    return transfer


def get_transfer(transfer_id: int, principal: Principal) -> StockTransfer:
    transfer = get_or_404(StockTransfer, transfer_id, "Transfer")
    authorize("VIEW_TRANSFERS", principal, transfer.location_ids())
    return transfer


def list_transfers(
    principal: Principal,
    *,
    status: str | None = None,
    location_id: int | None = None,
    product_id: int | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    if status is not None and status not in TRANSFER_STATUSES:
        raise BadRequest(f"status must be one of {', '.join(TRANSFER_STATUSES)}", {"field": "status"})
    query = scoped_query(
        StockTransfer, principal, "VIEW_TRANSFERS",
        StockTransfer.from_location_id, StockTransfer.to_location_id,
        location_id=location_id,
    )
    if status:
        query = query.filter(StockTransfer.status == status)
    if product_id is not None:
        query = query.filter(StockTransfer.product_id == product_id)
    return paginate(query.order_by(StockTransfer.requested_at.desc(), StockTransfer.id.desc()), page, limit)
