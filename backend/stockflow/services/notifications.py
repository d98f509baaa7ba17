# Overview: Builds event-bus payloads for committed changes and publishes them.

from __future__ import annotations

from flask import current_app

from ..events import ROOM_PRODUCTS, ROOM_SALES, Event, location_room
from ..extensions import event_bus


def inventory_event(change, name: str = "inventoryUpdate", **extra) -> Event:
    """Delta for one stock row, sent to the products room and its location room."""
    payload = {
        "entity_type": "inventory",
        "entity_id": change.row_id,
        "product_id": change.product_id,
        "location_id": change.location_id,
        "location_ids": [change.location_id],
        "action": change.action,
        "adjustment": change.adjustment,
        "new_quantity": change.new_quantity,
        "delta": f"{change.adjustment:+d} ({change.action})",
    }
    payload.update(extra)
    return Event(name=name, rooms=(ROOM_PRODUCTS, location_room(change.location_id)), payload=payload)


def sale_event(name: str, sale_id: int, location_id: int, **extra) -> Event:
    payload = {
        "entity_type": "sale",
        "entity_id": sale_id,
        "location_id": location_id,
        "location_ids": [location_id],
    }
    payload.update(extra)
    return Event(name=name, rooms=(location_room(location_id), ROOM_SALES), payload=payload)


def transfer_event(name: str, transfer) -> Event:
    payload = {
        "entity_type": "transfer",
        "entity_id": transfer["id"],
        "transfer_number": transfer["transfer_number"],
        "status": transfer["status"],
        "product_id": transfer["product_id"],
        "quantity": transfer["quantity"],
        "location_ids": [transfer["from_location_id"], transfer["to_location_id"]],
        "delta": f"transfer {transfer['status'].lower()}",
    }
    rooms = (location_room(transfer["from_location_id"]), location_room(transfer["to_location_id"]))
    return Event(name=name, rooms=rooms, payload=payload)


def purchase_event(purchase: dict, changes) -> Event:
    payload = {
        "entity_type": "purchase",
        "entity_id": purchase["id"],
        "purchase_number": purchase["purchase_number"],
        "status": purchase["status"],
        "location_id": purchase["warehouse_id"],
        "location_ids": [purchase["warehouse_id"]],
        "received": [{"product_id": c.product_id, "quantity": c.adjustment} for c in changes],
        "delta": f"{sum(c.adjustment for c in changes):+d} units received",
    }
    return Event(
        name="purchaseReceived",
        rooms=(location_room(purchase["warehouse_id"]), ROOM_PRODUCTS),
        payload=payload,
    )


def publish(events) -> None:
    """Publish after commit. A failure here loses events, never state."""
    try:
        event_bus.publish_all(events)
    except Exception:
        current_app.logger.warning("Event publish failed", exc_info=True)
