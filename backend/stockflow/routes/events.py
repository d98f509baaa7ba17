# Overview: Server-Sent Events stream over the in-process event bus.

# backend/stockflow/routes/events.py
"""
Real-time event channel.

GET /api/events/stream?rooms=location_1,products,sales

Rooms:
- location_{id}: caller must be able to read inventory at that location
- products:      any authenticated caller; non-admins only receive
                 events for their own locations
- sales:         admin/manager only

Delivery is best-effort. Clients reconnect and reconcile through the REST
endpoints; nothing is replayed.
"""
from flask import Blueprint, Response, request, g, current_app, json, stream_with_context

from ..decorators import require_auth, require_permission
from ..errors import BadRequest, Forbidden, StockflowError, error_response, internal_error_response
from ..events import ROOM_PRODUCTS, ROOM_SALES, parse_location_room
from ..extensions import event_bus
from ..services.authorization import Principal, authorize

events_bp = Blueprint("events", __name__, url_prefix="/api/events")

SALES_ROOM_ROLES = ("admin", "manager")


def authorize_rooms(principal: Principal, rooms: list[str]) -> list[str]:
    """Validate requested rooms; raise BadRequest/Forbidden on the first bad one."""
    if not rooms:
        raise BadRequest("At least one room is required", {"field": "rooms"})

    for room in rooms:
        if room == ROOM_PRODUCTS:
            continue
        if room == ROOM_SALES:
            if principal.role not in SALES_ROOM_ROLES:
                raise Forbidden("Only admins and managers may join the sales room", {"room": room})
            continue
        location_id = parse_location_room(room)
        if location_id is None:
            raise BadRequest(f"Unknown room: {room}", {"field": "rooms"})
        authorize("VIEW_INVENTORY", principal, location_id)
    return rooms


def format_sse(name: str, data: dict) -> str:
    return f"event: {name}\ndata: {json.dumps(data)}\n\n"


@events_bp.get("/stream")
@require_auth
@require_permission("SUBSCRIBE_EVENTS")
def stream_route():
    try:
        raw = request.args.get("rooms", "")
        rooms = list(dict.fromkeys(r.strip() for r in raw.split(",") if r.strip()))
        authorize_rooms(g.principal, rooms)
    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to open event stream")
        return internal_error_response()

    heartbeat = current_app.config["EVENT_STREAM_HEARTBEAT_SECONDS"]
    principal = g.principal
    subscription = event_bus.subscribe(
        rooms, None if principal.is_admin else principal.accessible_locations
    )
    current_app.logger.info(
        "Event stream opened: user=%s rooms=%s", g.principal.user_id, ",".join(rooms)
    )

    def generate():
        try:
            yield format_sse("ready", {"rooms": sorted(subscription.rooms)})
            while True:
                event = subscription.get(timeout=heartbeat)
                if event is None:
                    yield ": heartbeat\n\n"
                    continue
                yield format_sse(event.name, event.to_dict())
        finally:
            event_bus.unsubscribe(subscription)

    return Response(
        stream_with_context(generate()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
