# Overview: Flask API routes for alerts and the activity trail; returns JSON responses.

# backend/stockflow/routes/alerts.py
"""
Alerts and activity trail routes.

Both are read-only views scoped to the caller's locations.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import StockflowError, error_response, internal_error_response
from ..services import activity_service, stock_service
from ..validation import ValidationError, parse_int, parse_optional_int

alerts_bp = Blueprint("alerts", __name__, url_prefix="/api")

MAX_ACTIVITY_LIMIT = 200


@alerts_bp.get("/alerts")
@require_auth
@require_permission("VIEW_ALERTS")
def alerts_route():
    """
    Returns:
        200: {critical_events, low_stock, out_of_stock}
    """
    try:
        principal = g.principal
        critical = activity_service.critical_events(principal)
        low = stock_service.list_low_stock(principal)
        out = stock_service.list_out_of_stock(principal)
        return jsonify({
            "critical_events": [e.to_dict() for e in critical],
            "low_stock": [r.to_dict() for r in low],
            "out_of_stock": [r.to_dict() for r in out],
        }), 200

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load alerts")
        return internal_error_response()


@alerts_bp.get("/activity")
@require_auth
@require_permission("VIEW_ACTIVITY")
def activity_route():
    """Query params: entity_type, entity_id, urgency, limit (default 50, max 200)."""
    try:
        limit = parse_int(request.args.get("limit", 50), "limit")
        if limit < 1 or limit > MAX_ACTIVITY_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_ACTIVITY_LIMIT}", "limit")
        events = activity_service.list_activity(
            g.principal,
            entity_type=request.args.get("entity_type") or None,
            entity_id=parse_optional_int(request.args.get("entity_id"), "entity_id"),
            urgency=request.args.get("urgency") or None,
            limit=limit,
        )
        return jsonify({"items": [e.to_dict() for e in events], "count": len(events)}), 200

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list activity")
        return internal_error_response()
