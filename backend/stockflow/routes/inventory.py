# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/stockflow/routes/inventory.py
"""
Stock row endpoints.

Every read is scoped to the caller's locations inside the service layer;
an explicit location_id the caller cannot read is 403. Single-row
responses embed the most recent AUDIT_HOT_TAIL events; the full history
is paged under /<id>/events.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import StockflowError, error_response, internal_error_response
from ..services import stock_service
from ..services.repositories import serialize_page
from ..validation import (
    parse_bool,
    parse_int,
    parse_non_negative_int,
    parse_optional_date,
    parse_optional_int,
    parse_pagination,
    require_field,
    require_json_object,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _row_json(row):
    return row.to_dict(audit_tail=current_app.config["AUDIT_HOT_TAIL"])


@inventory_bp.post("")
@require_auth
@require_permission("CREATE_STOCK_ROW")
def create_stock_row_route():
    """
    Add a product to a location.

    Request body:
    {
        "product_id": int,
        "location_id": int,
        "initial_quantity": int (optional, default 0),
        "min_stock": int (optional, default 5),
        "notify_at": int (optional, default min_stock),
        "expiry_date": ISO-8601 (optional)
    }

    Returns:
        201: Stock row
        400: Invalid request
        403: No access to location
        404: Product or location missing or inactive
        409: Row already exists
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        product_id = parse_int(require_field(data, "product_id"), "product_id")
        location_id = parse_int(require_field(data, "location_id"), "location_id")
        quantity = parse_non_negative_int(data.get("initial_quantity", 0), "initial_quantity")
        min_stock = data.get("min_stock")
        notify_at = data.get("notify_at")

        row = stock_service.create_stock_row(
            product_id,
            location_id,
            g.principal,
            quantity=quantity,
            min_stock=parse_non_negative_int(min_stock, "min_stock") if min_stock is not None else None,
            notify_at=parse_non_negative_int(notify_at, "notify_at") if notify_at is not None else None,
            expiry_date=parse_optional_date(data.get("expiry_date"), "expiry_date"),
        )
        return jsonify(_row_json(row)), 201

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create stock row")
        return internal_error_response()


@inventory_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_stock_rows_route():
    """
    Paginated stock rows visible to the caller.

    Query params: product_id, location_id, low_stock, search, page, limit
    """
    try:
        page, limit = parse_pagination(request.args)
        result = stock_service.list_stock_rows(
            g.principal,
            product_id=parse_optional_int(request.args.get("product_id"), "product_id"),
            location_id=parse_optional_int(request.args.get("location_id"), "location_id"),
            low_stock=parse_bool(request.args.get("low_stock", "false"), "low_stock"),
            search=request.args.get("search") or None,
            page=page,
            limit=limit,
        )
        return jsonify(serialize_page(result)), 200

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list stock rows")
        return internal_error_response()


def _alert_list(fetch, label: str):
    try:
        location_id = parse_optional_int(request.args.get("location_id"), "location_id")
        rows = fetch(g.principal, location_id=location_id)
        return jsonify({"items": [r.to_dict() for r in rows], "count": len(rows)}), 200
    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list %s rows", label)
        return internal_error_response()


@inventory_bp.get("/low-stock")
@require_auth
@require_permission("VIEW_INVENTORY")
def low_stock_route():
    """Rows with 0 < quantity <= notify_at."""
    return _alert_list(stock_service.list_low_stock, "low-stock")


@inventory_bp.get("/out-of-stock")
@require_auth
@require_permission("VIEW_INVENTORY")
def out_of_stock_route():
    """Rows with quantity == 0."""
    return _alert_list(stock_service.list_out_of_stock, "out-of-stock")


@inventory_bp.get("/expired")
@require_auth
@require_permission("VIEW_INVENTORY")
def expired_route():
    """Rows past their expiry date that still hold stock."""
    return _alert_list(stock_service.list_expired, "expired")


@inventory_bp.get("/<int:row_id>")
@require_auth
@require_permission("VIEW_INVENTORY")
def get_stock_row_route(row_id: int):
    try:
        row = stock_service.get_stock_row(row_id, g.principal)
        return jsonify(_row_json(row)), 200
    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load stock row")
        return internal_error_response()


@inventory_bp.get("/<int:row_id>/events")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_row_events_route(row_id: int):
    """Full audit history of a row, oldest first."""
    try:
        page, limit = parse_pagination(request.args)
        result = stock_service.list_row_events(row_id, g.principal, page, limit)
        return jsonify(serialize_page(result)), 200
    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list stock events")
        return internal_error_response()


@inventory_bp.patch("/<int:row_id>/adjust")
@require_auth
@require_permission("ADJUST_STOCK")
def adjust_stock_route(row_id: int):
    """
    Manual stock correction.

    Request body: {"adjustment": int (non-zero), "note": str (optional)}

    Returns:
        200: Updated row
        400: Zero/invalid adjustment or stock would go negative
        403: No access to the row's location
        404: Row not found
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        delta = parse_int(require_field(data, "adjustment"), "adjustment")
        note = data.get("note")

        row = stock_service.adjust_stock(row_id, delta, g.principal, note=str(note) if note else None)
        return jsonify(_row_json(row)), 200

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return internal_error_response()


@inventory_bp.patch("/<int:row_id>/settings")
@require_auth
@require_permission("UPDATE_STOCK_SETTINGS")
def update_settings_route(row_id: int):
    """
    Request body (any subset): {"min_stock": int, "notify_at": int, "expiry_date": ISO-8601 | null}
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        fields = {}
        for key in ("min_stock", "notify_at"):
            if key in data:
                fields[key] = parse_non_negative_int(data[key], key)
        if "expiry_date" in data:
            fields["expiry_date"] = parse_optional_date(data["expiry_date"], "expiry_date")
        unknown = sorted(set(data) - {"min_stock", "notify_at", "expiry_date"})
        for key in unknown:
            fields[key] = data[key]

        row = stock_service.update_stock_settings(row_id, g.principal, fields=fields)
        return jsonify(_row_json(row)), 200

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update stock settings")
        return internal_error_response()
