# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/stockflow/routes/sales.py
"""Sales API routes. Totals in request bodies are ignored; the server derives them."""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import StockflowError, error_response, internal_error_response
from ..money import ZERO
from ..services import sales_service
from ..services.repositories import serialize_page
from ..services.sale_totals import SaleDraft, SaleDraftItem
from ..validation import (
    ValidationError,
    parse_amount,
    parse_date_range,
    parse_int,
    parse_optional_int,
    parse_pagination,
    parse_percent,
    parse_positive_int,
    require_field,
    require_json_object,
)


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _optional_text(data: dict, key: str, max_len: int = 255) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    value = str(value).strip()
    if len(value) > max_len:
        raise ValidationError(f"{key} exceeds max length {max_len}", key)
    return value or None


def parse_sale_draft(data: dict) -> SaleDraft:
    location_id = parse_int(require_field(data, "location_id"), "location_id")
    raw_items = require_field(data, "items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list", "items")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object", f"items[{index}]")
        prefix = f"items[{index}]"
        items.append(SaleDraftItem(
            product_id=parse_int(require_field(raw, "product_id"), f"{prefix}.product_id"),
            quantity=parse_positive_int(require_field(raw, "quantity"), f"{prefix}.quantity"),
            unit_price=parse_amount(
                require_field(raw, "unit_price"), f"{prefix}.unit_price", allow_zero=False,
            ),
            item_discount_pct=parse_percent(raw.get("item_discount_pct", 0), f"{prefix}.item_discount_pct"),
        ))

    customer = data.get("customer") or {}
    if not isinstance(customer, dict):
        raise ValidationError("customer must be an object", "customer")

    return SaleDraft(
        location_id=location_id,
        items=tuple(items),
        tax=parse_amount(data.get("tax") or ZERO, "tax"),
        discount=parse_amount(data.get("discount") or ZERO, "discount"),
        payment_method=str(data.get("payment_method") or "cash"),
        customer_name=_optional_text(customer, "name"),
        customer_contact=_optional_text(customer, "contact", 64),
        customer_email=_optional_text(customer, "email"),
        notes=_optional_text(data, "notes", 2000),
    )


@sales_bp.post("")
@require_auth
@require_permission("CREATE_SALE")
def create_sale_route():
    """
    Record a completed sale.

    Request body:
    {
        "location_id": int,
        "items": [{"product_id": int, "quantity": int, "unit_price": number,
                   "item_discount_pct": number (optional)}],
        "tax": number (optional),
        "discount": number (optional),
        "payment_method": "cash" | "credit_card" | "debit_card" | "mobile_payment" | "other",
        "customer": {"name", "contact", "email"} (optional),
        "notes": str (optional)
    }

    Returns:
        201: Sale
        400: Validation error or InsufficientStock
        403: No sale access to the location
        404: Location or product missing or inactive
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        sale = sales_service.record_sale(parse_sale_draft(data), g.principal)
        return jsonify(sale.to_dict()), 201

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return internal_error_response()


@sales_bp.get("")
@require_auth
@require_permission("VIEW_SALES")
def list_sales_route():
    """Query params: start_date, end_date, location_id, page, limit."""
    try:
        page, limit = parse_pagination(request.args)
        start, end = parse_date_range(request.args)
        result = sales_service.list_sales(
            g.principal,
            start_date=start,
            end_date=end,
            location_id=parse_optional_int(request.args.get("location_id"), "location_id"),
            page=page,
            limit=limit,
        )
        return jsonify(serialize_page(result)), 200

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return internal_error_response()


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("VIEW_SALES")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id, g.principal)
        return jsonify(sale.to_dict()), 200
    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load sale")
        return internal_error_response()


@sales_bp.delete("/<int:sale_id>")
@require_auth
@require_permission("DELETE_SALE")
def delete_sale_route(sale_id: int):
    """
    Delete a sale, returning its items to stock and removing its income.

    Returns:
        200: {"deleted": true, "sale": <snapshot>}
        403: Not an admin
        404: Sale not found
        409: A stock row the sale drew from no longer exists
    """
    try:
        snapshot = sales_service.delete_sale(sale_id, g.principal)
        return jsonify({"deleted": True, "sale": snapshot}), 200
    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return internal_error_response()

