# Overview: Flask API routes for purchase operations; parses input and returns JSON responses.

# backend/stockflow/routes/purchases.py
"""
Purchase API routes.

Receipt is the only purchase operation that touches stock.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import StockflowError, error_response, internal_error_response
from ..money import ZERO
from ..services import purchase_service
from ..services.purchase_service import PurchaseLineInput
from ..services.repositories import serialize_page
from ..validation import (
    ValidationError,
    parse_amount,
    parse_date_range,
    parse_int,
    parse_optional_date,
    parse_optional_int,
    parse_pagination,
    parse_percent,
    parse_positive_int,
    require_field,
    require_json_object,
)


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


def _amount(data: dict, key: str):
    value = data.get(key)
    return parse_amount(value, key) if value is not None else ZERO


def _parse_lines(raw_items) -> list[PurchaseLineInput]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list", "items")
    lines = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object", f"items[{index}]")
        prefix = f"items[{index}]"
        lines.append(PurchaseLineInput(
            product_id=parse_int(require_field(raw, "product_id"), f"{prefix}.product_id"),
            quantity=parse_positive_int(require_field(raw, "quantity"), f"{prefix}.quantity"),
            unit_cost=parse_amount(require_field(raw, "unit_cost"), f"{prefix}.unit_cost"),
            discount=_amount(raw, "discount"),
            tax_rate=parse_percent(raw.get("tax_rate", 0), f"{prefix}.tax_rate"),
        ))
    return lines


def _parse_receipt_items(data: dict):
    raw_items = data.get("items")
    if raw_items is None:
        return None
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list", "items")
    parsed = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object", f"items[{index}]")
        parsed.append((
            parse_int(require_field(raw, "product_id"), f"items[{index}].product_id"),
            parse_positive_int(require_field(raw, "quantity"), f"items[{index}].quantity"),
        ))
    return parsed


@purchases_bp.post("")
@require_auth
@require_permission("CREATE_PURCHASE")
def create_purchase_route():
    """
    Create a purchase order.

    Request body:
    {
        "supplier_id": int,
        "warehouse_id": int,
        "items": [{"product_id", "quantity", "unit_cost", "discount"?, "tax_rate"?}],
        "order_tax"?, "discount"?, "shipping"?, "amount_paid"?: number,
        "status"?: "pending" | "draft",
        "purchase_number"?, "reference_number"?, "notes"?: str,
        "purchase_date"?, "due_date"?: ISO-8601
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        purchase = purchase_service.create_purchase(
            g.principal,
            supplier_id=parse_int(require_field(data, "supplier_id"), "supplier_id"),
            warehouse_id=parse_int(require_field(data, "warehouse_id"), "warehouse_id"),
            items=_parse_lines(require_field(data, "items")),
            order_tax=_amount(data, "order_tax"),
            discount=_amount(data, "discount"),
            shipping=_amount(data, "shipping"),
            amount_paid=_amount(data, "amount_paid"),
            status=str(data.get("status") or "pending"),
            purchase_number=(str(data["purchase_number"]).strip() or None) if data.get("purchase_number") else None,
            reference_number=data.get("reference_number"),
            purchase_date=parse_optional_date(data.get("purchase_date"), "purchase_date"),
            due_date=parse_optional_date(data.get("due_date"), "due_date"),
            notes=data.get("notes"),
        )
        return jsonify(purchase.to_dict()), 201

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return internal_error_response()


@purchases_bp.get("")
@require_auth
@require_permission("VIEW_PURCHASES")
def list_purchases_route():
    """Query params: status, warehouse_id, supplier_id, start_date, end_date, page, limit."""
    try:
        page, limit = parse_pagination(request.args)
        start, end = parse_date_range(request.args)
        result = purchase_service.list_purchases(
            g.principal,
            status=request.args.get("status") or None,
            warehouse_id=parse_optional_int(request.args.get("warehouse_id"), "warehouse_id"),
            supplier_id=parse_optional_int(request.args.get("supplier_id"), "supplier_id"),
            start_date=start,
            end_date=end,
            page=page,
            limit=limit,
        )
        return jsonify(serialize_page(result)), 200

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list purchases")
        return internal_error_response()


@purchases_bp.get("/<int:purchase_id>")
@require_auth
@require_permission("VIEW_PURCHASES")
def get_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.get_purchase(purchase_id, g.principal)
        return jsonify(purchase.to_dict()), 200
    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load purchase")
        return internal_error_response()


@purchases_bp.post("/<int:purchase_id>/receive")
@require_auth
@require_permission("RECEIVE_PURCHASE")
def receive_purchase_route(purchase_id: int):
    """
    Receive a purchase into warehouse stock.

    Request body (optional): {"items": [{"product_id": int, "quantity": int}]}
    Without items every outstanding unit is received.

    Returns:
        200: Purchase
        400: Partial quantities exceed what is outstanding
        403: No access to the warehouse
        404: Purchase not found
        409: Purchase not pending / partially_received
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        purchase = purchase_service.receive_purchase(
            purchase_id, g.principal, items=_parse_receipt_items(data),
        )
        return jsonify(purchase.to_dict()), 200

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to receive purchase")
        return internal_error_response()


@purchases_bp.post("/<int:purchase_id>/payment")
@require_auth
@require_permission("RECORD_PURCHASE_PAYMENT")
def record_payment_route(purchase_id: int):
    """Request body: {"amount": number}"""
    try:
        data = require_json_object(request.get_json(silent=True))
        amount = parse_amount(require_field(data, "amount"), "amount", allow_zero=False)
        purchase = purchase_service.record_payment(purchase_id, g.principal, amount)
        return jsonify(purchase.to_dict()), 200

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record purchase payment")
        return internal_error_response()


@purchases_bp.post("/<int:purchase_id>/cancel")
@require_auth
@require_permission("CANCEL_PURCHASE")
def cancel_purchase_route(purchase_id: int):
    """Request body (optional): {"reason": str}"""
    try:
        data = require_json_object(request.get_json(silent=True))
        purchase = purchase_service.cancel_purchase(purchase_id, g.principal, reason=data.get("reason"))
        return jsonify(purchase.to_dict()), 200

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel purchase")
        return internal_error_response()
