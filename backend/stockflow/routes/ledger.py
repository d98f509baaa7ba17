# Overview: Flask API routes for the income/expense ledger; parses input and returns JSON responses.

# backend/stockflow/routes/ledger.py
"""
Ledger API routes.

Sale incomes appear in GET /api/incomes but are owned by their sale:
POST rejects source=Sale, PATCH/DELETE on a sale income return 409.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import StockflowError, error_response, internal_error_response
from ..services import ledger_service
from ..services.repositories import serialize_page
from ..validation import (
    ValidationError,
    parse_amount,
    parse_date_range,
    parse_optional_date,
    parse_optional_int,
    parse_pagination,
    require_field,
    require_json_object,
)


incomes_bp = Blueprint("incomes", __name__, url_prefix="/api/incomes")
expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")

TEXT_LIMITS = {
    "description": 255,
    "notes": 2000,
    "supplier_name": 128,
    "supplier_contact": 128,
    "receipt_url": 512,
}


def _text(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string", key)
    value = value.strip()
    if len(value) > TEXT_LIMITS[key]:
        raise ValidationError(f"{key} exceeds max length {TEXT_LIMITS[key]}", key)
    return value or None


def _supplier(data: dict) -> dict:
    supplier = data.get("supplier") or {}
    if not isinstance(supplier, dict):
        raise ValidationError("supplier must be an object", "supplier")
    return {
        "supplier_name": _text({"supplier_name": supplier.get("name")}, "supplier_name"),
        "supplier_contact": _text({"supplier_contact": supplier.get("contact")}, "supplier_contact"),
    }


def _parse_patch(data: dict, choice_fields: tuple[str, ...]) -> dict:
    """Only keys present in the body end up in the patch."""
    patch = {}
    for key, value in data.items():
        if key == "amount":
            patch["amount"] = parse_amount(value, "amount", allow_zero=False)
        elif key == "date":
            patch["date"] = parse_optional_date(value, "date")
            if patch["date"] is None:
                raise ValidationError("date cannot be cleared", "date")
        elif key == "location_id":
            patch["location_id"] = parse_optional_int(value, "location_id")
        elif key == "supplier":
            patch.update(_supplier(data))
        elif key in TEXT_LIMITS:
            patch[key] = _text(data, key)
        elif key in choice_fields:
            patch[key] = value
        else:
            raise ValidationError(f"Unknown field: {key}", key)
    if not patch:
        raise ValidationError("No fields to update")
    return patch


def _list_args() -> dict:
    page, limit = parse_pagination(request.args)
    start, end = parse_date_range(request.args)
    return {
        "start_date": start,
        "end_date": end,
        "location_id": parse_optional_int(request.args.get("location_id"), "location_id"),
        "page": page,
        "limit": limit,
    }


# =============================================================================
# Incomes
# =============================================================================

@incomes_bp.post("")
@require_auth
@require_permission("MANAGE_INCOMES")
def record_income_route():
    """
    Record a non-sale income.

    Request body:
    {
        "source": "Service" | "Investment" | "Other",
        "description": str,
        "amount": number > 0,
        "date": ISO-8601 (optional, default now),
        "location_id": int (optional),
        "notes": str (optional)
    }

    Returns:
        201: Income
        400: Validation error, or source=Sale
        403: No ledger access to the location
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        income = ledger_service.record_income(
            g.principal,
            source=data.get("source") or "Other",
            description=_text(data, "description"),
            amount=parse_amount(require_field(data, "amount"), "amount", allow_zero=False),
            date=parse_optional_date(data.get("date"), "date"),
            location_id=parse_optional_int(data.get("location_id"), "location_id"),
            notes=_text(data, "notes"),
        )
        return jsonify(income.to_dict()), 201

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record income")
        return internal_error_response()


@incomes_bp.get("")
@require_auth
@require_permission("VIEW_INCOMES")
def list_incomes_route():
    """Query params: start_date, end_date, source, location_id, page, limit."""
    try:
        result = ledger_service.list_incomes(
            g.principal, source=request.args.get("source") or None, **_list_args()
        )
        return jsonify(serialize_page(result)), 200

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list incomes")
        return internal_error_response()


@incomes_bp.get("/<int:income_id>")
@require_auth
@require_permission("VIEW_INCOMES")
def get_income_route(income_id: int):
    try:
        return jsonify(ledger_service.get_income(income_id, g.principal).to_dict()), 200
    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load income")
        return internal_error_response()


@incomes_bp.patch("/<int:income_id>")
@require_auth
@require_permission("MANAGE_INCOMES")
def update_income_route(income_id: int):
    """
    Returns:
        200: Income
        400: Validation error
        404: Income not found
        409: Income belongs to a sale
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        income = ledger_service.update_income(income_id, g.principal, _parse_patch(data, ("source",)))
        return jsonify(income.to_dict()), 200

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update income")
        return internal_error_response()


@incomes_bp.delete("/<int:income_id>")
@require_auth
@require_permission("MANAGE_INCOMES")
def delete_income_route(income_id: int):
    try:
        snapshot = ledger_service.delete_income(income_id, g.principal)
        return jsonify({"deleted": True, "income": snapshot}), 200
    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete income")
        return internal_error_response()


# =============================================================================
# Expenses
# =============================================================================

@expenses_bp.post("")
@require_auth
@require_permission("MANAGE_EXPENSES")
def record_expense_route():
    """
    Record an expense.

    Request body:
    {
        "category": "Supplies" | "Rent" | ... | "Other",
        "description": str,
        "amount": number > 0,
        "date": ISO-8601 (optional),
        "payment_method": "Cash" | "Credit Card" | "Bank Transfer" | "Check" | "Other" (optional),
        "supplier": {"name", "contact"} (optional),
        "receipt_url": str (optional),
        "location_id": int (optional),
        "notes": str (optional)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        expense = ledger_service.record_expense(
            g.principal,
            category=require_field(data, "category"),
            description=_text(data, "description"),
            amount=parse_amount(require_field(data, "amount"), "amount", allow_zero=False),
            date=parse_optional_date(data.get("date"), "date"),
            payment_method=data.get("payment_method"),
            receipt_url=_text(data, "receipt_url"),
            location_id=parse_optional_int(data.get("location_id"), "location_id"),
            notes=_text(data, "notes"),
            **_supplier(data),
        )
        return jsonify(expense.to_dict()), 201

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record expense")
        return internal_error_response()


@expenses_bp.get("")
@require_auth
@require_permission("VIEW_EXPENSES")
def list_expenses_route():
    """Query params: start_date, end_date, category, location_id, page, limit."""
    try:
        result = ledger_service.list_expenses(
            g.principal, category=request.args.get("category") or None, **_list_args()
        )
        return jsonify(serialize_page(result)), 200

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list expenses")
        return internal_error_response()


@expenses_bp.get("/<int:expense_id>")
@require_auth
@require_permission("VIEW_EXPENSES")
def get_expense_route(expense_id: int):
    try:
        return jsonify(ledger_service.get_expense(expense_id, g.principal).to_dict()), 200
    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load expense")
        return internal_error_response()


@expenses_bp.patch("/<int:expense_id>")
@require_auth
@require_permission("MANAGE_EXPENSES")
def update_expense_route(expense_id: int):
    try:
        data = require_json_object(request.get_json(silent=True))
        expense = ledger_service.update_expense(
            expense_id, g.principal, _parse_patch(data, ("category", "payment_method"))
        )
        return jsonify(expense.to_dict()), 200

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update expense")
        return internal_error_response()


@expenses_bp.delete("/<int:expense_id>")
@require_auth
@require_permission("MANAGE_EXPENSES")
def delete_expense_route(expense_id: int):
    try:
        snapshot = ledger_service.delete_expense(expense_id, g.principal)
        return jsonify({"deleted": True, "expense": snapshot}), 200
    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete expense")
        return internal_error_response()
