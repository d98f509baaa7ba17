# Overview: Service-layer operations for the income/expense ledger.

"""
Ledger Invariants

- Sale-sourced incomes belong to their sale: they are written by
  sales_service.record_sale, removed by sales_service.delete_sale, and can
  never be created, edited or deleted here
- every amount is a positive number of cents
- entries may be bound to a location; writing one requires MANAGE_* access
  to that location (and to the new location when it is moved)
- non-admins read entries for their locations plus unlocated entries
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from ..errors import BadRequest, Forbidden, InvalidState
from ..extensions import db
from ..models import Expense, Income
from ..models.ledger import (
    EXPENSE_CATEGORIES,
    EXPENSE_PAYMENT_METHODS,
    INCOME_SOURCE_SALE,
    INCOME_SOURCES,
    MANUAL_INCOME_SOURCES,
)
from ..money import round2, to_cents
from ..time_utils import to_utc_z, utcnow
from . import activity_service
from .authorization import Principal, authorize
from .concurrency import run_with_retry
from .repositories import get_or_404, paginate
from .stock_service import require_active_location

INCOME_MUTABLE_FIELDS = {"source", "description", "amount", "date", "location_id", "notes"}
EXPENSE_MUTABLE_FIELDS = {
    "category", "description", "amount", "date", "payment_method",
    "supplier_name", "supplier_contact", "receipt_url", "location_id", "notes",
}


# =============================================================================
# Shared helpers
# =============================================================================

def _check_amount(amount: Decimal) -> int:
    if amount is None or round2(amount) <= 0:
        raise BadRequest("amount must be > 0", {"field": "amount"})
    return to_cents(amount)


def _check_description(description: str | None) -> str:
    description = (description or "").strip()
    if not description:
        raise BadRequest("description is required", {"field": "description"})
    return description


def _check_choice(value: str | None, choices, field: str) -> str:
    if value not in choices:
        raise BadRequest(f"{field} must be one of {', '.join(choices)}", {"field": field})
    return value


def _check_income_source(source: str | None) -> str:
    if source == INCOME_SOURCE_SALE:
        raise BadRequest("Sale incomes are recorded by sales", {"field": "source"})
    return _check_choice(source, MANUAL_INCOME_SOURCES, "source")


def _json_value(value):
    if isinstance(value, datetime):
        return to_utc_z(value)
    return value


def _snapshot(entry, fields) -> dict:
    return {f: _json_value(getattr(entry, f)) for f in sorted(fields)}


def _visible_to(query, model, principal: Principal):
    if principal.is_admin:
        return query
    return query.filter(db.or_(
        model.location_id.is_(None),
        model.location_id.in_(sorted(principal.accessible_locations)),
    ))


def _require_visible(entry, principal: Principal) -> None:
    if entry.location_id is not None and not principal.has_access_to(entry.location_id):
        raise Forbidden("No access to this location", {"location_ids": [entry.location_id]})


def _normalize_patch(patch: dict, allowed: set) -> dict:
    """Map validated API fields onto columns; amount becomes amount_cents."""
    unknown = set(patch) - allowed
    if unknown:
        raise BadRequest(f"Unknown field(s): {', '.join(sorted(unknown))}", {"fields": sorted(unknown)})
    columns = {}
    for key, value in patch.items():
        if key == "amount":
            columns["amount_cents"] = _check_amount(value)
        elif key == "description":
            columns["description"] = _check_description(value)
        else:
            columns[key] = value
    if "location_id" in columns and columns["location_id"] is not None:
        require_active_location(columns["location_id"])
    return columns


def _apply(entry, columns: dict) -> dict:
    before = _snapshot(entry, columns)
    for key, value in columns.items():
        setattr(entry, key, value)
    entry.updated_at = utcnow()
    return {"before": before, "after": _snapshot(entry, columns), "fields": sorted(columns)}


def _list(model, principal: Principal, *, start_date, end_date, location_id, page, limit, filters=()):
    if location_id is not None and not principal.has_access_to(location_id):
        raise Forbidden("No access to this location", {"location_ids": [location_id]})
    query = _visible_to(db.session.query(model), model, principal)
    if location_id is not None:
        query = query.filter(model.location_id == location_id)
    if start_date is not None:
        query = query.filter(model.date >= start_date)
    if end_date is not None:
        query = query.filter(model.date <= end_date)
    for condition in filters:
        query = query.filter(condition)
    return paginate(query.order_by(model.date.desc(), model.id.desc()), page, limit)


# =============================================================================
# Incomes
# =============================================================================

def record_income(
    principal: Principal,
    *,
    source: str,
    description: str,
    amount: Decimal,
    date: datetime | None = None,
    location_id: int | None = None,
    notes: str | None = None,
) -> Income:
    """
    Record a non-sale income entry.

    Raises:
        BadRequest: source=Sale or unknown, empty description, amount <= 0
        Forbidden: no MANAGE_INCOMES access to the location
        NotFound: location missing or inactive
    """
    authorize("MANAGE_INCOMES", principal, location_id)
    source = _check_income_source(source)
    description = _check_description(description)
    amount_cents = _check_amount(amount)

    def _op():
        if location_id is not None:
            require_active_location(location_id)
        income = Income(
            source=source,
            description=description,
            amount_cents=amount_cents,
            date=date or utcnow(),
            location_id=location_id,
            created_by_user_id=principal.user_id,
            notes=notes,
        )
        db.session.add(income)
        db.session.commit()
        return income

    income = run_with_retry(_op)

    activity_service.record_activity(
        "income_recorded",
        principal,
        "income",
        entity_id=income.id,
        entity_name=income.description,
        description=f"Recorded {income.source} income of {round2(amount)}",
        changes={"before": None, "after": {"amount_cents": income.amount_cents}, "fields": ["amount_cents"]},
        urgency_level="low",
        location_id=income.location_id,
    )
    return income


def update_income(income_id: int, principal: Principal, patch: dict) -> Income:
    """
    Edit a non-sale income entry.

    Raises:
        NotFound: entry missing
        InvalidState: entry belongs to a sale
        BadRequest: invalid fields, or an attempt to turn it into a Sale income
        Forbidden: no MANAGE_INCOMES access to the current or new location
    """
    authorize("MANAGE_INCOMES", principal)
    if "source" in patch:
        _check_income_source(patch["source"])

    def _op():
        income = get_or_404(Income, income_id, "Income")
        if income.is_sale_linked:
            raise InvalidState(
                "Sale incomes change only with their sale",
                {"related_sale_id": income.related_sale_id},
            )
        authorize("MANAGE_INCOMES", principal, [income.location_id, patch.get("location_id")])
        changes = _apply(income, _normalize_patch(patch, INCOME_MUTABLE_FIELDS))
        db.session.commit()
        return income, changes

    income, changes = run_with_retry(_op)

    activity_service.record_activity(
        "income_updated",
        principal,
        "income",
        entity_id=income.id,
        entity_name=income.description,
        description=f"Updated fields: {', '.join(changes['fields'])}",
        changes=changes,
        urgency_level="low",
        location_id=income.location_id,
    )
    return income


def delete_income(income_id: int, principal: Principal) -> dict:
    """Delete a non-sale income entry; sale incomes go with their sale."""
    authorize("MANAGE_INCOMES", principal)

    def _op():
        income = get_or_404(Income, income_id, "Income")
        if income.is_sale_linked:
            raise InvalidState(
                "Sale incomes are removed by deleting the sale",
                {"related_sale_id": income.related_sale_id},
            )
        authorize("MANAGE_INCOMES", principal, income.location_id)
        snapshot = income.to_dict()
        db.session.delete(income)
        db.session.commit()
        return snapshot

    snapshot = run_with_retry(_op)

    activity_service.record_activity(
        "income_deleted",
        principal,
        "income",
        entity_id=snapshot["id"],
        entity_name=snapshot["description"],
        description=f"Deleted {snapshot['source']} income of {snapshot['amount']:.2f}",
        changes={"before": {"amount_cents": snapshot["amount_cents"]}, "after": None, "fields": ["amount_cents"]},
        urgency_level="medium",
        location_id=snapshot["location_id"],
    )
    return snapshot


def get_income(income_id: int, principal: Principal) -> Income:
    authorize("VIEW_INCOMES", principal)
    income = get_or_404(Income, income_id, "Income")
    _require_visible(income, principal)
    return income


def list_incomes(
    principal: Principal,
    *,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    source: str | None = None,
    location_id: int | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    """Incomes, newest first. Non-admins see their locations and unlocated entries."""
    authorize("VIEW_INCOMES", principal)
    filters = []
    if source:
        filters.append(Income.source == _check_choice(source, INCOME_SOURCES, "source"))
    return _list(
        Income, principal,
        start_date=start_date, end_date=end_date, location_id=location_id,
        page=page, limit=limit, filters=filters,
    )


# =============================================================================
# Expenses
# =============================================================================

def record_expense(
    principal: Principal,
    *,
    category: str,
    description: str,
    amount: Decimal,
    date: datetime | None = None,
    payment_method: str | None = None,
    supplier_name: str | None = None,
    supplier_contact: str | None = None,
    receipt_url: str | None = None,
    location_id: int | None = None,
    notes: str | None = None,
) -> Expense:
    """
    Record an expense.

    Raises:
        BadRequest: unknown category or payment method, empty description, amount <= 0
        Forbidden: no MANAGE_EXPENSES access to the location
        NotFound: location missing or inactive
    """
    authorize("MANAGE_EXPENSES", principal, location_id)
    category = _check_choice(category, EXPENSE_CATEGORIES, "category")
    if payment_method is not None:
        _check_choice(payment_method, EXPENSE_PAYMENT_METHODS, "payment_method")
    description = _check_description(description)
    amount_cents = _check_amount(amount)

    def _op():
        if location_id is not None:
            require_active_location(location_id)
        expense = Expense(
            category=category,
            description=description,
            amount_cents=amount_cents,
            date=date or utcnow(),
            payment_method=payment_method,
            supplier_name=supplier_name,
            supplier_contact=supplier_contact,
            receipt_url=receipt_url,
            location_id=location_id,
            created_by_user_id=principal.user_id,
            notes=notes,
        )
        db.session.add(expense)
        db.session.commit()
        return expense

    expense = run_with_retry(_op)

    activity_service.record_activity(
        "expense_recorded",
        principal,
        "expense",
        entity_id=expense.id,
        entity_name=expense.description,
        description=f"Recorded {expense.category} expense of {round2(amount)}",
        changes={"before": None, "after": {"amount_cents": expense.amount_cents}, "fields": ["amount_cents"]},
        urgency_level="low",
        location_id=expense.location_id,
    )
    return expense


def update_expense(expense_id: int, principal: Principal, patch: dict) -> Expense:
    authorize("MANAGE_EXPENSES", principal)
    if "category" in patch:
        _check_choice(patch["category"], EXPENSE_CATEGORIES, "category")
    if patch.get("payment_method") is not None:
        _check_choice(patch["payment_method"], EXPENSE_PAYMENT_METHODS, "payment_method")

    def _op():
        expense = get_or_404(Expense, expense_id, "Expense")
        authorize("MANAGE_EXPENSES", principal, [expense.location_id, patch.get("location_id")])
        changes = _apply(expense, _normalize_patch(patch, EXPENSE_MUTABLE_FIELDS))
        db.session.commit()
        return expense, changes

    expense, changes = run_with_retry(_op)

    activity_service.record_activity(
        "expense_updated",
        principal,
        "expense",
        entity_id=expense.id,
        entity_name=expense.description,
        description=f"Updated fields: {', '.join(changes['fields'])}",
        changes=changes,
        urgency_level="low",
        location_id=expense.location_id,
    )
    return expense


def delete_expense(expense_id: int, principal: Principal) -> dict:
    authorize("MANAGE_EXPENSES", principal)

    def _op():
        expense = get_or_404(Expense, expense_id, "Expense")
        authorize("MANAGE_EXPENSES", principal, expense.location_id)
        snapshot = expense.to_dict()
        db.session.delete(expense)
        db.session.commit()
        return snapshot

    snapshot = run_with_retry(_op)

    activity_service.record_activity(
        "expense_deleted",
        principal,
        "expense",
        entity_id=snapshot["id"],
        entity_name=snapshot["description"],
        description=f"Deleted {snapshot['category']} expense of {snapshot['amount']:.2f}",
        changes={"before": {"amount_cents": snapshot["amount_cents"]}, "after": None, "fields": ["amount_cents"]},
        urgency_level="medium",
        location_id=snapshot["location_id"],
    )
    return snapshot


def get_expense(expense_id: int, principal: Principal) -> Expense:
    authorize("VIEW_EXPENSES", principal)
    expense = get_or_404(Expense, expense_id, "Expense")
    _require_visible(expense, principal)
    return expense


def list_expenses(
    principal: Principal,
    *,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    category: str | None = None,
    location_id: int | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    """Expenses, newest first, with the same visibility as incomes."""
    authorize("VIEW_EXPENSES", principal)
    filters = []
    if category:
        filters.append(Expense.category == _check_choice(category, EXPENSE_CATEGORIES, "category"))
    return _list(
        Expense, principal,
        start_date=start_date, end_date=end_date, location_id=location_id,
        page=page, limit=limit, filters=filters,
    )
