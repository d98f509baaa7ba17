from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import BadRequest, Conflict
from .money import round2
from .time_utils import end_of_day, parse_iso_datetime


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100


class ValidationError(BadRequest):
    """400-level input problem."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, {"field": field} if field else None)


class ConflictError(Conflict):
    """409-level business rule conflict (e.g., duplicate SKU)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return parse_int(value, col.key)

    if isinstance(coltype, Boolean):
        return parse_bool(value, col.key)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        return parse_date(value, col.key)

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing[0])

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", k)
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", k)

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", k)

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", k)

        patch[k] = val

    return patch


# -- scalar parsers used by routes and services --

def parse_int(value: Any, field: str) -> int:
    """Strict integer: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", field)
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)", field)
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", field)
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", field)
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", field)
    raise ValidationError(f"{field} must be an integer", field)


def parse_positive_int(value: Any, field: str) -> int:
    parsed = parse_int(value, field)
    if parsed <= 0:
        raise ValidationError(f"{field} must be > 0", field)
    return parsed


def parse_non_negative_int(value: Any, field: str) -> int:
    parsed = parse_int(value, field)
    if parsed < 0:
        raise ValidationError(f"{field} must be >= 0", field)
    return parsed


def parse_optional_int(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    return parse_int(value, field)


def parse_amount(value: Any, field: str, *, allow_zero: bool = True) -> Decimal:
    """
    Money amount as a Decimal rounded half-even to 2 places.

    Floats go through str() so 4.1 stays 4.10 and never 4.0999...
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number", field)
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", field)
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number", field)
    amount = round2(amount)
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'>= 0' if allow_zero else '> 0'}", field)
    if int(amount * 100) > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} is too large", field)
    return amount


def parse_percent(value: Any, field: str) -> Decimal:
    pct = parse_amount(value, field)
    if pct > 100:
        raise ValidationError(f"{field} must be between 0 and 100", field)
    return pct


def parse_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes"):
            return True
        if lowered in ("0", "false", "no", ""):
            return False
    if isinstance(value, int):
        return bool(value)
    raise ValidationError(f"{field} must be a boolean", field)


def parse_date(value: Any, field: str) -> datetime:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 datetime", field)
    try:
        dt = parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime", field)
    if dt is None:
        raise ValidationError(f"{field} must be an ISO-8601 datetime", field)
    return dt


def parse_optional_date(value: Any, field: str) -> datetime | None:
    if value is None or value == "":
        return None
    return parse_date(value, field)


def parse_pagination(args) -> tuple[int, int]:
    """(page, limit) from query args; page is 1-based, limit capped."""
    page = parse_int(args.get("page", 1), "page")
    limit = parse_int(args.get("limit", DEFAULT_PAGE_LIMIT), "limit")
    if page < 1:
        raise ValidationError("page must be >= 1", "page")
    if limit < 1:
        raise ValidationError("limit must be >= 1", "limit")
    return page, min(limit, MAX_PAGE_LIMIT)


def require_json_object(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def require_field(payload: dict, field: str) -> Any:
    if field not in payload or payload[field] is None:
        raise ValidationError(f"Missing required field: {field}", field)
    return payload[field]


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "price_cents" in patch and patch["price_cents"] is not None:
        price = patch["price_cents"]
        if price <= 0:
            raise ValidationError("price must be > 0", "price")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(
                f"price cannot exceed {MAX_PRICE_CENTS / 100:,.2f}", "price"
            )
    if "barcode" in patch and patch["barcode"] == "":
        patch["barcode"] = None


def parse_date_range(args) -> tuple[datetime | None, datetime | None]:
    """start_date/end_date query args; a date-only end_date covers the whole day."""
    start = parse_optional_date(args.get("start_date"), "start_date")
    raw_end = args.get("end_date")
    end = parse_optional_date(raw_end, "end_date")
    if end is not None and len(raw_end.strip()) == 10:
        end = end_of_day(end)
    if start is not None and end is not None and start > end:
        raise ValidationError("start_date must be before end_date", "start_date")
    return start, end
