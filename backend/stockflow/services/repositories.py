# Overview: Principal-scoped query helpers. Every list/read of location-bound
# data goes through here so a missed call site cannot leak other locations.

from __future__ import annotations

from sqlalchemy import false, or_

from ..errors import NotFound
from ..extensions import db
from .authorization import Principal, authorize


def scope_to_principal(query, principal: Principal, *location_columns):
    """
    Restrict query to rows whose location column(s) the principal can read.

    With several columns (transfers: from/to) a row matches when ANY of them
    is accessible.
    """
    if principal.is_admin:
        return query
    locations = sorted(principal.accessible_locations)
    if not locations:
        return query.filter(false())
    return query.filter(or_(*[col.in_(locations) for col in location_columns]))


def scoped_query(model, principal: Principal, op: str, *location_columns, location_id: int | None = None):
    """
    Base query for a list endpoint.

    An explicit location filter the principal cannot read is Forbidden
    rather than an empty page.
    """
    authorize(op, principal)
    query = scope_to_principal(db.session.query(model), principal, *location_columns)
    if location_id is not None:
        authorize(op, principal, location_id)
        query = query.filter(or_(*[col == location_id for col in location_columns]))
    return query


def get_or_404(model, entity_id: int, label: str | None = None):
    obj = db.session.get(model, entity_id)
    if obj is None:
        raise NotFound(f"{label or model.__name__} {entity_id} not found")
    return obj


def paginate(query, page: int, limit: int) -> dict:
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    pages = (total + limit - 1) // limit if total else 0
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": pages,
    }


def serialize_page(page: dict, serialize=lambda obj: obj.to_dict()) -> dict:
    return {**page, "items": [serialize(obj) for obj in page["items"]]}
