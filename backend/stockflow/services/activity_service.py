# Overview: Global activity trail; best-effort writes after the business commit.

"""
The activity trail is independent of the stock engine: a failed write here
is logged and dropped, never surfaced to the caller and never able to undo
the sale/receipt/transfer that produced it.

Urgency:
- critical: stock reached zero, |adjustment| >= LARGE_ADJUSTMENT_THRESHOLD,
  permanent product deletion
- high:     stock at or below its notify threshold
- medium:   everything else
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import ActivityEvent
from ..models.inventory import ACTION_ADJUSTMENT
from ..validation import ValidationError
from ..models.activity import URGENCY_LEVELS
from .authorization import Principal, authorize


def record_activity(
    action: str,
    principal: Principal | None,
    entity_type: str,
    *,
    entity_id: int | None = None,
    entity_name: str | None = None,
    description: str,
    changes: dict | None = None,
    urgency_level: str = "medium",
    location_id: int | None = None,
    quantity_change: int | None = None,
    source: str = "api",
) -> ActivityEvent | None:
    """Write one trail entry in its own transaction. Returns None on failure."""
    try:
        entry = ActivityEvent(
            action=action,
            actor_user_id=principal.user_id if principal else None,
            actor_role=principal.role if principal else None,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
            description=description,
            changes=changes,
            urgency_level=urgency_level,
            location_id=location_id,
            quantity_change=quantity_change,
            source=source,
        )
        db.session.add(entry)
        db.session.commit()
        return entry
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning(
            "Activity trail write failed: action=%s entity=%s:%s",
            action, entity_type, entity_id, exc_info=True,
        )
        return None


def stock_change_urgency(change) -> str:
    threshold = current_app.config.get("LARGE_ADJUSTMENT_THRESHOLD", 100)
    if change.new_quantity == 0 and change.adjustment < 0:
        return "critical"
    if change.action == ACTION_ADJUSTMENT and abs(change.adjustment) >= threshold:
        return "critical"
    if 0 < change.new_quantity <= change.notify_at:
        return "high"
    return "medium"


def record_stock_changes(principal: Principal, changes, description: str, *, entity_type: str = "inventory") -> None:
    """
    One trail entry per StockChange, plus a critical out_of_stock entry for
    every row a decrement emptied.
    """
    for change in changes:
        record_activity(
            change.action,
            principal,
            entity_type,
            entity_id=change.row_id,
            entity_name=change.product_name,
            description=description,
            changes={
                "before": {"quantity": change.new_quantity - change.adjustment},
                "after": {"quantity": change.new_quantity},
                "fields": ["quantity"],
            },
            urgency_level=stock_change_urgency(change),
            location_id=change.location_id,
            quantity_change=change.adjustment,
        )
        if change.new_quantity == 0 and change.adjustment < 0:
            record_activity(
                "out_of_stock",
                principal,
                "inventory",
                entity_id=change.row_id,
                entity_name=change.product_name,
                description=f"{change.product_name or 'Product'} is out of stock at location {change.location_id}",
                urgency_level="critical",
                location_id=change.location_id,
                quantity_change=change.adjustment,
                source="system",
            )


def list_activity(
    principal: Principal,
    *,
    entity_type: str | None = None,
    entity_id: int | None = None,
    urgency: str | None = None,
    limit: int = 50,
) -> list[ActivityEvent]:
    """
    Most recent trail entries, newest first.

    Non-admins see entries for their locations plus entries not bound to
    any location (product catalog changes).
    """
    authorize("VIEW_ACTIVITY", principal)
    if urgency is not None and urgency not in URGENCY_LEVELS:
        raise ValidationError(f"urgency must be one of {', '.join(URGENCY_LEVELS)}", "urgency")

    query = _visible_to(db.session.query(ActivityEvent), principal)
    if entity_type:
        query = query.filter(ActivityEvent.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(ActivityEvent.entity_id == entity_id)
    if urgency:
        query = query.filter(ActivityEvent.urgency_level == urgency)

    return query.order_by(ActivityEvent.timestamp.desc(), ActivityEvent.id.desc()).limit(limit).all()


def _visible_to(query, principal: Principal):
    if principal.is_admin:
        return query
    locations = sorted(principal.accessible_locations)
    return query.filter(
        db.or_(ActivityEvent.location_id.is_(None), ActivityEvent.location_id.in_(locations))
    )


def critical_events(principal: Principal, limit: int = 20) -> list[ActivityEvent]:
    """Critical entries visible to the principal, newest first."""
    query = db.session.query(ActivityEvent).filter(ActivityEvent.urgency_level == "critical")
    query = _visible_to(query, principal)
    return query.order_by(ActivityEvent.timestamp.desc(), ActivityEvent.id.desc()).limit(limit).all()
