from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


URGENCY_LEVELS = ("low", "medium", "high", "critical")

ENTITY_TYPES = (
    "inventory", "purchase", "sale", "product", "transfer", "income", "expense", "user", "system",
)


class ActivityEvent(db.Model):
    """
    Global activity trail entry.

    Unlike StockEvent, these rows are written after the business transaction
    commits and in their own transaction: losing one never undoes a sale.
    Critical entries (out of stock, large adjustments, permanent product
    deletion) feed the alerts endpoint.
    """
    __tablename__ = "activity_events"
    __table_args__ = (
        db.Index("ix_activity_timestamp", "timestamp"),
        db.Index("ix_activity_actor_timestamp", "actor_user_id", "timestamp"),
        db.Index("ix_activity_entity", "entity_type", "entity_id", "timestamp"),
        db.Index("ix_activity_urgency_timestamp", "urgency_level", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(48), nullable=False, index=True)
    actor_user_id = db.Column(db.Integer, nullable=True)
    actor_role = db.Column(db.String(16), nullable=True)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=True)
    entity_name = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=False)
    # {"before": ..., "after": ..., "fields": [...]}
    changes = db.Column(db.JSON, nullable=True)
    urgency_level = db.Column(db.String(16), nullable=False, default="medium")
    location_id = db.Column(db.Integer, nullable=True, index=True)
    quantity_change = db.Column(db.Integer, nullable=True)
    source = db.Column(db.String(16), nullable=False, default="api")
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "actor_user_id": self.actor_user_id,
            "actor_role": self.actor_role,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "description": self.description,
            "changes": self.changes,
            "urgency_level": self.urgency_level,
            "location_id": self.location_id,
            "quantity_change": self.quantity_change,
            "source": self.source,
            "timestamp": to_utc_z(self.timestamp),
        }
