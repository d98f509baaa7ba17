from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


# StockEvent actions
ACTION_ADDED_TO_LOCATION = "added_to_location"
ACTION_ADJUSTMENT = "adjustment"
ACTION_SALE = "sale"
ACTION_SALE_DELETED = "sale_deleted"
ACTION_PURCHASE_RECEIVED = "purchase_received"
ACTION_TRANSFER_OUT = "transfer_out"
ACTION_TRANSFER_IN = "transfer_in"
ACTION_INITIAL_STOCK = "initial_stock"

STOCK_ACTIONS = (
    ACTION_ADDED_TO_LOCATION,
    ACTION_ADJUSTMENT,
    ACTION_SALE,
    ACTION_SALE_DELETED,
    ACTION_PURCHASE_RECEIVED,
    ACTION_TRANSFER_OUT,
    ACTION_TRANSFER_IN,
    ACTION_INITIAL_STOCK,
)

DEFAULT_MIN_STOCK = 5


class StockRow(db.Model):
    """
    How much of one product is present at one location.

    INVARIANTS:
    - at most one row per (product_id, location_id)
    - quantity >= 0 (also enforced by a CHECK constraint)
    - quantity equals the fold of its StockEvents starting from 0

    Rows are created by the stock engine only (explicit add, purchase
    receipt, transfer receipt) and are never hard-deleted. version_id gives
    optimistic locking on top of the row lock taken by writers.
    """
    __tablename__ = "stock_rows"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location_id", name="uq_stock_rows_product_location"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_rows_quantity_non_negative"),
        db.CheckConstraint("min_stock >= 0", name="ck_stock_rows_min_stock_non_negative"),
        db.CheckConstraint("notify_at >= 0", name="ck_stock_rows_notify_at_non_negative"),
        db.Index("ix_stock_rows_location_quantity", "location_id", "quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=DEFAULT_MIN_STOCK)
    notify_at = db.Column(db.Integer, nullable=False, default=DEFAULT_MIN_STOCK)
    expiry_date = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    location = db.relationship("Location")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<StockRow id={self.id} product_id={self.product_id} "
            f"location_id={self.location_id} quantity={self.quantity}>"
        )

    @property
    def is_out_of_stock(self) -> bool:
        return self.quantity == 0

    @property
    def is_low_stock(self) -> bool:
        return 0 < self.quantity <= self.notify_at

    def recent_events(self, limit: int) -> list["StockEvent"]:
        """Hot tail of the audit log, oldest first."""
        rows = (
            db.session.query(StockEvent)
            .filter_by(stock_row_id=self.id)
            .order_by(StockEvent.id.desc())
            .limit(limit)
            .all()
        )
        return list(reversed(rows))

    def to_dict(self, audit_tail: int | None = None) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "quantity": self.quantity,
            "min_stock": self.min_stock,
            "notify_at": self.notify_at,
            "expiry_date": to_utc_z(self.expiry_date),
            "is_low_stock": self.is_low_stock,
            "is_out_of_stock": self.is_out_of_stock,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if self.product is not None:
            data["product"] = {"id": self.product.id, "name": self.product.name, "sku": self.product.sku}
        if self.location is not None:
            data["location"] = {"id": self.location.id, "name": self.location.name}
        if audit_tail:
            data["audit_log"] = [e.to_dict() for e in self.recent_events(audit_tail)]
        return data


class StockEvent(db.Model):
    """
    One immutable movement of a StockRow.

    new_quantity is the row quantity right after this event, so
    new_quantity == previous.new_quantity + adjustment for consecutive
    events (the first event starts from 0). Related ids are plain columns:
    a deleted sale must not take its stock history with it.
    """
    __tablename__ = "stock_events"
    __table_args__ = (
        db.Index("ix_stock_events_row_id", "stock_row_id", "id"),
        db.Index("ix_stock_events_timestamp", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stock_row_id = db.Column(db.Integer, db.ForeignKey("stock_rows.id"), nullable=False)
    user_id = db.Column(db.Integer, nullable=True)
    action = db.Column(db.String(32), nullable=False)
    adjustment = db.Column(db.Integer, nullable=False)
    note = db.Column(db.String(255), nullable=True)
    new_quantity = db.Column(db.Integer, nullable=False)

    related_sale_id = db.Column(db.Integer, nullable=True, index=True)
    related_transfer_id = db.Column(db.Integer, nullable=True, index=True)
    related_purchase_id = db.Column(db.Integer, nullable=True, index=True)

    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    stock_row = db.relationship("StockRow")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stock_row_id": self.stock_row_id,
            "user_id": self.user_id,
            "action": self.action,
            "adjustment": self.adjustment,
            "note": self.note,
            "new_quantity": self.new_quantity,
            "related_sale_id": self.related_sale_id,
            "related_transfer_id": self.related_transfer_id,
            "related_purchase_id": self.related_purchase_id,
            "timestamp": to_utc_z(self.timestamp),
        }
