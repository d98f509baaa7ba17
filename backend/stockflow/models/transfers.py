from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


TRANSFER_STATUS_PENDING = "Pending"
TRANSFER_STATUS_SHIPPED = "Shipped"
TRANSFER_STATUS_RECEIVED = "Received"
TRANSFER_STATUS_CANCELLED = "Cancelled"

TRANSFER_STATUSES = (
    TRANSFER_STATUS_PENDING,
    TRANSFER_STATUS_SHIPPED,
    TRANSFER_STATUS_RECEIVED,
    TRANSFER_STATUS_CANCELLED,
)


class StockTransfer(db.Model):
    """
    Movement of one product between two locations.

    LIFECYCLE:
    1. Pending: requested, no stock has moved
    2. Shipped: source row decremented (transfer_out)
    3. Received: destination row incremented (transfer_in)
    4. Cancelled: abandoned while Pending, no stock effect

    Received and Cancelled are terminal.
    """
    __tablename__ = "stock_transfers"
    __table_args__ = (
        db.UniqueConstraint("transfer_number", name="uq_stock_transfers_number"),
        db.CheckConstraint("quantity > 0", name="ck_stock_transfers_quantity_positive"),
        db.CheckConstraint("from_location_id != to_location_id", name="ck_stock_transfers_distinct_locations"),
        db.Index("ix_stock_transfers_status", "status"),
        db.Index("ix_stock_transfers_from", "from_location_id"),
        db.Index("ix_stock_transfers_to", "to_location_id"),
        db.Index("ix_stock_transfers_product", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    # Human-readable id, e.g. "TR-1A2B3C4D"
    transfer_number = db.Column(db.String(32), nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    from_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)
    to_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=TRANSFER_STATUS_PENDING)
    notes = db.Column(db.Text, nullable=True)

    requested_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    shipped_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    requested_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    from_location = db.relationship("Location", foreign_keys=[from_location_id])
    to_location = db.relationship("Location", foreign_keys=[to_location_id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StockTransfer id={self.id} number={self.transfer_number!r} status={self.status}>"

    def location_ids(self) -> tuple[int, int]:
        return (self.from_location_id, self.to_location_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_number": self.transfer_number,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "status": self.status,
            "notes": self.notes,
            "requested_by_user_id": self.requested_by_user_id,
            "shipped_by_user_id": self.shipped_by_user_id,
            "received_by_user_id": self.received_by_user_id,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "requested_at": to_utc_z(self.requested_at),
            "shipped_at": to_utc_z(self.shipped_at),
            "received_at": to_utc_z(self.received_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "version_id": self.version_id,
        }
