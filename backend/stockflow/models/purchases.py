from __future__ import annotations

from ..extensions import db
from ..money import bps_to_pct, cents_to_float
from ..time_utils import to_utc_z, utcnow


PURCHASE_STATUS_DRAFT = "draft"
PURCHASE_STATUS_PENDING = "pending"
PURCHASE_STATUS_RECEIVED = "received"
PURCHASE_STATUS_PARTIALLY_RECEIVED = "partially_received"
PURCHASE_STATUS_CANCELLED = "cancelled"

PURCHASE_STATUSES = (
    PURCHASE_STATUS_DRAFT,
    PURCHASE_STATUS_PENDING,
    PURCHASE_STATUS_RECEIVED,
    PURCHASE_STATUS_PARTIALLY_RECEIVED,
    PURCHASE_STATUS_CANCELLED,
)

PAYMENT_STATUSES = ("unpaid", "partial", "paid")


class Purchase(db.Model):
    """
    Purchase order from a supplier into a warehouse location.

    LIFECYCLE:
    1. draft / pending: created, nothing in stock yet
    2. partially_received: some lines received into the warehouse
    3. received: every line fully received (receivedDate set)
    4. cancelled: abandoned before any receipt

    Suppliers are managed by an external service; only supplier_id is kept.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.UniqueConstraint("purchase_number", name="uq_purchases_number"),
        db.Index("ix_purchases_status_date", "status", "purchase_date"),
        db.Index("ix_purchases_warehouse", "warehouse_id"),
        db.Index("ix_purchases_supplier", "supplier_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_number = db.Column(db.String(64), nullable=False)
    supplier_id = db.Column(db.Integer, nullable=False)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)
    reference_number = db.Column(db.String(128), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    order_tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    grand_total_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_due_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(24), nullable=False, default=PURCHASE_STATUS_PENDING)
    payment_status = db.Column(db.String(16), nullable=False, default="unpaid")

    purchase_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    received_date = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "PurchaseItem",
        backref="purchase",
        cascade="all, delete-orphan",
        order_by="PurchaseItem.position",
        lazy=True,
    )
    warehouse = db.relationship("Location")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Purchase id={self.id} number={self.purchase_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_number": self.purchase_number,
            "supplier_id": self.supplier_id,
            "warehouse_id": self.warehouse_id,
            "reference_number": self.reference_number,
            "items": [item.to_dict() for item in self.items],
            "subtotal": cents_to_float(self.subtotal_cents),
            "order_tax": cents_to_float(self.order_tax_cents),
            "discount": cents_to_float(self.discount_cents),
            "shipping": cents_to_float(self.shipping_cents),
            "grand_total": cents_to_float(self.grand_total_cents),
            "amount_paid": cents_to_float(self.amount_paid_cents),
            "amount_due": cents_to_float(self.amount_due_cents),
            "status": self.status,
            "payment_status": self.payment_status,
            "purchase_date": to_utc_z(self.purchase_date),
            "due_date": to_utc_z(self.due_date),
            "received_date": to_utc_z(self.received_date),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "received_by_user_id": self.received_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class PurchaseItem(db.Model):
    __tablename__ = "purchase_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_purchase_items_quantity_positive"),
        db.CheckConstraint(
            "received_quantity >= 0 AND received_quantity <= quantity",
            name="ck_purchase_items_received_range",
        ),
        db.CheckConstraint("unit_cost_cents >= 0", name="ck_purchase_items_cost_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(
        db.Integer, db.ForeignKey("purchases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    received_quantity = db.Column(db.Integer, nullable=False, default=0)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False, default=0)

    @property
    def remaining_quantity(self) -> int:
        return self.quantity - (self.received_quantity or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "received_quantity": self.received_quantity,
            "unit_cost": cents_to_float(self.unit_cost_cents),
            "discount": cents_to_float(self.discount_cents),
            "tax_rate": float(bps_to_pct(self.tax_rate_bps)),
            "tax_amount": cents_to_float(self.tax_cents),
            "line_total": cents_to_float(self.line_total_cents),
        }
