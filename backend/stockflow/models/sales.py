from __future__ import annotations

from ..extensions import db
from ..money import bps_to_pct, cents_to_float
from ..time_utils import to_utc_z, utcnow


SALE_STATUSES = ("pending", "completed", "cancelled", "refunded")
PAYMENT_METHODS = ("cash", "credit_card", "debit_card", "mobile_payment", "other")


class Sale(db.Model):
    """
    Sale document at one location.

    Totals are derived by the sales service on every write; client-supplied
    subtotal/total values are never stored. A completed sale with a non-zero
    total owns exactly one Income row (see Income.related_sale_id).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_created_at", "created_at"),
        db.Index("ix_sales_location_created", "location_id", "created_at"),
        db.CheckConstraint("tax_cents >= 0", name="ck_sales_tax_non_negative"),
        db.CheckConstraint("discount_cents >= 0", name="ck_sales_discount_non_negative"),
        db.CheckConstraint("total_cents >= 0", name="ck_sales_total_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="completed", index=True)
    payment_method = db.Column(db.String(32), nullable=False)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_contact = db.Column(db.String(64), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    items = db.relationship(
        "SaleItem",
        backref="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.position",
        lazy=True,
    )
    location = db.relationship("Location")

    def __repr__(self) -> str:
        return f"<Sale id={self.id} location_id={self.location_id} total_cents={self.total_cents}>"

    def customer_dict(self) -> dict | None:
        if not any([self.customer_name, self.customer_contact, self.customer_email]):
            return None
        return {
            "name": self.customer_name,
            "contact": self.customer_contact,
            "email": self.customer_email,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "items": [item.to_dict() for item in self.items],
            "subtotal": cents_to_float(self.subtotal_cents),
            "tax": cents_to_float(self.tax_cents),
            "discount": cents_to_float(self.discount_cents),
            "total": cents_to_float(self.total_cents),
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "status": self.status,
            "payment_method": self.payment_method,
            "customer": self.customer_dict(),
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class SaleItem(db.Model):
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        db.CheckConstraint("unit_price_cents > 0", name="ck_sale_items_price_positive"),
        db.CheckConstraint(
            "item_discount_bps >= 0 AND item_discount_bps <= 10000",
            name="ck_sale_items_discount_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    # Presentation order of the item within the sale
    position = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    # Percent discount stored as basis points (12.5% -> 1250)
    item_discount_bps = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": cents_to_float(self.unit_price_cents),
            "item_discount_pct": float(bps_to_pct(self.item_discount_bps)),
            "line_total": cents_to_float(self.line_total_cents),
        }

