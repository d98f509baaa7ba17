from __future__ import annotations

from ..extensions import db
from ..money import cents_to_float
from ..time_utils import to_utc_z, utcnow


INCOME_SOURCE_SALE = "Sale"
INCOME_SOURCES = (INCOME_SOURCE_SALE, "Service", "Investment", "Other")
MANUAL_INCOME_SOURCES = tuple(s for s in INCOME_SOURCES if s != INCOME_SOURCE_SALE)

EXPENSE_CATEGORIES = (
    "Supplies",
    "Rent",
    "Utilities",
    "Salaries",
    "Marketing",
    "Travel",
    "Equipment",
    "Software",
    "Taxes",
    "Other",
)
EXPENSE_PAYMENT_METHODS = ("Cash", "Credit Card", "Bank Transfer", "Check", "Other")


class Income(db.Model):
    """
    Income entry. Sale-sourced rows are created and deleted together with
    their sale; the unique index on related_sale_id keeps it one per sale.
    Every other source is recorded by hand through the ledger service.
    """
    __tablename__ = "incomes"
    __table_args__ = (
        db.UniqueConstraint("related_sale_id", name="uq_incomes_related_sale"),
        db.CheckConstraint("amount_cents > 0", name="ck_incomes_amount_positive"),
        db.CheckConstraint(
            "source != 'Sale' OR related_sale_id IS NOT NULL",
            name="ck_incomes_sale_link",
        ),
        db.Index("ix_incomes_date", "date"),
        db.Index("ix_incomes_source", "source"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    source = db.Column(db.String(16), nullable=False, default="Other")
    description = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    related_sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def is_sale_linked(self) -> bool:
        return self.source == INCOME_SOURCE_SALE or self.related_sale_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source,
            "description": self.description,
            "amount": cents_to_float(self.amount_cents),
            "amount_cents": self.amount_cents,
            "date": to_utc_z(self.date),
            "related_sale_id": self.related_sale_id,
            "location_id": self.location_id,
            "created_by_user_id": self.created_by_user_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Expense(db.Model):
    """Money paid out: rent, utilities, supplies and the like."""
    __tablename__ = "expenses"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
        db.Index("ix_expenses_date", "date"),
        db.Index("ix_expenses_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category = db.Column(db.String(32), nullable=False, default="Other")
    description = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    payment_method = db.Column(db.String(32), nullable=True)
    supplier_name = db.Column(db.String(128), nullable=True)
    supplier_contact = db.Column(db.String(128), nullable=True)
    receipt_url = db.Column(db.String(512), nullable=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "description": self.description,
            "amount": cents_to_float(self.amount_cents),
            "amount_cents": self.amount_cents,
            "date": to_utc_z(self.date),
            "payment_method": self.payment_method,
            "supplier": {"name": self.supplier_name, "contact": self.supplier_contact},
            "receipt_url": self.receipt_url,
            "location_id": self.location_id,
            "created_by_user_id": self.created_by_user_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
