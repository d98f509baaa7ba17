from __future__ import annotations

from ..extensions import db
from ..money import cents_to_float
from ..time_utils import to_utc_z, utcnow


LOCATION_TYPES = ("Store", "Warehouse", "DistributionCenter", "Outlet")


class Location(db.Model):
    """
    A place that holds stock (store, warehouse, distribution center, outlet).

    Location CRUD lives outside this service; locations are created through
    the CLI and soft-deactivated with is_active=False. Inactive locations keep
    their stock rows but accept no new rows, sales, purchases or transfers.
    """
    __tablename__ = "locations"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_locations_name"),
        db.Index("ix_locations_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(32), nullable=False, default="Store")
    address = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Location id={self.id} name={self.name!r} type={self.type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "address": self.address,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data, independent of any location.

    SKU is required and globally unique; barcode is optional and unique when
    present (NULLs never collide under a unique constraint). Category, brand
    and supplier records are owned by external services, so only their ids
    are stored here.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.UniqueConstraint("barcode", name="uq_products_barcode"),
        db.CheckConstraint("price_cents > 0", name="ck_products_price_positive"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=False)
    barcode = db.Column(db.String(128), nullable=True)
    description = db.Column(db.Text, nullable=True)
    category_id = db.Column(db.Integer, nullable=False, index=True)
    brand_id = db.Column(db.Integer, nullable=True, index=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    audit_log = db.relationship(
        "ProductEvent",
        backref="product",
        cascade="all, delete-orphan",
        order_by="ProductEvent.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self, include_audit: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "barcode": self.barcode,
            "description": self.description,
            "category_id": self.category_id,
            "brand_id": self.brand_id,
            "price_cents": self.price_cents,
            "price": cents_to_float(self.price_cents),
            "is_active": self.is_active,
            "created_by_user_id": self.created_by_user_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_audit:
            data["audit_log"] = [e.to_dict() for e in self.audit_log]
        return data


class ProductEvent(db.Model):
    """Append-only change record for a product definition."""
    __tablename__ = "product_events"
    __table_args__ = (
        db.Index("ix_product_events_product_timestamp", "product_id", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(db.Integer, nullable=True)
    action = db.Column(db.String(32), nullable=False)
    changes = db.Column(db.JSON, nullable=True)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "user_id": self.user_id,
            "action": self.action,
            "changes": self.changes,
            "timestamp": to_utc_z(self.timestamp),
        }
