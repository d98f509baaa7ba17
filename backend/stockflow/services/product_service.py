# backend/stockflow/services/product_service.py
"""
Products Service

Products are global master data. SKU is unique; barcode is unique when
present. Uniqueness is pre-checked for a readable Conflict and backed by
unique indexes (IntegrityError -> Conflict in run_with_retry).

Every mutation appends a ProductEvent to the product's own audit log in the
same transaction, then writes the global activity trail.
"""
from __future__ import annotations

from ..errors import Conflict, NotFound
from ..extensions import db
from ..models import Product, ProductEvent, PurchaseItem, StockRow
from ..validation import ConflictError
from ..time_utils import utcnow
from . import activity_service
from .authorization import Principal, authorize
from .concurrency import run_with_retry
from .repositories import get_or_404, paginate

PRODUCT_MUTABLE_FIELDS = {
    "sku", "name", "barcode", "description", "category_id", "brand_id", "price_cents", "is_active",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _ensure_unique(sku: str | None, barcode: str | None, exclude_id: int | None = None) -> None:
    if sku is not None:
        query = db.session.query(Product.id).filter(Product.sku == sku)
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        if query.first():
            raise ConflictError("SKU already exists", {"field": "sku"})
    if barcode:
        query = db.session.query(Product.id).filter(Product.barcode == barcode)
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        if query.first():
            raise ConflictError("Barcode already exists", {"field": "barcode"})


def _product_event(product: Product, principal: Principal, action: str, changes: dict | None) -> None:
    product.audit_log.append(ProductEvent(
        user_id=principal.user_id,
        action=action,
        changes=changes,
        timestamp=utcnow(),
    ))


def _snapshot(product: Product, fields) -> dict:
    return {f: getattr(product, f) for f in sorted(fields)}


def create_product(*, patch: dict, principal: Principal) -> Product:
    """Create a product from a validated patch dict."""
    authorize("MANAGE_PRODUCTS", principal)

    def _op():
        _ensure_unique(patch.get("sku"), patch.get("barcode"))
        p = Product(created_by_user_id=principal.user_id)
        apply_product_patch(p, patch)
        db.session.add(p)
        _product_event(p, principal, "created", {"before": None, "after": dict(patch), "fields": sorted(patch)})
        db.session.commit()
        return p

    p = run_with_retry(_op)

    activity_service.record_activity(
        "product_created",
        principal,
        "product",
        entity_id=p.id,
        entity_name=p.name,
        description=f"Created product sku={p.sku} name={p.name}",
        changes={"before": None, "after": dict(patch), "fields": sorted(patch)},
        urgency_level="low",
    )
    return p


def update_product(*, product_id: int, patch: dict, principal: Principal) -> Product:
    authorize("MANAGE_PRODUCTS", principal)

    def _op():
        p = get_or_404(Product, product_id, "Product")
        _ensure_unique(
            patch.get("sku") if patch.get("sku") != p.sku else None,
            patch.get("barcode") if patch.get("barcode") != p.barcode else None,
            exclude_id=p.id,
        )
        before = _snapshot(p, patch)
        apply_product_patch(p, patch)
        p.updated_at = utcnow()
        changes = {"before": before, "after": _snapshot(p, patch), "fields": sorted(patch)}
        _product_event(p, principal, "updated", changes)
        db.session.commit()
        return p, changes

    p, changes = run_with_retry(_op)

    activity_service.record_activity(
        "product_updated",
        principal,
        "product",
        entity_id=p.id,
        entity_name=p.name,
        description=f"Updated fields: {', '.join(changes['fields'])}",
        changes=changes,
        urgency_level="low",
    )
    return p


def deactivate_product(*, product_id: int, principal: Principal) -> Product:
    """
    Soft-delete: preserve ids and history. Existing stock rows stay, but the
    product can no longer be sold, bought or transferred. Transfers already
    shipped and purchases already placed still complete.
    """
    authorize("MANAGE_PRODUCTS", principal)

    def _op():
        p = get_or_404(Product, product_id, "Product")
        changed = p.is_active
        if changed:
            p.is_active = False
            p.updated_at = utcnow()
            _product_event(p, principal, "deactivated", {
                "before": {"is_active": True}, "after": {"is_active": False}, "fields": ["is_active"],
            })
        db.session.commit()
        return p, changed

    p, changed = run_with_retry(_op)

    if changed:
        activity_service.record_activity(
            "product_deactivated",
            principal,
            "product",
            entity_id=p.id,
            entity_name=p.name,
            description=f"Deactivated product sku={p.sku}",
            changes={"before": {"is_active": True}, "after": {"is_active": False}, "fields": ["is_active"]},
        )
    return p


def delete_product(*, product_id: int, principal: Principal) -> dict:
    """
    Permanently delete a product that never held stock anywhere.

    Raises:
        NotFound: product missing
        Conflict: a stock row or purchase line still references it
    """
    authorize("DELETE_PRODUCTS", principal)

    def _op():
        p = get_or_404(Product, product_id, "Product")
        if db.session.query(StockRow.id).filter_by(product_id=p.id).first():
            raise Conflict("Product has stock rows; deactivate it instead", {"product_id": p.id})
        if db.session.query(PurchaseItem.id).filter_by(product_id=p.id).first():
            raise Conflict("Product is referenced by purchases; deactivate it instead", {"product_id": p.id})
        snapshot = p.to_dict()
        db.session.delete(p)
        db.session.commit()
        return snapshot

    snapshot = run_with_retry(_op)

    current = {"sku": snapshot["sku"], "name": snapshot["name"]}
    activity_service.record_activity(
        "product_deleted",
        principal,
        "product",
        entity_id=snapshot["id"],
        entity_name=snapshot["name"],
        description=f"Permanently deleted product sku={snapshot['sku']}",
        changes={"before": current, "after": None, "fields": sorted(current)},
        urgency_level="critical",
    )
    return snapshot


def get_product(product_id: int, principal: Principal) -> Product:
    authorize("VIEW_PRODUCTS", principal)
    p = db.session.get(Product, product_id)
    if p is None:
        raise NotFound(f"Product {product_id} not found")
    return p


def list_products(
    principal: Principal,
    *,
    search: str | None = None,
    category_id: int | None = None,
    brand_id: int | None = None,
    is_active: bool | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    authorize("VIEW_PRODUCTS", principal)
    query = db.session.query(Product)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Product.name.ilike(pattern), Product.sku.ilike(pattern), Product.barcode.ilike(pattern),
        ))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if brand_id is not None:
        query = query.filter(Product.brand_id == brand_id)
    if is_active is not None:
        query = query.filter(Product.is_active.is_(is_active))
    return paginate(query.order_by(Product.name.asc(), Product.id.asc()), page, limit)
