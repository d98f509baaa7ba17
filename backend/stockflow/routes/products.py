# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/stockflow/routes/products.py
"""
Product master data routes.

Products are global: they are not scoped to a location.

SECURITY: All routes require authentication.
- Read operations require VIEW_PRODUCTS permission
- Write operations require MANAGE_PRODUCTS permission
- Permanent deletion requires DELETE_PRODUCTS (admin)
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import StockflowError, error_response, internal_error_response
from ..models import Product
from ..money import to_cents
from ..services import product_service
from ..services.repositories import serialize_page
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    parse_amount,
    parse_bool,
    parse_optional_int,
    parse_pagination,
    require_json_object,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "barcode", "description", "category_id", "brand_id", "price_cents", "is_active",
    },
    required_on_create={"sku", "name", "category_id", "price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _product_payload(data: dict) -> dict:
    """Accept "price" as a decimal amount alongside price_cents."""
    payload = dict(data)
    if "price" in payload:
        price = payload.pop("price")
        payload["price_cents"] = to_cents(parse_amount(price, "price", allow_zero=False))
    return payload


@products_bp.get("")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_products_route():
    """
    Query params:
    - search: matches name, SKU or barcode
    - category_id, brand_id: int
    - is_active: bool
    - page, limit
    """
    try:
        page, limit = parse_pagination(request.args)
        raw_active = request.args.get("is_active")
        result = product_service.list_products(
            g.principal,
            search=request.args.get("search") or None,
            category_id=parse_optional_int(request.args.get("category_id"), "category_id"),
            brand_id=parse_optional_int(request.args.get("brand_id"), "brand_id"),
            is_active=parse_bool(raw_active, "is_active") if raw_active not in (None, "") else None,
            page=page,
            limit=limit,
        )
        return jsonify(serialize_page(result)), 200

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return internal_error_response()


@products_bp.post("")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_product_route():
    """
    Create a new product.

    Request body:
    {
        "sku": str, "name": str, "category_id": int,
        "price": number (or "price_cents": int),
        "barcode"?, "description"?: str, "brand_id"?: int, "is_active"?: bool
    }

    Returns:
        201: Product
        400: Validation error
        409: Duplicate SKU or barcode
    """
    try:
        payload = _product_payload(require_json_object(request.get_json(silent=True)))
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)

        created = product_service.create_product(patch=patch, principal=g.principal)
        return jsonify(created.to_dict()), 201

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return internal_error_response()


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("VIEW_PRODUCTS")
def get_product_route(product_id: int):
    """Query params: include_audit (bool) embeds the product's change log."""
    try:
        include_audit = parse_bool(request.args.get("include_audit", "false"), "include_audit")
        product = product_service.get_product(product_id, g.principal)
        return jsonify(product.to_dict(include_audit=include_audit)), 200

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load product")
        return internal_error_response()


@products_bp.patch("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_product_route(product_id: int):
    """Partial update; only fields present in the body are validated and written."""
    try:
        payload = _product_payload(require_json_object(request.get_json(silent=True)))
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)

        updated = product_service.update_product(product_id=product_id, patch=patch, principal=g.principal)
        return jsonify(updated.to_dict()), 200

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return internal_error_response()


@products_bp.post("/<int:product_id>/deactivate")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def deactivate_product_route(product_id: int):
    try:
        product = product_service.deactivate_product(product_id=product_id, principal=g.principal)
        return jsonify(product.to_dict()), 200
    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate product")
        return internal_error_response()


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("DELETE_PRODUCTS")
def delete_product_route(product_id: int):
    """
    Permanently delete a product.

    Returns:
        200: {"deleted": true, "product": <snapshot>}
        404: Product not found
        409: Product has stock rows or purchase lines
    """
    try:
        snapshot = product_service.delete_product(product_id=product_id, principal=g.principal)
        return jsonify({"deleted": True, "product": snapshot}), 200
    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return internal_error_response()
