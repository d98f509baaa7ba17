# backend/stockflow/routes/transfers.py
"""
Inter-location transfer API routes.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import StockflowError, error_response, internal_error_response
from ..services import transfer_service
from ..services.repositories import serialize_page
from ..validation import (
    parse_int,
    parse_optional_int,
    parse_pagination,
    parse_positive_int,
    require_field,
    require_json_object,
)


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.route("", methods=["POST"])
@require_auth
@require_permission("REQUEST_TRANSFER")
def request_transfer_route():
    """
    Request a transfer (status: Pending).

    Request body:
    {
        "product_id": int,
        "quantity": int,
        "from_location_id": int,
        "to_location_id": int,
        "notes": str (optional)
    }

    Returns:
        201: Transfer created
        400: Invalid request or InsufficientStock at source
        403: No access to source location
        404: Product or location missing or inactive
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        transfer = transfer_service.request_transfer(
            product_id=parse_int(require_field(data, "product_id"), "product_id"),
            quantity=parse_positive_int(require_field(data, "quantity"), "quantity"),
            from_location_id=parse_int(require_field(data, "from_location_id"), "from_location_id"),
            to_location_id=parse_int(require_field(data, "to_location_id"), "to_location_id"),
            principal=g.principal,
            notes=data.get("notes"),
        )
        return jsonify(transfer.to_dict()), 201

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to request transfer")
        return internal_error_response()


@transfers_bp.route("", methods=["GET"])
@require_auth
@require_permission("VIEW_TRANSFERS")
def list_transfers_route():
    """Query params: status, location_id, product_id, page, limit."""
    try:
        page, limit = parse_pagination(request.args)
        result = transfer_service.list_transfers(
            g.principal,
            status=request.args.get("status") or None,
            location_id=parse_optional_int(request.args.get("location_id"), "location_id"),
            product_id=parse_optional_int(request.args.get("product_id"), "product_id"),
            page=page,
            limit=limit,
        )
        return jsonify(serialize_page(result)), 200

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list transfers")
        return internal_error_response()


@transfers_bp.route("/<int:transfer_id>", methods=["GET"])
@require_auth
@require_permission("VIEW_TRANSFERS")
def get_transfer_route(transfer_id: int):
    try:
        transfer = transfer_service.get_transfer(transfer_id, g.principal)
        return jsonify(transfer.to_dict()), 200
    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load transfer")
        return internal_error_response()


@transfers_bp.route("/<int:transfer_id>/ship", methods=["PATCH"])
@require_auth
@require_permission("SHIP_TRANSFER")
def ship_transfer_route(transfer_id: int):
    """
    Ship a transfer; decrements the source location.

    Returns:
        200: Transfer shipped
        400: InsufficientStock at source
        403: No access to source location
        404: Transfer not found
        409: Transfer not Pending
    """
    try:
        transfer = transfer_service.ship_transfer(transfer_id, g.principal)
        return jsonify(transfer.to_dict()), 200
    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to ship transfer")
        return internal_error_response()


@transfers_bp.route("/<int:transfer_id>/receive", methods=["PATCH"])
@require_auth
@require_permission("RECEIVE_TRANSFER")
def receive_transfer_route(transfer_id: int):
    """
    Receive a transfer; increments the destination location.

    Returns:
        200: Transfer received
        403: No access to destination location
        404: Transfer not found
        409: Transfer not Shipped
    """
    try:
        transfer = transfer_service.receive_transfer(transfer_id, g.principal)
        return jsonify(transfer.to_dict()), 200
    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to receive transfer")
        return internal_error_response()


@transfers_bp.route("/<int:transfer_id>/cancel", methods=["PATCH"])
@require_auth
@require_permission("CANCEL_TRANSFER")
def cancel_transfer_route(transfer_id: int):
    """
    Cancel a Pending transfer.

    Request body (optional): {"reason": str}
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        transfer = transfer_service.cancel_transfer(transfer_id, g.principal, reason=data.get("reason"))
        return jsonify(transfer.to_dict()), 200
    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel transfer")
        return internal_error_response()
