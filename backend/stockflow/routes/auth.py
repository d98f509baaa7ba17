# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/stockflow/routes/auth.py
"""
Authentication API routes.

Login exchanges username/password for a signed bearer credential carrying
{user id, role, locations}. There is no server-side session: the credential
stays valid until CREDENTIAL_TTL elapses.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import StockflowError, error_response, internal_error_response
from ..services import auth_service, credential_service
from ..decorators import require_auth
from ..validation import ValidationError, require_json_object


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and issue a credential.

    Request body: {"username": str, "password": str}

    Returns:
        200: {token, user, expires_in}
        400: missing fields
        401: bad credentials or inactive user
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not username or not password:
            raise ValidationError("username and password required")

        user = auth_service.authenticate(username, password)
        token = credential_service.issue_credential(user)
        current_app.logger.info("User %s logged in", user.username)

        return jsonify({
            "token": token,
            "user": user.to_dict(),
            "expires_in": current_app.config["CREDENTIAL_TTL"],
        }), 200

    except StockflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to login user")
        return internal_error_response()


@auth_bp.get("/me")
@require_auth
def me_route():
    """The principal carried by the presented credential."""
    return jsonify({"principal": g.principal.to_dict()}), 200
