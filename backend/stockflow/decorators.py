# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, g

from .errors import Forbidden, Unauthorized, error_response
from .services import credential_service
from .services.authorization import authorize


def _is_authenticated() -> bool:
    return getattr(g, "principal", None) is not None


def require_auth(f):
    """
    Require a valid bearer credential.

    Sets g.principal (Principal: user_id, role, accessible_locations).

    Returns 401 if:
    - No Authorization header, or not a Bearer scheme
    - Bad signature
    - Expired credential
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return error_response(Unauthorized("Authentication required"))

        token = auth_header.split(" ", 1)[1].strip()
        try:
            g.principal = credential_service.verify_credential(token)
        except Unauthorized as e:
            return error_response(e)

        return f(*args, **kwargs)

    return decorated_function


def require_permission(operation: str):
    """
    Require the principal's role to grant an operation.

    Location scope is checked by the service once the target is known.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return error_response(Unauthorized("Authentication required"))

            try:
                authorize(operation, g.principal)
            except Forbidden as e:
                return error_response(e)

            return f(*args, **kwargs)

        return decorated_function
    return decorator
