# Overview: Typed error kinds raised by services and rendered by routes.

from __future__ import annotations

from flask import jsonify


class StockflowError(Exception):
    """
    Base class for every error the core surfaces to callers.

    kind is the stable name sent to clients in the "error" field;
    message is safe for display; details may name offending fields but
    never carries server internals.
    """
    kind = "Internal"
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.kind, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class BadRequest(StockflowError):
    kind = "BadRequest"
    status_code = 400


class Unauthorized(StockflowError):
    kind = "Unauthorized"
    status_code = 401


class Forbidden(StockflowError):
    kind = "Forbidden"
    status_code = 403


class NotFound(StockflowError):
    kind = "NotFound"
    status_code = 404


class Conflict(StockflowError):
    kind = "Conflict"
    status_code = 409


class InsufficientStock(StockflowError):
    kind = "InsufficientStock"
    status_code = 400


class InvalidState(StockflowError):
    kind = "InvalidState"
    status_code = 409


class Internal(StockflowError):
    kind = "Internal"
    status_code = 500


def error_response(exc: StockflowError):
    """Render a StockflowError as a (response, status) pair."""
    return jsonify(exc.to_dict()), exc.status_code


def internal_error_response():
    return error_response(Internal("Internal server error"))
