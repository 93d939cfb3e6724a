# Overview: Domain error taxonomy and its mapping onto JSON API responses.

"""
ShopTrack error taxonomy.

Every service raises one of these; the API layer never inspects messages,
only the class. `status_code` is what the HTTP layer answers with and
`kind` is the stable machine-readable name put in the response body.
"""

from __future__ import annotations

from flask import jsonify
from werkzeug.exceptions import HTTPException


class ShopTrackError(Exception):
    """Base class for all domain errors."""

    status_code = 400
    kind = "error"

    def __init__(self, message: str = "", **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.kind, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(ShopTrackError):
    """Product, cart line, order, return or account is missing."""

    status_code = 404
    kind = "not_found"


class UnauthorizedError(ShopTrackError):
    """The access control gate denied the action."""

    status_code = 403
    kind = "unauthorized"

    def __init__(self, reason: str, *, authenticated: bool = True, **details):
        super().__init__(reason, **details)
        self.reason = reason
        if not authenticated:
            self.status_code = 401


class ValidationError(ShopTrackError, ValueError):
    """400-level input problem (InvalidInput)."""

    status_code = 400
    kind = "invalid_input"


class ConflictError(ShopTrackError):
    """409-level business rule conflict (double restock, illegal transition)."""

    status_code = 409
    kind = "conflict"


class InsufficientStockError(ConflictError):
    """A checked stock adjustment would leave the counter below zero."""

    kind = "insufficient_stock"


class StorageFailure(ShopTrackError):
    """The underlying transaction aborted; the caller should retry."""

    status_code = 503
    kind = "storage_failure"


def register_error_handlers(app) -> None:
    @app.errorhandler(ShopTrackError)
    def _handle_domain_error(exc: ShopTrackError):
        if isinstance(exc, StorageFailure):
            app.logger.error("Storage failure: %s", exc.message)
            return jsonify({"error": exc.kind, "message": "Temporary failure, please retry"}), exc.status_code
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(HTTPException)
    def _handle_http_error(exc: HTTPException):
        return jsonify({"error": exc.name.lower().replace(" ", "_"), "message": exc.description}), exc.code

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception):
        app.logger.exception("Unhandled error")
        return jsonify({"error": "internal_error", "message": "Internal server error"}), 500
