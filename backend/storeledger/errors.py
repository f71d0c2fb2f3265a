# Overview: Domain error taxonomy shared by services and the HTTP error handlers.

"""
Typed domain errors.

Every service raises one of these (never a bare ValueError) so the API layer
can map it to a status code and a stable machine-readable code without
string matching. Details are optional structured data for clients
(e.g. {"max_open": 1} on the open-session cap).
"""

from __future__ import annotations

from typing import Any

from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException


class DomainError(Exception):
    status_code = 400
    code = "DOMAIN_ERROR"

    def __init__(self, message: str, *, code: str | None = None, details: Any = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(DomainError):
    """400-level input problem."""
    status_code = 400
    code = "VALIDATION_ERROR"


class ForbiddenError(DomainError):
    """Role check or supervisor approval failed."""
    status_code = 403
    code = "FORBIDDEN"


class TenantAccessError(ForbiddenError):
    """An object belonging to another tenant crossed the session boundary."""
    code = "TENANT_MISMATCH"


class NotFoundError(DomainError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(DomainError):
    """409-level business rule conflict (e.g., register label already open)."""
    status_code = 409
    code = "CONFLICT"


class TenantNotResolvedError(DomainError):
    """Tenant-scoped data was touched with no tenant bound."""
    status_code = 500
    code = "TENANT_NOT_RESOLVED"

    def __init__(self, message: str = "Tenant not resolved for this operation", **kwargs):
        super().__init__(message, **kwargs)


class InternalError(DomainError):
    status_code = 500
    code = "INTERNAL_ERROR"


def register_error_handlers(app) -> None:
    """Render errors as {"error", "code", "details"} JSON bodies."""

    @app.errorhandler(DomainError)
    def handle_domain_error(exc: DomainError):
        if exc.status_code >= 500:
            current_app.logger.error("Domain error %s: %s", exc.code, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        payload = {
            "error": exc.description,
            "code": (exc.name or "HTTP_ERROR").upper().replace(" ", "_"),
            "details": None,
        }
        return jsonify(payload), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        current_app.logger.exception("Unhandled error")
        payload = {"error": "Internal server error", "code": "INTERNAL_ERROR", "details": None}
        return jsonify(payload), 500
