"""Typed errors returned by the ticket engines.

Every business failure is one of these; the transport layer maps
``status_code`` onto its response and never inspects the message.
"""
from typing import Any


class HelpdeskError(Exception):
    code = "ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "detail": self.message, "details": self.details}


class ValidationError(HelpdeskError):
    code = "VALIDATION_FAILED"
    status_code = 422


class NotFoundError(HelpdeskError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, details: dict[str, Any] | None = None):
        super().__init__(f"{resource} not found", details)
        self.resource = resource


class UnauthorizedError(HelpdeskError):
    code = "UNAUTHORIZED"
    status_code = 401


class AccessDeniedError(HelpdeskError):
    code = "FORBIDDEN"
    status_code = 403


class ConflictError(HelpdeskError):
    code = "CONFLICT"
    status_code = 409


class InfrastructureError(HelpdeskError):
    """A collaborator (database, bus) failed. The cause is chained."""

    code = "INTERNAL_ERROR"
    status_code = 500


class OperationCancelled(InfrastructureError):
    code = "CANCELLED"
    status_code = 499
