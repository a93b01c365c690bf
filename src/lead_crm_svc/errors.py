"""
Domain errors.

Services raise these; the exception handlers registered in ``app.py`` render
them as the uniform ``{success, message, error}`` envelope with the matching
HTTP status code.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional


class CRMError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def code(self) -> str:
        return type(self).__name__


class Unauthenticated(CRMError):
    """Missing, invalid or expired credentials."""

    status_code = 401

    def __init__(self, message: str = "Could not validate credentials") -> None:
        super().__init__(message)


class Forbidden(CRMError):
    """Role or ownership check failed."""

    status_code = 403

    def __init__(self, message: str = "Access denied", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)


class ValidationFailed(CRMError):
    """Malformed request. Carries field-level messages."""

    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        errors: Optional[List[Dict[str, str]]] = None,
        field: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        if errors is None and field is not None:
            errors = [{"field": field, "message": message}]
        self.errors = errors or []


class NotFound(CRMError):
    status_code = 404

    def __init__(self, resource_type: str, identifier: Any) -> None:
        super().__init__(f"{resource_type} not found", {"id": identifier})
        self.resource_type = resource_type
        self.identifier = identifier


class InvalidState(CRMError):
    """An assignment precondition does not hold for the record's current state."""

    status_code = 409


class Conflict(CRMError):
    """The request clashes with stored data: a taken unique field or a record still in use."""

    status_code = 409

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message, {"field": field} if field else None)
        self.field = field


class Unavailable(CRMError):
    """The data store did not answer in time. Safe to retry."""

    status_code = 503

    def __init__(self, message: str = "Service temporarily unavailable, please retry") -> None:
        super().__init__(message)
