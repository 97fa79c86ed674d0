"""
Shared error handling for the Cross-Language Validation service.
"""

from typing import Dict, Any, List, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class ValidationServiceException(Exception):
    """Base exception for validation service errors."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            trace_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(ValidationServiceException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class RuleSetError(ValidationServiceException):
    """A rule document could not be loaded.

    ``path`` points at the offending part of the document, e.g.
    ``contentRules.article.status[0].constraint``.
    """

    def __init__(self, message: str, path: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if path:
            details["path"] = path
        self.path = path
        super().__init__("RULE_SET_ERROR", message, details)


class SnapshotError(ValidationServiceException):
    """An entity snapshot does not match the declared properties."""

    def __init__(self, entity_type: str, unknown_keys: List[str]):
        self.entity_type = entity_type
        self.unknown_keys = unknown_keys
        super().__init__(
            "SNAPSHOT_ERROR",
            f"Unknown properties for '{entity_type}': {', '.join(unknown_keys)}",
            {"entity_type": entity_type, "unknown_keys": unknown_keys}
        )


class RuleViolationError(ValidationError):
    """Business rules failed; carries the error codes."""

    def __init__(self, errors: List[str], message: str = "Validation rules failed"):
        self.errors = list(errors)
        super().__init__(message, {"errors": self.errors})


class ServiceError(ValidationServiceException):
    """Service-related errors."""

    def __init__(self, message: str = "Service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERVICE_ERROR", message, details)
