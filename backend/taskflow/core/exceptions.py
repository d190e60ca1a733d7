"""
Application Exceptions

Error categories raised by route handlers and collaborators. The error
boundary stage of the request pipeline is the single place that turns them
into HTTP responses.
"""

from http import HTTPStatus
from typing import Any, Dict, Optional


class TaskflowError(Exception):
    """Base exception for application errors.

    Subclasses fix ``status_code`` and the public ``error`` string that goes
    into the JSON response body.
    """

    status_code: int = 500
    error: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.error
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class RequestValidationError(TaskflowError):
    """Raised when request input fails validation."""

    status_code = 400
    error = "Validation failed"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(
            message=message, error_code="VALIDATION_ERROR", details=details
        )


class UnauthorizedError(TaskflowError):
    """Raised when the caller is not authenticated."""

    status_code = 401
    error = "Unauthorized"


class ForbiddenError(TaskflowError):
    """Raised when the caller lacks permission for the resource."""

    status_code = 403
    error = "Forbidden"


class NotFoundError(TaskflowError):
    """Raised when a requested resource does not exist."""

    status_code = 404
    error = "Not found"

    def __init__(
        self,
        resource: Optional[str] = None,
        resource_id: Optional[str] = None,
    ):
        details: Dict[str, Any] = {}
        if resource:
            details["resource"] = resource
        if resource_id:
            details["resource_id"] = resource_id
        message = f"{resource} not found" if resource else "Not found"
        super().__init__(message=message, error_code="NOT_FOUND", details=details)


class HTTPStatusError(TaskflowError):
    """Raised for framework-level HTTP errors with no dedicated category."""

    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = status_code
        self.error = HTTPStatus(status_code).phrase
        super().__init__(message=message, error_code="HTTP_ERROR")


def from_http_status(status_code: int, detail: Optional[str] = None) -> TaskflowError:
    """Map an HTTP status raised by the framework onto the error hierarchy."""
    if status_code in (400, 422):
        return RequestValidationError(message=detail or "Validation failed")
    if status_code == 401:
        return UnauthorizedError(message=detail)
    if status_code == 403:
        return ForbiddenError(message=detail)
    if status_code == 404:
        return NotFoundError()
    return HTTPStatusError(status_code, message=detail)
