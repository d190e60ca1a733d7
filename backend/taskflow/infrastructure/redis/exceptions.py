"""
Cache Backend Exceptions

Exceptions describing shared-cache (Redis) failures. They are raised inside
the infrastructure layer and recovered by CacheManager, which falls back to
the local tier instead of surfacing them to request handling.
"""

from typing import Optional, Any, Dict


class CacheBackendException(Exception):
    """Base exception for shared cache backend errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class CacheBackendUnavailableException(CacheBackendException):
    """Raised when the backend cannot be reached or a command fails."""

    def __init__(
        self,
        operation: str,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {"operation": operation}
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(
            message=f"Cache backend unavailable during '{operation}'",
            error_code="CACHE_BACKEND_UNAVAILABLE",
            details=details,
        )
        # Preserve exception context for debugging (exception chaining)
        if original_error:
            self.__cause__ = original_error


class CacheCircuitOpenException(CacheBackendException):
    """Raised when the backend circuit breaker is open."""

    def __init__(
        self, message: str = "Cache backend circuit breaker is open"
    ):
        super().__init__(message=message, error_code="CACHE_CIRCUIT_OPEN")
