"""
Custom exceptions for WebPulse.

Provides structured error handling with appropriate HTTP status codes
and error details for API responses.
"""

from typing import Any, Dict, Optional


class WebPulseException(Exception):
    """Base exception for WebPulse service."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class ValidationError(WebPulseException):
    """Raised when request validation fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code="validation_error",
            details=details,
        )


class QueryValidationError(ValidationError):
    """Raised when dashboard query parameters are not in the allowlist."""

    def __init__(self, parameter: str, value: Any, allowed: str) -> None:
        super().__init__(
            message=f"Invalid value for '{parameter}': {value!r}",
            details={"parameter": parameter, "value": value, "allowed": allowed},
        )


class AuthenticationError(WebPulseException):
    """Raised when authentication fails."""

    def __init__(self, message: str = "Invalid or missing authentication token") -> None:
        super().__init__(
            message=message,
            status_code=401,
            error_code="authentication_error",
        )


class StoreError(WebPulseException):
    """Raised when the event store cannot complete an operation."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=500,
            error_code="store_error",
            details=details,
        )


class QueryError(WebPulseException):
    """Raised when an aggregation query fails."""

    def __init__(self, query: str, message: str) -> None:
        super().__init__(
            message=message,
            status_code=500,
            error_code="query_error",
            details={"query": query},
        )
