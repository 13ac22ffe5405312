"""
Custom exceptions for the ConnLog service.

Provides structured error handling with appropriate HTTP status codes
and error details for API responses.
"""

from pathlib import Path
from typing import Any, Dict, Optional


class ConnLogException(Exception):
    """Base exception for ConnLog service."""

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


class InvalidPayloadError(ConnLogException):
    """Raised when the request body is not a JSON object within the size limit."""

    def __init__(self, message: str = "Request body must be a JSON object", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code="invalid_json",
            details=details,
        )


class RateLimitError(ConnLogException):
    """Raised when a client exceeds its admission budget."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: int = 1,
    ) -> None:
        self.retry_after = max(1, retry_after)
        super().__init__(
            message=message,
            status_code=429,
            error_code="too_many_requests",
            details={"retry_after_sec": self.retry_after},
        )


class PersistenceError(ConnLogException):
    """Raised when a record cannot be appended to the connection log."""

    def __init__(self, message: str, path: Optional[Path] = None) -> None:
        # The path stays server-side, callers only see the error code
        self.path = path
        super().__init__(
            message=message,
            status_code=500,
            error_code="internal_error",
        )


class NotificationError(ConnLogException):
    """Raised by a notification target when delivery fails."""

    def __init__(self, target: str, message: str, status: Optional[int] = None) -> None:
        self.target = target
        self.status = status
        super().__init__(
            message=message,
            status_code=502,
            error_code="notification_error",
            details={"target": target, "status": status},
        )
