"""
Error types surfaced by the data access layer and the auth wrapper.

Each one carries the HTTP status and a stable error_code so server.py can
turn it into a JSON response with a single handler.
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for every user-facing error"""

    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}


class ConfigurationError(AppError):
    """Backend not configured (missing env vars). Fatal, never retried."""

    status_code = 503
    error_code = "NOT_CONFIGURED"


class ValidationError(AppError):
    """Malformed or out-of-range input"""

    status_code = 400
    error_code = "VALIDATION_ERROR"


class DuplicateError(AppError):
    """The uniqueness invariant is already satisfied (rating, link, ...)"""

    status_code = 409
    error_code = "ALREADY_EXISTS"


class RateLimitError(AppError):
    """Too many actions for this identifier in the current window"""

    status_code = 429
    error_code = "RATE_LIMITED"


class NotFoundError(AppError):
    status_code = 404
    error_code = "NOT_FOUND"


class AuthenticationError(AppError):
    status_code = 401
    error_code = "AUTHENTICATION_FAILED"


class BackendError(AppError):
    """The hosted database or auth API failed. Message is always generic."""

    status_code = 502
    error_code = "BACKEND_ERROR"
