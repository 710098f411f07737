"""
Domain exceptions raised by services and mapped to HTTP responses in backend.main.
"""

from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Validation or business-rule failure (HTTP 400)."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthenticationError(ServiceError):
    status_code = 401


class PaymentRequiredError(ServiceError):
    status_code = 402


class AccessDeniedError(ServiceError):
    status_code = 403


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409


class RateLimitError(ServiceError):
    status_code = 429

    def __init__(self, message: str, retry_after: Optional[int] = None):
        super().__init__(message)
        self.retry_after = retry_after


class ServiceUnavailableError(ServiceError):
    status_code = 503
