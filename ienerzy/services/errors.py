from __future__ import annotations

from datetime import datetime
from typing import Optional


class ServiceError(Exception):
    """Base class for errors the API turns into ``{"error": message}`` bodies."""

    status_code: int = 400

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ServiceError):
    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class AuthError(ServiceError):
    status_code = 401


class ForbiddenError(AuthError):
    status_code = 403


class RateLimitError(ServiceError):
    status_code = 429

    def __init__(
        self,
        message: str,
        *,
        action: str,
        retry_after: int,
        reset_at: datetime,
    ) -> None:
        super().__init__(message)
        self.action = action
        self.retry_after = retry_after
        self.reset_at = reset_at


class DeliveryError(ServiceError):
    """SMS/email provider failure."""

    status_code = 502


__all__ = [
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "AuthError",
    "ForbiddenError",
    "RateLimitError",
    "DeliveryError",
]
