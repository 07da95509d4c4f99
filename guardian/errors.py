"""
Error taxonomy for Guardian.

Every domain failure is an HTTPException subclass so routes can let it
propagate and FastAPI renders it with the right status code. The realtime
channel catches the same classes and turns them into error frames.
"""

from __future__ import annotations

from fastapi import HTTPException, status


class AppError(HTTPException):
    """Base class for all domain errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal error."

    def __init__(self, detail: str | None = None, headers: dict[str, str] | None = None) -> None:
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail, headers=headers)


class Unauthorized(AppError):
    """Missing, invalid or expired credential."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Not authenticated. Please sign in."


class Forbidden(AppError):
    """Authenticated, but access control denied the operation."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You do not have access to this resource."


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."


class Conflict(AppError):
    """Uniqueness violation: duplicate email, duplicate membership, etc."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict."


class InvalidInput(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input."


class TooManyRequests(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "Too many requests. Please wait a moment."


class Timeout(AppError):
    """A dependency did not answer within its deadline."""

    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_detail = "The request timed out. Please try again."


class Unavailable(AppError):
    """A dependency (database, storage, delivery provider) failed."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Service temporarily unavailable. Please try again."
