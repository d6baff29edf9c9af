"""Domain errors raised by the scheduling and booking layers.

Routes let these propagate; ``backend.main`` converts them to HTTP responses.
"""

from typing import Any

from fastapi import HTTPException, status


class DomainError(Exception):
    """Base class for failures with a user-facing reason."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, code: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                'message': self.message,
                'code': self.code,
                'details': self.details,
            },
        )


class ValidationError(DomainError):
    """Missing field, invalid duration, inverted times or out-of-hours slot."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(DomainError):
    """Overlapping booking, blackout day or overlapping availability."""

    status_code = status.HTTP_409_CONFLICT


class BookingCutoffError(ConflictError):
    """Booking date is in the past or today's cutoff hour has passed."""
