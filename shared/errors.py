"""
Booking core fault taxonomy.

Every business-rule violation surfaces to the caller as one of these typed
errors. Each carries a stable machine-readable ``error_code`` plus a
human-readable message, and renders to the same failure dict shape the
transaction handlers use:

    {
        "success": False,
        "error_code": str,
        "error_message": str,
        "details": dict
    }
"""

from typing import Any


class BookingError(Exception):
    """Base exception for booking core faults."""

    error_code = "INTERNAL"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "error_code": self.error_code,
            "error_message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(error_code='{self.error_code}', message='{self.message}')>"


class InvalidArgumentError(BookingError):
    """Malformed input, out-of-window time or closed day."""

    error_code = "INVALID_ARGUMENT"


class NotFoundError(BookingError):
    """Unknown booking or professional."""

    error_code = "NOT_FOUND"


class AlreadyExistsError(BookingError):
    """Slot already reserved (create or reschedule)."""

    error_code = "ALREADY_EXISTS"


class FailedPreconditionError(BookingError):
    """Redundant cancellation, illegal status transition or inactive professional."""

    error_code = "FAILED_PRECONDITION"


class InternalError(BookingError):
    """Unexpected store failure or broken invariant."""

    error_code = "INTERNAL"
