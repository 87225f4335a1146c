"""
Transaction Validators for booking business rules.

Validators that check business constraints inside the atomic transaction,
against the same snapshot the transaction writes to. Each one raises the
matching BookingError; nothing is written before they pass.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from database.models import LIVE_BOOKING_STATUSES, Booking, BookingStatus, Professional
from shared.errors import FailedPreconditionError, NotFoundError

logger = logging.getLogger(__name__)

# Informational transitions: target status -> statuses it may be reached from
ALLOWED_STATUS_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.CONFIRMED: frozenset({BookingStatus.BOOKED}),
    BookingStatus.COMPLETED: LIVE_BOOKING_STATUSES,
    BookingStatus.NO_SHOW: LIVE_BOOKING_STATUSES,
}

# Statuses no transition may leave
FROZEN_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.RESCHEDULED})


async def validate_professional(session: AsyncSession, professional_id: str) -> Professional:
    """
    Check that a professional exists and accepts bookings.

    Raises:
        NotFoundError: unknown professional
        FailedPreconditionError: professional is inactive
    """
    professional = await session.get(Professional, professional_id)

    if professional is None:
        logger.warning(
            f"Professional not found: {professional_id}",
            extra={"professional_id": professional_id},
        )
        raise NotFoundError("Professional not found", {"professional_id": professional_id})

    if not professional.is_active:
        logger.warning(
            f"Professional {professional_id} is inactive",
            extra={"professional_id": professional_id},
        )
        raise FailedPreconditionError(
            "This professional is not accepting bookings",
            {"professional_id": professional_id},
        )

    return professional


def validate_cancellable(booking: Booking) -> None:
    """A booking can be cancelled once."""
    if booking.status == BookingStatus.CANCELLED:
        raise FailedPreconditionError(
            "Booking is already cancelled",
            {"booking_id": booking.id, "status": booking.status.value},
        )


def validate_reschedulable(booking: Booking) -> None:
    """Only live bookings (booked/confirmed) hold a slot that can be moved."""
    if booking.status not in LIVE_BOOKING_STATUSES:
        raise FailedPreconditionError(
            f"Booking in status {booking.status.value} cannot be rescheduled",
            {"booking_id": booking.id, "status": booking.status.value},
        )


def validate_status_transition(booking: Booking, target: BookingStatus) -> None:
    """
    Check an informational status transition.

    Allowed:
        booked -> confirmed
        booked | confirmed -> completed
        booked | confirmed -> no_show

    Raises:
        FailedPreconditionError: anything else, including any transition out
            of cancelled or rescheduled
    """
    details = {
        "booking_id": booking.id,
        "status": booking.status.value,
        "target_status": target.value,
    }

    if booking.status in FROZEN_STATUSES:
        raise FailedPreconditionError(
            f"Booking in status {booking.status.value} cannot change status",
            details,
        )

    allowed_from = ALLOWED_STATUS_TRANSITIONS.get(target)
    if allowed_from is None or booking.status not in allowed_from:
        raise FailedPreconditionError(
            f"Cannot change booking status from {booking.status.value} to {target.value}",
            details,
        )
