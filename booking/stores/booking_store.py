"""
Booking Record Store - booking rows, status lifecycle and reschedule history.

Bookings are created once and never deleted. Every mutation here is one of
the defined lifecycle transitions and runs inside the caller's transaction.
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Booking, BookingStatus, NotificationStatus
from shared.business_hours_validator import canonicalize, generate_slot_id, get_day_key
from shared.errors import NotFoundError

logger = logging.getLogger(__name__)


async def get_booking(session: AsyncSession, booking_id: str) -> Booking:
    """
    Load a booking row with a row lock.

    Raises:
        NotFoundError: unknown booking id
    """
    stmt = select(Booking).where(Booking.id == booking_id).with_for_update()
    result = await session.execute(stmt)
    booking = result.scalar_one_or_none()

    if booking is None:
        logger.warning(f"Booking not found: {booking_id}", extra={"booking_id": booking_id})
        raise NotFoundError("Booking not found", {"booking_id": booking_id})

    return booking


async def add_booking(
    session: AsyncSession,
    booking_id: str,
    customer_id: str,
    professional_id: str,
    service_type: str,
    start: datetime,
    first_name: str,
    last_name: str,
    phone: str,
    created_at: datetime,
) -> Booking:
    """Insert a new booking in status booked with a pending notification."""
    start = canonicalize(start)
    booking = Booking(
        id=booking_id,
        customer_id=customer_id,
        professional_id=professional_id,
        service_type=service_type,
        slot_start=start,
        day_key=get_day_key(start),
        slot_id=generate_slot_id(start),
        customer_first_name=first_name,
        customer_last_name=last_name,
        customer_phone=phone,
        status=BookingStatus.BOOKED,
        notification_status=NotificationStatus.PENDING,
        created_at=created_at,
        updated_at=created_at,
    )
    session.add(booking)
    await session.flush()
    return booking


async def mark_cancelled(session: AsyncSession, booking: Booking, cancelled_at: datetime) -> Booking:
    booking.status = BookingStatus.CANCELLED
    booking.cancelled_at = cancelled_at
    booking.updated_at = cancelled_at
    await session.flush()
    return booking


async def apply_reschedule(
    session: AsyncSession,
    booking: Booking,
    new_start: datetime,
    rescheduled_at: datetime,
) -> Booking:
    """
    Move a booking in place to a new start.

    The booking keeps its id; rescheduled_from and previous_slot_start record
    where it came from.
    """
    new_start = canonicalize(new_start)

    booking.previous_slot_start = booking.slot_start
    booking.rescheduled_from = booking.id
    booking.slot_start = new_start
    booking.day_key = get_day_key(new_start)
    booking.slot_id = generate_slot_id(new_start)
    booking.updated_at = rescheduled_at

    await session.flush()
    return booking


async def set_status(
    session: AsyncSession,
    booking: Booking,
    status: BookingStatus,
    changed_at: datetime,
) -> Booking:
    """Apply an informational status transition and stamp its timestamp."""
    booking.status = status
    booking.updated_at = changed_at

    if status == BookingStatus.CONFIRMED:
        booking.confirmed_at = changed_at
    elif status == BookingStatus.COMPLETED:
        booking.completed_at = changed_at
    elif status == BookingStatus.NO_SHOW:
        booking.no_show_at = changed_at

    await session.flush()
    return booking


async def mark_notification_sent(session: AsyncSession, booking: Booking, sent_at: datetime) -> Booking:
    booking.notification_status = NotificationStatus.SENT
    booking.updated_at = sent_at
    await session.flush()
    return booking


async def list_customer_bookings(session: AsyncSession, customer_id: str) -> list[Booking]:
    """Return every booking of a customer, oldest first."""
    stmt = (
        select(Booking)
        .where(Booking.customer_id == customer_id)
        .order_by(Booking.created_at.asc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
