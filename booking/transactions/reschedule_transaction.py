"""
Reschedule Transaction Handler - RescheduleBooking.

Atomic swap-or-nothing: the destination slot is reserved before the origin
slot is released, and both happen in the same transaction as the booking
update. If the destination is occupied (including the booking's own current
slot) the transaction aborts with AlreadyExistsError; the original slot stays
reserved and the booking is untouched.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from booking.ledger.slot_ledger import move_slot
from booking.services.notification_service import BOOKING_RESCHEDULED, BookingEvent, dispatch
from booking.stores.booking_store import apply_reschedule, get_booking
from booking.validators.slot_validator import SlotValidator
from booking.validators.transaction_validators import validate_reschedulable
from database.models import utcnow
from database.transaction import run_in_transaction
from shared.business_hours_validator import canonicalize, generate_slot_id, get_day_key
from shared.errors import BookingError

logger = logging.getLogger(__name__)


class RescheduleTransaction:
    """Atomic transaction handler for moving a booking to another slot."""

    @staticmethod
    async def execute(booking_id: str, new_start_time: datetime | str) -> dict[str, Any]:
        """
        Move a live booking to a new slot start.

        Returns:
            {
                "success": True,
                "booking_id": str,
                "professional_id": str,
                "previous_slot_id": str,
                "slot_id": str,
                "day_key": str,
                "start_time": str,
                "rescheduled_from": str
            }

        Raises:
            InvalidArgumentError: malformed start, closed day, outside service window
            NotFoundError: unknown booking
            FailedPreconditionError: booking is not booked/confirmed
            AlreadyExistsError: destination slot occupied
            InternalError: store failure or ledger inconsistency
        """
        trace_id = f"reschedule_booking:{booking_id}"
        logger.info(f"[{trace_id}] Starting reschedule transaction", extra={"booking_id": booking_id})

        try:
            new_start = SlotValidator.require_bookable(new_start_time)
        except BookingError as e:
            logger.warning(
                f"[{trace_id}] Reschedule request rejected: {e.message}",
                extra={"booking_id": booking_id, "error_code": e.error_code},
            )
            raise

        new_slot_id = generate_slot_id(new_start)

        async def work(session: AsyncSession) -> dict[str, Any]:
            now = utcnow()

            booking = await get_booking(session, booking_id)
            validate_reschedulable(booking)

            previous_slot_id = booking.slot_id
            await move_slot(session, booking.professional_id, booking.slot_start, new_start, booking.id)
            await apply_reschedule(session, booking, new_start, now)

            return {
                "professional_id": booking.professional_id,
                "customer_id": booking.customer_id,
                "previous_slot_id": previous_slot_id,
                "previous_start_time": canonicalize(booking.previous_slot_start).isoformat(),
            }

        try:
            outcome = await run_in_transaction(work, operation="reschedule_booking", trace_id=trace_id)
        except BookingError as e:
            logger.warning(
                f"[{trace_id}] Reschedule aborted: {e.message}",
                extra={"booking_id": booking_id, "slot_id": new_slot_id, "error_code": e.error_code},
            )
            raise

        logger.info(
            f"[{trace_id}] Booking rescheduled from {outcome['previous_slot_id']} to {new_slot_id}",
            extra={
                "booking_id": booking_id,
                "professional_id": outcome["professional_id"],
                "slot_id": new_slot_id,
            },
        )

        await dispatch(
            BookingEvent(
                name=BOOKING_RESCHEDULED,
                booking_id=booking_id,
                professional_id=outcome["professional_id"],
                customer_id=outcome["customer_id"],
                slot_id=new_slot_id,
                payload={
                    "previous_slot_id": outcome["previous_slot_id"],
                    "previous_start_time": outcome["previous_start_time"],
                    "start_time": new_start.isoformat(),
                },
            )
        )

        return {
            "success": True,
            "booking_id": booking_id,
            "professional_id": outcome["professional_id"],
            "previous_slot_id": outcome["previous_slot_id"],
            "slot_id": new_slot_id,
            "day_key": get_day_key(new_start),
            "start_time": new_start.isoformat(),
            "rescheduled_from": booking_id,
        }
