"""
Cancellation Transaction Handler - CancelBooking.

One atomic unit:
1. Lock the booking; reject if already cancelled (FailedPrecondition, no writes)
2. Set status cancelled and stamp cancelled_at
3. Release the booking's slot in the ledger
4. Decrement the owner's total_bookings
"""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from booking.ledger.slot_ledger import release_slot
from booking.services.notification_service import BOOKING_CANCELLED, BookingEvent, dispatch
from booking.stores.booking_store import get_booking, mark_cancelled
from booking.stores.customer_store import record_cancellation
from booking.validators.transaction_validators import validate_cancellable
from database.models import BookingStatus, utcnow
from database.transaction import run_in_transaction
from shared.errors import BookingError

logger = logging.getLogger(__name__)


class CancellationTransaction:
    """Atomic transaction handler for cancelling bookings."""

    @staticmethod
    async def execute(booking_id: str) -> dict[str, Any]:
        """
        Cancel a booking and release its slot.

        Returns:
            {
                "success": True,
                "booking_id": str,
                "professional_id": str,
                "customer_id": str,
                "released_slot_id": str | None,
                "status": "cancelled"
            }

        Raises:
            NotFoundError: unknown booking
            FailedPreconditionError: booking already cancelled
            InternalError: store failure or ledger inconsistency
        """
        trace_id = f"cancel_booking:{booking_id}"
        logger.info(f"[{trace_id}] Starting cancellation transaction", extra={"booking_id": booking_id})

        async def work(session: AsyncSession) -> dict[str, Any]:
            now = utcnow()

            booking = await get_booking(session, booking_id)
            validate_cancellable(booking)

            # Rescheduled-away bookings no longer hold a slot
            holds_slot = booking.status != BookingStatus.RESCHEDULED

            await mark_cancelled(session, booking, now)
            if holds_slot:
                await release_slot(session, booking.professional_id, booking.slot_start, booking.id)
            await record_cancellation(session, booking.customer_id)

            return {
                "professional_id": booking.professional_id,
                "customer_id": booking.customer_id,
                "slot_id": booking.slot_id,
                "released_slot_id": booking.slot_id if holds_slot else None,
            }

        try:
            outcome = await run_in_transaction(work, operation="cancel_booking", trace_id=trace_id)
        except BookingError as e:
            logger.warning(
                f"[{trace_id}] Cancellation rejected: {e.message}",
                extra={"booking_id": booking_id, "error_code": e.error_code},
            )
            raise

        logger.info(
            f"[{trace_id}] Booking cancelled",
            extra={
                "booking_id": booking_id,
                "professional_id": outcome["professional_id"],
                "customer_id": outcome["customer_id"],
                "slot_id": outcome["slot_id"],
            },
        )

        await dispatch(
            BookingEvent(
                name=BOOKING_CANCELLED,
                booking_id=booking_id,
                professional_id=outcome["professional_id"],
                customer_id=outcome["customer_id"],
                slot_id=outcome["slot_id"],
            )
        )

        return {
            "success": True,
            "booking_id": booking_id,
            "professional_id": outcome["professional_id"],
            "customer_id": outcome["customer_id"],
            "released_slot_id": outcome["released_slot_id"],
            "status": BookingStatus.CANCELLED.value,
        }
