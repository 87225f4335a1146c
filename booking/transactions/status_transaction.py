"""
Status Transaction Handler - informational lifecycle transitions.

Transitions (all other moves fail with FailedPreconditionError):
- booked -> confirmed
- booked | confirmed -> completed (customer total_completed += 1)
- booked | confirmed -> no_show (customer no_show_count += 1)

Completed and no-show bookings keep their slot: the time was used.
Also records notification delivery (MarkNotificationSent).
"""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from booking.services.notification_service import BOOKING_STATUS_CHANGED, BookingEvent, dispatch
from booking.stores.booking_store import get_booking, mark_notification_sent, set_status
from booking.stores.customer_store import record_completed, record_contact, record_no_show
from booking.validators.transaction_validators import ALLOWED_STATUS_TRANSITIONS, validate_status_transition
from database.models import BookingStatus, NotificationStatus, utcnow
from database.transaction import run_in_transaction
from shared.errors import BookingError, InvalidArgumentError

logger = logging.getLogger(__name__)


def _parse_target_status(status: BookingStatus | str) -> BookingStatus:
    try:
        target = BookingStatus(status)
    except ValueError as e:
        raise InvalidArgumentError(f"Invalid status: {status!r}", {"status": str(status)}) from e

    if target not in ALLOWED_STATUS_TRANSITIONS:
        raise InvalidArgumentError(
            f"Status {target.value} cannot be set directly",
            {"status": target.value, "allowed": sorted(s.value for s in ALLOWED_STATUS_TRANSITIONS)},
        )
    return target


class StatusTransaction:
    """Atomic transaction handler for booking status and notification updates."""

    @staticmethod
    async def execute(booking_id: str, status: BookingStatus | str) -> dict[str, Any]:
        """
        Move a booking to confirmed, completed or no_show.

        Returns:
            {"success": True, "booking_id": str, "previous_status": str, "status": str}

        Raises:
            InvalidArgumentError: unknown or non-settable target status
            NotFoundError: unknown booking
            FailedPreconditionError: transition not allowed from the current status
        """
        trace_id = f"update_status:{booking_id}"

        try:
            target = _parse_target_status(status)
        except BookingError as e:
            logger.warning(
                f"[{trace_id}] Status change rejected: {e.message}",
                extra={"booking_id": booking_id, "error_code": e.error_code},
            )
            raise

        logger.info(f"[{trace_id}] Changing booking status to {target.value}", extra={"booking_id": booking_id})

        async def work(session: AsyncSession) -> dict[str, Any]:
            now = utcnow()

            booking = await get_booking(session, booking_id)
            validate_status_transition(booking, target)
            previous = booking.status

            await set_status(session, booking, target, now)

            if target == BookingStatus.COMPLETED:
                await record_completed(session, booking.customer_id, now)
            elif target == BookingStatus.NO_SHOW:
                await record_no_show(session, booking.customer_id)

            return {
                "professional_id": booking.professional_id,
                "customer_id": booking.customer_id,
                "slot_id": booking.slot_id,
                "previous_status": previous.value,
            }

        try:
            outcome = await run_in_transaction(work, operation="update_status", trace_id=trace_id)
        except BookingError as e:
            logger.warning(
                f"[{trace_id}] Status change aborted: {e.message}",
                extra={"booking_id": booking_id, "error_code": e.error_code},
            )
            raise

        logger.info(
            f"[{trace_id}] Booking status {outcome['previous_status']} -> {target.value}",
            extra={"booking_id": booking_id, "customer_id": outcome["customer_id"]},
        )

        await dispatch(
            BookingEvent(
                name=BOOKING_STATUS_CHANGED,
                booking_id=booking_id,
                professional_id=outcome["professional_id"],
                customer_id=outcome["customer_id"],
                slot_id=outcome["slot_id"],
                payload={"previous_status": outcome["previous_status"], "status": target.value},
            )
        )

        return {
            "success": True,
            "booking_id": booking_id,
            "previous_status": outcome["previous_status"],
            "status": target.value,
        }

    @staticmethod
    async def confirm(booking_id: str) -> dict[str, Any]:
        return await StatusTransaction.execute(booking_id, BookingStatus.CONFIRMED)

    @staticmethod
    async def complete(booking_id: str) -> dict[str, Any]:
        return await StatusTransaction.execute(booking_id, BookingStatus.COMPLETED)

    @staticmethod
    async def mark_no_show(booking_id: str) -> dict[str, Any]:
        return await StatusTransaction.execute(booking_id, BookingStatus.NO_SHOW)

    @staticmethod
    async def mark_notification_sent(booking_id: str) -> dict[str, Any]:
        """
        Record that the booking confirmation message was delivered.

        Sets notification_status = sent and stamps the customer's last_contact_at.
        """
        trace_id = f"mark_notification_sent:{booking_id}"

        async def work(session: AsyncSession) -> str:
            now = utcnow()
            booking = await get_booking(session, booking_id)
            await mark_notification_sent(session, booking, now)
            await record_contact(session, booking.customer_id, now)
            return booking.customer_id

        try:
            customer_id = await run_in_transaction(work, operation="mark_notification_sent", trace_id=trace_id)
        except BookingError as e:
            logger.warning(
                f"[{trace_id}] Notification update rejected: {e.message}",
                extra={"booking_id": booking_id, "error_code": e.error_code},
            )
            raise

        logger.info(
            f"[{trace_id}] Notification marked as sent",
            extra={"booking_id": booking_id, "customer_id": customer_id},
        )

        return {
            "success": True,
            "booking_id": booking_id,
            "notification_status": NotificationStatus.SENT.value,
        }
