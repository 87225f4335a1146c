"""
Booking Transaction Handler - CreateBooking.

This module implements the booking creation transaction:
- Slot validation (structure, closed day, service window) BEFORE touching the store
- Customer identity derivation (canonical phone -> customer id)
- One atomic unit spanning slot ledger + booking store + customer aggregate
- Post-commit notification dispatch (never rolls back the booking)

Conflict policy: if the slot is already reserved the whole transaction aborts
with AlreadyExistsError and nothing is written. The caller must offer another
slot; the conflict is never retried.

The BookingTransaction.execute() method is the single entry point for creating bookings.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from booking.ledger.slot_ledger import reserve_slot
from booking.schemas import CustomerInput, parse_customer_input
from booking.services.notification_service import BOOKING_CREATED, BookingEvent, dispatch
from booking.stores.booking_store import add_booking
from booking.stores.customer_store import record_booking
from booking.validators.slot_validator import SlotValidator
from booking.validators.transaction_validators import validate_professional
from database.models import BookingStatus, generate_booking_id, utcnow
from database.transaction import run_in_transaction
from shared.business_hours_validator import generate_slot_id, get_day_key
from shared.errors import BookingError, InvalidArgumentError
from shared.logging_config import mask_phone
from shared.phone_identity import generate_customer_id, normalize_phone

logger = logging.getLogger(__name__)

MAX_SERVICE_TYPE_LENGTH = 50


class BookingTransaction:
    """
    Atomic transaction handler for creating bookings.

    This class encapsulates the complete booking flow:
    1. Validate the slot start and customer input
    2. Derive customer id, slot id and day key
    3. Check the professional exists and is active
    4. Reserve the slot (abort on conflict)
    5. Upsert the customer aggregate and write the booking
    6. Commit, then notify listeners
    """

    @staticmethod
    async def execute(
        professional_id: str,
        service_type: str,
        start_time: datetime | str,
        customer: CustomerInput | dict[str, Any],
    ) -> dict[str, Any]:
        """
        Execute atomic booking transaction.

        Args:
            professional_id: Professional receiving the booking
            service_type: Service being booked (e.g. "cabelo")
            start_time: Slot start (timezone-aware datetime or ISO 8601 string)
            customer: CustomerInput or dict with first_name, last_name, phone, birthday

        Returns:
            {
                "success": True,
                "booking_id": str,
                "customer_id": str,
                "professional_id": str,
                "slot_id": str,
                "day_key": str,
                "start_time": str,
                "status": "booked"
            }

        Raises:
            InvalidArgumentError: malformed input, closed day, outside service window
            NotFoundError: unknown professional
            FailedPreconditionError: inactive professional
            AlreadyExistsError: slot already reserved
            InternalError: store failure

        Example:
            >>> result = await BookingTransaction.execute(
            ...     professional_id="p1",
            ...     service_type="cabelo",
            ...     start_time="2024-03-04T10:00:00-03:00",
            ...     customer={"first_name": "Ana", "last_name": "Souza", "phone": "(11) 98765-4321"},
            ... )
            >>> result["slot_id"]
            '20240304_1000'
        """
        trace_id = f"create_booking:{professional_id}_{start_time}"
        logger.info(
            f"[{trace_id}] Starting booking transaction",
            extra={"professional_id": professional_id},
        )

        try:
            if not isinstance(service_type, str) or not service_type.strip():
                raise InvalidArgumentError("Service type is required", {"service_type": service_type})
            service_type = service_type.strip()
            if len(service_type) > MAX_SERVICE_TYPE_LENGTH:
                raise InvalidArgumentError(
                    f"Service type exceeds {MAX_SERVICE_TYPE_LENGTH} characters",
                    {"service_type_length": len(service_type)},
                )

            start = SlotValidator.require_bookable(start_time)
            customer_input = parse_customer_input(customer)
            phone = normalize_phone(customer_input.phone)
        except BookingError as e:
            logger.warning(
                f"[{trace_id}] Booking request rejected: {e.message}",
                extra={"professional_id": professional_id, "error_code": e.error_code},
            )
            raise

        customer_id = generate_customer_id(phone)
        slot_id = generate_slot_id(start)
        day_key = get_day_key(start)
        booking_id = generate_booking_id()

        trace_id = f"create_booking:{professional_id}/{slot_id}"

        async def work(session: AsyncSession) -> None:
            now = utcnow()

            await validate_professional(session, professional_id)
            await reserve_slot(session, professional_id, start, booking_id)

            # Customer row first: bookings.customer_id references it
            await record_booking(
                session,
                customer_id=customer_id,
                phone=phone,
                first_name=customer_input.first_name,
                last_name=customer_input.last_name,
                booked_at=now,
                birthday=customer_input.birthday,
            )
            await add_booking(
                session,
                booking_id=booking_id,
                customer_id=customer_id,
                professional_id=professional_id,
                service_type=service_type,
                start=start,
                first_name=customer_input.first_name,
                last_name=customer_input.last_name,
                phone=phone,
                created_at=now,
            )

        try:
            await run_in_transaction(work, operation="create_booking", trace_id=trace_id)
        except BookingError as e:
            logger.warning(
                f"[{trace_id}] Booking transaction aborted: {e.message}",
                extra={
                    "professional_id": professional_id,
                    "slot_id": slot_id,
                    "customer_id": customer_id,
                    "error_code": e.error_code,
                },
            )
            raise

        logger.info(
            f"[{trace_id}] Booking committed (customer phone {mask_phone(phone)})",
            extra={
                "booking_id": booking_id,
                "customer_id": customer_id,
                "professional_id": professional_id,
                "slot_id": slot_id,
            },
        )

        await dispatch(
            BookingEvent(
                name=BOOKING_CREATED,
                booking_id=booking_id,
                professional_id=professional_id,
                customer_id=customer_id,
                slot_id=slot_id,
                payload={"service_type": service_type, "start_time": start.isoformat()},
            )
        )

        return {
            "success": True,
            "booking_id": booking_id,
            "customer_id": customer_id,
            "professional_id": professional_id,
            "slot_id": slot_id,
            "day_key": day_key,
            "start_time": start.isoformat(),
            "status": BookingStatus.BOOKED.value,
        }
