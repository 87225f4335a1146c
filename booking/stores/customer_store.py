"""
Customer Aggregate Store - rolling statistics per canonical phone.

Stats are mutated only inside the transaction that creates, cancels or
finalizes one of the customer's bookings, so total_bookings always equals
the number of the customer's bookings that are not cancelled.
"""

import logging
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Customer
from database.transaction import StoreConflictError
from shared.errors import InternalError
from shared.logging_config import mask_phone

logger = logging.getLogger(__name__)


def is_initial(last_name: str | None) -> bool:
    """
    Check if a last name is just an initial ("S.").

    Initials are what customers type when they do not want to give their full
    name; they never overwrite a full last name already on file.
    """
    return bool(last_name) and len(last_name) == 2 and last_name.endswith(".")


async def get_customer(session: AsyncSession, customer_id: str) -> Customer | None:
    return await session.get(Customer, customer_id)


async def _require_customer(session: AsyncSession, customer_id: str) -> Customer:
    customer = await get_customer(session, customer_id)
    if customer is None:
        logger.error(
            f"Customer {customer_id} referenced by a booking does not exist",
            extra={"customer_id": customer_id},
        )
        raise InternalError(
            "Customer record is missing for this booking",
            {"customer_id": customer_id, "reason": "customer_missing"},
        )
    return customer


async def record_booking(
    session: AsyncSession,
    customer_id: str,
    phone: str,
    first_name: str,
    last_name: str,
    booked_at: datetime,
    birthday: date | None = None,
) -> Customer:
    """
    Upsert the customer for a new booking.

    New customers start with total_bookings = 1. Existing customers get
    total_bookings incremented, last_booking_at refreshed and their identity
    refreshed (unless the new last name is only an initial).

    Raises:
        StoreConflictError: a concurrent transaction created the same customer
            first; the runner retries and the retry takes the update path.
    """
    customer = await get_customer(session, customer_id)

    if customer is None:
        customer = Customer(
            id=customer_id,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            birthday=birthday,
            total_bookings=1,
            total_completed=0,
            no_show_count=0,
            first_booking_at=booked_at,
            last_booking_at=booked_at,
        )
        session.add(customer)

        try:
            await session.flush()
        except IntegrityError as e:
            logger.warning(
                f"Customer {customer_id} created concurrently",
                extra={"customer_id": customer_id},
            )
            raise StoreConflictError(f"customer {customer_id} already exists") from e

        logger.info(
            f"New customer created (phone {mask_phone(phone)})",
            extra={"customer_id": customer_id},
        )
        return customer

    customer.total_bookings += 1
    customer.last_booking_at = booked_at
    if customer.first_booking_at is None:
        customer.first_booking_at = booked_at

    if not is_initial(last_name):
        customer.first_name = first_name
        customer.last_name = last_name
    if birthday is not None:
        customer.birthday = birthday

    await session.flush()
    return customer


async def record_cancellation(session: AsyncSession, customer_id: str) -> Customer:
    """Undo the booking count of a cancelled booking."""
    customer = await _require_customer(session, customer_id)

    if customer.total_bookings <= 0:
        logger.error(
            f"Customer {customer_id} has no bookings left to cancel",
            extra={"customer_id": customer_id},
        )
        raise InternalError(
            "Customer statistics are inconsistent with the booking",
            {"customer_id": customer_id, "reason": "total_bookings_underflow"},
        )

    customer.total_bookings -= 1
    await session.flush()
    return customer


async def record_completed(session: AsyncSession, customer_id: str, completed_at: datetime) -> Customer:
    customer = await _require_customer(session, customer_id)
    customer.total_completed += 1
    customer.last_completed_at = completed_at
    await session.flush()
    return customer


async def record_no_show(session: AsyncSession, customer_id: str) -> Customer:
    customer = await _require_customer(session, customer_id)
    customer.no_show_count += 1
    await session.flush()
    return customer


async def record_contact(session: AsyncSession, customer_id: str, contacted_at: datetime) -> Customer:
    customer = await _require_customer(session, customer_id)
    customer.last_contact_at = contacted_at
    await session.flush()
    return customer
