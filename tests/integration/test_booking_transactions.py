"""
Integration tests for the booking transactions against a real SQLite store.

Tests cover:
- CreateBooking: success path, validation failures, repeat customers
- CancelBooking: slot release, stats decrement, redundant cancellation
- RescheduleBooking: slot move, audit fields, conflicts and preconditions
- StatusTransaction: confirm / complete / no-show and notification delivery
- Post-commit listener dispatch
"""

from datetime import UTC, date, datetime
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from booking.services.notification_service import (
    BOOKING_CANCELLED,
    BOOKING_CREATED,
    BOOKING_RESCHEDULED,
    BOOKING_STATUS_CHANGED,
    register_listener,
)
from booking.transactions import (
    BookingTransaction,
    CancellationTransaction,
    RescheduleTransaction,
    StatusTransaction,
)
from database.connection import AsyncSessionLocal
from database.models import Booking, BookingStatus, Customer, NotificationStatus, Slot, SlotKind
from shared.errors import (
    AlreadyExistsError,
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
)
from shared.phone_identity import generate_customer_id

pytestmark = pytest.mark.integration

MONDAY_10 = "2024-03-04T10:00:00-03:00"
MONDAY_11 = "2024-03-04T11:00:00-03:00"
SUNDAY_10 = "2024-03-03T10:00:00-03:00"

CUSTOMER_A_ID = generate_customer_id("+551187654321")


async def load(model, key):
    async with AsyncSessionLocal() as session:
        return await session.get(model, key)


async def count(model) -> int:
    async with AsyncSessionLocal() as session:
        return await session.scalar(select(func.count()).select_from(model))


# ============================================================================
# CreateBooking
# ============================================================================


class TestCreateBooking:
    @pytest.mark.asyncio
    async def test_create_success(self, professionals, customer_a):
        result = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)

        assert result["success"] is True
        assert result["slot_id"] == "20240304_1000"
        assert result["day_key"] == "2024-03-04"
        assert result["status"] == "booked"
        assert result["customer_id"] == CUSTOMER_A_ID

        booking = await load(Booking, result["booking_id"])
        assert booking.status == BookingStatus.BOOKED
        assert booking.notification_status == NotificationStatus.PENDING
        assert booking.slot_start == datetime(2024, 3, 4, 13, 0, tzinfo=UTC)
        assert booking.customer_phone == "+551187654321"
        assert booking.service_type == "cabelo"

        slot = await load(Slot, ("p1", "20240304_1000"))
        assert slot.kind == SlotKind.BOOKING
        assert slot.booking_id == result["booking_id"]
        assert slot.day_key == "2024-03-04"

        customer = await load(Customer, CUSTOMER_A_ID)
        assert customer.total_bookings == 1
        assert customer.first_booking_at is not None
        assert customer.last_booking_at == customer.first_booking_at

    @pytest.mark.asyncio
    async def test_closing_slot_is_bookable(self, professionals, customer_a):
        result = await BookingTransaction.execute("p1", "barba", "2024-03-04T18:30:00-03:00", customer_a)
        assert result["slot_id"] == "20240304_1830"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "start_time",
        [SUNDAY_10, "2024-03-04T18:31:00-03:00", "2024-03-04T07:30:00-03:00", "2024-03-04T10:15:00-03:00", "garbage"],
    )
    async def test_invalid_start_rejected_without_writes(self, professionals, customer_a, start_time):
        with pytest.raises(InvalidArgumentError):
            await BookingTransaction.execute("p1", "cabelo", start_time, customer_a)

        assert await count(Booking) == 0
        assert await count(Slot) == 0
        assert await count(Customer) == 0

    @pytest.mark.asyncio
    async def test_unknown_professional(self, professionals, customer_a):
        with pytest.raises(NotFoundError):
            await BookingTransaction.execute("ghost", "cabelo", MONDAY_10, customer_a)
        assert await count(Slot) == 0

    @pytest.mark.asyncio
    async def test_inactive_professional(self, professionals, customer_a):
        with pytest.raises(FailedPreconditionError):
            await BookingTransaction.execute("p3", "cabelo", MONDAY_10, customer_a)
        assert await count(Customer) == 0

    @pytest.mark.asyncio
    async def test_invalid_phone(self, professionals):
        with pytest.raises(InvalidArgumentError):
            await BookingTransaction.execute(
                "p1", "cabelo", MONDAY_10, {"first_name": "Ana", "last_name": "Souza", "phone": "12345"}
            )

    @pytest.mark.asyncio
    async def test_missing_service_type(self, professionals, customer_a):
        with pytest.raises(InvalidArgumentError):
            await BookingTransaction.execute("p1", "  ", MONDAY_10, customer_a)

    @pytest.mark.asyncio
    async def test_overlong_service_type_rejected_without_writes(self, professionals, customer_a):
        with pytest.raises(InvalidArgumentError) as exc_info:
            await BookingTransaction.execute("p1", "c" * 51, MONDAY_10, customer_a)

        assert exc_info.value.details["service_type_length"] == 51
        assert await count(Slot) == 0
        assert await count(Customer) == 0

    @pytest.mark.asyncio
    async def test_overlong_international_phone_rejected(self, professionals):
        with pytest.raises(InvalidArgumentError):
            await BookingTransaction.execute(
                "p1", "cabelo", MONDAY_10, {"first_name": "Ana", "last_name": "Souza", "phone": "+55 11 98765-4321 0000"}
            )
        assert await count(Customer) == 0

    @pytest.mark.asyncio
    async def test_same_slot_other_professional_is_free(self, professionals, customer_a, customer_b):
        await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)
        result = await BookingTransaction.execute("p2", "cabelo", MONDAY_10, customer_b)
        assert result["slot_id"] == "20240304_1000"
        assert await count(Slot) == 2

    @pytest.mark.asyncio
    async def test_repeat_customer_updates_aggregate(self, professionals, customer_a):
        await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)
        await BookingTransaction.execute(
            "p1",
            "barba",
            MONDAY_11,
            {"first_name": "Ana Paula", "last_name": "Souza Lima", "phone": "011 98765 4321", "birthday": "1990-05-17"},
        )

        customer = await load(Customer, CUSTOMER_A_ID)
        assert customer.total_bookings == 2
        assert customer.first_name == "Ana Paula"
        assert customer.last_name == "Souza Lima"
        assert customer.birthday == date(1990, 5, 17)
        assert customer.last_booking_at >= customer.first_booking_at

    @pytest.mark.asyncio
    async def test_initial_does_not_overwrite_last_name(self, professionals, customer_a):
        await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)
        await BookingTransaction.execute(
            "p1", "barba", MONDAY_11, {"first_name": "Aninha", "last_name": "S.", "phone": customer_a["phone"]}
        )

        customer = await load(Customer, CUSTOMER_A_ID)
        assert customer.total_bookings == 2
        assert customer.first_name == "Ana"
        assert customer.last_name == "Souza"

    @pytest.mark.asyncio
    async def test_created_event_dispatched_after_commit(self, professionals, customer_a):
        listener = AsyncMock()
        register_listener(listener)

        result = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)

        listener.assert_awaited_once()
        event = listener.await_args.args[0]
        assert event.name == BOOKING_CREATED
        assert event.booking_id == result["booking_id"]
        assert event.slot_id == "20240304_1000"

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_affect_booking(self, professionals, customer_a):
        register_listener(AsyncMock(side_effect=RuntimeError("whatsapp down")))

        result = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)

        assert result["success"] is True
        assert await load(Booking, result["booking_id"]) is not None


# ============================================================================
# CancelBooking
# ============================================================================


class TestCancelBooking:
    @pytest.mark.asyncio
    async def test_cancel_releases_slot_and_decrements(self, professionals, customer_a):
        created = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)

        result = await CancellationTransaction.execute(created["booking_id"])

        assert result["success"] is True
        assert result["status"] == "cancelled"
        assert result["released_slot_id"] == "20240304_1000"

        booking = await load(Booking, created["booking_id"])
        assert booking.status == BookingStatus.CANCELLED
        assert booking.cancelled_at is not None
        assert await load(Slot, ("p1", "20240304_1000")) is None

        customer = await load(Customer, CUSTOMER_A_ID)
        assert customer.total_bookings == 0

    @pytest.mark.asyncio
    async def test_cancelled_slot_can_be_rebooked(self, professionals, customer_a, customer_b):
        created = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)
        await CancellationTransaction.execute(created["booking_id"])

        result = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_b)
        assert result["slot_id"] == "20240304_1000"

    @pytest.mark.asyncio
    async def test_unknown_booking(self, professionals):
        with pytest.raises(NotFoundError):
            await CancellationTransaction.execute("00000000-0000-0000-0000-000000000000")

    @pytest.mark.asyncio
    async def test_cancel_completed_booking_releases_slot(self, professionals, customer_a):
        created = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)
        await StatusTransaction.complete(created["booking_id"])

        await CancellationTransaction.execute(created["booking_id"])

        assert await load(Slot, ("p1", "20240304_1000")) is None
        customer = await load(Customer, CUSTOMER_A_ID)
        assert customer.total_bookings == 0
        assert customer.total_completed == 1

    @pytest.mark.asyncio
    async def test_cancel_rescheduled_status_leaves_slot_alone(self, professionals, customer_a, customer_b):
        created = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)
        # A booking stored in the rescheduled status no longer owns its slot
        async with AsyncSessionLocal() as session:
            async with session.begin():
                booking = await session.get(Booking, created["booking_id"])
                booking.status = BookingStatus.RESCHEDULED
                await session.delete(await session.get(Slot, ("p1", "20240304_1000")))
        other = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_b)

        result = await CancellationTransaction.execute(created["booking_id"])

        assert result["released_slot_id"] is None
        slot = await load(Slot, ("p1", "20240304_1000"))
        assert slot.booking_id == other["booking_id"]
        booking = await load(Booking, created["booking_id"])
        assert booking.status == BookingStatus.CANCELLED
        customer = await load(Customer, CUSTOMER_A_ID)
        assert customer.total_bookings == 0

    @pytest.mark.asyncio
    async def test_cancel_event_dispatched(self, professionals, customer_a):
        created = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)
        listener = AsyncMock()
        register_listener(listener)

        await CancellationTransaction.execute(created["booking_id"])

        assert listener.await_args.args[0].name == BOOKING_CANCELLED


# ============================================================================
# RescheduleBooking
# ============================================================================


class TestRescheduleBooking:
    @pytest.mark.asyncio
    async def test_reschedule_moves_slot(self, professionals, customer_a):
        created = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)

        result = await RescheduleTransaction.execute(created["booking_id"], MONDAY_11)

        assert result["success"] is True
        assert result["previous_slot_id"] == "20240304_1000"
        assert result["slot_id"] == "20240304_1100"
        assert result["rescheduled_from"] == created["booking_id"]

        assert await load(Slot, ("p1", "20240304_1000")) is None
        new_slot = await load(Slot, ("p1", "20240304_1100"))
        assert new_slot.booking_id == created["booking_id"]

        booking = await load(Booking, created["booking_id"])
        assert booking.slot_start == datetime(2024, 3, 4, 14, 0, tzinfo=UTC)
        assert booking.slot_id == "20240304_1100"
        assert booking.rescheduled_from == created["booking_id"]
        assert booking.previous_slot_start == datetime(2024, 3, 4, 13, 0, tzinfo=UTC)
        assert booking.status == BookingStatus.BOOKED

        customer = await load(Customer, CUSTOMER_A_ID)
        assert customer.total_bookings == 1

    @pytest.mark.asyncio
    async def test_reschedule_across_days(self, professionals, customer_a):
        created = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)

        result = await RescheduleTransaction.execute(created["booking_id"], "2024-03-05T09:00:00-03:00")

        assert result["day_key"] == "2024-03-05"
        booking = await load(Booking, created["booking_id"])
        assert booking.day_key == "2024-03-05"

    @pytest.mark.asyncio
    async def test_destination_occupied_leaves_booking_untouched(self, professionals, customer_a, customer_b):
        first = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)
        await BookingTransaction.execute("p1", "cabelo", MONDAY_11, customer_b)

        with pytest.raises(AlreadyExistsError):
            await RescheduleTransaction.execute(first["booking_id"], MONDAY_11)

        original_slot = await load(Slot, ("p1", "20240304_1000"))
        assert original_slot is not None
        assert original_slot.booking_id == first["booking_id"]

        booking = await load(Booking, first["booking_id"])
        assert booking.slot_start == datetime(2024, 3, 4, 13, 0, tzinfo=UTC)
        assert booking.rescheduled_from is None

    @pytest.mark.asyncio
    async def test_same_slot_rejected(self, professionals, customer_a):
        created = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)

        with pytest.raises(AlreadyExistsError):
            await RescheduleTransaction.execute(created["booking_id"], MONDAY_10)

        assert await load(Slot, ("p1", "20240304_1000")) is not None

    @pytest.mark.asyncio
    async def test_destination_on_closed_day(self, professionals, customer_a):
        created = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)

        with pytest.raises(InvalidArgumentError):
            await RescheduleTransaction.execute(created["booking_id"], SUNDAY_10)

    @pytest.mark.asyncio
    async def test_cancelled_booking_cannot_move(self, professionals, customer_a):
        created = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)
        await CancellationTransaction.execute(created["booking_id"])

        with pytest.raises(FailedPreconditionError):
            await RescheduleTransaction.execute(created["booking_id"], MONDAY_11)

        assert await load(Slot, ("p1", "20240304_1100")) is None

    @pytest.mark.asyncio
    async def test_unknown_booking(self, professionals):
        with pytest.raises(NotFoundError):
            await RescheduleTransaction.execute("00000000-0000-0000-0000-000000000000", MONDAY_11)

    @pytest.mark.asyncio
    async def test_reschedule_event_dispatched(self, professionals, customer_a):
        created = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)
        listener = AsyncMock()
        register_listener(listener)

        await RescheduleTransaction.execute(created["booking_id"], MONDAY_11)

        event = listener.await_args.args[0]
        assert event.name == BOOKING_RESCHEDULED
        assert event.payload["previous_slot_id"] == "20240304_1000"


# ============================================================================
# Status transitions
# ============================================================================


class TestStatusTransaction:
    @pytest.mark.asyncio
    async def test_confirm(self, professionals, customer_a):
        created = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)

        result = await StatusTransaction.confirm(created["booking_id"])

        assert result == {
            "success": True,
            "booking_id": created["booking_id"],
            "previous_status": "booked",
            "status": "confirmed",
        }
        booking = await load(Booking, created["booking_id"])
        assert booking.confirmed_at is not None

    @pytest.mark.asyncio
    async def test_complete_updates_stats_and_keeps_slot(self, professionals, customer_a):
        created = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)
        await StatusTransaction.confirm(created["booking_id"])

        await StatusTransaction.complete(created["booking_id"])

        booking = await load(Booking, created["booking_id"])
        assert booking.status == BookingStatus.COMPLETED
        assert booking.completed_at is not None
        assert await load(Slot, ("p1", "20240304_1000")) is not None

        customer = await load(Customer, CUSTOMER_A_ID)
        assert customer.total_completed == 1
        assert customer.last_completed_at is not None
        assert customer.total_bookings == 1

    @pytest.mark.asyncio
    async def test_no_show_counts(self, professionals, customer_a):
        created = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)

        await StatusTransaction.mark_no_show(created["booking_id"])

        booking = await load(Booking, created["booking_id"])
        assert booking.status == BookingStatus.NO_SHOW
        assert booking.no_show_at is not None
        customer = await load(Customer, CUSTOMER_A_ID)
        assert customer.no_show_count == 1

    @pytest.mark.asyncio
    async def test_confirm_twice_rejected(self, professionals, customer_a):
        created = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)
        await StatusTransaction.confirm(created["booking_id"])

        with pytest.raises(FailedPreconditionError):
            await StatusTransaction.confirm(created["booking_id"])

    @pytest.mark.asyncio
    async def test_cancelled_booking_is_frozen(self, professionals, customer_a):
        created = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)
        await CancellationTransaction.execute(created["booking_id"])

        with pytest.raises(FailedPreconditionError):
            await StatusTransaction.complete(created["booking_id"])

        customer = await load(Customer, CUSTOMER_A_ID)
        assert customer.total_completed == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["cancelled", "booked", "rescheduled", "archived"])
    async def test_status_not_settable(self, professionals, customer_a, status):
        created = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)

        with pytest.raises(InvalidArgumentError):
            await StatusTransaction.execute(created["booking_id"], status)

    @pytest.mark.asyncio
    async def test_status_event_dispatched(self, professionals, customer_a):
        created = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)
        listener = AsyncMock()
        register_listener(listener)

        await StatusTransaction.execute(created["booking_id"], "confirmed")

        event = listener.await_args.args[0]
        assert event.name == BOOKING_STATUS_CHANGED
        assert event.payload == {"previous_status": "booked", "status": "confirmed"}

    @pytest.mark.asyncio
    async def test_mark_notification_sent(self, professionals, customer_a):
        created = await BookingTransaction.execute("p1", "cabelo", MONDAY_10, customer_a)

        result = await StatusTransaction.mark_notification_sent(created["booking_id"])

        assert result["notification_status"] == "sent"
        booking = await load(Booking, created["booking_id"])
        assert booking.notification_status == NotificationStatus.SENT
        customer = await load(Customer, CUSTOMER_A_ID)
        assert customer.last_contact_at is not None
