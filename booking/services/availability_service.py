"""
DB-First Availability Service.

Agenda operations over the slot ledger, each one atomic:
- get_day_availability(): booked / blocked / free slot ids of a business day
- block_slots(): close a time range of a professional's agenda
- unblock_slots(): reopen previously blocked slots (booking slots are never touched)

The ledger is read on every call. Slot existence is never cached in process:
a stale "free" answer is exactly how a double booking starts.

Usage:
    from booking.services.availability_service import block_slots, get_day_availability

    await block_slots("p1", "2024-03-04T12:00:00-03:00", "2024-03-04T13:30:00-03:00", "Lunch")
    availability = await get_day_availability("p1", "2024-03-04")
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from booking.ledger import slot_ledger
from booking.validators.transaction_validators import validate_professional
from database.models import SlotKind
from database.transaction import run_in_transaction
from shared.business_hours_validator import (
    canonicalize,
    generate_day_slots,
    generate_slot_id,
    generate_slots_between,
    is_closed_day,
    is_within_service_window,
    parse_day_key,
)
from shared.errors import BookingError, InvalidArgumentError

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_REASON = "Blocked"


async def get_day_availability(professional_id: str, day_key: str) -> dict[str, Any]:
    """
    Describe one business day of a professional's agenda.

    Returns:
        {
            "success": True,
            "professional_id": str,
            "day_key": str,
            "closed": bool,
            "booked": [slot_id, ...],
            "blocked": [slot_id, ...],
            "free": [slot_id, ...]    # bookable slots not in the ledger
        }
    """
    day = parse_day_key(day_key)
    trace_id = f"day_availability:{professional_id}/{day_key}"

    async def work(session: AsyncSession) -> list:
        await validate_professional(session, professional_id)
        return await slot_ledger.list_day_slots(session, professional_id, day_key)

    try:
        occupied = await run_in_transaction(work, operation="day_availability", trace_id=trace_id)
    except BookingError as e:
        logger.warning(
            f"[{trace_id}] Availability query rejected: {e.message}",
            extra={"professional_id": professional_id, "error_code": e.error_code},
        )
        raise

    booked = [s.slot_id for s in occupied if s.kind == SlotKind.BOOKING]
    blocked = [s.slot_id for s in occupied if s.kind == SlotKind.BLOCK]
    taken = set(booked) | set(blocked)
    free = [slot_id for slot_id in map(generate_slot_id, generate_day_slots(day)) if slot_id not in taken]

    return {
        "success": True,
        "professional_id": professional_id,
        "day_key": day_key,
        "closed": is_closed_day(day),
        "booked": booked,
        "blocked": blocked,
        "free": free,
    }


async def block_slots(
    professional_id: str,
    start_time: datetime | str,
    end_time: datetime | str,
    reason: str | None = None,
) -> dict[str, Any]:
    """
    Block every bookable slot in [start_time, end_time).

    Steps on the closed day or outside the service window are skipped, and so
    are slots already occupied by a booking or another block.

    Returns:
        {"success": True, "professional_id": str, "blocked_slot_ids": [str, ...]}

    Raises:
        InvalidArgumentError: malformed bounds or end_time <= start_time
        NotFoundError / FailedPreconditionError: unknown or inactive professional
    """
    trace_id = f"block_slots:{professional_id}_{start_time}"

    try:
        start = canonicalize(start_time)
        end = canonicalize(end_time)
        if end <= start:
            raise InvalidArgumentError(
                "End time must be after start time",
                {"start_time": start.isoformat(), "end_time": end.isoformat()},
            )
    except BookingError as e:
        logger.warning(
            f"[{trace_id}] Block request rejected: {e.message}",
            extra={"professional_id": professional_id, "error_code": e.error_code},
        )
        raise

    instants = [
        instant
        for instant in generate_slots_between(start, end)
        if not is_closed_day(instant) and is_within_service_window(instant)
    ]
    reason = (reason or "").strip() or DEFAULT_BLOCK_REASON

    async def work(session: AsyncSession) -> list[str]:
        await validate_professional(session, professional_id)
        return await slot_ledger.block_slots(session, professional_id, instants, reason)

    created = await run_in_transaction(work, operation="block_slots", trace_id=trace_id)

    logger.info(
        f"[{trace_id}] Blocked {len(created)} of {len(instants)} candidate slots",
        extra={"professional_id": professional_id},
    )

    return {
        "success": True,
        "professional_id": professional_id,
        "blocked_slot_ids": created,
    }


async def unblock_slots(professional_id: str, slot_ids: list[str]) -> dict[str, Any]:
    """
    Remove block slots. Ids that are bookings or free are ignored.

    Returns:
        {"success": True, "professional_id": str, "unblocked_count": int}
    """
    trace_id = f"unblock_slots:{professional_id}"

    if not isinstance(slot_ids, list) or not all(isinstance(s, str) for s in slot_ids):
        raise InvalidArgumentError("slot_ids must be a list of slot ids", {"slot_ids": repr(slot_ids)})

    async def work(session: AsyncSession) -> int:
        return await slot_ledger.unblock_slots(session, professional_id, slot_ids)

    count = await run_in_transaction(work, operation="unblock_slots", trace_id=trace_id)

    logger.info(
        f"[{trace_id}] Unblocked {count} slots",
        extra={"professional_id": professional_id},
    )

    return {
        "success": True,
        "professional_id": professional_id,
        "unblocked_count": count,
    }
