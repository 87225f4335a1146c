"""
Slot Ledger - authoritative source of truth for conflict detection.

One row per (professional, slot id). The row's existence IS the reservation:
there is no "free" flag to flip, so two transactions can never both believe
they own a slot. Every function here runs inside the caller's transaction
(session.begin()) and never commits on its own.

Slots are only created or removed as a side effect of booking transactions
(reserve/release/move) or of explicit agenda blocks (block/unblock).
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Slot, SlotKind
from shared.business_hours_validator import canonicalize, generate_slot_id, get_day_key
from shared.errors import AlreadyExistsError, InternalError

logger = logging.getLogger(__name__)


async def get_slot(session: AsyncSession, professional_id: str, slot_id: str) -> Slot | None:
    """Read a slot row inside the current transaction."""
    return await session.get(Slot, (professional_id, slot_id))


async def reserve_slot(
    session: AsyncSession,
    professional_id: str,
    instant: datetime,
    booking_id: str,
) -> Slot:
    """
    Reserve the slot containing `instant` for a booking.

    Raises:
        AlreadyExistsError: the slot is already booked or blocked. The
            enclosing transaction must abort; nothing has been written.
    """
    start = canonicalize(instant)
    slot_id = generate_slot_id(start)

    existing = await get_slot(session, professional_id, slot_id)
    if existing is not None:
        logger.warning(
            f"Slot {slot_id} already taken ({existing.kind.value})",
            extra={"professional_id": professional_id, "slot_id": slot_id},
        )
        raise _slot_taken(professional_id, slot_id, existing.kind)

    slot = Slot(
        professional_id=professional_id,
        slot_id=slot_id,
        slot_start=start,
        day_key=get_day_key(start),
        kind=SlotKind.BOOKING,
        booking_id=booking_id,
    )
    session.add(slot)

    try:
        await session.flush()
    except IntegrityError as e:
        # A concurrent transaction inserted the same key after our read
        logger.warning(
            f"Slot {slot_id} taken by a concurrent transaction",
            extra={"professional_id": professional_id, "slot_id": slot_id},
        )
        raise _slot_taken(professional_id, slot_id, None) from e

    logger.debug(
        f"Slot {slot_id} reserved",
        extra={"professional_id": professional_id, "slot_id": slot_id, "booking_id": booking_id},
    )
    return slot


async def release_slot(
    session: AsyncSession,
    professional_id: str,
    instant: datetime,
    booking_id: str | None = None,
) -> None:
    """
    Delete the slot containing `instant`.

    Only called when the caller knows the slot exists. A missing slot, or one
    owned by another booking, means the ledger and the bookings disagree:
    that is reported as InternalError, never ignored.
    """
    slot_id = generate_slot_id(instant)
    slot = await get_slot(session, professional_id, slot_id)

    if slot is None:
        logger.error(
            f"Slot {slot_id} missing at release time",
            extra={"professional_id": professional_id, "slot_id": slot_id, "booking_id": booking_id},
        )
        raise InternalError(
            "Slot ledger is inconsistent with the booking",
            {"professional_id": professional_id, "slot_id": slot_id, "reason": "slot_missing"},
        )

    if booking_id is not None and slot.booking_id != booking_id:
        logger.error(
            f"Slot {slot_id} is owned by {slot.booking_id}, not {booking_id}",
            extra={"professional_id": professional_id, "slot_id": slot_id, "booking_id": booking_id},
        )
        raise InternalError(
            "Slot ledger is inconsistent with the booking",
            {"professional_id": professional_id, "slot_id": slot_id, "reason": "slot_owner_mismatch"},
        )

    await session.delete(slot)
    await session.flush()

    logger.debug(
        f"Slot {slot_id} released",
        extra={"professional_id": professional_id, "slot_id": slot_id, "booking_id": booking_id},
    )


async def move_slot(
    session: AsyncSession,
    professional_id: str,
    from_instant: datetime,
    to_instant: datetime,
    booking_id: str,
) -> Slot:
    """
    Move a booking's reservation: reserve the destination, then release the origin.

    Reserving first means the booking never holds zero slots mid-transaction;
    if the destination is taken the AlreadyExistsError aborts the whole
    transaction and the origin slot is untouched.
    """
    new_slot = await reserve_slot(session, professional_id, to_instant, booking_id)
    await release_slot(session, professional_id, from_instant, booking_id)
    return new_slot


async def block_slots(
    session: AsyncSession,
    professional_id: str,
    instants: list[datetime],
    reason: str,
) -> list[str]:
    """
    Write block slots for the given instants, skipping occupied ones.

    Returns:
        Slot ids actually blocked, in input order
    """
    created: list[str] = []

    for instant in instants:
        start = canonicalize(instant)
        slot_id = generate_slot_id(start)

        if slot_id in created or await get_slot(session, professional_id, slot_id) is not None:
            continue

        session.add(
            Slot(
                professional_id=professional_id,
                slot_id=slot_id,
                slot_start=start,
                day_key=get_day_key(start),
                kind=SlotKind.BLOCK,
                reason=reason,
            )
        )
        created.append(slot_id)

    await session.flush()
    return created


async def unblock_slots(session: AsyncSession, professional_id: str, slot_ids: list[str]) -> int:
    """
    Delete block slots among `slot_ids`. Booking slots are left alone.

    Returns:
        Number of block slots removed
    """
    if not slot_ids:
        return 0

    result = await session.execute(
        select(Slot).where(
            Slot.professional_id == professional_id,
            Slot.slot_id.in_(slot_ids),
            Slot.kind == SlotKind.BLOCK,
        )
    )
    blocks = list(result.scalars().all())

    for slot in blocks:
        await session.delete(slot)
    await session.flush()

    return len(blocks)


async def list_day_slots(session: AsyncSession, professional_id: str, day_key: str) -> list[Slot]:
    """Return every occupied slot of a professional on a business day, ordered by slot id."""
    result = await session.execute(
        select(Slot)
        .where(Slot.professional_id == professional_id, Slot.day_key == day_key)
        .order_by(Slot.slot_id.asc())
    )
    return list(result.scalars().all())


def _slot_taken(professional_id: str, slot_id: str, kind: SlotKind | None) -> AlreadyExistsError:
    return AlreadyExistsError(
        "This time slot has already been taken. Please choose another time.",
        {
            "professional_id": professional_id,
            "slot_id": slot_id,
            "occupied_by": kind.value if kind else None,
        },
    )
