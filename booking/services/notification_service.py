"""
Post-commit booking notifications.

Transactions publish an event here only after their commit succeeded.
Listeners (WhatsApp sender, calendar mirror, admin feed...) are external
collaborators: a failing listener is logged and skipped, it never affects
the committed booking.

Usage:
    async def on_booking(event: BookingEvent) -> None:
        ...

    register_listener(on_booking)
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from database.models import utcnow

logger = logging.getLogger(__name__)

BOOKING_CREATED = "booking.created"
BOOKING_CANCELLED = "booking.cancelled"
BOOKING_RESCHEDULED = "booking.rescheduled"
BOOKING_STATUS_CHANGED = "booking.status_changed"


@dataclass(frozen=True)
class BookingEvent:
    """A committed change to a booking."""

    name: str
    booking_id: str
    professional_id: str
    customer_id: str
    slot_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)


BookingListener = Callable[[BookingEvent], Awaitable[None]]

_listeners: list[BookingListener] = []


def register_listener(listener: BookingListener) -> None:
    if listener not in _listeners:
        _listeners.append(listener)


def unregister_listener(listener: BookingListener) -> None:
    if listener in _listeners:
        _listeners.remove(listener)


def clear_listeners() -> None:
    _listeners.clear()


async def dispatch(event: BookingEvent) -> None:
    """
    Deliver an event to every registered listener, in registration order.

    Must only be called after the transaction that produced the event committed.
    """
    for listener in list(_listeners):
        try:
            await listener(event)
        except Exception as e:
            logger.warning(
                f"Notification listener {getattr(listener, '__name__', listener)!r} failed for {event.name}: {e}",
                extra={"booking_id": event.booking_id},
                exc_info=True,
            )
