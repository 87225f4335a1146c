"""
Booking services module.

Services:
- availability_service: Day availability, agenda blocks
- notification_service: Post-commit booking event listeners
"""

from booking.services.availability_service import block_slots, get_day_availability, unblock_slots
from booking.services.notification_service import (
    BookingEvent,
    clear_listeners,
    dispatch,
    register_listener,
    unregister_listener,
)

__all__ = [
    "BookingEvent",
    "block_slots",
    "clear_listeners",
    "dispatch",
    "get_day_availability",
    "register_listener",
    "unblock_slots",
    "unregister_listener",
]
