"""
Atomic Transaction Handlers for the booking core.

Transaction handlers encapsulate multi-step operations that must execute
atomically (all succeed or all rollback) across the slot ledger, the booking
store and the customer aggregate store.

Key design principles:
1. Every handler runs through database.transaction.run_in_transaction
2. The slot row's existence is the reservation; conflicts abort the whole unit
3. Business faults are raised as BookingError subclasses and never retried
4. Exhaustive logging with trace_id for debugging
5. Listeners are notified only after commit

Transaction handlers:
- BookingTransaction: Create bookings
- CancellationTransaction: Cancel bookings and release their slot
- RescheduleTransaction: Move bookings to another slot
- StatusTransaction: Confirm / complete / no-show, notification delivery
"""

from booking.transactions.booking_transaction import BookingTransaction
from booking.transactions.cancellation_transaction import CancellationTransaction
from booking.transactions.reschedule_transaction import RescheduleTransaction
from booking.transactions.status_transaction import StatusTransaction

__all__ = [
    "BookingTransaction",
    "CancellationTransaction",
    "RescheduleTransaction",
    "StatusTransaction",
]
