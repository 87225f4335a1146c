"""
Booking and customer stores.

Row-level reads and lifecycle writes used by the booking transactions.
All functions run inside the caller's transaction.
"""
