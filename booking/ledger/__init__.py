"""
Slot ledger.

Per-professional slot rows; the row's existence is the reservation.
"""
