"""
Booking validators.

Validators for business rules and constraints that must hold before (slot
validator) or inside (transaction validators) an atomic booking transaction.

Validators:
- SlotValidator: Slot start parses, is not on the closed day and lies in the service window
- validate_professional: Professional exists and is active
- validate_cancellable / validate_reschedulable / validate_status_transition: lifecycle rules
"""

from booking.validators.slot_validator import SlotValidator, ValidationResult
from booking.validators.transaction_validators import (
    validate_cancellable,
    validate_professional,
    validate_reschedulable,
    validate_status_transition,
)

__all__ = [
    "SlotValidator",
    "ValidationResult",
    "validate_cancellable",
    "validate_professional",
    "validate_reschedulable",
    "validate_status_transition",
]
