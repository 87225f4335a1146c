"""
Slot Validator - Centralized validation for booking slot starts.

This module acts as the single source of truth for slot validation logic.
It orchestrates:
1. Structural validation (timestamp present and parseable)
2. Business hours validation (closed weekday)
3. Service window validation (open/close boundaries, slot granularity)

Used by create, reschedule and block operations before any store access.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from shared.business_hours_validator import (
    DAY_NAMES,
    canonicalize,
    is_closed_day,
    is_within_service_window,
)
from shared.config import get_settings
from shared.errors import BookingError, InvalidArgumentError

logger = logging.getLogger(__name__)


class ValidationResult(BaseModel):
    """Result of a slot validation operation."""
    valid: bool
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)
    start: Optional[datetime] = None

    def raise_for_error(self) -> None:
        """Raise the failure as InvalidArgumentError (no-op when valid)."""
        if not self.valid:
            raise InvalidArgumentError(
                self.error_message or "Invalid slot",
                {"reason": self.error_code, **self.details},
            )


class SlotValidator:
    """
    Centralized validator for booking slot starts.

    Usage:
        result = SlotValidator.validate_complete("2024-03-04T10:00:00-03:00")
        if not result.valid:
            print(result.error_message)

        start = SlotValidator.require_bookable(start_time)  # raises InvalidArgumentError
    """

    @staticmethod
    def validate_complete(start_time: datetime | str | None) -> ValidationResult:
        """
        Perform complete validation of a slot start.

        Checks:
        1. Structure (timestamp exists and is ISO 8601 / datetime)
        2. Business Hours (day is not the weekly closure)
        3. Service Window (inside [open, close], on a granularity boundary)

        Returns:
            ValidationResult; on success `start` holds the canonical local start
        """
        # 1. Structural Validation
        structure_valid, error_msg, dt = SlotValidator._validate_structure(start_time)
        if not structure_valid:
            return ValidationResult(
                valid=False,
                error_code="INVALID_STRUCTURE",
                error_message=error_msg,
            )

        # 2. Business Hours Validation (Closed Days)
        if is_closed_day(dt):
            day_name = DAY_NAMES[dt.weekday()]
            return ValidationResult(
                valid=False,
                error_code="CLOSED_DAY",
                error_message=f"The shop is closed on {day_name.capitalize()}s. Please choose another day.",
                details={"day_of_week": dt.weekday(), "day_name": day_name},
            )

        # 3. Service Window
        if not is_within_service_window(dt):
            settings = get_settings()
            return ValidationResult(
                valid=False,
                error_code="OUTSIDE_SERVICE_WINDOW",
                error_message=(
                    f"Appointments start every {settings.SLOT_GRANULARITY_MINUTES} minutes "
                    f"between {settings.BUSINESS_OPEN_TIME} and {settings.BUSINESS_CLOSE_TIME}."
                ),
                details={
                    "local_time": dt.strftime("%H:%M:%S"),
                    "open_time": settings.BUSINESS_OPEN_TIME,
                    "close_time": settings.BUSINESS_CLOSE_TIME,
                    "granularity_minutes": settings.SLOT_GRANULARITY_MINUTES,
                },
            )

        return ValidationResult(valid=True, start=dt)

    @staticmethod
    def require_bookable(start_time: datetime | str | None) -> datetime:
        """
        Validate a slot start and return it in the business timezone.

        Raises:
            InvalidArgumentError: malformed timestamp, closed day or outside the window
        """
        result = SlotValidator.validate_complete(start_time)
        if not result.valid:
            logger.warning(
                f"Slot start rejected: {result.error_code}",
                extra={"error_code": InvalidArgumentError.error_code},
            )
        result.raise_for_error()
        return canonicalize(result.start)

    @staticmethod
    def _validate_structure(start_time: datetime | str | None) -> tuple[bool, Optional[str], Optional[datetime]]:
        """
        Validate slot structure and parse datetime.

        Returns:
            Tuple (is_valid, error_message, parsed_datetime)
        """
        if start_time is None or start_time == "":
            return False, "The slot has no start time", None

        try:
            return True, None, canonicalize(start_time)
        except BookingError as e:
            return False, e.message, None
