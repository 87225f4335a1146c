"""
Centralized Business Hours Validation - Single Source of Truth.

Pure functions mapping instants onto the business calendar:
- canonicalize(): project any timestamp into the business timezone
- generate_slot_id(): fixed-width slot key (YYYYMMDD_HHmm) used as Slot primary key
- get_day_key(): YYYY-MM-DD calendar-day key used for range queries
- is_closed_day(): weekly closure check
- is_within_service_window(): open/close window and granularity check

ALL code checking if an instant is bookable MUST use these functions to ensure
consistency between the slot ledger, the validators and availability queries.

Usage:
    from shared.business_hours_validator import canonicalize, generate_slot_id

    start = canonicalize("2024-03-04T10:00:00-03:00")
    generate_slot_id(start)  # "20240304_1000"
"""

import logging
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from shared.config import get_settings
from shared.errors import InvalidArgumentError

logger = logging.getLogger(__name__)

DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

SLOT_ID_FORMAT = "%Y%m%d_%H%M"
DAY_KEY_FORMAT = "%Y-%m-%d"

# Marker for "use the configured closure day"
_CONFIGURED = object()


def get_business_tz() -> ZoneInfo:
    """Return the configured business timezone."""
    return _resolve_zone(None)


def _resolve_zone(zone: ZoneInfo | str | None) -> ZoneInfo:
    if isinstance(zone, ZoneInfo):
        return zone
    name = zone or get_settings().TIMEZONE
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidArgumentError(f"Unknown timezone: {name}", {"timezone": name}) from e


def canonicalize(timestamp: datetime | str, zone: ZoneInfo | str | None = None) -> datetime:
    """
    Project a timestamp into the business timezone.

    Args:
        timestamp: timezone-aware datetime or ISO 8601 string. Naive values are
            interpreted as business-local wall time.
        zone: Optional override of the business timezone

    Returns:
        Timezone-aware datetime expressed in the business timezone

    Raises:
        InvalidArgumentError: malformed or unsupported timestamp

    Example:
        >>> canonicalize("2024-03-04T13:00:00Z").isoformat()
        '2024-03-04T10:00:00-03:00'
    """
    tz = _resolve_zone(zone)

    if isinstance(timestamp, str):
        try:
            timestamp = datetime.fromisoformat(timestamp.strip())
        except ValueError as e:
            raise InvalidArgumentError(
                f"Invalid timestamp format: {timestamp!r}",
                {"timestamp": timestamp},
            ) from e
    elif not isinstance(timestamp, datetime):
        raise InvalidArgumentError(
            f"Expected datetime or ISO 8601 string, got {type(timestamp).__name__}",
            {"timestamp": repr(timestamp)},
        )

    if timestamp.tzinfo is None or timestamp.utcoffset() is None:
        return timestamp.replace(tzinfo=tz)

    return timestamp.astimezone(tz)


def generate_slot_id(instant: datetime | str) -> str:
    """
    Build the slot key for an instant: local YYYYMMDD_HHmm.

    Stable across recomputation and injective over slot-aligned instants.

    Example:
        >>> generate_slot_id("2024-03-04T10:00:00-03:00")
        '20240304_1000'
    """
    return canonicalize(instant).strftime(SLOT_ID_FORMAT)


def get_day_key(instant: datetime | str) -> str:
    """Return the business-local calendar day (YYYY-MM-DD) of an instant."""
    return canonicalize(instant).strftime(DAY_KEY_FORMAT)


def parse_day_key(day_key: str) -> date:
    """Parse a YYYY-MM-DD day key."""
    try:
        return datetime.strptime(day_key, DAY_KEY_FORMAT).date()
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(
            f"Invalid day key: {day_key!r} (expected YYYY-MM-DD)",
            {"day_key": day_key},
        ) from e


def is_closed_day(instant: datetime | str | date, closed_weekday: int | None | object = _CONFIGURED) -> bool:
    """
    Check if an instant falls on the weekly closure day.

    Args:
        instant: datetime/ISO string (projected to business timezone) or a plain date
        closed_weekday: Python weekday (0=Monday ... 6=Sunday). Defaults to the
            configured CLOSED_WEEKDAY; None means no weekly closure.

    Example:
        >>> is_closed_day("2024-03-03T10:00:00-03:00")  # Sunday
        True
    """
    if closed_weekday is _CONFIGURED:
        closed_weekday = get_settings().CLOSED_WEEKDAY
    if closed_weekday is None:
        return False

    if isinstance(instant, date) and not isinstance(instant, datetime):
        weekday = instant.weekday()
    else:
        weekday = canonicalize(instant).weekday()

    return weekday == closed_weekday


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def is_within_service_window(
    instant: datetime | str,
    open_time: time | None = None,
    close_time: time | None = None,
    granularity_minutes: int | None = None,
) -> bool:
    """
    Check that a local start time is a bookable slot start.

    True iff the local time of day lies in [open_time, close_time] (closing
    boundary inclusive) and falls exactly on a granularity boundary
    (no seconds, local minute a multiple of the granularity).
    Granularity is expected to divide 60; see Settings.SLOT_GRANULARITY_MINUTES.

    Example:
        >>> is_within_service_window("2024-03-04T18:30:00-03:00")
        True
        >>> is_within_service_window("2024-03-04T18:31:00-03:00")
        False
    """
    settings = get_settings()
    open_time = open_time or settings.open_time
    close_time = close_time or settings.close_time
    granularity = granularity_minutes or settings.SLOT_GRANULARITY_MINUTES

    local = canonicalize(instant)
    if local.second or local.microsecond:
        return False

    if local.minute % granularity != 0:
        return False

    return _minutes(open_time) <= _minutes(local.time()) <= _minutes(close_time)


def generate_day_slots(day: date | str) -> list[datetime]:
    """
    Generate every bookable slot start of a business day.

    Returns an empty list on the closed day.

    Example:
        >>> [s.strftime("%H:%M") for s in generate_day_slots("2024-03-04")][:3]
        ['08:00', '08:30', '09:00']
    """
    if isinstance(day, str):
        day = parse_day_key(day)

    if is_closed_day(day):
        return []

    settings = get_settings()
    tz = get_business_tz()
    step = timedelta(minutes=settings.SLOT_GRANULARITY_MINUTES)

    current = datetime.combine(day, settings.open_time, tzinfo=tz)
    last = datetime.combine(day, settings.close_time, tzinfo=tz)

    slots: list[datetime] = []
    while current <= last:
        if is_within_service_window(current):
            slots.append(current)
        current += step

    return slots


def generate_slots_between(start: datetime | str, end: datetime | str) -> list[datetime]:
    """
    Generate granularity-spaced instants in [start, end).

    Steps are taken in absolute time and projected into the business timezone.
    """
    start = canonicalize(start)
    end = canonicalize(end)
    step = timedelta(minutes=get_settings().SLOT_GRANULARITY_MINUTES)

    slots: list[datetime] = []
    current = start
    while current < end:
        slots.append(current)
        current = canonicalize(current + step)

    return slots
