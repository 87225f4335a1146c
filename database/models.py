"""
SQLAlchemy ORM models for the booking core tables.

This module defines the core tables:
- professionals: Barbers taking appointments (existence + active flag)
- customers: Customer aggregate keyed by the phone-derived customer id
- bookings: Appointment records with status lifecycle and reschedule audit
- slots: Per-professional slot ledger; the row's existence IS the reservation

All models use:
- String primary keys (generated UUIDs for bookings, derived keys elsewhere)
- TIMESTAMP WITH TIME ZONE stored as UTC
- Portable column types (PostgreSQL in production, SQLite in tests)
"""

from datetime import UTC, date, datetime
from enum import Enum as PyEnum
from uuid import uuid4

from sqlalchemy import (
    DATE,
    TIMESTAMP,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

# ============================================================================
# Base Class
# ============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def utcnow() -> datetime:
    return datetime.now(UTC)


def generate_booking_id() -> str:
    return str(uuid4())


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp normalized to UTC.

    Drivers without native timezone support hand back naive values; those
    are read as UTC, which is what was written.
    """

    impl = TIMESTAMP(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("UTCDateTime requires timezone-aware datetimes")
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


def _enum_values(enum_cls) -> list[str]:
    return [e.value for e in enum_cls]


# ============================================================================
# Enums
# ============================================================================


class BookingStatus(str, PyEnum):
    """Booking lifecycle status."""

    BOOKED = "booked"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"

    def __str__(self):
        return self.value


# Statuses that hold exactly one slot
LIVE_BOOKING_STATUSES = frozenset({BookingStatus.BOOKED, BookingStatus.CONFIRMED})


class NotificationStatus(str, PyEnum):
    """Delivery state of the booking confirmation message."""

    PENDING = "pending"
    SENT = "sent"


class SlotKind(str, PyEnum):
    """What occupies a slot."""

    BOOKING = "booking"
    BLOCK = "block"


# ============================================================================
# Core Models
# ============================================================================


class Professional(Base):
    """
    Professional model - Barbers whose agenda is partitioned into slots.

    Only active professionals can receive new bookings.
    """

    __tablename__ = "professionals"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Professional(id='{self.id}', name='{self.name}', active={self.is_active})>"


class Customer(Base):
    """
    Customer model - Rolling statistics per canonical phone.

    The primary key is derived from the canonical phone (see
    shared.phone_identity.generate_customer_id), so the same person always
    lands on the same row. Stats are only mutated inside the transaction
    that creates, cancels or finalizes one of the customer's bookings.
    """

    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(80), primary_key=True)

    # Identity
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)

    # Profile
    birthday: Mapped[date | None] = mapped_column(DATE, nullable=True)

    # Consent
    marketing_opt_in: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    marketing_opt_in_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    marketing_opt_out_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Stats
    total_bookings: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_completed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    no_show_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    first_booking_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_booking_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_contact_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("length(phone) >= 12", name="check_customer_phone_length"),
        CheckConstraint("total_bookings >= 0", name="check_total_bookings_non_negative"),
        CheckConstraint("total_completed >= 0", name="check_total_completed_non_negative"),
        CheckConstraint("no_show_count >= 0", name="check_no_show_count_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Customer(id='{self.id}', name='{self.first_name} {self.last_name}', total_bookings={self.total_bookings})>"


# ============================================================================
# Transactional Models
# ============================================================================


class Booking(Base):
    """
    Booking model - One customer's appointment with one professional.

    Created once, never deleted. Mutated only through the transactions in
    booking.transactions. A reschedule keeps the same id and records where
    it came from (rescheduled_from / previous_slot_start).
    """

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_booking_id)

    customer_id: Mapped[str] = mapped_column(
        String(80),
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    professional_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("professionals.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    service_type: Mapped[str] = mapped_column(String(50), nullable=False)

    # Scheduling
    slot_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    day_key: Mapped[str] = mapped_column(String(10), nullable=False)
    slot_id: Mapped[str] = mapped_column(String(13), nullable=False)

    # Customer snapshot at booking time
    customer_first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(BookingStatus, name="booking_status", values_callable=_enum_values),
        default=BookingStatus.BOOKED,
        nullable=False,
        index=True,
    )
    notification_status: Mapped[NotificationStatus] = mapped_column(
        SQLEnum(NotificationStatus, name="notification_status", values_callable=_enum_values),
        default=NotificationStatus.PENDING,
        nullable=False,
    )

    # Reschedule audit
    rescheduled_from: Mapped[str | None] = mapped_column(String(36), nullable=True)
    previous_slot_start: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    no_show_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        # Agenda queries: one professional, a range of days
        Index("idx_bookings_professional_day", "professional_id", "day_key"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id='{self.id}', slot_id='{self.slot_id}', status='{self.status.value}')>"


class Slot(Base):
    """
    Slot model - Per-professional reservation ledger.

    Primary key (professional_id, slot_id): at most one row per time bucket,
    so inserting a second reservation for the same bucket fails at the
    database. kind=booking rows reference their booking; kind=block rows
    carry a reason instead.
    """

    __tablename__ = "slots"

    professional_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("professionals.id", ondelete="CASCADE"),
        primary_key=True,
    )
    slot_id: Mapped[str] = mapped_column(String(13), primary_key=True)

    slot_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    day_key: Mapped[str] = mapped_column(String(10), nullable=False)
    kind: Mapped[SlotKind] = mapped_column(
        SQLEnum(SlotKind, name="slot_kind", values_callable=_enum_values),
        nullable=False,
    )
    booking_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "(kind = 'booking' AND booking_id IS NOT NULL) OR (kind = 'block' AND booking_id IS NULL)",
            name="check_slot_kind_reference",
        ),
        Index("idx_slots_professional_day", "professional_id", "day_key"),
    )

    def __repr__(self) -> str:
        return f"<Slot(professional_id='{self.professional_id}', slot_id='{self.slot_id}', kind='{self.kind.value}')>"
