"""Create booking core tables: professionals, customers, bookings, slots

Revision ID: 3f9a2c71d0b4
Revises:
Create Date: 2024-02-26 10:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '3f9a2c71d0b4'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Create professionals table
    op.create_table('professionals',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    # Create customers table
    op.create_table('customers',
        sa.Column('id', sa.String(length=80), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('birthday', sa.DATE(), nullable=True),
        sa.Column('marketing_opt_in', sa.Boolean(), nullable=False),
        sa.Column('marketing_opt_in_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('marketing_opt_out_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('total_bookings', sa.Integer(), nullable=False),
        sa.Column('total_completed', sa.Integer(), nullable=False),
        sa.Column('no_show_count', sa.Integer(), nullable=False),
        sa.Column('first_booking_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('last_booking_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('last_completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('last_contact_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint('length(phone) >= 12', name='check_customer_phone_length'),
        sa.CheckConstraint('total_bookings >= 0', name='check_total_bookings_non_negative'),
        sa.CheckConstraint('total_completed >= 0', name='check_total_completed_non_negative'),
        sa.CheckConstraint('no_show_count >= 0', name='check_no_show_count_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_customers_phone', 'customers', ['phone'], unique=True)

    # Create bookings table
    op.create_table('bookings',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('customer_id', sa.String(length=80), nullable=False),
        sa.Column('professional_id', sa.String(length=64), nullable=False),
        sa.Column('service_type', sa.String(length=50), nullable=False),
        sa.Column('slot_start', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('day_key', sa.String(length=10), nullable=False),
        sa.Column('slot_id', sa.String(length=13), nullable=False),
        sa.Column('customer_first_name', sa.String(length=100), nullable=False),
        sa.Column('customer_last_name', sa.String(length=100), nullable=False),
        sa.Column('customer_phone', sa.String(length=20), nullable=False),
        sa.Column('status', sa.Enum('booked', 'confirmed', 'completed', 'cancelled', 'no_show', 'rescheduled', name='booking_status'), nullable=False),
        sa.Column('notification_status', sa.Enum('pending', 'sent', name='notification_status'), nullable=False),
        sa.Column('rescheduled_from', sa.String(length=36), nullable=True),
        sa.Column('previous_slot_start', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('confirmed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('no_show_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['professional_id'], ['professionals.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_bookings_customer_id', 'bookings', ['customer_id'], unique=False)
    op.create_index('ix_bookings_professional_id', 'bookings', ['professional_id'], unique=False)
    op.create_index('ix_bookings_status', 'bookings', ['status'], unique=False)
    op.create_index('idx_bookings_professional_day', 'bookings', ['professional_id', 'day_key'], unique=False)

    # Create slots table (primary key is the reservation)
    op.create_table('slots',
        sa.Column('professional_id', sa.String(length=64), nullable=False),
        sa.Column('slot_id', sa.String(length=13), nullable=False),
        sa.Column('slot_start', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('day_key', sa.String(length=10), nullable=False),
        sa.Column('kind', sa.Enum('booking', 'block', name='slot_kind'), nullable=False),
        sa.Column('booking_id', sa.String(length=36), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint(
            "(kind = 'booking' AND booking_id IS NOT NULL) OR (kind = 'block' AND booking_id IS NULL)",
            name='check_slot_kind_reference'
        ),
        sa.ForeignKeyConstraint(['professional_id'], ['professionals.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('professional_id', 'slot_id')
    )
    op.create_index('ix_slots_booking_id', 'slots', ['booking_id'], unique=False)
    op.create_index('idx_slots_professional_day', 'slots', ['professional_id', 'day_key'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_slots_professional_day', table_name='slots')
    op.drop_index('ix_slots_booking_id', table_name='slots')
    op.drop_table('slots')

    op.drop_index('idx_bookings_professional_day', table_name='bookings')
    op.drop_index('ix_bookings_status', table_name='bookings')
    op.drop_index('ix_bookings_professional_id', table_name='bookings')
    op.drop_index('ix_bookings_customer_id', table_name='bookings')
    op.drop_table('bookings')

    op.drop_index('ix_customers_phone', table_name='customers')
    op.drop_table('customers')

    op.drop_table('professionals')

    sa.Enum(name='slot_kind').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='notification_status').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='booking_status').drop(op.get_bind(), checkfirst=True)
