"""Reservation engine schema

Revision ID: 001_reservation_engine
Revises:
Create Date: 2026-01-12

Creates:
- restaurants (hours and timezone as seen by the engine)
- reservation_policies + peak_windows (booking rules, deposits)
- operating_hours + service_periods (weekly schedule and exceptions)
- dining_tables (floor plan and occupancy status)
- reservations (one table bound to one service window)
- waitlist_entries (walk-in queue)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '001_reservation_engine'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'restaurants',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('timezone', sa.String(50), nullable=False, server_default='UTC'),
        sa.Column('open_time', sa.Time(), nullable=True),
        sa.Column('close_time', sa.Time(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'reservation_policies',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('restaurant_id', UUID(as_uuid=True), sa.ForeignKey('restaurants.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('slot_minutes', sa.Integer(), nullable=False),
        sa.Column('service_duration_minutes', sa.Integer(), nullable=False),
        sa.Column('max_party_size', sa.Integer(), nullable=False),
        sa.Column('auto_confirm', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('arrival_tolerance_minutes', sa.Integer(), nullable=False),
        sa.Column('checkin_grace_minutes', sa.Integer(), nullable=False),
        sa.Column('min_lead_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_advance_days', sa.Integer(), nullable=False),
        sa.Column('deposits_enabled', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('deposit_expiry_minutes', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('slot_minutes > 0', name='ck_policy_slot_minutes_positive'),
        sa.CheckConstraint('service_duration_minutes > 0', name='ck_policy_duration_positive'),
        sa.CheckConstraint('max_party_size >= 1', name='ck_policy_max_party_size'),
    )

    op.create_table(
        'peak_windows',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('restaurant_id', UUID(as_uuid=True), sa.ForeignKey('restaurants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('label', sa.String(100), nullable=True),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('weekday_mask', sa.Integer(), nullable=False, server_default='127'),
        sa.Column('deposit_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_peak_windows_restaurant_id', 'peak_windows', ['restaurant_id'])

    op.create_table(
        'operating_hours',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('restaurant_id', UUID(as_uuid=True), sa.ForeignKey('restaurants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('open_time', sa.Time(), nullable=True),
        sa.Column('close_time', sa.Time(), nullable=True),
        sa.Column('is_closed', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    # One entry per restaurant-day
    op.create_index(
        'idx_operating_hours_restaurant_day',
        'operating_hours',
        ['restaurant_id', 'day_of_week'],
        unique=True
    )

    op.create_table(
        'service_periods',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('restaurant_id', UUID(as_uuid=True), sa.ForeignKey('restaurants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('open_time', sa.Time(), nullable=True),
        sa.Column('close_time', sa.Time(), nullable=True),
        sa.Column('is_closed', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('reason', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    # One entry per restaurant-date
    op.create_index(
        'idx_service_periods_restaurant_date',
        'service_periods',
        ['restaurant_id', 'date'],
        unique=True
    )

    op.create_table(
        'dining_tables',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('restaurant_id', UUID(as_uuid=True), sa.ForeignKey('restaurants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('number', sa.Integer(), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('shape', sa.String(20), nullable=False, server_default='round'),
        sa.Column('position_x', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('position_y', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('width', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('height', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('status', sa.String(20), nullable=False, server_default='available'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('capacity >= 1', name='ck_dining_tables_capacity'),
    )
    op.create_index(
        'idx_dining_tables_restaurant_number',
        'dining_tables',
        ['restaurant_id', 'number'],
        unique=True
    )

    op.create_table(
        'reservations',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('restaurant_id', UUID(as_uuid=True), sa.ForeignKey('restaurants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('table_id', UUID(as_uuid=True), sa.ForeignKey('dining_tables.id', ondelete='SET NULL'), nullable=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('time', sa.Time(), nullable=False),
        sa.Column('starts_at', sa.DateTime(), nullable=False),
        sa.Column('ends_at', sa.DateTime(), nullable=False),
        sa.Column('party_size', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('customer_name', sa.String(200), nullable=True),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('customer_phone', sa.String(50), nullable=True),
        sa.Column('occasion', sa.String(50), nullable=True),
        sa.Column('special_request', sa.Text(), nullable=True),
        sa.Column('deposit_required', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('deposit_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('deposit_paid', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('deposit_paid_at', sa.DateTime(), nullable=True),
        sa.Column('confirmation_code', sa.String(20), nullable=False, unique=True),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('arrived_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancel_reason', sa.String(255), nullable=True),
        sa.Column('cancelled_by', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('party_size >= 1', name='ck_reservations_party_size'),
        sa.CheckConstraint('ends_at > starts_at', name='ck_reservations_window'),
    )
    # Overlap checks scan one table's windows
    op.create_index('idx_reservations_table_window', 'reservations', ['table_id', 'starts_at', 'ends_at'])
    op.create_index('idx_reservations_restaurant_date', 'reservations', ['restaurant_id', 'date'])
    op.create_index('idx_reservations_user', 'reservations', ['user_id'])

    op.create_table(
        'waitlist_entries',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('restaurant_id', UUID(as_uuid=True), sa.ForeignKey('restaurants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('party_size', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='waiting'),
        sa.Column('offered_table_id', UUID(as_uuid=True), sa.ForeignKey('dining_tables.id', ondelete='SET NULL'), nullable=True),
        sa.Column('assigned_at', sa.DateTime(), nullable=True),
        sa.Column('seated_at', sa.DateTime(), nullable=True),
        sa.Column('left_at', sa.DateTime(), nullable=True),
        sa.Column('removed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('party_size >= 1', name='ck_waitlist_party_size'),
    )
    op.create_index(
        'idx_waitlist_restaurant_status_priority',
        'waitlist_entries',
        ['restaurant_id', 'status', 'priority']
    )


def downgrade() -> None:
    op.drop_index('idx_waitlist_restaurant_status_priority', table_name='waitlist_entries')
    op.drop_table('waitlist_entries')
    op.drop_index('idx_reservations_user', table_name='reservations')
    op.drop_index('idx_reservations_restaurant_date', table_name='reservations')
    op.drop_index('idx_reservations_table_window', table_name='reservations')
    op.drop_table('reservations')
    op.drop_index('idx_dining_tables_restaurant_number', table_name='dining_tables')
    op.drop_table('dining_tables')
    op.drop_index('idx_service_periods_restaurant_date', table_name='service_periods')
    op.drop_table('service_periods')
    op.drop_index('idx_operating_hours_restaurant_day', table_name='operating_hours')
    op.drop_table('operating_hours')
    op.drop_index('ix_peak_windows_restaurant_id', table_name='peak_windows')
    op.drop_table('peak_windows')
    op.drop_table('reservation_policies')
    op.drop_table('restaurants')
