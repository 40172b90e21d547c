"""
Reservations and their lifecycle status.

A reservation binds one table to one service window [starts_at, ends_at).
Rows are never deleted; terminal statuses end the lifecycle.
"""
import enum
import uuid
from sqlalchemy import (
    Column, String, Integer, Boolean, Numeric, Date, Time, DateTime, Text, Uuid, ForeignKey,
    CheckConstraint, Index, Enum as SQLEnum, func,
)
from sqlalchemy.orm import relationship

from mesa.db.base import Base


class ReservationStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ARRIVED = "arrived"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Statuses that hold a table for their window
ACTIVE_STATUSES = (
    ReservationStatus.PENDING,
    ReservationStatus.CONFIRMED,
    ReservationStatus.ARRIVED,
)

TERMINAL_STATUSES = (
    ReservationStatus.COMPLETED,
    ReservationStatus.CANCELLED,
    ReservationStatus.NO_SHOW,
)


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    restaurant_id = Column(Uuid, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False)
    table_id = Column(Uuid, ForeignKey("dining_tables.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(String(64), nullable=False)  # identity provider subject

    # Business date and wall time as booked
    date = Column(Date, nullable=False)
    time = Column(Time, nullable=False)
    # Calendar service window, used for overlap checks
    starts_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=False)

    party_size = Column(Integer, nullable=False)
    status = Column(
        SQLEnum(ReservationStatus, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=ReservationStatus.PENDING,
    )

    customer_name = Column(String(200), nullable=True)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    # Opaque to the engine
    occasion = Column(String(50), nullable=True)
    special_request = Column(Text, nullable=True)

    deposit_required = Column(Boolean, default=False, nullable=False)
    deposit_amount = Column(Numeric(10, 2), nullable=True)
    deposit_paid = Column(Boolean, default=False, nullable=False)
    deposit_paid_at = Column(DateTime, nullable=True)

    # Shown as a QR code; staff scan it at the door
    confirmation_code = Column(String(20), nullable=False, unique=True)

    confirmed_at = Column(DateTime, nullable=True)
    arrived_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancel_reason = Column(String(255), nullable=True)
    cancelled_by = Column(String(64), nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    table = relationship("DiningTable")
    restaurant = relationship("Restaurant")

    __table_args__ = (
        CheckConstraint('party_size >= 1', name='ck_reservations_party_size'),
        CheckConstraint('ends_at > starts_at', name='ck_reservations_window'),
        # Overlap checks scan one table's windows
        Index('idx_reservations_table_window', 'table_id', 'starts_at', 'ends_at'),
        Index('idx_reservations_restaurant_date', 'restaurant_id', 'date'),
        Index('idx_reservations_user', 'user_id'),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
