"""
Per-restaurant reservation policy.

ReservationPolicy: slot granularity, party limits, tolerances, lead time.
PeakWindow: time ranges (with a weekday mask) that require a deposit.
"""
import uuid
from sqlalchemy import (
    Column, String, Integer, Boolean, Numeric, Time, DateTime, Uuid, ForeignKey, CheckConstraint, func,
)
from sqlalchemy.orm import relationship

from mesa.db.base import Base

# Bit 0 = Monday ... bit 6 = Sunday
ALL_WEEKDAYS_MASK = 0b1111111


class ReservationPolicy(Base):
    """
    Booking rules for one restaurant. The row is optional; missing values
    fall back to the DEFAULT_* settings.
    """
    __tablename__ = "reservation_policies"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    restaurant_id = Column(Uuid, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False, unique=True)

    slot_minutes = Column(Integer, nullable=False)
    service_duration_minutes = Column(Integer, nullable=False)
    max_party_size = Column(Integer, nullable=False)
    auto_confirm = Column(Boolean, default=True, nullable=False)

    # Minutes after reservation time before it becomes a no-show
    arrival_tolerance_minutes = Column(Integer, nullable=False)
    # Minutes before reservation time a party may be checked in
    checkin_grace_minutes = Column(Integer, nullable=False)

    # Booking lead-time bounds
    min_lead_minutes = Column(Integer, nullable=False, default=0)
    max_advance_days = Column(Integer, nullable=False)

    deposits_enabled = Column(Boolean, default=True, nullable=False)
    # Unpaid deposit reservations are auto-cancelled after this long
    deposit_expiry_minutes = Column(Integer, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    restaurant = relationship("Restaurant", back_populates="policy")

    __table_args__ = (
        CheckConstraint('slot_minutes > 0', name='ck_policy_slot_minutes_positive'),
        CheckConstraint('service_duration_minutes > 0', name='ck_policy_duration_positive'),
        CheckConstraint('max_party_size >= 1', name='ck_policy_max_party_size'),
    )


class PeakWindow(Base):
    """A peak time range requiring a deposit, e.g. Fri-Sat 19:00-22:00 at 300."""
    __tablename__ = "peak_windows"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    restaurant_id = Column(Uuid, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False, index=True)
    label = Column(String(100), nullable=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)  # exclusive
    weekday_mask = Column(Integer, nullable=False, default=ALL_WEEKDAYS_MASK)
    deposit_amount = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    restaurant = relationship("Restaurant", back_populates="peak_windows")

    def applies_on(self, weekday: int) -> bool:
        """weekday: 0=Monday, 6=Sunday"""
        return bool(self.weekday_mask & (1 << weekday))
