"""
Opening hours for booking.

OperatingHours: weekly schedule, one row per weekday (0=Monday, 6=Sunday).
ServicePeriod: per-date exceptions that override the weekly row
(holiday closures, private events, extended hours).

A close_time earlier than open_time means the service runs past midnight.
"""
import uuid
from sqlalchemy import Column, String, Integer, Boolean, Date, Time, DateTime, Uuid, ForeignKey, func, Index
from sqlalchemy.orm import relationship

from mesa.db.base import Base


class OperatingHours(Base):
    __tablename__ = "operating_hours"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    restaurant_id = Column(Uuid, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False)
    day_of_week = Column(Integer, nullable=False)
    open_time = Column(Time, nullable=True)  # Null if closed
    close_time = Column(Time, nullable=True)
    is_closed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    restaurant = relationship("Restaurant")

    __table_args__ = (
        Index('idx_operating_hours_restaurant_day', 'restaurant_id', 'day_of_week', unique=True),
    )

    @property
    def hours(self):
        """(open, close) or None when closed."""
        if self.is_closed or self.open_time is None or self.close_time is None:
            return None
        return self.open_time, self.close_time


class ServicePeriod(Base):
    __tablename__ = "service_periods"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    restaurant_id = Column(Uuid, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    # Null open/close with is_closed False keeps the weekly hours for that bound
    open_time = Column(Time, nullable=True)
    close_time = Column(Time, nullable=True)
    is_closed = Column(Boolean, default=False, nullable=False)
    reason = Column(String(100), nullable=True)  # "Holiday", "Private Event"
    created_at = Column(DateTime, server_default=func.now())

    restaurant = relationship("Restaurant")

    __table_args__ = (
        Index('idx_service_periods_restaurant_date', 'restaurant_id', 'date', unique=True),
    )
