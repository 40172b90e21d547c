import uuid
from sqlalchemy import Column, String, Boolean, Time, DateTime, Uuid, func
from sqlalchemy.orm import relationship
from mesa.db.base import Base


class Restaurant(Base):
    """
    A restaurant as seen by the reservation engine.

    Created by onboarding outside the engine; only hours and policy are
    edited here. open_time/close_time are the default daily hours used when
    no weekly schedule row exists for a day.
    """
    __tablename__ = "restaurants"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    timezone = Column(String(50), nullable=False, server_default='UTC', default='UTC')
    open_time = Column(Time, nullable=True)
    close_time = Column(Time, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    policy = relationship("ReservationPolicy", back_populates="restaurant", uselist=False, cascade="all, delete-orphan")
    peak_windows = relationship("PeakWindow", back_populates="restaurant", cascade="all, delete-orphan")
    tables = relationship("DiningTable", back_populates="restaurant", cascade="all, delete-orphan")
