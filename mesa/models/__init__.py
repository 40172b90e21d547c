"""
SQLAlchemy models for MesaFeliz.
"""
# Core entities
from mesa.models.restaurant import Restaurant
from mesa.models.table import DiningTable, TableStatus

# Policy & hours
from mesa.models.policy import ReservationPolicy, PeakWindow
from mesa.models.operating_hours import OperatingHours, ServicePeriod

# Reservations
from mesa.models.reservation import (
    Reservation,
    ReservationStatus,
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
)

# Waitlist
from mesa.models.waitlist import WaitlistEntry, WaitlistStatus


__all__ = [
    # Core
    "Restaurant",
    "DiningTable",
    "TableStatus",
    # Policy
    "ReservationPolicy",
    "PeakWindow",
    "OperatingHours",
    "ServicePeriod",
    # Reservations
    "Reservation",
    "ReservationStatus",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    # Waitlist
    "WaitlistEntry",
    "WaitlistStatus",
]
