"""
Reservation Pydantic schemas for API request/response models.
"""
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import EmailStr, Field

from mesa.core.clock import format_hhmm
from mesa.models.reservation import Reservation
from mesa.schemas.base import CamelModel
from mesa.services.reservations import BookingResult


class BookingCreate(CamelModel):
    """Booking request from the diner."""
    restaurant_id: UUID
    date: str  # YYYY-MM-DD (business date)
    time: str  # HH:MM
    party_size: int
    customer_name: Optional[str] = Field(None, max_length=200)
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = Field(None, max_length=50)
    occasion: Optional[str] = Field(None, max_length=50)
    special_request: Optional[str] = Field(None, max_length=1000)


class BookingResponse(CamelModel):
    """Outcome of a booking request."""
    reservation_id: UUID
    status: str
    table_id: Optional[UUID] = None
    deposit_required: bool
    deposit_amount: Optional[float] = None
    confirmation_code: str
    outcome: str  # confirmed, pending or deposit_required

    @classmethod
    def from_result(cls, result: BookingResult) -> "BookingResponse":
        r = result.reservation
        return cls(
            reservation_id=r.id,
            status=r.status.value,
            table_id=r.table_id,
            deposit_required=r.deposit_required,
            deposit_amount=float(r.deposit_amount) if r.deposit_amount is not None else None,
            confirmation_code=r.confirmation_code,
            outcome=result.outcome.value,
        )


class ReservationResponse(CamelModel):
    """Full reservation view."""
    id: UUID
    restaurant_id: UUID
    table_id: Optional[UUID] = None
    table_number: Optional[int] = None
    user_id: str
    date: date
    time: str
    party_size: int
    status: str
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    occasion: Optional[str] = None
    special_request: Optional[str] = None
    deposit_required: bool
    deposit_amount: Optional[float] = None
    deposit_paid: bool
    confirmation_code: str
    confirmed_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, r: Reservation) -> "ReservationResponse":
        return cls(
            id=r.id,
            restaurant_id=r.restaurant_id,
            table_id=r.table_id,
            table_number=r.table.number if r.table is not None else None,
            user_id=r.user_id,
            date=r.date,
            time=format_hhmm(r.time),
            party_size=r.party_size,
            status=r.status.value,
            customer_name=r.customer_name,
            customer_email=r.customer_email,
            customer_phone=r.customer_phone,
            occasion=r.occasion,
            special_request=r.special_request,
            deposit_required=r.deposit_required,
            deposit_amount=float(r.deposit_amount) if r.deposit_amount is not None else None,
            deposit_paid=r.deposit_paid,
            confirmation_code=r.confirmation_code,
            confirmed_at=r.confirmed_at,
            arrived_at=r.arrived_at,
            completed_at=r.completed_at,
            cancelled_at=r.cancelled_at,
            cancel_reason=r.cancel_reason,
            created_at=r.created_at,
        )


class ReservationListResponse(CamelModel):
    reservations: List[ReservationResponse]
    total: int


class CancelRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=255)


class CheckInByCodeRequest(CamelModel):
    confirmation_code: str


class DepositConfirmation(CamelModel):
    """Payment processor callback."""
    reservation_id: UUID
    amount: float
    payment_reference: Optional[str] = None
