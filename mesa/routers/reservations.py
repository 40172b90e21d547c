"""
Reservations router: booking and lifecycle transitions.

Diners book and cancel their own reservations; confirm, check-in, complete
and no-show are staff actions. Business rules live in the engine; errors are
rendered by the EngineError handler in main.py.
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status

from mesa.core.clock import get_business_date
from mesa.core.deps import Actor, get_current_staff, get_current_user, resolve_restaurant_id
from mesa.core.errors import NotFound, ValidationError
from mesa.models.reservation import ReservationStatus
from mesa.schemas.base import to_date, to_time
from mesa.schemas.reservation import (
    BookingCreate,
    BookingResponse,
    CancelRequest,
    CheckInByCodeRequest,
    ReservationListResponse,
    ReservationResponse,
)
from mesa.services.engine import AllocationEngine, get_engine
from mesa.services.reservations import BookingRequest

router = APIRouter(tags=["reservations"])


@router.post("/reservations", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_reservation(
    booking: BookingCreate,
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_user),
):
    """
    Book a table.

    outcome is deposit_required for peak slots: the reservation stays
    pending until the payment callback confirms the deposit.
    """
    request = BookingRequest(
        restaurant_id=booking.restaurant_id,
        date=to_date(booking.date),
        time=to_time(booking.time),
        party_size=booking.party_size,
        user_id=actor.user_id,
        customer_name=booking.customer_name,
        customer_email=booking.customer_email,
        customer_phone=booking.customer_phone,
        occasion=booking.occasion,
        special_request=booking.special_request,
    )
    result = engine.book(request)
    return BookingResponse.from_result(result)


@router.get("/reservations/my", response_model=ReservationListResponse)
def list_my_reservations(
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_user),
):
    """The caller's reservations, newest first."""
    reservations = engine.reservations.list_for_user(actor.user_id)
    return ReservationListResponse(
        reservations=[ReservationResponse.from_model(r) for r in reservations],
        total=len(reservations),
    )


@router.post("/reservations/checkin-by-code", response_model=ReservationResponse)
def check_in_by_code(
    payload: CheckInByCodeRequest,
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    """Check in the party whose confirmation code was scanned at the door."""
    reservation = engine.check_in_by_code(payload.confirmation_code, actor)
    return ReservationResponse.from_model(reservation)


@router.get("/reservations/{reservation_id}", response_model=ReservationResponse)
def get_reservation(
    reservation_id: UUID,
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_user),
):
    reservation = engine.reservations.get(reservation_id)
    if reservation.user_id != actor.user_id and not actor.can_manage(reservation.restaurant_id):
        raise NotFound(f"Reservation {reservation_id} not found")
    return ReservationResponse.from_model(reservation)


@router.post("/reservations/{reservation_id}/cancel", response_model=ReservationResponse)
def cancel_reservation(
    reservation_id: UUID,
    payload: Optional[CancelRequest] = Body(None),
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_user),
):
    reservation = engine.cancel(reservation_id, actor, reason=payload.reason if payload else None)
    return ReservationResponse.from_model(reservation)


@router.post("/reservations/{reservation_id}/confirm", response_model=ReservationResponse)
def confirm_reservation(
    reservation_id: UUID,
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    return ReservationResponse.from_model(engine.confirm(reservation_id, actor))


@router.post("/reservations/{reservation_id}/checkin", response_model=ReservationResponse)
def check_in_reservation(
    reservation_id: UUID,
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    return ReservationResponse.from_model(engine.check_in(reservation_id, actor))


@router.post("/reservations/{reservation_id}/complete", response_model=ReservationResponse)
def complete_reservation(
    reservation_id: UUID,
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    """Close the visit and free the table. Repeating the call is harmless."""
    return ReservationResponse.from_model(engine.release(reservation_id, actor))


@router.post("/reservations/{reservation_id}/no-show", response_model=ReservationResponse)
def mark_no_show(
    reservation_id: UUID,
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    return ReservationResponse.from_model(engine.mark_no_show(reservation_id, actor))


@router.get("/staff/reservations/today", response_model=ReservationListResponse)
def list_today_reservations(
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by reservation status"),
    restaurant_id: Optional[UUID] = Query(None, alias="restaurantId"),
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    """Today's reservations for the staff member's restaurant, by start time."""
    restaurant_id = resolve_restaurant_id(actor, restaurant_id)
    statuses = None
    if status_filter:
        try:
            statuses = [ReservationStatus(status_filter)]
        except ValueError:
            raise ValidationError(f"Unknown reservation status: {status_filter}")

    today = get_business_date(
        engine.now_for(restaurant_id), day_start_hour=engine.policies.day_start_hour
    )
    reservations = engine.reservations.list_for_day(restaurant_id, today, statuses)
    return ReservationListResponse(
        reservations=[ReservationResponse.from_model(r) for r in reservations],
        total=len(reservations),
    )
