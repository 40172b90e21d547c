"""
Operating hours router for managing weekly schedule and exceptions.

Provides endpoints for:
- Viewing/updating the regular weekly schedule bookings are generated from
- Managing service period exceptions (holidays, closures, special hours)
"""
from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.orm import Session

from mesa.core.clock import format_hhmm, parse_hhmm
from mesa.core.deps import Actor, get_current_staff, require_admin, resolve_restaurant_id
from mesa.db.session import get_db
from mesa.models.operating_hours import OperatingHours, ServicePeriod
from mesa.models.restaurant import Restaurant

router = APIRouter(tags=["operating-hours"])


# ============ Schemas ============

class DaySchedule(BaseModel):
    """Schedule for a single day of the week."""
    day_of_week: int  # 0=Monday, 6=Sunday
    day_name: str
    open_time: Optional[str]  # "HH:MM" or None if closed
    close_time: Optional[str]  # earlier than open_time = closes after midnight
    is_closed: bool


class WeeklyScheduleResponse(BaseModel):
    """Complete weekly schedule."""
    schedule: List[DaySchedule]
    source: str  # "manual" or "default"


class WeeklyScheduleUpdate(BaseModel):
    """Update for weekly schedule."""
    schedule: List[DaySchedule]


class ServicePeriodCreate(BaseModel):
    """Create a service period exception."""
    date: date
    open_time: Optional[str] = None  # "HH:MM" or None to keep the weekly value
    close_time: Optional[str] = None
    is_closed: bool = False
    reason: Optional[str] = None


class ServicePeriodResponse(BaseModel):
    id: UUID
    date: date
    open_time: Optional[str]
    close_time: Optional[str]
    is_closed: bool
    reason: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class ServicePeriodListResponse(BaseModel):
    periods: List[ServicePeriodResponse]
    total: int


# ============ Helper Functions ============

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def get_staff_restaurant(db: Session, actor: Actor, restaurant_id: Optional[UUID] = None) -> Restaurant:
    """Restaurant the staff member works for, 404 if it doesn't exist."""
    restaurant = db.get(Restaurant, resolve_restaurant_id(actor, restaurant_id))
    if not restaurant:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Restaurant not found"
        )
    return restaurant


def str_to_time(s: Optional[str]):
    """Convert HH:MM string to time object, 400 if malformed."""
    if s is None:
        return None
    try:
        return parse_hhmm(s)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


def to_period_response(p: ServicePeriod) -> ServicePeriodResponse:
    return ServicePeriodResponse(
        id=p.id,
        date=p.date,
        open_time=format_hhmm(p.open_time),
        close_time=format_hhmm(p.close_time),
        is_closed=p.is_closed,
        reason=p.reason
    )


# ============ Endpoints ============

@router.get("/operating-hours", response_model=WeeklyScheduleResponse)
def get_operating_hours(
    restaurant_id: Optional[UUID] = Query(None, alias="restaurantId"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_staff),
):
    """
    Get weekly operating schedule.

    Returns the manual schedule if set, otherwise the restaurant's default
    daily hours for every day.
    """
    restaurant = get_staff_restaurant(db, actor, restaurant_id)

    manual_hours = db.execute(
        select(OperatingHours).where(OperatingHours.restaurant_id == restaurant.id)
    ).scalars().all()

    if manual_hours:
        manual_by_day = {h.day_of_week: h for h in manual_hours}
        schedule = []
        for i, day_name in enumerate(DAY_NAMES):
            h = manual_by_day.get(i)
            if h is not None:
                schedule.append(DaySchedule(
                    day_of_week=i,
                    day_name=day_name,
                    open_time=format_hhmm(h.open_time),
                    close_time=format_hhmm(h.close_time),
                    is_closed=h.hours is None
                ))
            else:
                # No row for the day falls back to the default hours
                schedule.append(_default_day(restaurant, i, day_name))
        return WeeklyScheduleResponse(schedule=schedule, source="manual")

    return WeeklyScheduleResponse(
        schedule=[_default_day(restaurant, i, day_name) for i, day_name in enumerate(DAY_NAMES)],
        source="default",
    )


def _default_day(restaurant: Restaurant, day_of_week: int, day_name: str) -> DaySchedule:
    closed = restaurant.open_time is None or restaurant.close_time is None
    return DaySchedule(
        day_of_week=day_of_week,
        day_name=day_name,
        open_time=format_hhmm(restaurant.open_time),
        close_time=format_hhmm(restaurant.close_time),
        is_closed=closed
    )


@router.put("/operating-hours", response_model=WeeklyScheduleResponse)
def update_operating_hours(
    update: WeeklyScheduleUpdate,
    restaurant_id: Optional[UUID] = Query(None, alias="restaurantId"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_staff),
):
    """
    Save weekly operating schedule.

    Replaces any existing manual schedule.
    """
    require_admin(actor)
    restaurant = get_staff_restaurant(db, actor, restaurant_id)

    days = [d.day_of_week for d in update.schedule]
    if any(d < 0 or d > 6 for d in days) or len(days) != len(set(days)):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Each day_of_week (0-6) may appear at most once"
        )

    existing = db.execute(
        select(OperatingHours).where(OperatingHours.restaurant_id == restaurant.id)
    ).scalars().all()
    for row in existing:
        db.delete(row)
    db.flush()

    for day in update.schedule:
        open_time = str_to_time(day.open_time)
        close_time = str_to_time(day.close_time)
        if not day.is_closed and (open_time is None or close_time is None or open_time == close_time):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"{DAY_NAMES[day.day_of_week]}: open and close times are required and must differ"
            )
        db.add(OperatingHours(
            restaurant_id=restaurant.id,
            day_of_week=day.day_of_week,
            open_time=None if day.is_closed else open_time,
            close_time=None if day.is_closed else close_time,
            is_closed=day.is_closed
        ))

    db.commit()

    return get_operating_hours(restaurant.id, db, actor)


@router.get("/service-periods", response_model=ServicePeriodListResponse)
def list_service_periods(
    start_date: Optional[date] = Query(None, description="Filter from date"),
    end_date: Optional[date] = Query(None, description="Filter to date"),
    restaurant_id: Optional[UUID] = Query(None, alias="restaurantId"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_staff),
):
    """
    List service period exceptions (holidays, closures).
    """
    restaurant = get_staff_restaurant(db, actor, restaurant_id)

    query = select(ServicePeriod).where(
        ServicePeriod.restaurant_id == restaurant.id
    )

    if start_date:
        query = query.where(ServicePeriod.date >= start_date)
    if end_date:
        query = query.where(ServicePeriod.date <= end_date)

    query = query.order_by(ServicePeriod.date.desc())
    periods = db.execute(query).scalars().all()

    return ServicePeriodListResponse(
        periods=[to_period_response(p) for p in periods],
        total=len(periods)
    )


@router.post("/service-periods", response_model=ServicePeriodResponse, status_code=status.HTTP_201_CREATED)
def create_service_period(
    period: ServicePeriodCreate,
    restaurant_id: Optional[UUID] = Query(None, alias="restaurantId"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_staff),
):
    """
    Create a service period exception.

    Use for holidays, special hours, or closures.
    """
    require_admin(actor)
    restaurant = get_staff_restaurant(db, actor, restaurant_id)

    existing = db.execute(
        select(ServicePeriod).where(
            ServicePeriod.restaurant_id == restaurant.id,
            ServicePeriod.date == period.date
        )
    ).scalar_one_or_none()

    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Service period already exists for {period.date}"
        )

    db_period = ServicePeriod(
        restaurant_id=restaurant.id,
        date=period.date,
        open_time=str_to_time(period.open_time),
        close_time=str_to_time(period.close_time),
        is_closed=period.is_closed,
        reason=period.reason
    )
    db.add(db_period)
    db.commit()
    db.refresh(db_period)

    return to_period_response(db_period)


@router.delete("/service-periods/{period_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_service_period(
    period_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_staff),
):
    """
    Delete a service period exception.
    """
    require_admin(actor)
    period = db.get(ServicePeriod, period_id)

    if not period or not actor.can_manage(period.restaurant_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Service period not found"
        )

    db.delete(period)
    db.commit()
