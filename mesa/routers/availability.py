"""
Availability router: the slot grid and the per-table picker.

Public reads; they never lock and may show a slot that is taken a moment
later. Booking re-checks everything.
"""
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from mesa.core.clock import format_hhmm
from mesa.schemas.base import to_date, to_time
from mesa.schemas.table import (
    SlotListResponse,
    SlotResponse,
    TableAvailabilityResponse,
    TableMapResponse,
)
from mesa.services.engine import AllocationEngine, get_engine

router = APIRouter(tags=["availability"])


@router.get("/restaurants/{restaurant_id}/slots", response_model=SlotListResponse)
def get_slots(
    restaurant_id: UUID,
    date: str = Query(..., description="Business date, YYYY-MM-DD"),
    party_size: int = Query(..., description="Number of guests"),
    engine: AllocationEngine = Depends(get_engine),
):
    """
    Bookable slots for a date.

    Closed days return an empty list.
    """
    business_date = to_date(date)
    slots = engine.availability.get_slots(
        restaurant_id, business_date, party_size, engine.now_for(restaurant_id)
    )
    return SlotListResponse(
        restaurant_id=restaurant_id,
        date=business_date.isoformat(),
        party_size=party_size,
        slots=[SlotResponse.from_view(s) for s in slots],
    )


@router.get("/restaurants/{restaurant_id}/tables/available", response_model=TableMapResponse)
def get_table_map(
    restaurant_id: UUID,
    date: str = Query(..., description="Business date, YYYY-MM-DD"),
    time: str = Query(..., description="Slot time, HH:MM"),
    party_size: int = Query(..., description="Number of guests"),
    engine: AllocationEngine = Depends(get_engine),
):
    """Every table with whether it can seat the party at this slot."""
    business_date = to_date(date)
    slot = to_time(time)
    views = engine.availability.table_map(
        restaurant_id, business_date, slot, party_size, engine.now_for(restaurant_id)
    )
    tables = [TableAvailabilityResponse.from_view(v) for v in views]
    return TableMapResponse(
        date=business_date.isoformat(),
        time=format_hhmm(slot),
        party_size=party_size,
        tables=tables,
        available_count=sum(1 for t in tables if t.selectable),
    )
