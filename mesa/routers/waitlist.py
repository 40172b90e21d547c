"""
Waitlist router for walk-in parties (staff only).
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from mesa.core.deps import Actor, get_current_staff, resolve_restaurant_id
from mesa.core.errors import ValidationError
from mesa.models.waitlist import WaitlistStatus
from mesa.schemas.waitlist import (
    WaitlistCreate,
    WaitlistEntryResponse,
    WaitlistListResponse,
    WaitlistReorder,
    WaitlistSummaryResponse,
)
from mesa.services.engine import AllocationEngine, get_engine

router = APIRouter(tags=["waitlist"])


@router.post("/waitlist", response_model=WaitlistEntryResponse, status_code=status.HTTP_201_CREATED)
def add_to_waitlist(
    payload: WaitlistCreate,
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    restaurant_id = resolve_restaurant_id(actor, payload.restaurant_id)
    entry = engine.waitlist.enqueue(
        restaurant_id,
        party_size=payload.party_size,
        name=payload.name,
        actor=actor,
        now=engine.now_for(restaurant_id),
        phone=payload.phone,
        email=payload.email,
        notes=payload.notes,
    )
    return WaitlistEntryResponse.from_model(entry)


@router.get("/waitlist", response_model=WaitlistListResponse)
def list_waitlist(
    status_filter: Optional[str] = Query(None, alias="status", description="waiting, assigned or removed"),
    restaurant_id: Optional[UUID] = Query(None, alias="restaurantId"),
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    """Entries in priority order; live entries (waiting and assigned) by default."""
    restaurant_id = resolve_restaurant_id(actor, restaurant_id)
    if status_filter:
        try:
            statuses = [WaitlistStatus(status_filter)]
        except ValueError:
            raise ValidationError(f"Unknown waitlist status: {status_filter}")
    else:
        statuses = [WaitlistStatus.WAITING, WaitlistStatus.ASSIGNED]

    entries = engine.waitlist.list_entries(restaurant_id, statuses)
    if not status_filter:
        entries = [e for e in entries if e.left_at is None]
    return WaitlistListResponse(
        entries=[WaitlistEntryResponse.from_model(e) for e in entries],
        total=len(entries),
    )


@router.get("/waitlist/summary", response_model=WaitlistSummaryResponse)
def waitlist_summary(
    restaurant_id: Optional[UUID] = Query(None, alias="restaurantId"),
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    """Today's counts by state."""
    restaurant_id = resolve_restaurant_id(actor, restaurant_id)
    return WaitlistSummaryResponse(**engine.waitlist.summary(restaurant_id, engine.now_for(restaurant_id)))


@router.post("/waitlist/{entry_id}/reorder", response_model=WaitlistEntryResponse)
def reorder_entry(
    entry_id: UUID,
    payload: WaitlistReorder,
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    """Move an entry one place up or down the line."""
    entry = engine.waitlist.reorder(entry_id, payload.direction, actor)
    return WaitlistEntryResponse.from_model(entry)


@router.post("/waitlist/{entry_id}/seat", response_model=WaitlistEntryResponse)
def seat_entry(
    entry_id: UUID,
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    """Accept the table offer: seat the party."""
    existing = engine.waitlist.get(entry_id)
    entry = engine.waitlist.seat(entry_id, actor, engine.now_for(existing.restaurant_id))
    return WaitlistEntryResponse.from_model(entry)


@router.post("/waitlist/{entry_id}/leave", response_model=WaitlistEntryResponse)
def leave_table(
    entry_id: UUID,
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    """The seated party has left; the table is freed."""
    entry = engine.release_walk_in(entry_id, actor)
    return WaitlistEntryResponse.from_model(entry)


@router.post("/waitlist/{entry_id}/decline", response_model=WaitlistEntryResponse)
def decline_offer(
    entry_id: UUID,
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    """Reject the table offer; the party keeps its place in line."""
    entry = engine.waitlist.decline_offer(entry_id, actor)
    return WaitlistEntryResponse.from_model(entry)


@router.delete("/waitlist/{entry_id}", response_model=WaitlistEntryResponse)
def remove_entry(
    entry_id: UUID,
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    existing = engine.waitlist.get(entry_id)
    entry = engine.waitlist.remove(entry_id, actor, engine.now_for(existing.restaurant_id))
    return WaitlistEntryResponse.from_model(entry)
