"""
Tables router: floor plan management and manual status overrides (staff).
"""
from uuid import UUID

from fastapi import APIRouter, Depends, status

from mesa.core.deps import Actor, get_current_staff
from mesa.core.errors import PermissionDenied, ValidationError
from mesa.models.table import TableStatus
from mesa.schemas.table import TableCreate, TableListResponse, TableResponse, TableStatusUpdate
from mesa.schemas.waitlist import OfferResponse, WaitlistEntryResponse
from mesa.services.engine import AllocationEngine, get_engine

router = APIRouter(tags=["tables"])


def _require_manage(actor: Actor, restaurant_id: UUID) -> None:
    if not actor.can_manage(restaurant_id):
        raise PermissionDenied("Only restaurant staff can manage tables")


@router.get("/restaurants/{restaurant_id}/tables", response_model=TableListResponse)
def list_tables(
    restaurant_id: UUID,
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    _require_manage(actor, restaurant_id)
    engine.policies.get_restaurant(restaurant_id)
    tables = engine.tables.list_tables(restaurant_id)
    return TableListResponse(tables=[TableResponse.from_model(t) for t in tables], total=len(tables))


@router.post(
    "/restaurants/{restaurant_id}/tables",
    response_model=TableResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_table(
    restaurant_id: UUID,
    payload: TableCreate,
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    _require_manage(actor, restaurant_id)
    engine.policies.get_restaurant(restaurant_id)
    table = engine.tables.create_table(
        restaurant_id,
        number=payload.number,
        capacity=payload.capacity,
        shape=payload.shape,
        position_x=payload.position_x,
        position_y=payload.position_y,
        width=payload.width,
        height=payload.height,
    )
    return TableResponse.from_model(table)


@router.patch("/tables/{table_id}/status", response_model=TableResponse)
def update_table_status(
    table_id: UUID,
    payload: TableStatusUpdate,
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    """
    Manual override, e.g. block a table for maintenance.

    Accepts the legacy floor-plan spellings as well as the canonical ones.
    """
    try:
        new_status = TableStatus.from_external(payload.status)
    except ValueError:
        raise ValidationError(f"Unknown table status: {payload.status}")
    table = engine.set_table_status(table_id, new_status, actor)
    return TableResponse.from_model(table)


@router.delete("/tables/{table_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_table(
    table_id: UUID,
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    table = engine.tables.get_table(table_id)
    _require_manage(actor, table.restaurant_id)
    engine.tables.delete_table(table_id)


@router.post("/tables/{table_id}/offer", response_model=OfferResponse)
def offer_table(
    table_id: UUID,
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    """Propose this table to the first waiting party that fits."""
    entry = engine.offer_table(table_id, actor)
    return OfferResponse(
        table_id=table_id,
        entry=WaitlistEntryResponse.from_model(entry) if entry else None,
    )
