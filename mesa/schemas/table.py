"""
Table and availability Pydantic schemas.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import Field

from mesa.core.clock import format_hhmm
from mesa.models.table import DiningTable
from mesa.schemas.base import CamelModel
from mesa.services.availability import SlotView, TableView


class SlotResponse(CamelModel):
    time: str
    available: bool
    is_peak: bool
    requires_deposit: bool
    deposit_amount: Optional[float] = None

    @classmethod
    def from_view(cls, slot: SlotView) -> "SlotResponse":
        return cls(
            time=format_hhmm(slot.time),
            available=slot.available,
            is_peak=slot.is_peak,
            requires_deposit=slot.requires_deposit,
            deposit_amount=float(slot.deposit_amount) if slot.deposit_amount is not None else None,
        )


class SlotListResponse(CamelModel):
    restaurant_id: UUID
    date: str
    party_size: int
    slots: List[SlotResponse]


class TableCreate(CamelModel):
    number: int = Field(..., ge=1)
    capacity: int
    shape: str = "round"
    position_x: int = 0
    position_y: int = 0
    width: int = Field(60, ge=1)
    height: int = Field(60, ge=1)


class TableStatusUpdate(CamelModel):
    # Canonical or legacy spelling (disponible, ocupada, maintenance, ...)
    status: str


class TableResponse(CamelModel):
    id: UUID
    restaurant_id: UUID
    number: int
    capacity: int
    shape: str
    position_x: int
    position_y: int
    width: int
    height: int
    status: str
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, table: DiningTable) -> "TableResponse":
        return cls(
            id=table.id,
            restaurant_id=table.restaurant_id,
            number=table.number,
            capacity=table.capacity,
            shape=table.shape,
            position_x=table.position_x,
            position_y=table.position_y,
            width=table.width,
            height=table.height,
            status=table.status.value,
            updated_at=table.updated_at,
        )


class TableListResponse(CamelModel):
    tables: List[TableResponse]
    total: int


class TableAvailabilityResponse(CamelModel):
    table_id: UUID
    number: int
    capacity: int
    status: str
    fits_party: bool
    free: bool
    selectable: bool
    shape: str
    position_x: int
    position_y: int
    width: int
    height: int
    next_reservation_at: Optional[datetime] = None

    @classmethod
    def from_view(cls, view: TableView) -> "TableAvailabilityResponse":
        return cls(
            table_id=view.table_id,
            number=view.number,
            capacity=view.capacity,
            status=view.status.value,
            fits_party=view.fits_party,
            free=view.free,
            selectable=view.selectable,
            shape=view.shape,
            position_x=view.position_x,
            position_y=view.position_y,
            width=view.width,
            height=view.height,
            next_reservation_at=view.next_reservation_at,
        )


class TableMapResponse(CamelModel):
    date: str
    time: str
    party_size: int
    tables: List[TableAvailabilityResponse]
    available_count: int
