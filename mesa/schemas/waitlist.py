"""
Waitlist Pydantic schemas.
"""
from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import EmailStr, Field

from mesa.models.waitlist import WaitlistEntry
from mesa.schemas.base import CamelModel


class WaitlistCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    party_size: int
    phone: Optional[str] = Field(None, max_length=50)
    email: Optional[EmailStr] = None
    notes: Optional[str] = None
    # Only super admins pass this; staff tokens carry their restaurant
    restaurant_id: Optional[UUID] = None


class WaitlistReorder(CamelModel):
    direction: Literal["up", "down"]


class WaitlistEntryResponse(CamelModel):
    entry_id: UUID
    restaurant_id: UUID
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    party_size: int
    notes: Optional[str] = None
    priority: int
    status: str
    offered_table_id: Optional[UUID] = None
    assigned_at: Optional[datetime] = None
    seated_at: Optional[datetime] = None
    left_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, entry: WaitlistEntry) -> "WaitlistEntryResponse":
        return cls(
            entry_id=entry.id,
            restaurant_id=entry.restaurant_id,
            name=entry.name,
            phone=entry.phone,
            email=entry.email,
            party_size=entry.party_size,
            notes=entry.notes,
            priority=entry.priority,
            status=entry.status.value,
            offered_table_id=entry.offered_table_id,
            assigned_at=entry.assigned_at,
            seated_at=entry.seated_at,
            left_at=entry.left_at,
            created_at=entry.created_at,
        )


class WaitlistListResponse(CamelModel):
    entries: List[WaitlistEntryResponse]
    total: int


class WaitlistSummaryResponse(CamelModel):
    waiting: int
    offered: int
    seated: int
    removed: int
    total: int
    average_wait_minutes: Optional[float] = None


class OfferResponse(CamelModel):
    """Result of offering a table: the proposed entry, or none if nobody fits."""
    table_id: UUID
    entry: Optional[WaitlistEntryResponse] = None
