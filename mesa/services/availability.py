"""
Availability Calculator.

Pure reads: which slots of a business date can seat a party, and which
tables can take a given window. Nothing here takes locks or writes; the
authoritative conflict check runs again inside the booking transaction.

A table is free for [start, end) when:
- it is not blocked
- no active reservation (pending/confirmed/arrived) on it overlaps the window
- if it is currently occupied (walk-in or seated party), the window does not
  overlap [now, now + service duration)
"""
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from mesa.core.clock import day_bounds, service_window, slot_datetime, windows_overlap
from mesa.core.errors import InvalidPartySize
from mesa.models.reservation import ACTIVE_STATUSES, Reservation
from mesa.models.table import DiningTable, TableStatus
from mesa.services.policy_store import EffectivePolicy, PolicyStore


@dataclass
class SlotView:
    """One bookable time point on the grid."""
    time: time
    available: bool
    is_peak: bool
    requires_deposit: bool
    deposit_amount: Optional[Decimal]


@dataclass
class TableView:
    """A table's standing for one requested window."""
    table_id: UUID
    number: int
    capacity: int
    status: TableStatus
    fits_party: bool
    free: bool
    shape: str
    position_x: int
    position_y: int
    width: int
    height: int
    next_reservation_at: Optional[datetime] = None

    @property
    def selectable(self) -> bool:
        return self.fits_party and self.free


def active_reservations_query(table_id: UUID, starts_at: datetime, ends_at: datetime, exclude_id: Optional[UUID] = None):
    """Active reservations on a table whose window overlaps [starts_at, ends_at)."""
    stmt = select(Reservation).where(
        Reservation.table_id == table_id,
        Reservation.status.in_(ACTIVE_STATUSES),
        Reservation.starts_at < ends_at,
        Reservation.ends_at > starts_at,
    )
    if exclude_id is not None:
        stmt = stmt.where(Reservation.id != exclude_id)
    return stmt


def occupied_conflict(table: DiningTable, starts_at: datetime, ends_at: datetime, now: datetime, duration_minutes: int) -> bool:
    """An occupied table stays busy for one service duration from now."""
    if table.status != TableStatus.OCCUPIED:
        return False
    busy_start, busy_end = service_window(now, duration_minutes)
    return windows_overlap(starts_at, ends_at, busy_start, busy_end)


class AvailabilityCalculator:
    """Slot grid and candidate-table selection for one restaurant."""

    def __init__(self, db: Session, policy_store: Optional[PolicyStore] = None):
        self.db = db
        self.policies = policy_store or PolicyStore(db)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _tables(self, restaurant_id: UUID) -> list[DiningTable]:
        return list(self.db.execute(
            select(DiningTable)
            .where(DiningTable.restaurant_id == restaurant_id)
            .order_by(DiningTable.number)
        ).scalars().all())

    def _active_windows(
        self,
        restaurant_id: UUID,
        range_start: datetime,
        range_end: datetime,
    ) -> dict[UUID, list[tuple[datetime, datetime]]]:
        """Active reservation windows per table intersecting a range."""
        rows = self.db.execute(
            select(Reservation.table_id, Reservation.starts_at, Reservation.ends_at).where(
                Reservation.restaurant_id == restaurant_id,
                Reservation.table_id.is_not(None),
                Reservation.status.in_(ACTIVE_STATUSES),
                Reservation.starts_at < range_end,
                Reservation.ends_at > range_start,
            )
        ).all()
        windows: dict[UUID, list[tuple[datetime, datetime]]] = defaultdict(list)
        for table_id, starts_at, ends_at in rows:
            windows[table_id].append((starts_at, ends_at))
        for spans in windows.values():
            spans.sort()
        return windows

    @staticmethod
    def _is_free(
        table: DiningTable,
        spans: Iterable[tuple[datetime, datetime]],
        starts_at: datetime,
        ends_at: datetime,
        now: datetime,
        duration_minutes: int,
    ) -> bool:
        if table.status == TableStatus.BLOCKED:
            return False
        if occupied_conflict(table, starts_at, ends_at, now, duration_minutes):
            return False
        return not any(windows_overlap(starts_at, ends_at, s, e) for s, e in spans)

    # ------------------------------------------------------------------
    # Slot grid
    # ------------------------------------------------------------------

    def get_slots(
        self,
        restaurant_id: UUID,
        business_date: date,
        party_size: int,
        now: datetime,
    ) -> list[SlotView]:
        """
        Ordered slot grid for a business date.

        Closed days return an empty list. Slots inside the lead time, in the
        past, or beyond the advance-booking horizon are unavailable.
        """
        if party_size is None or party_size < 1:
            raise InvalidPartySize("Party size must be at least 1")

        policy = self.policies.get_policy(restaurant_id)
        slot_times = self.policies.slot_times(restaurant_id, business_date, policy)
        if not slot_times:
            return []

        day_start_hour = self.policies.day_start_hour
        duration = policy.service_duration_minutes
        range_start, range_end = day_bounds(business_date, day_start_hour)
        windows = self._active_windows(
            restaurant_id, range_start, range_end + timedelta(minutes=duration)
        )
        fitting = [
            t for t in self._tables(restaurant_id)
            if t.capacity >= party_size and party_size <= policy.max_party_size
        ]

        grid = []
        for slot in slot_times:
            starts_at, ends_at = service_window(
                slot_datetime(business_date, slot, day_start_hour), duration
            )
            available = self.policies.is_bookable_window(starts_at, business_date, now, policy) and any(
                self._is_free(t, windows.get(t.id, ()), starts_at, ends_at, now, duration)
                for t in fitting
            )
            peak = self.policies.peak_for(restaurant_id, business_date, slot, policy)
            deposit = self.policies.deposit_for(policy, peak)
            grid.append(SlotView(
                time=slot,
                available=available,
                is_peak=peak is not None,
                requires_deposit=deposit is not None,
                deposit_amount=deposit,
            ))
        return grid

    # ------------------------------------------------------------------
    # Table selection
    # ------------------------------------------------------------------

    def candidate_tables(
        self,
        restaurant_id: UUID,
        starts_at: datetime,
        ends_at: datetime,
        party_size: int,
        now: datetime,
        policy: Optional[EffectivePolicy] = None,
    ) -> list[DiningTable]:
        """
        Free tables that seat the party, best first.

        Order: smallest sufficient capacity, then the table whose next
        reservation after the window starts earliest (keeps long free
        stretches on other tables), then table number.
        """
        policy = policy or self.policies.get_policy(restaurant_id)
        duration = policy.service_duration_minutes
        horizon = ends_at + timedelta(days=1)
        windows = self._active_windows(restaurant_id, starts_at, horizon)

        scored = []
        for table in self._tables(restaurant_id):
            if table.capacity < party_size:
                continue
            spans = windows.get(table.id, ())
            if not self._is_free(table, spans, starts_at, ends_at, now, duration):
                continue
            next_start = min((s for s, _ in spans if s >= ends_at), default=None)
            scored.append((table.capacity, next_start or datetime.max, table.number, table))

        scored.sort(key=lambda item: item[:3])
        return [item[3] for item in scored]

    def table_is_free(
        self,
        table: DiningTable,
        starts_at: datetime,
        ends_at: datetime,
        now: datetime,
        duration_minutes: int,
        exclude_reservation_id: Optional[UUID] = None,
    ) -> bool:
        """Authoritative single-table check, run under the table lock."""
        if table.status == TableStatus.BLOCKED:
            return False
        if occupied_conflict(table, starts_at, ends_at, now, duration_minutes):
            return False
        conflict = self.db.execute(
            active_reservations_query(table.id, starts_at, ends_at, exclude_reservation_id).limit(1)
        ).scalar_one_or_none()
        return conflict is None

    def table_map(
        self,
        restaurant_id: UUID,
        business_date: date,
        slot: time,
        party_size: int,
        now: datetime,
    ) -> list[TableView]:
        """Every table with its standing for one slot (floor plan / picker)."""
        policy = self.policies.get_policy(restaurant_id)
        duration = policy.service_duration_minutes
        starts_at, ends_at = service_window(
            slot_datetime(business_date, slot, self.policies.day_start_hour), duration
        )
        windows = self._active_windows(restaurant_id, starts_at, ends_at + timedelta(days=1))
        bookable = self.policies.is_bookable_window(starts_at, business_date, now, policy)

        views = []
        for table in self._tables(restaurant_id):
            spans = windows.get(table.id, ())
            free = bookable and self._is_free(table, spans, starts_at, ends_at, now, duration)
            views.append(TableView(
                table_id=table.id,
                number=table.number,
                capacity=table.capacity,
                status=table.status,
                fits_party=table.capacity >= party_size,
                free=free,
                shape=table.shape,
                position_x=table.position_x,
                position_y=table.position_y,
                width=table.width,
                height=table.height,
                next_reservation_at=min((s for s, _ in spans if s >= ends_at), default=None),
            ))
        return views
