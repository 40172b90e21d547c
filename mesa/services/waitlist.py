"""
Waitlist Queue for walk-in parties.

Entries are ranked by an integer priority (1 = first in line). All writes
for one restaurant go through its waitlist lock, so concurrent reorders are
applied one after another in arrival order.

The queue only proposes: offer_next_match marks an entry as assigned to a
freed table and staff confirm with seat (or decline_offer to put the party
back in line). A seated party holds its table until staff record leave.
"""
import logging
from collections import Counter
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from mesa.core.clock import day_bounds, get_business_date, service_window
from mesa.core.deps import Actor
from mesa.core.errors import InvalidPartySize, InvalidTransition, NotFound, PermissionDenied, ValidationError
from mesa.core.locks import LockManager, get_lock_manager, table_lock_key, waitlist_lock_key
from mesa.models.table import TableStatus
from mesa.models.waitlist import WaitlistEntry, WaitlistStatus
from mesa.services.availability import AvailabilityCalculator
from mesa.services.policy_store import PolicyStore
from mesa.services.table_registry import TableRegistry

logger = logging.getLogger(__name__)

DIRECTIONS = ("up", "down")


class WaitlistService:
    """Priority-ordered walk-in queue per restaurant."""

    def __init__(
        self,
        db: Session,
        locks: Optional[LockManager] = None,
        policy_store: Optional[PolicyStore] = None,
    ):
        self.db = db
        self.locks = locks or get_lock_manager()
        self.policies = policy_store or PolicyStore(db)
        self.availability = AvailabilityCalculator(db, self.policies)
        self.tables = TableRegistry(db, self.locks)

    def get(self, entry_id: UUID) -> WaitlistEntry:
        entry = self.db.get(WaitlistEntry, entry_id)
        if entry is None:
            raise NotFound(f"Waitlist entry {entry_id} not found")
        return entry

    def _locked_entry(self, entry_id: UUID) -> WaitlistEntry:
        return self.db.execute(
            select(WaitlistEntry)
            .where(WaitlistEntry.id == entry_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()

    @staticmethod
    def _require_staff(actor: Actor, restaurant_id: UUID) -> None:
        if not actor.can_manage(restaurant_id):
            raise PermissionDenied("Only restaurant staff can manage the waitlist")

    # ------------------------------------------------------------------
    # Queue operations
    # ------------------------------------------------------------------

    def enqueue(
        self,
        restaurant_id: UUID,
        party_size: int,
        name: str,
        actor: Actor,
        now: datetime,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> WaitlistEntry:
        """Append a party at the end of the line."""
        self._require_staff(actor, restaurant_id)
        self.policies.get_restaurant(restaurant_id)
        if party_size is None or party_size < 1:
            raise InvalidPartySize("Party size must be at least 1")
        if not (name or "").strip():
            raise ValidationError("Name is required")

        with self.locks.hold(waitlist_lock_key(restaurant_id)):
            try:
                last = self.db.execute(
                    select(func.max(WaitlistEntry.priority)).where(
                        WaitlistEntry.restaurant_id == restaurant_id
                    )
                ).scalar()
                entry = WaitlistEntry(
                    restaurant_id=restaurant_id,
                    name=name.strip(),
                    phone=phone,
                    email=email,
                    party_size=party_size,
                    notes=notes,
                    priority=(last or 0) + 1,
                    status=WaitlistStatus.WAITING,
                    created_at=now,
                )
                self.db.add(entry)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
        self.db.refresh(entry)
        logger.info(f"Waitlist: {entry.name} (party {party_size}) queued at priority {entry.priority}")
        return entry

    def reorder(self, entry_id: UUID, direction: str, actor: Actor) -> WaitlistEntry:
        """
        Swap priority with the adjacent waiting entry.

        Moving the first entry up or the last entry down changes nothing.
        """
        if direction not in DIRECTIONS:
            raise ValidationError("Direction must be 'up' or 'down'")
        existing = self.get(entry_id)
        self._require_staff(actor, existing.restaurant_id)

        with self.locks.hold(waitlist_lock_key(existing.restaurant_id)):
            try:
                entry = self._locked_entry(entry_id)
                if entry.status != WaitlistStatus.WAITING:
                    raise InvalidTransition(f"Only waiting entries can be reordered ({entry.status.value})")

                stmt = select(WaitlistEntry).where(
                    WaitlistEntry.restaurant_id == entry.restaurant_id,
                    WaitlistEntry.status == WaitlistStatus.WAITING,
                )
                if direction == "up":
                    stmt = stmt.where(WaitlistEntry.priority < entry.priority).order_by(WaitlistEntry.priority.desc())
                else:
                    stmt = stmt.where(WaitlistEntry.priority > entry.priority).order_by(WaitlistEntry.priority)
                neighbor = self.db.execute(stmt.limit(1).with_for_update()).scalar_one_or_none()

                if neighbor is not None:
                    entry.priority, neighbor.priority = neighbor.priority, entry.priority
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
        self.db.refresh(entry)
        return entry

    def offer_next_match(self, table_id: UUID, now: datetime) -> Optional[WaitlistEntry]:
        """
        Propose a freed table to the first waiting party that fits.

        Returns None when the table is blocked, already has an open offer, is
        not free for a full service from now, or nobody in line fits.
        """
        table = self.tables.get_table(table_id)
        if table.status == TableStatus.BLOCKED:
            return None

        policy = self.policies.get_policy(table.restaurant_id)
        starts_at, ends_at = service_window(now, policy.service_duration_minutes)

        with self.locks.hold(waitlist_lock_key(table.restaurant_id)):
            try:
                outstanding = self.db.execute(
                    select(WaitlistEntry.id).where(
                        WaitlistEntry.offered_table_id == table_id,
                        WaitlistEntry.status == WaitlistStatus.ASSIGNED,
                        WaitlistEntry.seated_at.is_(None),
                    ).limit(1)
                ).scalar_one_or_none()
                if outstanding is not None:
                    self.db.rollback()
                    return None

                if not self.availability.table_is_free(
                    table, starts_at, ends_at, now, policy.service_duration_minutes
                ):
                    self.db.rollback()
                    return None

                entry = self.db.execute(
                    select(WaitlistEntry)
                    .where(
                        WaitlistEntry.restaurant_id == table.restaurant_id,
                        WaitlistEntry.status == WaitlistStatus.WAITING,
                        WaitlistEntry.party_size <= table.capacity,
                    )
                    .order_by(WaitlistEntry.priority)
                    .limit(1)
                    .with_for_update()
                ).scalar_one_or_none()
                if entry is None:
                    self.db.rollback()
                    return None

                entry.status = WaitlistStatus.ASSIGNED
                entry.offered_table_id = table.id
                entry.assigned_at = now
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
        self.db.refresh(entry)
        logger.info(f"Waitlist: table {table.number} offered to {entry.name} (priority {entry.priority})")
        return entry

    def seat(self, entry_id: UUID, actor: Actor, now: datetime) -> WaitlistEntry:
        """Staff accept an offer: the party sits down and the table is occupied."""
        existing = self.get(entry_id)
        self._require_staff(actor, existing.restaurant_id)
        if existing.status != WaitlistStatus.ASSIGNED or existing.offered_table_id is None:
            raise InvalidTransition("Entry has no table offer to accept")
        if existing.seated_at is not None:
            raise InvalidTransition("Party is already seated")

        policy = self.policies.get_policy(existing.restaurant_id)
        starts_at, ends_at = service_window(now, policy.service_duration_minutes)

        with self.locks.hold(table_lock_key(existing.offered_table_id)):
            with self.locks.hold(waitlist_lock_key(existing.restaurant_id)):
                try:
                    table = self.tables.lock_row(existing.offered_table_id)
                    entry = self._locked_entry(entry_id)
                    if entry.status != WaitlistStatus.ASSIGNED or entry.seated_at is not None:
                        raise InvalidTransition("Offer is no longer open")
                    if not self.availability.table_is_free(
                        table, starts_at, ends_at, now, policy.service_duration_minutes
                    ):
                        raise InvalidTransition(f"Table {table.number} is no longer free")
                    entry.seated_at = now
                    self.tables.mark_occupied(table)
                    self.db.commit()
                except Exception:
                    self.db.rollback()
                    raise
        self.db.refresh(entry)
        logger.info(f"Waitlist: {entry.name} seated at table {table.number}")
        return entry

    def leave(self, entry_id: UUID, actor: Actor, now: datetime) -> WaitlistEntry:
        """A seated walk-in party has left: record it and free the table."""
        existing = self.get(entry_id)
        self._require_staff(actor, existing.restaurant_id)
        if existing.seated_at is None or existing.offered_table_id is None:
            raise InvalidTransition("Party was never seated")
        if existing.left_at is not None:
            raise InvalidTransition("Party has already left")

        with self.locks.hold(table_lock_key(existing.offered_table_id)):
            with self.locks.hold(waitlist_lock_key(existing.restaurant_id)):
                try:
                    table = self.tables.lock_row(existing.offered_table_id)
                    entry = self._locked_entry(entry_id)
                    if entry.left_at is not None:
                        raise InvalidTransition("Party has already left")
                    entry.left_at = now
                    self.db.flush()
                    self.tables.release(table)
                    self.db.commit()
                except Exception:
                    self.db.rollback()
                    raise
        self.db.refresh(entry)
        logger.info(f"Waitlist: {entry.name} left table {table.number} ({table.status.value})")
        return entry

    def decline_offer(self, entry_id: UUID, actor: Actor) -> WaitlistEntry:
        """Return an offered party to the line at its original priority."""
        existing = self.get(entry_id)
        self._require_staff(actor, existing.restaurant_id)

        with self.locks.hold(waitlist_lock_key(existing.restaurant_id)):
            try:
                entry = self._locked_entry(entry_id)
                if entry.status != WaitlistStatus.ASSIGNED or entry.seated_at is not None:
                    raise InvalidTransition("Entry has no open offer")
                declined_table = entry.offered_table_id
                entry.status = WaitlistStatus.WAITING
                entry.offered_table_id = None
                entry.assigned_at = None
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
        self.db.refresh(entry)
        logger.info(f"Waitlist: {entry.name} declined table {declined_table}")
        return entry

    def remove(self, entry_id: UUID, actor: Actor, now: datetime) -> WaitlistEntry:
        """Take a party out of the line (left, cancelled, no-show at the counter)."""
        existing = self.get(entry_id)
        self._require_staff(actor, existing.restaurant_id)

        with self.locks.hold(waitlist_lock_key(existing.restaurant_id)):
            try:
                entry = self._locked_entry(entry_id)
                if entry.status == WaitlistStatus.REMOVED:
                    raise InvalidTransition("Entry was already removed")
                if entry.seated_at is not None:
                    raise InvalidTransition("Party is already seated")
                entry.status = WaitlistStatus.REMOVED
                entry.offered_table_id = None
                entry.removed_at = now
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
        self.db.refresh(entry)
        logger.info(f"Waitlist: {entry.name} removed")
        return entry

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_entries(
        self,
        restaurant_id: UUID,
        statuses: Optional[list[WaitlistStatus]] = None,
    ) -> list[WaitlistEntry]:
        stmt = select(WaitlistEntry).where(WaitlistEntry.restaurant_id == restaurant_id)
        if statuses:
            stmt = stmt.where(WaitlistEntry.status.in_(statuses))
        return list(self.db.execute(stmt.order_by(WaitlistEntry.priority)).scalars().all())

    def summary(self, restaurant_id: UUID, now: datetime) -> dict:
        """Counts of today's entries: waiting, offered, seated and removed."""
        restaurant = self.policies.get_restaurant(restaurant_id)
        start, end = day_bounds(
            get_business_date(now, day_start_hour=self.policies.day_start_hour),
            self.policies.day_start_hour,
        )
        entries = self.db.execute(
            select(WaitlistEntry).where(
                WaitlistEntry.restaurant_id == restaurant.id,
                WaitlistEntry.created_at >= start,
                WaitlistEntry.created_at < end,
            )
        ).scalars().all()

        counts = Counter()
        waits = []
        for entry in entries:
            if entry.status == WaitlistStatus.ASSIGNED:
                counts["seated" if entry.seated_at else "offered"] += 1
                if entry.seated_at:
                    waits.append((entry.seated_at - entry.created_at).total_seconds() / 60)
            else:
                counts[entry.status.value] += 1

        return {
            "waiting": counts["waiting"],
            "offered": counts["offered"],
            "seated": counts["seated"],
            "removed": counts["removed"],
            "total": len(entries),
            "average_wait_minutes": round(sum(waits) / len(waits), 1) if waits else None,
        }
