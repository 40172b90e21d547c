"""
Allocation Engine: the entry point the HTTP layer and the sweep job use.

Composes policy, availability, the reservation state machine, the table
registry and the waitlist. Follow-ups that run after a state change has
committed (waitlist offers for a freed table, guest notifications) are
best-effort: their failures are logged and never undo the change.
"""
import logging
import time as time_module
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

from fastapi import BackgroundTasks, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from mesa.core.clock import local_now, windows_overlap
from mesa.core.config import Settings, get_settings
from mesa.core.deps import Actor, SYSTEM_ACTOR
from mesa.core.errors import Busy, NotFound, PermissionDenied
from mesa.core.locks import LockManager, get_lock_manager
from mesa.db.session import get_db
from mesa.models.reservation import Reservation
from mesa.models.restaurant import Restaurant
from mesa.models.table import DiningTable, TableStatus
from mesa.models.waitlist import WaitlistEntry
from mesa.services import notifications
from mesa.services.availability import AvailabilityCalculator
from mesa.services.notifications import Notifier, get_notifier
from mesa.services.policy_store import PolicyStore
from mesa.services.reservations import BookingRequest, BookingResult, ReservationService
from mesa.services.table_registry import TableRegistry
from mesa.services.waitlist import WaitlistService

logger = logging.getLogger(__name__)


class AllocationEngine:
    """Orchestrates booking, check-in/release and waitlist arbitration."""

    def __init__(
        self,
        db: Session,
        locks: Optional[LockManager] = None,
        notifier: Optional[Notifier] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], None] = time_module.sleep,
        defer: Optional[Callable[..., None]] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.locks = locks or get_lock_manager()
        self.notifier = notifier or get_notifier()
        self.sleep = sleep
        # Runs fn(*args); HTTP requests pass BackgroundTasks.add_task so email goes out after the response
        self.defer = defer or (lambda fn, *args: fn(*args))

        self.policies = PolicyStore(db, self.settings)
        self.availability = AvailabilityCalculator(db, self.policies)
        self.tables = TableRegistry(db, self.locks)
        self.reservations = ReservationService(db, self.locks, self.policies)
        self.waitlist = WaitlistService(db, self.locks, self.policies)

    def now_for(self, restaurant_id: UUID) -> datetime:
        """Current local wall time at the restaurant."""
        return local_now(self.policies.get_restaurant(restaurant_id).timezone)

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def book(self, request: BookingRequest, now: Optional[datetime] = None) -> BookingResult:
        """
        Create a reservation, retrying lock contention with exponential backoff.

        Busy surfaces to the caller once BOOKING_RETRY_ATTEMPTS is spent.
        """
        now = now or self.now_for(request.restaurant_id)
        attempts = max(self.settings.BOOKING_RETRY_ATTEMPTS, 1)
        for attempt in range(attempts):
            try:
                result = self.reservations.create(request, now)
                break
            except Busy:
                if attempt == attempts - 1:
                    logger.warning(f"Booking for restaurant {request.restaurant_id} still busy after {attempts} attempts")
                    raise
                delay = self.settings.BOOKING_RETRY_BACKOFF_SECONDS * (2 ** attempt)
                logger.info(f"Booking busy, retrying in {delay:.2f}s (attempt {attempt + 1}/{attempts})")
                self.sleep(delay)

        self._notify(notifications.reservation_booked(
            result.reservation, self._restaurant_name(request.restaurant_id)
        ))
        return result

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def confirm(self, reservation_id: UUID, actor: Actor, now: Optional[datetime] = None) -> Reservation:
        now = now or self._now_for_reservation(reservation_id)
        return self.reservations.confirm(reservation_id, actor, now)

    def cancel(
        self,
        reservation_id: UUID,
        actor: Actor,
        now: Optional[datetime] = None,
        reason: Optional[str] = None,
    ) -> Reservation:
        now = now or self._now_for_reservation(reservation_id)
        reservation = self.reservations.cancel(reservation_id, actor, now, reason=reason)
        self._notify(notifications.reservation_cancelled(
            reservation, self._restaurant_name(reservation.restaurant_id)
        ))
        # A future window frees nothing a walk-in could use now
        duration = self.policies.get_policy(reservation.restaurant_id).service_duration_minutes
        if windows_overlap(reservation.starts_at, reservation.ends_at, now, now + timedelta(minutes=duration)):
            self._offer_freed_table(reservation.table_id, now)
        return reservation

    def check_in(self, reservation_id: UUID, actor: Actor, now: Optional[datetime] = None) -> Reservation:
        now = now or self._now_for_reservation(reservation_id)
        return self.reservations.check_in(reservation_id, actor, now)

    def check_in_by_code(self, confirmation_code: str, actor: Actor, now: Optional[datetime] = None) -> Reservation:
        """Door check-in from a scanned confirmation code."""
        reservation = self.reservations.get_by_code(confirmation_code)
        if not actor.can_manage(reservation.restaurant_id):
            # Don't reveal reservations of other restaurants
            raise NotFound("No reservation matches this confirmation code")
        return self.check_in(reservation.id, actor, now)

    def release(self, reservation_id: UUID, actor: Actor, now: Optional[datetime] = None) -> Reservation:
        now = now or self._now_for_reservation(reservation_id)
        reservation = self.reservations.release(reservation_id, actor, now)
        self._offer_freed_table(reservation.table_id, now)
        return reservation

    def mark_no_show(self, reservation_id: UUID, actor: Actor, now: Optional[datetime] = None) -> Reservation:
        now = now or self._now_for_reservation(reservation_id)
        reservation = self.reservations.mark_no_show(reservation_id, actor, now)
        self._offer_freed_table(reservation.table_id, now)
        return reservation

    def confirm_deposit(self, reservation_id: UUID, amount: Decimal, now: Optional[datetime] = None) -> Reservation:
        now = now or self._now_for_reservation(reservation_id)
        return self.reservations.confirm_deposit(reservation_id, amount, now)

    # ------------------------------------------------------------------
    # Tables and waitlist
    # ------------------------------------------------------------------

    def set_table_status(
        self,
        table_id: UUID,
        status: TableStatus,
        actor: Actor,
        now: Optional[datetime] = None,
    ) -> DiningTable:
        table = self.tables.get_table(table_id)
        if not actor.can_manage(table.restaurant_id):
            raise PermissionDenied("Only restaurant staff can change table status")
        now = now or self.now_for(table.restaurant_id)
        table = self.tables.set_status(table_id, status, now)
        if status == TableStatus.AVAILABLE:
            self._offer_freed_table(table.id, now)
        return table

    def offer_table(self, table_id: UUID, actor: Actor, now: Optional[datetime] = None) -> Optional[WaitlistEntry]:
        """Staff-triggered waitlist offer for a table."""
        table = self.tables.get_table(table_id)
        if not actor.can_manage(table.restaurant_id):
            raise PermissionDenied("Only restaurant staff can manage the waitlist")
        now = now or self.now_for(table.restaurant_id)
        entry = self.waitlist.offer_next_match(table_id, now)
        if entry is not None:
            self._notify(notifications.waitlist_offer(entry, table, self._restaurant_name(table.restaurant_id)))
        return entry

    def release_walk_in(self, entry_id: UUID, actor: Actor, now: Optional[datetime] = None) -> WaitlistEntry:
        """A seated walk-in party left; the freed table goes to the next in line."""
        existing = self.waitlist.get(entry_id)
        now = now or self.now_for(existing.restaurant_id)
        entry = self.waitlist.leave(entry_id, actor, now)
        self._offer_freed_table(entry.offered_table_id, now)
        return entry

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    def run_sweeps(self, now: Optional[datetime] = None) -> dict:
        """
        No-show and unpaid-deposit sweeps for every active restaurant.

        Each restaurant is swept at its own local time unless now is given.
        """
        restaurants = self.db.execute(
            select(Restaurant).where(Restaurant.is_active.is_(True))
        ).scalars().all()

        totals = {"no_show": 0, "deposit_expired": 0}
        for restaurant in restaurants:
            restaurant_now = now or local_now(restaurant.timezone)
            for reservation in self.reservations.sweep_no_shows(restaurant.id, restaurant_now, SYSTEM_ACTOR):
                totals["no_show"] += 1
                self._offer_freed_table(reservation.table_id, restaurant_now)
            expired = self.reservations.expire_unpaid_deposits(restaurant.id, restaurant_now, SYSTEM_ACTOR)
            for reservation in expired:
                totals["deposit_expired"] += 1
                self._notify(notifications.reservation_cancelled(reservation, restaurant.name))

        if totals["no_show"] or totals["deposit_expired"]:
            logger.info(
                f"Sweep: {totals['no_show']} no-shows, {totals['deposit_expired']} unpaid deposits cancelled"
            )
        return totals

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _now_for_reservation(self, reservation_id: UUID) -> datetime:
        return self.now_for(self.reservations.get(reservation_id).restaurant_id)

    def _restaurant_name(self, restaurant_id: UUID) -> str:
        restaurant = self.db.get(Restaurant, restaurant_id)
        return restaurant.name if restaurant else "the restaurant"

    def _notify(self, notification: Optional[notifications.Notification]) -> None:
        if notification is None:
            return
        self.defer(self.notifier.dispatch, notification)

    def _offer_freed_table(self, table_id: Optional[UUID], now: datetime) -> Optional[WaitlistEntry]:
        if table_id is None:
            return None
        try:
            entry = self.waitlist.offer_next_match(table_id, now)
        except (Busy, NotFound) as e:
            logger.warning(f"Waitlist offer for table {table_id} skipped: {e}")
            return None
        if entry is not None:
            table = self.tables.get_table(table_id)
            self._notify(notifications.waitlist_offer(entry, table, self._restaurant_name(table.restaurant_id)))
        return entry


def get_engine(background_tasks: BackgroundTasks, db: Session = Depends(get_db)) -> AllocationEngine:
    """FastAPI dependency: an engine bound to the request's session; notifications are sent after the response."""
    return AllocationEngine(db, defer=background_tasks.add_task)
