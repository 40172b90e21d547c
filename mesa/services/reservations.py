"""
Reservation State Machine.

Owns every reservation status change and the binding of a reservation to
exactly one table for exactly one service window.

Transitions:
    pending   -> confirmed   staff, or auto-confirm (deposit must be paid)
    pending   -> cancelled   owner or staff
    confirmed -> cancelled   owner or staff
    confirmed -> arrived     staff, inside [start - grace, start + tolerance]
    confirmed -> no_show     sweep or staff, once start + tolerance has passed
    arrived   -> completed   staff

completed, cancelled and no_show are terminal.

Every write runs as: table lock (bounded wait, Busy on timeout) -> row lock
(SELECT ... FOR UPDATE) -> re-check -> write -> commit. Any failure rolls
the session back so no partial table/reservation update survives.
"""
import enum
import logging
import secrets
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from mesa.core.deps import Actor
from mesa.core.errors import (
    Busy,
    InvalidTransition,
    NoTableAvailable,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from mesa.core.locks import LockManager, get_lock_manager, reservation_lock_key, table_lock_key
from mesa.models.reservation import Reservation, ReservationStatus, TERMINAL_STATUSES
from mesa.models.table import DiningTable
from mesa.services.availability import AvailabilityCalculator
from mesa.services.policy_store import BookingWindow, EffectivePolicy, PolicyStore
from mesa.services.table_registry import TableRegistry

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: dict[ReservationStatus, frozenset] = {
    ReservationStatus.PENDING: frozenset({ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED}),
    ReservationStatus.CONFIRMED: frozenset({
        ReservationStatus.ARRIVED,
        ReservationStatus.CANCELLED,
        ReservationStatus.NO_SHOW,
    }),
    ReservationStatus.ARRIVED: frozenset({ReservationStatus.COMPLETED}),
    ReservationStatus.COMPLETED: frozenset(),
    ReservationStatus.CANCELLED: frozenset(),
    ReservationStatus.NO_SHOW: frozenset(),
}


def can_transition(current: ReservationStatus, target: ReservationStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(current: ReservationStatus, target: ReservationStatus) -> ReservationStatus:
    """Return target if current -> target is allowed, raise InvalidTransition otherwise."""
    if not can_transition(current, target):
        raise InvalidTransition(
            f"Cannot change reservation from {current.value} to {target.value}"
        )
    return target


def generate_confirmation_code() -> str:
    """MF- followed by 12 uppercase hex characters."""
    return f"MF-{secrets.token_hex(6).upper()}"


class BookingOutcome(str, enum.Enum):
    CONFIRMED = "confirmed"
    PENDING = "pending"
    DEPOSIT_REQUIRED = "deposit_required"


@dataclass
class BookingRequest:
    restaurant_id: UUID
    date: date
    time: time
    party_size: int
    user_id: str
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    occasion: Optional[str] = None
    special_request: Optional[str] = None


@dataclass
class BookingResult:
    reservation: Reservation
    outcome: BookingOutcome

    @property
    def deposit_required(self) -> bool:
        return self.outcome == BookingOutcome.DEPOSIT_REQUIRED


class ReservationService:
    """Lifecycle transitions for reservations."""

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

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, reservation_id: UUID) -> Reservation:
        reservation = self.db.get(Reservation, reservation_id)
        if reservation is None:
            raise NotFound(f"Reservation {reservation_id} not found")
        return reservation

    def get_by_code(self, confirmation_code: str) -> Reservation:
        reservation = self.db.execute(
            select(Reservation).where(Reservation.confirmation_code == confirmation_code.strip().upper())
        ).scalar_one_or_none()
        if reservation is None:
            raise NotFound("No reservation matches this confirmation code")
        return reservation

    def list_for_user(self, user_id: str) -> list[Reservation]:
        return list(self.db.execute(
            select(Reservation)
            .where(Reservation.user_id == user_id)
            .order_by(Reservation.starts_at.desc())
        ).scalars().all())

    def list_for_day(
        self,
        restaurant_id: UUID,
        business_date: date,
        statuses: Optional[list[ReservationStatus]] = None,
    ) -> list[Reservation]:
        stmt = select(Reservation).where(
            Reservation.restaurant_id == restaurant_id,
            Reservation.date == business_date,
        )
        if statuses:
            stmt = stmt.where(Reservation.status.in_(statuses))
        return list(self.db.execute(stmt.order_by(Reservation.starts_at)).scalars().all())

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def create(self, request: BookingRequest, now: datetime) -> BookingResult:
        """
        Validate, pick a table and commit the binding atomically.

        Candidates are tried in tie-break order; each attempt re-checks the
        window under the table lock and row lock before inserting, so two
        concurrent requests can never both win the same table.
        """
        policy = self.policies.get_policy(request.restaurant_id)
        self.policies.validate_party_size(request.restaurant_id, request.party_size, policy)
        window = self.policies.validate_booking_time(
            request.restaurant_id, request.date, request.time, now, policy
        )
        peak = self.policies.peak_for(request.restaurant_id, request.date, request.time, policy)
        deposit = self.policies.deposit_for(policy, peak)

        candidates = self.availability.candidate_tables(
            request.restaurant_id, window.starts_at, window.ends_at, request.party_size, now, policy
        )
        busy = False
        for candidate in candidates:
            try:
                with self.locks.hold(table_lock_key(candidate.id)):
                    reservation = self._bind(request, window, candidate.id, deposit, policy, now)
            except Busy:
                busy = True
                continue
            if reservation is None:
                continue

            if reservation.deposit_required:
                outcome = BookingOutcome.DEPOSIT_REQUIRED
            elif reservation.status == ReservationStatus.CONFIRMED:
                outcome = BookingOutcome.CONFIRMED
            else:
                outcome = BookingOutcome.PENDING
            logger.info(
                f"Reservation {reservation.confirmation_code} booked on table {candidate.number} "
                f"for {request.date} {request.time.strftime('%H:%M')} ({outcome.value})"
            )
            return BookingResult(reservation=reservation, outcome=outcome)

        if busy:
            raise Busy("Tables for this slot are busy, please retry")
        raise NoTableAvailable(
            f"No table for {request.party_size} is free at {request.time.strftime('%H:%M')} on {request.date}"
        )

    def _bind(
        self,
        request: BookingRequest,
        window: BookingWindow,
        table_id: UUID,
        deposit: Optional[Decimal],
        policy: EffectivePolicy,
        now: datetime,
    ) -> Optional[Reservation]:
        """One attempt on one table; None if it was taken meanwhile."""
        try:
            table = self.tables.lock_row(table_id)
            if table.capacity < request.party_size or not self.availability.table_is_free(
                table, window.starts_at, window.ends_at, now, policy.service_duration_minutes
            ):
                self.db.rollback()
                return None

            if deposit is not None:
                status = ReservationStatus.PENDING
            elif policy.auto_confirm:
                status = ReservationStatus.CONFIRMED
            else:
                status = ReservationStatus.PENDING

            reservation = Reservation(
                restaurant_id=request.restaurant_id,
                table_id=table.id,
                user_id=request.user_id,
                date=window.business_date,
                time=window.time,
                starts_at=window.starts_at,
                ends_at=window.ends_at,
                party_size=request.party_size,
                status=status,
                customer_name=request.customer_name,
                customer_email=request.customer_email,
                customer_phone=request.customer_phone,
                occasion=request.occasion,
                special_request=request.special_request,
                deposit_required=deposit is not None,
                deposit_amount=deposit,
                deposit_paid=False,
                confirmation_code=generate_confirmation_code(),
                confirmed_at=now if status == ReservationStatus.CONFIRMED else None,
                created_at=now,
            )
            self.db.add(reservation)
            self.tables.mark_reserved(table)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(reservation)
        return reservation

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _apply(
        self,
        reservation_id: UUID,
        change: Callable[[Reservation, Optional[DiningTable]], None],
    ) -> Reservation:
        """Run a change under the table lock and row locks, commit or roll back."""
        current = self.get(reservation_id)
        key = table_lock_key(current.table_id) if current.table_id else reservation_lock_key(current.id)
        with self.locks.hold(key):
            try:
                table = self.tables.lock_row(current.table_id) if current.table_id else None
                reservation = self.db.execute(
                    select(Reservation)
                    .where(Reservation.id == reservation_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one()
                change(reservation, table)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
        self.db.refresh(reservation)
        return reservation

    @staticmethod
    def _require_staff(actor: Actor, reservation: Reservation) -> None:
        if not actor.can_manage(reservation.restaurant_id):
            raise PermissionDenied("Only restaurant staff can perform this action")

    def confirm(self, reservation_id: UUID, actor: Actor, now: datetime) -> Reservation:
        self._require_staff(actor, self.get(reservation_id))

        def change(reservation: Reservation, table: Optional[DiningTable]) -> None:
            reservation.status = ensure_transition(reservation.status, ReservationStatus.CONFIRMED)
            if reservation.deposit_required and not reservation.deposit_paid:
                raise InvalidTransition("Deposit must be paid before the reservation can be confirmed")
            reservation.confirmed_at = now

        reservation = self._apply(reservation_id, change)
        logger.info(f"Reservation {reservation.confirmation_code} confirmed by {actor.user_id}")
        return reservation

    def cancel(
        self,
        reservation_id: UUID,
        actor: Actor,
        now: datetime,
        reason: Optional[str] = None,
        cancelled_by: Optional[str] = None,
    ) -> Reservation:
        """Cancel from pending/confirmed; the owner or restaurant staff may cancel."""
        existing = self.get(reservation_id)
        if existing.user_id != actor.user_id and not actor.can_manage(existing.restaurant_id):
            raise PermissionDenied("You do not have permission to cancel this reservation")

        def change(reservation: Reservation, table: Optional[DiningTable]) -> None:
            reservation.status = ensure_transition(reservation.status, ReservationStatus.CANCELLED)
            reservation.cancelled_at = now
            reservation.cancel_reason = (reason or "").strip()[:255] or None
            reservation.cancelled_by = cancelled_by or actor.label
            if table is not None:
                self.tables.release(table, reservation.id)

        reservation = self._apply(reservation_id, change)
        logger.info(f"Reservation {reservation.confirmation_code} cancelled by {reservation.cancelled_by}")
        return reservation

    def check_in(self, reservation_id: UUID, actor: Actor, now: datetime) -> Reservation:
        """
        Seat a confirmed party.

        Allowed only inside [start - checkin grace, start + arrival tolerance].
        Late arrivals are refused whether or not the sweep has run yet, and so
        is seating at a table another party has not left.
        """
        existing = self.get(reservation_id)
        self._require_staff(actor, existing)
        policy = self.policies.get_policy(existing.restaurant_id)

        def change(reservation: Reservation, table: Optional[DiningTable]) -> None:
            reservation.status = ensure_transition(reservation.status, ReservationStatus.ARRIVED)
            opens = reservation.starts_at - timedelta(minutes=policy.checkin_grace_minutes)
            closes = reservation.starts_at + timedelta(minutes=policy.arrival_tolerance_minutes)
            if now < opens:
                raise InvalidTransition(
                    f"Check-in opens at {opens.strftime('%H:%M')} for this reservation"
                )
            if now > closes:
                raise InvalidTransition(
                    f"Check-in closed at {closes.strftime('%H:%M')}; the arrival tolerance has passed"
                )
            if table is not None:
                seated = self.tables.seated_party(table.id, exclude_reservation_id=reservation.id)
                if seated is not None:
                    raise InvalidTransition(
                        f"Table {table.number} still has a seated party; move this reservation to another table"
                    )
            reservation.arrived_at = now
            if table is not None:
                self.tables.mark_occupied(table)

        reservation = self._apply(reservation_id, change)
        logger.info(f"Reservation {reservation.confirmation_code} checked in")
        return reservation

    def release(self, reservation_id: UUID, actor: Actor, now: datetime) -> Reservation:
        """
        Close an arrived visit and free its table.

        Releasing an already completed reservation returns it unchanged.
        """
        existing = self.get(reservation_id)
        self._require_staff(actor, existing)
        if existing.status == ReservationStatus.COMPLETED:
            return existing

        def change(reservation: Reservation, table: Optional[DiningTable]) -> None:
            if reservation.status == ReservationStatus.COMPLETED:
                # Completed by a concurrent release
                return
            reservation.status = ensure_transition(reservation.status, ReservationStatus.COMPLETED)
            reservation.completed_at = now
            if table is not None:
                self.tables.release(table, reservation.id)

        reservation = self._apply(reservation_id, change)
        logger.info(f"Reservation {reservation.confirmation_code} completed")
        return reservation

    def mark_no_show(self, reservation_id: UUID, actor: Actor, now: datetime) -> Reservation:
        """confirmed -> no_show once the arrival tolerance has elapsed."""
        existing = self.get(reservation_id)
        self._require_staff(actor, existing)
        policy = self.policies.get_policy(existing.restaurant_id)

        def change(reservation: Reservation, table: Optional[DiningTable]) -> None:
            reservation.status = ensure_transition(reservation.status, ReservationStatus.NO_SHOW)
            deadline = reservation.starts_at + timedelta(minutes=policy.arrival_tolerance_minutes)
            if now <= deadline:
                raise InvalidTransition(
                    f"Arrival tolerance runs until {deadline.strftime('%H:%M')}"
                )
            if table is not None:
                self.tables.release(table, reservation.id)

        reservation = self._apply(reservation_id, change)
        logger.info(f"Reservation {reservation.confirmation_code} marked no-show")
        return reservation

    def confirm_deposit(self, reservation_id: UUID, amount: Decimal, now: datetime) -> Reservation:
        """
        Payment collaborator callback.

        Marks the deposit paid and confirms the reservation when the policy
        auto-confirms. A repeated callback for a paid deposit is a no-op.
        """
        existing = self.get(reservation_id)
        if existing.deposit_required and existing.deposit_paid:
            return existing
        policy = self.policies.get_policy(existing.restaurant_id)

        def change(reservation: Reservation, table: Optional[DiningTable]) -> None:
            if not reservation.deposit_required:
                raise InvalidTransition("This reservation does not require a deposit")
            if reservation.deposit_paid:
                return
            if reservation.status in TERMINAL_STATUSES:
                raise InvalidTransition(
                    f"Deposit received for a {reservation.status.value} reservation"
                )
            if amount is None or Decimal(amount) < Decimal(reservation.deposit_amount):
                raise ValidationError(
                    f"Deposit of {reservation.deposit_amount} required, received {amount}"
                )
            reservation.deposit_paid = True
            reservation.deposit_paid_at = now
            if reservation.status == ReservationStatus.PENDING and policy.auto_confirm:
                reservation.status = ensure_transition(reservation.status, ReservationStatus.CONFIRMED)
                reservation.confirmed_at = now

        reservation = self._apply(reservation_id, change)
        logger.info(f"Deposit paid for reservation {reservation.confirmation_code} ({reservation.status.value})")
        return reservation

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    def sweep_no_shows(self, restaurant_id: UUID, now: datetime, actor: Actor) -> list[Reservation]:
        """Move confirmed reservations past their arrival tolerance to no_show."""
        policy = self.policies.get_policy(restaurant_id)
        cutoff = now - timedelta(minutes=policy.arrival_tolerance_minutes)
        overdue = self.db.execute(
            select(Reservation.id).where(
                Reservation.restaurant_id == restaurant_id,
                Reservation.status == ReservationStatus.CONFIRMED,
                Reservation.starts_at < cutoff,
            )
        ).scalars().all()

        swept = []
        for reservation_id in overdue:
            try:
                swept.append(self.mark_no_show(reservation_id, actor, now))
            except (InvalidTransition, Busy) as e:
                # Changed or locked since the scan; the next sweep retries
                logger.info(f"No-show sweep skipped reservation {reservation_id}: {e}")
        return swept

    def expire_unpaid_deposits(self, restaurant_id: UUID, now: datetime, actor: Actor) -> list[Reservation]:
        """Cancel pending reservations whose deposit was not paid in time."""
        policy = self.policies.get_policy(restaurant_id)
        cutoff = now - timedelta(minutes=policy.deposit_expiry_minutes)
        stale = self.db.execute(
            select(Reservation.id).where(
                Reservation.restaurant_id == restaurant_id,
                Reservation.status == ReservationStatus.PENDING,
                Reservation.deposit_required.is_(True),
                Reservation.deposit_paid.is_(False),
                Reservation.created_at <= cutoff,
            )
        ).scalars().all()

        expired = []
        for reservation_id in stale:
            try:
                expired.append(self.cancel(
                    reservation_id,
                    actor,
                    now,
                    reason="Deposit not paid in time",
                    cancelled_by="system",
                ))
            except (InvalidTransition, Busy) as e:
                logger.info(f"Deposit expiry skipped reservation {reservation_id}: {e}")
        return expired
