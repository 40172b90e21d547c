"""
Table Registry: physical tables and their occupancy status.

Occupancy changes in two ways only: side effects of reservation transitions
(mark_reserved / mark_occupied / release, called inside the caller's
transaction while it holds the table lock) and the manual staff override
set_status, which takes the lock itself and re-validates against the
reservations table before writing.
"""
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from mesa.core.errors import InvalidTransition, NotFound, ValidationError
from mesa.core.locks import LockManager, get_lock_manager, table_lock_key
from mesa.models.reservation import ACTIVE_STATUSES, Reservation, ReservationStatus
from mesa.models.table import DiningTable, TableStatus
from mesa.models.waitlist import WaitlistEntry, WaitlistStatus

logger = logging.getLogger(__name__)

TABLE_SHAPES = ("round", "square", "rectangle")


class TableRegistry:
    """Tables of a restaurant and their current physical state."""

    def __init__(self, db: Session, locks: Optional[LockManager] = None):
        self.db = db
        self.locks = locks or get_lock_manager()

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def list_tables(self, restaurant_id: UUID) -> list[DiningTable]:
        return list(self.db.execute(
            select(DiningTable)
            .where(DiningTable.restaurant_id == restaurant_id)
            .order_by(DiningTable.number)
        ).scalars().all())

    def get_table(self, table_id: UUID) -> DiningTable:
        table = self.db.get(DiningTable, table_id)
        if table is None:
            raise NotFound(f"Table {table_id} not found")
        return table

    def lock_row(self, table_id: UUID) -> DiningTable:
        """Re-read a table with a row lock for the current transaction."""
        table = self.db.execute(
            select(DiningTable)
            .where(DiningTable.id == table_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if table is None:
            raise NotFound(f"Table {table_id} not found")
        return table

    def create_table(
        self,
        restaurant_id: UUID,
        number: int,
        capacity: int,
        shape: str = "round",
        position_x: int = 0,
        position_y: int = 0,
        width: int = 60,
        height: int = 60,
    ) -> DiningTable:
        if capacity is None or capacity < 1:
            raise ValidationError("Table capacity must be at least 1")
        if shape not in TABLE_SHAPES:
            raise ValidationError(f"Table shape must be one of: {', '.join(TABLE_SHAPES)}")

        duplicate = self.db.execute(
            select(DiningTable.id).where(
                DiningTable.restaurant_id == restaurant_id,
                DiningTable.number == number,
            )
        ).scalar_one_or_none()
        if duplicate is not None:
            raise ValidationError(f"Table number {number} already exists")

        table = DiningTable(
            restaurant_id=restaurant_id,
            number=number,
            capacity=capacity,
            shape=shape,
            position_x=position_x,
            position_y=position_y,
            width=width,
            height=height,
            status=TableStatus.AVAILABLE,
        )
        self.db.add(table)
        self.db.commit()
        self.db.refresh(table)
        logger.info(f"Created table {number} (capacity {capacity}) for restaurant {restaurant_id}")
        return table

    def delete_table(self, table_id: UUID) -> None:
        """Delete a table; refused while an active reservation references it."""
        table = self.get_table(table_id)
        with self.locks.hold(table_lock_key(table_id)):
            try:
                table = self.lock_row(table_id)
                active = self.db.execute(
                    select(Reservation.id).where(
                        Reservation.table_id == table_id,
                        Reservation.status.in_(ACTIVE_STATUSES),
                    ).limit(1)
                ).scalar_one_or_none()
                if active is not None:
                    raise InvalidTransition(f"Table {table.number} has active reservations")
                if self._seated_walk_in(table_id) is not None:
                    raise InvalidTransition(f"Table {table.number} has a seated party")
                self.db.delete(table)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
        logger.info(f"Deleted table {table_id}")

    # ------------------------------------------------------------------
    # Manual override
    # ------------------------------------------------------------------

    def set_status(self, table_id: UUID, status: TableStatus, now: datetime) -> DiningTable:
        """
        Staff override of a table's occupancy status.

        - available is refused while a confirmed reservation covers now or a
          party is seated
        - blocked is refused while a party is seated

        A seated walk-in leaves through the waitlist, not through this override.
        """
        self.get_table(table_id)
        with self.locks.hold(table_lock_key(table_id)):
            try:
                table = self.lock_row(table_id)
                if status == TableStatus.AVAILABLE:
                    blocking = self.db.execute(
                        select(Reservation).where(
                            Reservation.table_id == table_id,
                            (Reservation.status == ReservationStatus.ARRIVED)
                            | (
                                (Reservation.status == ReservationStatus.CONFIRMED)
                                & (Reservation.starts_at <= now)
                                & (Reservation.ends_at > now)
                            ),
                        ).limit(1)
                    ).scalar_one_or_none()
                    if blocking is not None:
                        raise InvalidTransition(
                            f"Table {table.number} is held by reservation {blocking.confirmation_code}"
                        )
                    walk_in = self._seated_walk_in(table_id)
                    if walk_in is not None:
                        raise InvalidTransition(f"Table {table.number} is occupied by walk-in {walk_in.name}")
                elif status == TableStatus.BLOCKED:
                    if self.seated_party(table_id) is not None:
                        raise InvalidTransition(f"Table {table.number} has a seated party")

                previous = table.status
                table.status = status
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
        self.db.refresh(table)
        logger.info(f"Table {table.number} status {previous.value} -> {status.value}")
        return table

    # ------------------------------------------------------------------
    # State machine side effects (caller holds the lock and the transaction)
    # ------------------------------------------------------------------

    def _seated_reservation(self, table_id: UUID, exclude_id: Optional[UUID] = None) -> Optional[Reservation]:
        stmt = select(Reservation).where(
            Reservation.table_id == table_id,
            Reservation.status == ReservationStatus.ARRIVED,
        )
        if exclude_id is not None:
            stmt = stmt.where(Reservation.id != exclude_id)
        return self.db.execute(stmt.limit(1)).scalar_one_or_none()

    def _seated_walk_in(self, table_id: UUID) -> Optional[WaitlistEntry]:
        return self.db.execute(
            select(WaitlistEntry).where(
                WaitlistEntry.offered_table_id == table_id,
                WaitlistEntry.status == WaitlistStatus.ASSIGNED,
                WaitlistEntry.seated_at.is_not(None),
                WaitlistEntry.left_at.is_(None),
            ).limit(1)
        ).scalar_one_or_none()

    def seated_party(self, table_id: UUID, exclude_reservation_id: Optional[UUID] = None):
        """The arrived reservation or seated walk-in at a table, if any."""
        return (
            self._seated_reservation(table_id, exclude_reservation_id)
            or self._seated_walk_in(table_id)
        )

    @staticmethod
    def mark_reserved(table: DiningTable) -> None:
        if table.status in (TableStatus.AVAILABLE, TableStatus.RESERVED):
            table.status = TableStatus.RESERVED

    @staticmethod
    def mark_occupied(table: DiningTable) -> None:
        table.status = TableStatus.OCCUPIED

    def release(self, table: DiningTable, reservation_id: Optional[UUID] = None) -> TableStatus:
        """
        Free a table after a reservation or a walk-in visit ends.

        A party still seated (arrived reservation or walk-in) keeps the table
        occupied; any other active reservation keeps it reserved. Blocked
        tables stay blocked.
        """
        if table.status == TableStatus.BLOCKED:
            return table.status
        if self._seated_walk_in(table.id) is not None:
            table.status = TableStatus.OCCUPIED
            return table.status

        stmt = select(Reservation.status).where(
            Reservation.table_id == table.id,
            Reservation.status.in_(ACTIVE_STATUSES),
        )
        if reservation_id is not None:
            stmt = stmt.where(Reservation.id != reservation_id)
        remaining = set(self.db.execute(stmt).scalars().all())

        if ReservationStatus.ARRIVED in remaining:
            table.status = TableStatus.OCCUPIED
        elif remaining:
            table.status = TableStatus.RESERVED
        else:
            table.status = TableStatus.AVAILABLE
        return table.status
