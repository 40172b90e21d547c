"""
Tests for tables: creation, status overrides and release rules.
"""
from datetime import date, datetime, time

import pytest

from mesa.core.errors import InvalidTransition, ValidationError
from mesa.models.reservation import ReservationStatus
from mesa.models.table import DiningTable, TableStatus
from mesa.services.table_registry import TableRegistry

BOOKING_DATE = date(2026, 3, 6)


class TestTableStatusVocabulary:
    """One canonical status set; legacy spellings translate at the boundary."""

    @pytest.mark.parametrize("external,expected", [
        ("available", TableStatus.AVAILABLE),
        ("disponible", TableStatus.AVAILABLE),
        ("ocupada", TableStatus.OCCUPIED),
        ("reservada", TableStatus.RESERVED),
        ("maintenance", TableStatus.BLOCKED),
        ("deshabilitada", TableStatus.BLOCKED),
        (" BLOCKED ", TableStatus.BLOCKED),
    ])
    def test_from_external(self, external, expected):
        assert TableStatus.from_external(external) == expected

    def test_unknown_status(self):
        with pytest.raises(ValueError):
            TableStatus.from_external("broken")


class TestCreateTable:
    def test_create(self, db, restaurant, locks):
        table = TableRegistry(db, locks).create_table(restaurant.id, number=7, capacity=4, shape="square")

        assert table.status == TableStatus.AVAILABLE
        assert table.capacity == 4
        assert [t.number for t in TableRegistry(db, locks).list_tables(restaurant.id)] == [7]

    def test_duplicate_number(self, db, restaurant, locks, make_table):
        make_table(7, 4)
        with pytest.raises(ValidationError):
            TableRegistry(db, locks).create_table(restaurant.id, number=7, capacity=2)

    def test_zero_capacity(self, db, restaurant, locks):
        with pytest.raises(ValidationError):
            TableRegistry(db, locks).create_table(restaurant.id, number=1, capacity=0)

    def test_unknown_shape(self, db, restaurant, locks):
        with pytest.raises(ValidationError):
            TableRegistry(db, locks).create_table(restaurant.id, number=1, capacity=2, shape="hexagon")


class TestSetStatus:
    """Manual overrides are re-validated against the reservations table."""

    def test_block_and_unblock(self, db, locks, make_table):
        table = make_table(1, 4)
        registry = TableRegistry(db, locks)

        assert registry.set_status(table.id, TableStatus.BLOCKED, datetime(2026, 3, 6, 12, 0)).status == TableStatus.BLOCKED
        assert registry.set_status(table.id, TableStatus.AVAILABLE, datetime(2026, 3, 6, 12, 0)).status == TableStatus.AVAILABLE

    def test_cannot_free_table_with_seated_party(self, db, locks, make_table, make_reservation):
        table = make_table(1, 4, status=TableStatus.OCCUPIED)
        make_reservation(table, status=ReservationStatus.ARRIVED)

        with pytest.raises(InvalidTransition):
            TableRegistry(db, locks).set_status(table.id, TableStatus.AVAILABLE, datetime(2026, 3, 6, 13, 30))
        db.refresh(table)
        assert table.status == TableStatus.OCCUPIED

    def test_cannot_block_table_with_seated_party(self, db, locks, make_table, make_reservation):
        table = make_table(1, 4, status=TableStatus.OCCUPIED)
        make_reservation(table, status=ReservationStatus.ARRIVED)

        with pytest.raises(InvalidTransition):
            TableRegistry(db, locks).set_status(table.id, TableStatus.BLOCKED, datetime(2026, 3, 6, 13, 30))

    def test_cannot_free_table_during_confirmed_window(self, db, locks, make_table, make_reservation):
        table = make_table(1, 4, status=TableStatus.RESERVED)
        make_reservation(table, slot=time(13, 0))

        with pytest.raises(InvalidTransition):
            TableRegistry(db, locks).set_status(table.id, TableStatus.AVAILABLE, datetime(2026, 3, 6, 13, 30))

    def test_future_reservation_does_not_block_override(self, db, locks, make_table, make_reservation):
        table = make_table(1, 4, status=TableStatus.RESERVED)
        make_reservation(table, slot=time(19, 0))

        updated = TableRegistry(db, locks).set_status(table.id, TableStatus.AVAILABLE, datetime(2026, 3, 6, 13, 30))
        assert updated.status == TableStatus.AVAILABLE


class TestRelease:
    def test_blocked_stays_blocked(self, db, locks, make_table):
        table = make_table(1, 4, status=TableStatus.BLOCKED)
        assert TableRegistry(db, locks).release(table) == TableStatus.BLOCKED

    def test_other_active_reservation_keeps_table_reserved(self, db, locks, make_table, make_reservation):
        table = make_table(1, 4, status=TableStatus.RESERVED)
        first = make_reservation(table, slot=time(13, 0))
        make_reservation(table, slot=time(19, 0))

        assert TableRegistry(db, locks).release(table, first.id) == TableStatus.RESERVED

    def test_no_active_reservation_frees_table(self, db, locks, make_table, make_reservation):
        table = make_table(1, 4, status=TableStatus.RESERVED)
        only = make_reservation(table, slot=time(13, 0))

        assert TableRegistry(db, locks).release(table, only.id) == TableStatus.AVAILABLE


class TestDeleteTable:
    def test_refused_with_active_reservation(self, db, locks, make_table, make_reservation):
        table = make_table(1, 4)
        make_reservation(table)

        with pytest.raises(InvalidTransition):
            TableRegistry(db, locks).delete_table(table.id)
        assert db.get(DiningTable, table.id) is not None

    def test_history_survives_deletion(self, db, locks, make_table, make_reservation):
        table = make_table(1, 4)
        past = make_reservation(table, status=ReservationStatus.COMPLETED)

        TableRegistry(db, locks).delete_table(table.id)

        db.expire_all()
        assert db.get(DiningTable, table.id) is None
        assert past.table_id is None
        assert past.status == ReservationStatus.COMPLETED
