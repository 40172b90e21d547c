"""
Tests for the walk-in waitlist: priorities, reorder, offers and seating.
"""
from datetime import datetime, time, timedelta

import pytest

from mesa.core.errors import (
    InvalidPartySize,
    InvalidTransition,
    NoTableAvailable,
    PermissionDenied,
    ValidationError,
)
from mesa.models.reservation import ReservationStatus
from mesa.models.table import TableStatus
from mesa.models.waitlist import WaitlistStatus
from mesa.services.reservations import BookingRequest
from mesa.services.waitlist import WaitlistService

EVENING = datetime(2026, 3, 6, 18, 0)


@pytest.fixture
def waitlist(db, locks) -> WaitlistService:
    return WaitlistService(db, locks)


@pytest.fixture
def queue(waitlist, restaurant, staff):
    """Three waiting parties: Ana (2), Bruno (6), Carla (4)."""
    return [
        waitlist.enqueue(restaurant.id, 2, "Ana", staff, EVENING),
        waitlist.enqueue(restaurant.id, 6, "Bruno", staff, EVENING + timedelta(minutes=1)),
        waitlist.enqueue(restaurant.id, 4, "Carla", staff, EVENING + timedelta(minutes=2)),
    ]


class TestEnqueue:
    def test_priorities_increase(self, queue):
        assert [e.priority for e in queue] == [1, 2, 3]
        assert all(e.status == WaitlistStatus.WAITING for e in queue)

    def test_priority_after_removal_never_reused(self, waitlist, queue, restaurant, staff):
        waitlist.remove(queue[2].id, staff, EVENING)
        entry = waitlist.enqueue(restaurant.id, 2, "Diego", staff, EVENING)

        assert entry.priority == 4

    def test_customer_cannot_enqueue(self, waitlist, restaurant, customer):
        with pytest.raises(PermissionDenied):
            waitlist.enqueue(restaurant.id, 2, "Ana", customer, EVENING)

    def test_invalid_party_size(self, waitlist, restaurant, staff):
        with pytest.raises(InvalidPartySize):
            waitlist.enqueue(restaurant.id, 0, "Ana", staff, EVENING)

    def test_name_required(self, waitlist, restaurant, staff):
        with pytest.raises(ValidationError):
            waitlist.enqueue(restaurant.id, 2, "   ", staff, EVENING)


class TestReorder:
    def test_move_up_swaps_with_neighbor(self, waitlist, queue, staff):
        moved = waitlist.reorder(queue[2].id, "up", staff)

        assert moved.priority == 2
        assert waitlist.get(queue[1].id).priority == 3

    def test_move_down(self, waitlist, queue, staff):
        waitlist.reorder(queue[0].id, "down", staff)

        order = [e.name for e in waitlist.list_entries(queue[0].restaurant_id)]
        assert order == ["Bruno", "Ana", "Carla"]

    def test_first_up_is_noop(self, waitlist, queue, staff):
        assert waitlist.reorder(queue[0].id, "up", staff).priority == 1

    def test_last_down_is_noop(self, waitlist, queue, staff):
        assert waitlist.reorder(queue[2].id, "down", staff).priority == 3

    def test_skips_entries_no_longer_waiting(self, waitlist, queue, staff):
        waitlist.remove(queue[1].id, staff, EVENING)

        moved = waitlist.reorder(queue[2].id, "up", staff)
        assert moved.priority == 1
        assert waitlist.get(queue[0].id).priority == 3

    def test_removed_entry_cannot_move(self, waitlist, queue, staff):
        waitlist.remove(queue[0].id, staff, EVENING)
        with pytest.raises(InvalidTransition):
            waitlist.reorder(queue[0].id, "down", staff)

    def test_bad_direction(self, waitlist, queue, staff):
        with pytest.raises(ValidationError):
            waitlist.reorder(queue[0].id, "sideways", staff)


class TestOfferNextMatch:
    def test_skips_parties_that_do_not_fit(self, waitlist, restaurant, staff, make_table):
        """Entries (1, party 6) and (2, party 2); a table for four goes to entry 2."""
        big = waitlist.enqueue(restaurant.id, 6, "Grande", staff, EVENING)
        small = waitlist.enqueue(restaurant.id, 2, "Pareja", staff, EVENING)
        table = make_table(1, 4)

        offered = waitlist.offer_next_match(table.id, EVENING)

        assert offered.id == small.id
        assert offered.status == WaitlistStatus.ASSIGNED
        assert offered.offered_table_id == table.id
        assert waitlist.get(big.id).status == WaitlistStatus.WAITING

    def test_nobody_fits(self, waitlist, restaurant, staff, make_table):
        waitlist.enqueue(restaurant.id, 6, "Grande", staff, EVENING)
        table = make_table(1, 4)

        assert waitlist.offer_next_match(table.id, EVENING) is None

    def test_blocked_table(self, waitlist, queue, make_table):
        table = make_table(1, 4, status=TableStatus.BLOCKED)
        assert waitlist.offer_next_match(table.id, EVENING) is None

    def test_one_open_offer_per_table(self, waitlist, queue, make_table):
        table = make_table(1, 4)

        assert waitlist.offer_next_match(table.id, EVENING).name == "Ana"
        assert waitlist.offer_next_match(table.id, EVENING) is None

    def test_table_booked_soon_is_not_offered(self, waitlist, queue, make_table, make_reservation):
        table = make_table(1, 4)
        make_reservation(table, slot=time(19, 0))

        assert waitlist.offer_next_match(table.id, EVENING) is None


class TestSeatAndDecline:
    def test_seat_occupies_table(self, db, waitlist, queue, staff, make_table):
        table = make_table(1, 4)
        offered = waitlist.offer_next_match(table.id, EVENING)

        seated = waitlist.seat(offered.id, staff, EVENING + timedelta(minutes=5))

        assert seated.seated_at == EVENING + timedelta(minutes=5)
        db.refresh(table)
        assert table.status == TableStatus.OCCUPIED
        with pytest.raises(InvalidTransition):
            waitlist.seat(offered.id, staff, EVENING + timedelta(minutes=6))

    def test_seat_without_offer(self, waitlist, queue, staff):
        with pytest.raises(InvalidTransition):
            waitlist.seat(queue[0].id, staff, EVENING)

    def test_decline_returns_party_to_line(self, waitlist, queue, staff, make_table):
        table = make_table(1, 4)
        offered = waitlist.offer_next_match(table.id, EVENING)

        declined = waitlist.decline_offer(offered.id, staff)

        assert declined.status == WaitlistStatus.WAITING
        assert declined.priority == 1
        assert declined.offered_table_id is None

    def test_remove_twice(self, waitlist, queue, staff):
        waitlist.remove(queue[0].id, staff, EVENING)
        with pytest.raises(InvalidTransition):
            waitlist.remove(queue[0].id, staff, EVENING)


class TestSummary:
    def test_counts(self, waitlist, queue, restaurant, staff, make_table):
        table = make_table(1, 4)
        offered = waitlist.offer_next_match(table.id, EVENING)
        waitlist.seat(offered.id, staff, EVENING + timedelta(minutes=20))
        waitlist.remove(queue[1].id, staff, EVENING)

        summary = waitlist.summary(restaurant.id, EVENING + timedelta(minutes=30))

        assert summary["waiting"] == 1
        assert summary["offered"] == 0
        assert summary["seated"] == 1
        assert summary["removed"] == 1
        assert summary["total"] == 3
        assert summary["average_wait_minutes"] == 20.0


class TestFreedTableFlow:
    """Completing a visit proposes the table to the waitlist."""

    def test_release_offers_table(self, allocation_engine, restaurant, staff, make_table, make_reservation):
        table = make_table(1, 4, status=TableStatus.OCCUPIED)
        visit = make_reservation(table, slot=time(17, 0), status=ReservationStatus.ARRIVED)
        allocation_engine.waitlist.enqueue(restaurant.id, 6, "Grande", staff, EVENING)
        small = allocation_engine.waitlist.enqueue(restaurant.id, 2, "Pareja", staff, EVENING)

        allocation_engine.release(visit.id, staff, now=datetime(2026, 3, 6, 18, 30))

        offered = allocation_engine.waitlist.get(small.id)
        assert offered.status == WaitlistStatus.ASSIGNED
        assert offered.offered_table_id == table.id


class TestSeatedWalkIn:
    """A seated walk-in holds its table until staff record that it left."""

    @pytest.fixture
    def seated(self, allocation_engine, restaurant, staff, make_table):
        table = make_table(1, 4)
        ana = allocation_engine.waitlist.enqueue(restaurant.id, 2, "Ana", staff, EVENING)
        allocation_engine.waitlist.offer_next_match(table.id, EVENING + timedelta(minutes=5))
        allocation_engine.waitlist.seat(ana.id, staff, EVENING + timedelta(minutes=5))
        return table, ana

    @staticmethod
    def _booking(restaurant, slot):
        return BookingRequest(
            restaurant_id=restaurant.id,
            date=EVENING.date(),
            time=slot,
            party_size=2,
            user_id="diner-1",
        )

    def test_cancelled_reservation_keeps_walk_in_table_occupied(self, allocation_engine, restaurant, staff, seated):
        table, _ = seated
        later = allocation_engine.book(self._booking(restaurant, time(21, 0)), now=EVENING + timedelta(minutes=5))
        assert later.reservation.table_id == table.id

        allocation_engine.cancel(later.reservation.id, staff, now=EVENING + timedelta(minutes=10))

        assert allocation_engine.tables.get_table(table.id).status == TableStatus.OCCUPIED
        with pytest.raises(NoTableAvailable):
            allocation_engine.book(self._booking(restaurant, time(18, 30)), now=EVENING + timedelta(minutes=30))

    def test_manual_available_refused_while_seated(self, allocation_engine, staff, seated):
        table, _ = seated
        with pytest.raises(InvalidTransition):
            allocation_engine.set_table_status(table.id, TableStatus.AVAILABLE, staff, now=EVENING + timedelta(minutes=30))
        with pytest.raises(InvalidTransition):
            allocation_engine.set_table_status(table.id, TableStatus.BLOCKED, staff, now=EVENING + timedelta(minutes=30))

    def test_leave_frees_table_for_next_party(self, allocation_engine, restaurant, staff, seated):
        table, ana = seated
        bruno = allocation_engine.waitlist.enqueue(restaurant.id, 4, "Bruno", staff, EVENING)

        left = allocation_engine.release_walk_in(ana.id, staff, now=EVENING + timedelta(minutes=90))

        assert left.left_at == EVENING + timedelta(minutes=90)
        assert left.seated_at == EVENING + timedelta(minutes=5)
        offered = allocation_engine.waitlist.get(bruno.id)
        assert offered.status == WaitlistStatus.ASSIGNED
        assert offered.offered_table_id == table.id

    def test_leave_without_queue_makes_table_available(self, allocation_engine, staff, seated):
        table, ana = seated

        allocation_engine.release_walk_in(ana.id, staff, now=EVENING + timedelta(minutes=90))

        assert allocation_engine.tables.get_table(table.id).status == TableStatus.AVAILABLE
        with pytest.raises(InvalidTransition):
            allocation_engine.release_walk_in(ana.id, staff, now=EVENING + timedelta(minutes=95))

    def test_leave_before_seating(self, waitlist, queue, staff):
        with pytest.raises(InvalidTransition):
            waitlist.leave(queue[0].id, staff, EVENING)
