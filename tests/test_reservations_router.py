"""
Tests for the reservations, availability and payment callback routers.

Bookings go through the real clock, so they target a date one week ahead.
"""
from datetime import timedelta

import pytest

from mesa.core.clock import get_business_date, local_now
from mesa.models.reservation import ReservationStatus
from mesa.models.table import TableStatus

PAYMENT_SECRET = "test-payment-secret"


@pytest.fixture
def book(client, restaurant, customer_headers, future_date):
    """POST a booking for the customer; returns the raw response."""
    def _book(time="19:00", party_size=4, headers=None, **extra):
        payload = {
            "restaurantId": str(restaurant.id),
            "date": future_date.isoformat(),
            "time": time,
            "partySize": party_size,
            "customerName": "Ana Lopez",
            "customerEmail": "ana@example.com",
            **extra,
        }
        return client.post("/api/reservations", json=payload, headers=headers or customer_headers)
    return _book


def _seated_now_reservation(make_table, make_reservation, status=ReservationStatus.CONFIRMED):
    """A reservation on table 1 starting a few minutes from now."""
    table = make_table(1, 4, status=TableStatus.RESERVED)
    starts_at = local_now("UTC").replace(second=0, microsecond=0) + timedelta(minutes=5)
    reservation = make_reservation(
        table,
        business_date=get_business_date(starts_at),
        starts_at=starts_at,
        status=status,
    )
    return table, reservation


class TestAuth:
    def test_booking_requires_token(self, client, restaurant, future_date):
        response = client.post("/api/reservations", json={
            "restaurantId": str(restaurant.id),
            "date": future_date.isoformat(),
            "time": "19:00",
            "partySize": 2,
        })
        assert response.status_code == 401

    def test_garbage_token(self, client):
        response = client.get("/api/reservations/my", headers={"Authorization": "Bearer nonsense"})
        assert response.status_code == 401


class TestBookingEndpoint:
    """POST /api/reservations"""

    def test_off_peak_booking_is_confirmed(self, book, make_table):
        make_table(1, 4)

        response = book(time="13:00")

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "confirmed"
        assert data["outcome"] == "confirmed"
        assert data["depositRequired"] is False
        assert data["confirmationCode"].startswith("MF-")

    def test_confirmation_email_sent_after_response(self, book, make_table, notifier):
        make_table(1, 4)

        response = book(time="13:00")

        assert response.status_code == 201
        assert [n.kind for n in notifier.sent] == ["reservation_booked"]
        assert notifier.sent[0].to_email == "ana@example.com"

    def test_peak_booking_requires_deposit(self, book, make_table, peak_window):
        """Only table for four, peak window 19:00-21:00 with deposit 300."""
        table = make_table(1, 4)

        response = book()

        assert response.status_code == 201
        data = response.json()
        assert data["outcome"] == "deposit_required"
        assert data["status"] == "pending"
        assert data["depositAmount"] == 300.0
        assert data["tableId"] == str(table.id)

    def test_second_party_gets_409(self, book, make_table, other_customer_headers):
        make_table(1, 4)
        assert book().status_code == 201

        response = book(party_size=3, headers=other_customer_headers)

        assert response.status_code == 409
        assert response.json()["error"] == "no_table_available"
        assert response.json()["retryable"] is False

    def test_bad_date(self, book, make_table):
        make_table(1, 4)
        response = book(date="06/03/2026")

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_outside_hours(self, book, make_table):
        make_table(1, 4)
        response = book(time="23:30")

        assert response.status_code == 400
        assert response.json()["error"] == "outside_operating_hours"

    def test_party_too_large(self, book, make_table):
        make_table(1, 4)
        response = book(party_size=20)

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_party_size"

    def test_unknown_restaurant(self, book):
        response = book(restaurantId="00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404


class TestCancelFreesSlot:
    def test_cancel_reopens_slot(self, client, book, make_table, restaurant, future_date, customer_headers):
        make_table(1, 4)
        reservation_id = book().json()["reservationId"]

        def slot_19(party_size):
            response = client.get(
                f"/api/restaurants/{restaurant.id}/slots",
                params={"date": future_date.isoformat(), "party_size": party_size},
            )
            assert response.status_code == 200
            return next(s for s in response.json()["slots"] if s["time"] == "19:00")

        assert slot_19(3)["available"] is False

        response = client.post(
            f"/api/reservations/{reservation_id}/cancel",
            json={"reason": "Plans changed"},
            headers=customer_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["cancelReason"] == "Plans changed"

        assert slot_19(3)["available"] is True

    def test_other_diner_cannot_cancel(self, client, book, make_table, other_customer_headers):
        make_table(1, 4)
        reservation_id = book().json()["reservationId"]

        response = client.post(f"/api/reservations/{reservation_id}/cancel", headers=other_customer_headers)
        assert response.status_code == 403

    def test_cancel_twice(self, client, book, make_table, customer_headers):
        make_table(1, 4)
        reservation_id = book().json()["reservationId"]
        client.post(f"/api/reservations/{reservation_id}/cancel", headers=customer_headers)

        response = client.post(f"/api/reservations/{reservation_id}/cancel", headers=customer_headers)
        assert response.status_code == 409
        assert response.json()["error"] == "invalid_transition"


class TestDepositCallback:
    """POST /api/payments/deposit-confirmation"""

    def test_wrong_secret(self, client, book, make_table, peak_window):
        make_table(1, 4)
        reservation_id = book().json()["reservationId"]

        response = client.post(
            "/api/payments/deposit-confirmation",
            json={"reservationId": reservation_id, "amount": 300},
            headers={"X-Payment-Secret": "guess"},
        )
        assert response.status_code == 403

    def test_deposit_confirms_reservation(self, client, book, make_table, peak_window):
        make_table(1, 4)
        reservation_id = book().json()["reservationId"]

        response = client.post(
            "/api/payments/deposit-confirmation",
            json={"reservationId": reservation_id, "amount": 300, "paymentReference": "pay_123"},
            headers={"X-Payment-Secret": PAYMENT_SECRET},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["depositPaid"] is True
        assert data["status"] == "confirmed"

    def test_short_payment(self, client, book, make_table, peak_window):
        make_table(1, 4)
        reservation_id = book().json()["reservationId"]

        response = client.post(
            "/api/payments/deposit-confirmation",
            json={"reservationId": reservation_id, "amount": 100},
            headers={"X-Payment-Secret": PAYMENT_SECRET},
        )
        assert response.status_code == 400


class TestReadEndpoints:
    def test_my_reservations(self, client, book, make_table, customer_headers, other_customer_headers):
        make_table(1, 4)
        make_table(2, 4)
        book()
        book(time="13:00")
        book(headers=other_customer_headers)

        response = client.get("/api/reservations/my", headers=customer_headers)

        assert response.status_code == 200
        assert response.json()["total"] == 2
        assert all(r["userId"] == "diner-1" for r in response.json()["reservations"])

    def test_other_diners_reservation_is_hidden(self, client, book, make_table, other_customer_headers):
        make_table(1, 4)
        reservation_id = book().json()["reservationId"]

        response = client.get(f"/api/reservations/{reservation_id}", headers=other_customer_headers)
        assert response.status_code == 404

    def test_staff_can_read(self, client, book, make_table, staff_headers):
        make_table(1, 4)
        reservation_id = book().json()["reservationId"]

        response = client.get(f"/api/reservations/{reservation_id}", headers=staff_headers)
        assert response.status_code == 200
        assert response.json()["tableNumber"] == 1
        assert response.json()["time"] == "19:00"

    def test_available_tables(self, client, book, make_table, restaurant, future_date):
        make_table(1, 4)
        make_table(2, 2)
        book()

        response = client.get(
            f"/api/restaurants/{restaurant.id}/tables/available",
            params={"date": future_date.isoformat(), "time": "19:30", "party_size": 2},
        )

        assert response.status_code == 200
        by_number = {t["number"]: t for t in response.json()["tables"]}
        assert by_number[1]["free"] is False
        assert by_number[2]["selectable"] is True
        assert response.json()["availableCount"] == 1


class TestStaffTransitions:
    def test_customer_cannot_confirm(self, client, book, make_table, customer_headers):
        make_table(1, 4)
        reservation_id = book().json()["reservationId"]

        response = client.post(f"/api/reservations/{reservation_id}/confirm", headers=customer_headers)
        assert response.status_code == 403

    def test_staff_of_other_restaurant(self, client, book, make_table, other_staff_headers):
        make_table(1, 4)
        reservation_id = book().json()["reservationId"]

        response = client.post(f"/api/reservations/{reservation_id}/checkin", headers=other_staff_headers)
        assert response.status_code == 403

    def test_checkin_before_grace_window(self, client, book, make_table, staff_headers):
        make_table(1, 4)
        reservation_id = book().json()["reservationId"]

        response = client.post(f"/api/reservations/{reservation_id}/checkin", headers=staff_headers)
        assert response.status_code == 409

    def test_checkin_by_code_then_complete(self, client, db, make_table, make_reservation, staff_headers):
        table, reservation = _seated_now_reservation(make_table, make_reservation)

        response = client.post(
            "/api/reservations/checkin-by-code",
            json={"confirmationCode": reservation.confirmation_code.lower()},
            headers=staff_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "arrived"
        db.refresh(table)
        assert table.status == TableStatus.OCCUPIED

        first = client.post(f"/api/reservations/{reservation.id}/complete", headers=staff_headers)
        again = client.post(f"/api/reservations/{reservation.id}/complete", headers=staff_headers)
        assert first.status_code == 200
        assert again.status_code == 200
        assert again.json()["status"] == "completed"
        db.refresh(table)
        assert table.status == TableStatus.AVAILABLE

    def test_unknown_code(self, client, restaurant, staff_headers):
        response = client.post(
            "/api/reservations/checkin-by-code",
            json={"confirmationCode": "MF-000000000000"},
            headers=staff_headers,
        )
        assert response.status_code == 404

    def test_no_show_before_tolerance(self, client, make_table, make_reservation, staff_headers):
        _, reservation = _seated_now_reservation(make_table, make_reservation)

        response = client.post(f"/api/reservations/{reservation.id}/no-show", headers=staff_headers)
        assert response.status_code == 409


class TestStaffToday:
    def test_lists_today_only(self, client, book, make_table, make_reservation, staff_headers):
        _, today = _seated_now_reservation(make_table, make_reservation)
        make_table(2, 4)
        book()

        response = client.get("/api/staff/reservations/today", headers=staff_headers)

        assert response.status_code == 200
        assert [r["id"] for r in response.json()["reservations"]] == [str(today.id)]

    def test_status_filter(self, client, make_table, make_reservation, staff_headers):
        _seated_now_reservation(make_table, make_reservation)

        response = client.get(
            "/api/staff/reservations/today",
            params={"status": "arrived"},
            headers=staff_headers,
        )
        assert response.status_code == 200
        assert response.json()["total"] == 0

    def test_unknown_status(self, client, restaurant, staff_headers):
        response = client.get(
            "/api/staff/reservations/today",
            params={"status": "lost"},
            headers=staff_headers,
        )
        assert response.status_code == 400

    def test_customers_are_refused(self, client, customer_headers):
        response = client.get("/api/staff/reservations/today", headers=customer_headers)
        assert response.status_code == 403
