"""
Tests for the tables router: floor plan and manual status overrides.
"""
from mesa.models.reservation import ReservationStatus
from mesa.models.table import DiningTable, TableStatus


class TestTablesRouter:
    """Tests for /api/restaurants/{id}/tables and /api/tables/{id}."""

    def test_create_and_list(self, client, restaurant, staff_headers):
        response = client.post(
            f"/api/restaurants/{restaurant.id}/tables",
            json={"number": 5, "capacity": 6, "shape": "rectangle", "positionX": 120, "positionY": 40},
            headers=staff_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "available"
        assert data["positionX"] == 120

        listed = client.get(f"/api/restaurants/{restaurant.id}/tables", headers=staff_headers)
        assert listed.status_code == 200
        assert listed.json()["total"] == 1

    def test_duplicate_number(self, client, restaurant, staff_headers, make_table):
        make_table(5, 4)
        response = client.post(
            f"/api/restaurants/{restaurant.id}/tables",
            json={"number": 5, "capacity": 2},
            headers=staff_headers,
        )
        assert response.status_code == 400

    def test_other_restaurant_staff(self, client, restaurant, other_staff_headers):
        response = client.get(f"/api/restaurants/{restaurant.id}/tables", headers=other_staff_headers)
        assert response.status_code == 403

    def test_customer_refused(self, client, restaurant, customer_headers):
        response = client.get(f"/api/restaurants/{restaurant.id}/tables", headers=customer_headers)
        assert response.status_code == 403


class TestStatusOverride:
    def test_legacy_spelling(self, client, staff_headers, make_table):
        table = make_table(1, 4)

        response = client.patch(
            f"/api/tables/{table.id}/status",
            json={"status": "maintenance"},
            headers=staff_headers,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "blocked"

    def test_unknown_status(self, client, staff_headers, make_table):
        table = make_table(1, 4)

        response = client.patch(
            f"/api/tables/{table.id}/status",
            json={"status": "bogus"},
            headers=staff_headers,
        )
        assert response.status_code == 400

    def test_seated_party_keeps_table(self, client, staff_headers, make_table, make_reservation):
        table = make_table(1, 4, status=TableStatus.OCCUPIED)
        make_reservation(table, status=ReservationStatus.ARRIVED)

        response = client.patch(
            f"/api/tables/{table.id}/status",
            json={"status": "disponible"},
            headers=staff_headers,
        )
        assert response.status_code == 409

    def test_other_restaurant_staff(self, client, other_staff_headers, make_table):
        table = make_table(1, 4)

        response = client.patch(
            f"/api/tables/{table.id}/status",
            json={"status": "blocked"},
            headers=other_staff_headers,
        )
        assert response.status_code == 403

    def test_unknown_table(self, client, staff_headers):
        response = client.patch(
            "/api/tables/00000000-0000-0000-0000-000000000000/status",
            json={"status": "blocked"},
            headers=staff_headers,
        )
        assert response.status_code == 404


class TestDeleteAndOffer:
    def test_delete(self, client, db, staff_headers, make_table):
        table = make_table(1, 4)

        response = client.delete(f"/api/tables/{table.id}", headers=staff_headers)

        assert response.status_code == 204
        db.expire_all()
        assert db.get(DiningTable, table.id) is None

    def test_delete_with_active_reservation(self, client, staff_headers, make_table, make_reservation):
        table = make_table(1, 4)
        make_reservation(table)

        response = client.delete(f"/api/tables/{table.id}", headers=staff_headers)
        assert response.status_code == 409

    def test_offer_to_waitlist(self, client, restaurant, staff_headers, make_table):
        table = make_table(1, 4)
        client.post("/api/waitlist", json={"name": "Grande", "partySize": 6}, headers=staff_headers)
        client.post("/api/waitlist", json={"name": "Pareja", "partySize": 2}, headers=staff_headers)

        response = client.post(f"/api/tables/{table.id}/offer", headers=staff_headers)

        assert response.status_code == 200
        entry = response.json()["entry"]
        assert entry["name"] == "Pareja"
        assert entry["status"] == "assigned"
        assert entry["offeredTableId"] == str(table.id)

    def test_offer_with_empty_waitlist(self, client, staff_headers, make_table):
        table = make_table(1, 4)

        response = client.post(f"/api/tables/{table.id}/offer", headers=staff_headers)

        assert response.status_code == 200
        assert response.json()["entry"] is None
