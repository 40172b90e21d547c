"""
Tests for the reservation policy router.
"""


class TestPolicyRouter:
    """Tests for /api/restaurants/{id}/policy."""

    def test_defaults(self, client, restaurant, staff_headers):
        response = client.get(f"/api/restaurants/{restaurant.id}/policy", headers=staff_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["slotMinutes"] == 30
        assert data["serviceDurationMinutes"] == 120
        assert data["maxPartySize"] == 12
        assert data["autoConfirm"] is True
        assert data["peakWindows"] == []

    def test_staff_cannot_update(self, client, restaurant, staff_headers):
        response = client.put(
            f"/api/restaurants/{restaurant.id}/policy",
            json={"maxPartySize": 8},
            headers=staff_headers,
        )
        assert response.status_code == 403

    def test_admin_updates_and_replaces_peaks(self, client, restaurant, admin_headers, peak_window):
        response = client.put(
            f"/api/restaurants/{restaurant.id}/policy",
            json={
                "maxPartySize": 8,
                "autoConfirm": False,
                "peakWindows": [
                    {"startTime": "20:00", "endTime": "22:00", "weekdayMask": 0b0110000, "depositAmount": 150, "label": "Weekend"},
                ],
            },
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["maxPartySize"] == 8
        assert data["autoConfirm"] is False
        assert data["slotMinutes"] == 30
        assert len(data["peakWindows"]) == 1
        assert data["peakWindows"][0]["startTime"] == "20:00"
        assert data["peakWindows"][0]["depositAmount"] == 150.0

    def test_omitting_peaks_keeps_them(self, client, restaurant, admin_headers, peak_window):
        response = client.put(
            f"/api/restaurants/{restaurant.id}/policy",
            json={"arrivalToleranceMinutes": 20},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["arrivalToleranceMinutes"] == 20
        assert response.json()["peakWindows"][0]["label"] == "Dinner rush"

    def test_invalid_value(self, client, restaurant, admin_headers):
        response = client.put(
            f"/api/restaurants/{restaurant.id}/policy",
            json={"slotMinutes": 0},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_other_restaurant(self, client, other_restaurant, staff_headers):
        response = client.get(f"/api/restaurants/{other_restaurant.id}/policy", headers=staff_headers)
        assert response.status_code == 403

    def test_new_slot_size_changes_grid(self, client, restaurant, admin_headers, make_table, future_date):
        make_table(1, 4)
        client.put(
            f"/api/restaurants/{restaurant.id}/policy",
            json={"slotMinutes": 60},
            headers=admin_headers,
        )

        response = client.get(
            f"/api/restaurants/{restaurant.id}/slots",
            params={"date": future_date.isoformat(), "party_size": 2},
        )

        times = [s["time"] for s in response.json()["slots"]]
        assert times[:3] == ["12:00", "13:00", "14:00"]
        assert times[-1] == "22:00"
