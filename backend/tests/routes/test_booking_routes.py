# backend/tests/routes/test_booking_routes.py
"""HTTP tests for /api/v1/bookings: envelope shape, auth and error mapping."""

from datetime import date, timedelta

BASE = "/api/v1/bookings"


def _book(client, headers, service_id, **body):
    return client.post(f"{BASE}/book-now", json={"service_id": service_id, **body}, headers=headers)


class TestBookNowRoute:
    def test_instant_booking(self, client, buyer_headers, service):
        response = _book(client, buyer_headers, service.id)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == 201
        assert body["message"] == "Booking created successfully"
        booking = body["data"]
        assert booking["status"] == "pending"
        assert booking["date"] is None and booking["time"] is None
        assert booking["payment_status"] is None
        assert booking["service"]["title"] == "Logo design"
        assert booking["service"]["default_price"] == 50.0

    def test_client_status_is_ignored(self, client, buyer_headers, service):
        response = _book(client, buyer_headers, service.id, status="completed")

        assert response.status_code == 201
        assert response.json()["data"]["status"] == "pending"

    def test_scheduled_booking(self, client, buyer_headers, service):
        when = (date.today() + timedelta(days=2)).isoformat()

        response = _book(client, buyer_headers, service.id, date=when, time="09:15")

        data = response.json()["data"]
        assert data["date"] == when
        assert data["time"].startswith("09:15")

    def test_half_schedule_is_rejected(self, client, buyer_headers, service):
        response = _book(client, buyer_headers, service.id, date="2099-01-01")

        assert response.status_code == 400
        assert response.json()["message"] == "Both date and time are required if scheduling"
        assert response.json()["data"] is None

    def test_duplicate_active_booking(self, client, buyer_headers, service):
        _book(client, buyer_headers, service.id)

        response = _book(client, buyer_headers, service.id)

        assert response.status_code == 409
        assert response.json()["code"] == "BOOKING_CONFLICT"

    def test_missing_service_id(self, client, buyer_headers):
        response = client.post(f"{BASE}/book-now", json={}, headers=buyer_headers)

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "validation_error"
        assert body["message"].startswith("service_id:")

    def test_requires_token(self, client, service):
        response = client.post(f"{BASE}/book-now", json={"service_id": service.id})

        assert response.status_code == 401
        assert response.json()["message"] == "Not authenticated"

    def test_rejects_bad_token(self, client, service):
        response = client.post(
            f"{BASE}/book-now",
            json={"service_id": service.id},
            headers={"Authorization": "Bearer not-a-jwt"},
        )

        assert response.status_code == 401
        assert response.json()["message"] == "Could not validate credentials"


class TestBookingReadRoutes:
    def test_list_by_role(self, client, buyer_headers, seller_headers, service):
        booking_id = _book(client, buyer_headers, service.id).json()["data"]["id"]

        as_buyer = client.get(BASE, headers=buyer_headers).json()["data"]
        as_seller = client.get(BASE, params={"role": "seller"}, headers=seller_headers).json()["data"]

        assert [b["id"] for b in as_buyer] == [booking_id]
        assert [b["id"] for b in as_seller] == [booking_id]

    def test_list_with_unknown_role(self, client, buyer_headers):
        response = client.get(BASE, params={"role": "admin"}, headers=buyer_headers)

        assert response.status_code == 400

    def test_detail_hidden_from_outsiders(self, client, buyer_headers, other_headers, service):
        booking_id = _book(client, buyer_headers, service.id).json()["data"]["id"]

        assert client.get(f"{BASE}/{booking_id}", headers=buyer_headers).status_code == 200
        assert client.get(f"{BASE}/{booking_id}", headers=other_headers).status_code == 403

    def test_unknown_booking(self, client, buyer_headers):
        response = client.get(f"{BASE}/01J00000000000000000000000", headers=buyer_headers)

        assert response.status_code == 404
        assert response.json()["message"] == "Booking not found"


class TestTransitionRoutes:
    def test_seller_flow(self, client, buyer_headers, seller_headers, service):
        booking_id = _book(client, buyer_headers, service.id).json()["data"]["id"]

        accepted = client.patch(f"{BASE}/{booking_id}/accept", headers=seller_headers)
        assert accepted.status_code == 200
        assert accepted.json()["data"]["accepted_at"] is not None

        for next_status in ("in_progress", "delivered"):
            response = client.patch(
                f"{BASE}/{booking_id}/status", json={"status": next_status}, headers=seller_headers
            )
            assert response.json()["data"]["status"] == next_status

        completed = client.patch(f"{BASE}/{booking_id}/confirm", headers=buyer_headers)
        assert completed.status_code == 200
        assert completed.json()["data"]["status"] == "completed"
        assert completed.json()["data"]["payment_status"] == "released"

    def test_invalid_transition_is_a_conflict(self, client, buyer_headers, seller_headers, service):
        booking_id = _book(client, buyer_headers, service.id).json()["data"]["id"]

        response = client.patch(f"{BASE}/{booking_id}/status", json={"status": "delivered"}, headers=seller_headers)

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "INVALID_STATUS_TRANSITION"
        assert body["errors"] == {"current_status": "pending", "requested_status": "delivered"}

    def test_unknown_status_value(self, client, buyer_headers, seller_headers, service):
        booking_id = _book(client, buyer_headers, service.id).json()["data"]["id"]

        response = client.patch(f"{BASE}/{booking_id}/status", json={"status": "done"}, headers=seller_headers)

        assert response.status_code == 400
        assert response.json()["message"].startswith("Invalid status.")

    def test_buyer_cannot_accept(self, client, buyer_headers, service):
        booking_id = _book(client, buyer_headers, service.id).json()["data"]["id"]

        assert client.patch(f"{BASE}/{booking_id}/accept", headers=buyer_headers).status_code == 403

    def test_cancel(self, client, buyer_headers, service):
        booking_id = _book(client, buyer_headers, service.id).json()["data"]["id"]

        response = client.patch(f"{BASE}/{booking_id}/cancel", headers=buyer_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "cancelled"
        assert data["cancelled_at"] is not None

    def test_payment_status(self, client, buyer_headers, seller_headers, other_headers, service):
        booking_id = _book(client, buyer_headers, service.id).json()["data"]["id"]

        response = client.get(f"{BASE}/{booking_id}/payment-status", headers=seller_headers)

        assert response.status_code == 200
        assert response.json()["data"] == {
            "booking_id": booking_id,
            "payment_status": None,
            "payment_amount": None,
            "payment_transaction_id": None,
            "payment_captured_at": None,
            "payment_released_at": None,
            "payment_refunded_at": None,
        }
        assert client.get(f"{BASE}/{booking_id}/payment-status", headers=other_headers).status_code == 403
