# backend/tests/integration/test_booking_payment_lifecycle.py
"""
End-to-end booking lifecycles driven only through the HTTP API, with the
outbox drained in-process the way the Celery worker would.
"""

from hustle.core.enums import OutboxEventType
from hustle.models.event_outbox import EventOutbox, EventOutboxStatus
from hustle.services.outbox_handlers import OutboxEventHandler
from hustle.tasks.outbox_tasks import process_outbox_event

BOOKINGS = "/api/v1/bookings"
PAYMENTS = "/api/v1/payments"


def _drain_outbox(db, payment_service):
    def factory(session):
        return OutboxEventHandler(session, payment_service)

    for event in db.query(EventOutbox).filter_by(status=EventOutboxStatus.PENDING.value).all():
        process_outbox_event(db, event.id, handler_factory=factory)


def test_happy_path_from_booking_to_review(
    client, db, buyer_headers, seller_headers, seller, service, fake_gateway, payment_service
):
    booking = client.post(f"{BOOKINGS}/book-now", json={"service_id": service.id, "note": "Blue and gold"}, headers=buyer_headers)
    assert booking.status_code == 201
    booking_id = booking.json()["data"]["id"]

    checkout = client.post(f"{PAYMENTS}/initiate", json={"booking_id": booking_id}, headers=buyer_headers)
    reference = checkout.json()["data"]["reference"]
    verified = client.get(f"{PAYMENTS}/verify", params={"reference": reference})
    invoice_id = verified.json()["data"]["invoice_id"]

    accepted = client.patch(f"{BOOKINGS}/{booking_id}/accept", headers=seller_headers).json()["data"]
    assert accepted["payment_status"] == "in_escrow"

    client.patch(f"{BOOKINGS}/{booking_id}/status", json={"status": "in_progress"}, headers=seller_headers)
    client.patch(f"{BOOKINGS}/{booking_id}/status", json={"status": "delivered"}, headers=seller_headers)
    completed = client.patch(f"{BOOKINGS}/{booking_id}/confirm", headers=buyer_headers).json()["data"]

    assert completed["status"] == "completed"
    assert completed["payment_status"] == "released"
    assert completed["payment_amount"] == 50.0
    transfers = fake_gateway.calls_for("create_transfer")
    assert [(t["amount_minor"], t["recipient_code"]) for t in transfers] == [(5000, seller.paystack_recipient_code)]

    invoice = client.get(f"/api/v1/invoices/{invoice_id}", headers=buyer_headers).json()["data"]
    assert invoice["booking_id"] == booking_id

    review = client.post(f"/api/v1/reviews/booking/{booking_id}", json={"rating": 5}, headers=buyer_headers)
    assert review.status_code == 201

    # Booking is finished, so the buyer may book the same service again
    again = client.post(f"{BOOKINGS}/book-now", json={"service_id": service.id}, headers=buyer_headers)
    assert again.status_code == 201

    _drain_outbox(db, payment_service)
    statuses = {e.status for e in db.query(EventOutbox).all()}
    assert statuses == {EventOutboxStatus.SENT.value}


def test_late_payment_for_cancelled_booking_is_refunded(
    client, db, buyer_headers, service, fake_gateway, payment_service
):
    booking_id = client.post(
        f"{BOOKINGS}/book-now", json={"service_id": service.id}, headers=buyer_headers
    ).json()["data"]["id"]
    reference = client.post(
        f"{PAYMENTS}/initiate", json={"booking_id": booking_id}, headers=buyer_headers
    ).json()["data"]["reference"]

    cancelled = client.patch(f"{BOOKINGS}/{booking_id}/cancel", headers=buyer_headers)
    assert cancelled.json()["data"]["status"] == "cancelled"

    # The buyer completes checkout anyway; the webhook reports the charge
    client.get(f"{PAYMENTS}/verify", params={"reference": reference})
    refund_event = db.query(EventOutbox).filter_by(event_type=OutboxEventType.PAYMENT_REFUND_REQUIRED.value).one()

    _drain_outbox(db, payment_service)

    assert db.get(EventOutbox, refund_event.id).status == EventOutboxStatus.SENT.value
    assert fake_gateway.calls_for("refund_transaction") == [{"reference": reference, "amount_minor": 5000}]
    status = client.get(f"{BOOKINGS}/{booking_id}/payment-status", headers=buyer_headers).json()["data"]
    assert status["payment_status"] == "refunded"
    assert status["payment_refunded_at"] is not None


def test_seller_without_payout_account_blocks_release(
    client, db, buyer_headers, seller_headers, seller, service
):
    seller.paystack_recipient_code = None
    db.commit()
    booking_id = client.post(
        f"{BOOKINGS}/book-now", json={"service_id": service.id}, headers=buyer_headers
    ).json()["data"]["id"]
    reference = client.post(
        f"{PAYMENTS}/initiate", json={"booking_id": booking_id}, headers=buyer_headers
    ).json()["data"]["reference"]
    client.get(f"{PAYMENTS}/verify", params={"reference": reference})
    client.patch(f"{BOOKINGS}/{booking_id}/accept", headers=seller_headers)
    client.patch(f"{BOOKINGS}/{booking_id}/status", json={"status": "in_progress"}, headers=seller_headers)
    client.patch(f"{BOOKINGS}/{booking_id}/status", json={"status": "delivered"}, headers=seller_headers)

    response = client.patch(f"{BOOKINGS}/{booking_id}/confirm", headers=buyer_headers)

    assert response.status_code == 409
    assert response.json()["code"] == "PAYOUT_ACCOUNT_MISSING"
    current = client.get(f"{BOOKINGS}/{booking_id}", headers=buyer_headers).json()["data"]
    assert current["status"] == "delivered"
    assert current["payment_status"] == "in_escrow"


def test_charge_landing_after_completion_is_paid_out(
    client, db, buyer_headers, seller_headers, seller, service, fake_gateway, payment_service
):
    booking_id = client.post(
        f"{BOOKINGS}/book-now", json={"service_id": service.id}, headers=buyer_headers
    ).json()["data"]["id"]
    reference = client.post(
        f"{PAYMENTS}/initiate", json={"booking_id": booking_id}, headers=buyer_headers
    ).json()["data"]["reference"]
    client.patch(f"{BOOKINGS}/{booking_id}/accept", headers=seller_headers)
    client.patch(f"{BOOKINGS}/{booking_id}/status", json={"status": "in_progress"}, headers=seller_headers)
    client.patch(f"{BOOKINGS}/{booking_id}/status", json={"status": "delivered"}, headers=seller_headers)
    client.patch(f"{BOOKINGS}/{booking_id}/confirm", headers=buyer_headers)
    assert fake_gateway.calls_for("create_transfer") == []

    # The buyer finishes checkout only after confirming
    assert client.get(f"{PAYMENTS}/verify", params={"reference": reference}).status_code == 200
    _drain_outbox(db, payment_service)

    transfers = fake_gateway.calls_for("create_transfer")
    assert [(t["amount_minor"], t["recipient_code"]) for t in transfers] == [(5000, seller.paystack_recipient_code)]
    status = client.get(f"{BOOKINGS}/{booking_id}/payment-status", headers=buyer_headers).json()["data"]
    assert status["payment_status"] == "released"
    assert status["payment_released_at"] is not None
