# backend/tests/unit/services/test_booking_service.py
"""
BookingService tests against a real (in-memory SQLite) database.

Covers creation rules, listing, every lifecycle transition and the money
movement tied to completion, cancellation and acceptance.
"""

from datetime import date, timedelta

import pytest

from hustle.core.enums import BookingStatus, OutboxEventType, PaymentStatus
from hustle.core.exceptions import (
    BookingConflictException,
    ConcurrentModificationException,
    ConflictException,
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    UpstreamServiceException,
    ValidationException,
)
from hustle.models.booking import Booking
from hustle.models.event_outbox import EventOutbox


def _pay(payment_service, booking):
    started = payment_service.initiate_payment_for_booking(booking.buyer_id, booking.id)
    payment_service.verify_payment_reference(started["reference"])
    return started["reference"]


def _deliver(booking_service, booking, seller_id):
    booking_service.accept_booking(seller_id, booking.id)
    booking_service.update_booking_status(seller_id, booking.id, "in_progress")
    booking_service.update_booking_status(seller_id, booking.id, "delivered")
    return booking


class TestBookNow:
    def test_instant_booking_starts_pending(self, db, booking_service, buyer, service):
        booking = booking_service.book_now(buyer.id, service.id)

        assert booking.status == BookingStatus.PENDING.value
        assert booking.is_instant
        assert booking.payment_status is None
        assert booking.seller_id == service.user_id

        event = db.query(EventOutbox).filter_by(aggregate_id=booking.id).one()
        assert event.event_type == OutboxEventType.NOTIFY_BOOKING_CREATED.value
        assert event.payload["seller_id"] == service.user_id

    def test_scheduled_booking_keeps_date_time_and_note(self, booking_service, buyer, service):
        when = date.today() + timedelta(days=3)

        booking = booking_service.book_now(
            buyer.id, service.id, date=when.isoformat(), time="14:30", note="  Need a logo for my stall  "
        )

        assert booking.scheduled_date == when
        assert booking.scheduled_time.hour == 14 and booking.scheduled_time.minute == 30
        assert booking.note == "Need a logo for my stall"
        assert not booking.is_instant

    @pytest.mark.parametrize(
        "kwargs,message",
        [
            ({"date": "2099-01-01"}, "Both date and time are required if scheduling"),
            ({"time": "10:00"}, "Both date and time are required if scheduling"),
            ({"date": "2099-13-40", "time": "10:00"}, "Invalid date format"),
            ({"date": "2099-01-01", "time": "25:99"}, "Invalid time format"),
            ({"date": "2001-01-01", "time": "10:00"}, "Booking date must be in the future"),
        ],
    )
    def test_schedule_validation(self, booking_service, buyer, service, kwargs, message):
        with pytest.raises(ValidationException) as exc_info:
            booking_service.book_now(buyer.id, service.id, **kwargs)

        assert exc_info.value.message == message

    def test_note_too_long(self, booking_service, buyer, service):
        with pytest.raises(ValidationException):
            booking_service.book_now(buyer.id, service.id, note="x" * 1001)

    def test_missing_profile(self, booking_service, service):
        with pytest.raises(NotFoundException) as exc_info:
            booking_service.book_now("user_without_profile", service.id)

        assert "profile" in exc_info.value.message

    def test_missing_service(self, booking_service, buyer):
        with pytest.raises(NotFoundException) as exc_info:
            booking_service.book_now(buyer.id, "svc_missing")

        assert exc_info.value.message == "Service not found"

    def test_unverified_service(self, db, booking_service, buyer, service):
        service.is_verified = False
        db.commit()

        with pytest.raises(ForbiddenException) as exc_info:
            booking_service.book_now(buyer.id, service.id)

        assert exc_info.value.message == "Cannot book unverified service"

    def test_inactive_service(self, db, booking_service, buyer, service):
        service.is_active = False
        db.commit()

        with pytest.raises(ForbiddenException) as exc_info:
            booking_service.book_now(buyer.id, service.id)

        assert exc_info.value.message == "Cannot book inactive service"

    def test_cannot_book_own_service(self, booking_service, seller, service):
        with pytest.raises(ForbiddenException) as exc_info:
            booking_service.book_now(seller.id, service.id)

        assert exc_info.value.message == "Cannot book your own service"

    def test_second_active_booking_conflicts(self, db, booking_service, buyer, service):
        booking_service.book_now(buyer.id, service.id)

        with pytest.raises(BookingConflictException) as exc_info:
            booking_service.book_now(buyer.id, service.id)

        assert exc_info.value.status_code == 409
        assert exc_info.value.code == "BOOKING_CONFLICT"
        assert db.query(Booking).count() == 1

    def test_can_rebook_after_cancelling(self, booking_service, buyer, service):
        first = booking_service.book_now(buyer.id, service.id)
        booking_service.cancel_booking(buyer.id, first.id)

        second = booking_service.book_now(buyer.id, service.id)

        assert second.id != first.id
        assert second.status == BookingStatus.PENDING.value

    def test_delivered_booking_does_not_block_a_new_one(self, booking_service, buyer, seller, service):
        first = booking_service.book_now(buyer.id, service.id)
        _deliver(booking_service, first, seller.id)

        second = booking_service.book_now(buyer.id, service.id)

        assert second.status == BookingStatus.PENDING.value


class TestReads:
    def test_buyer_and_seller_lists(self, booking_service, buyer, seller, other_user, service):
        mine = booking_service.book_now(buyer.id, service.id)
        theirs = booking_service.book_now(other_user.id, service.id)

        buyer_view = booking_service.get_user_bookings(buyer.id, "buyer")
        seller_view = booking_service.get_user_bookings(seller.id, "seller")

        assert [b.id for b in buyer_view] == [mine.id]
        assert [b.id for b in seller_view] == [theirs.id, mine.id]
        assert seller_view[0].service.title == "Logo design"

    def test_invalid_role(self, booking_service, buyer):
        with pytest.raises(ValidationException) as exc_info:
            booking_service.get_user_bookings(buyer.id, "admin")

        assert exc_info.value.message == "Invalid role. Must be 'buyer' or 'seller'"

    def test_outsider_cannot_view(self, booking_service, buyer, other_user, service):
        booking = booking_service.book_now(buyer.id, service.id)

        with pytest.raises(ForbiddenException):
            booking_service.get_booking_by_id(other_user.id, booking.id)

    def test_missing_booking(self, booking_service, buyer):
        with pytest.raises(NotFoundException):
            booking_service.get_booking_by_id(buyer.id, "01J00000000000000000000000")


class TestTransitions:
    def test_forward_path_stamps_each_step(self, booking_service, buyer, seller, service):
        booking = booking_service.book_now(buyer.id, service.id)

        booking_service.accept_booking(seller.id, booking.id)
        assert booking.status == BookingStatus.ACCEPTED.value
        assert booking.accepted_at is not None

        booking_service.update_booking_status(seller.id, booking.id, "in_progress")
        booking_service.update_booking_status(seller.id, booking.id, "delivered")
        assert booking.delivered_at is not None

        booking_service.confirm_booking_completion(buyer.id, booking.id)
        assert booking.status == BookingStatus.COMPLETED.value
        assert booking.completed_at is not None
        assert booking.updated_at is not None

    def test_only_seller_accepts(self, booking_service, buyer, service):
        booking = booking_service.book_now(buyer.id, service.id)

        with pytest.raises(ForbiddenException):
            booking_service.accept_booking(buyer.id, booking.id)

    def test_accept_twice(self, booking_service, buyer, seller, service):
        booking = booking_service.book_now(buyer.id, service.id)
        booking_service.accept_booking(seller.id, booking.id)

        with pytest.raises(InvalidTransitionException) as exc_info:
            booking_service.accept_booking(seller.id, booking.id)

        assert exc_info.value.message == "Cannot accept booking with status: accepted"

    def test_only_buyer_confirms(self, booking_service, buyer, seller, service):
        booking = _deliver(booking_service, booking_service.book_now(buyer.id, service.id), seller.id)

        with pytest.raises(ForbiddenException) as exc_info:
            booking_service.confirm_booking_completion(seller.id, booking.id)

        assert exc_info.value.message == "Only the buyer can confirm booking completion"

    def test_confirm_before_delivery(self, booking_service, buyer, seller, service):
        booking = booking_service.book_now(buyer.id, service.id)
        booking_service.accept_booking(seller.id, booking.id)

        with pytest.raises(InvalidTransitionException) as exc_info:
            booking_service.confirm_booking_completion(buyer.id, booking.id)

        assert exc_info.value.message.endswith("Current status: accepted")

    def test_seller_cannot_complete_via_status_update(self, booking_service, buyer, seller, service):
        booking = _deliver(booking_service, booking_service.book_now(buyer.id, service.id), seller.id)

        with pytest.raises(ForbiddenException):
            booking_service.update_booking_status(seller.id, booking.id, "completed")

        assert booking.status == BookingStatus.DELIVERED.value

    def test_outsider_cannot_update(self, booking_service, buyer, other_user, service):
        booking = booking_service.book_now(buyer.id, service.id)

        with pytest.raises(ForbiddenException):
            booking_service.update_booking_status(other_user.id, booking.id, "cancelled")

    def test_status_change_enqueues_notification(self, db, booking_service, buyer, seller, service):
        booking = booking_service.book_now(buyer.id, service.id)
        booking_service.accept_booking(seller.id, booking.id)

        event = (
            db.query(EventOutbox)
            .filter_by(event_type=OutboxEventType.NOTIFY_BOOKING_STATUS_CHANGED.value)
            .one()
        )
        assert event.payload["from_status"] == "pending"
        assert event.payload["to_status"] == "accepted"
        assert event.payload["actor_id"] == seller.id

    def test_lost_compare_and_swap_raises_and_keeps_status(self, monkeypatch, booking_service, buyer, seller, service):
        booking = booking_service.book_now(buyer.id, service.id)
        monkeypatch.setattr(booking_service.repository, "compare_and_set_status", lambda *a, **k: False)

        with pytest.raises(ConcurrentModificationException) as exc_info:
            booking_service.accept_booking(seller.id, booking.id)

        assert exc_info.value.status_code == 409
        assert booking.status == BookingStatus.PENDING.value


class TestCancellation:
    def test_buyer_cancels_pending(self, booking_service, buyer, service, fake_gateway):
        booking = booking_service.book_now(buyer.id, service.id)

        booking_service.cancel_booking(buyer.id, booking.id)

        assert booking.status == BookingStatus.CANCELLED.value
        assert booking.cancelled_by_id == buyer.id
        assert booking.cancelled_at is not None
        assert fake_gateway.calls_for("refund_transaction") == []

    def test_seller_cancels_in_progress(self, booking_service, buyer, seller, service):
        booking = booking_service.book_now(buyer.id, service.id)
        booking_service.accept_booking(seller.id, booking.id)
        booking_service.update_booking_status(seller.id, booking.id, "in_progress")

        booking_service.cancel_booking(seller.id, booking.id)

        assert booking.status == BookingStatus.CANCELLED.value
        assert booking.cancelled_by_id == seller.id

    def test_buyer_cannot_cancel_in_progress(self, booking_service, buyer, seller, service):
        booking = booking_service.book_now(buyer.id, service.id)
        booking_service.accept_booking(seller.id, booking.id)
        booking_service.update_booking_status(seller.id, booking.id, "in_progress")

        with pytest.raises(ForbiddenException):
            booking_service.cancel_booking(buyer.id, booking.id)

        assert booking.status == BookingStatus.IN_PROGRESS.value

    def test_cancelling_paid_booking_refunds(self, booking_service, payment_service, buyer, service, fake_gateway):
        booking = booking_service.book_now(buyer.id, service.id)
        reference = _pay(payment_service, booking)

        booking_service.cancel_booking(buyer.id, booking.id)

        refunds = fake_gateway.calls_for("refund_transaction")
        assert refunds == [{"reference": reference, "amount_minor": 5000}]
        assert booking.payment_status == PaymentStatus.REFUNDED.value
        assert booking.payment_refunded_at is not None

    def test_refund_failure_keeps_booking_active(
        self, db, booking_service, payment_service, buyer, service, fake_gateway
    ):
        booking = booking_service.book_now(buyer.id, service.id)
        _pay(payment_service, booking)
        fake_gateway.fail_operations.add("refund_transaction")

        with pytest.raises(UpstreamServiceException) as exc_info:
            booking_service.cancel_booking(buyer.id, booking.id)

        assert exc_info.value.status_code == 502
        reloaded = db.get(Booking, booking.id)
        assert reloaded.status == BookingStatus.PENDING.value
        assert reloaded.payment_status == PaymentStatus.PAID.value

    def test_cancelled_is_terminal(self, booking_service, buyer, seller, service):
        booking = booking_service.book_now(buyer.id, service.id)
        booking_service.cancel_booking(buyer.id, booking.id)

        with pytest.raises(InvalidTransitionException) as exc_info:
            booking_service.update_booking_status(seller.id, booking.id, "accepted")

        assert exc_info.value.message == "Cannot update booking with status: cancelled"


class TestMoneyMovement:
    def test_accepting_paid_booking_moves_funds_to_escrow(
        self, booking_service, payment_service, buyer, seller, service
    ):
        booking = booking_service.book_now(buyer.id, service.id)
        _pay(payment_service, booking)

        booking_service.accept_booking(seller.id, booking.id)

        assert booking.payment_status == PaymentStatus.IN_ESCROW.value

    def test_capture_failure_does_not_block_acceptance(
        self, booking_service, payment_service, buyer, seller, service, fake_gateway
    ):
        booking = booking_service.book_now(buyer.id, service.id)
        _pay(payment_service, booking)
        fake_gateway.fail_operations.add("verify_transaction")

        booking_service.accept_booking(seller.id, booking.id)

        assert booking.status == BookingStatus.ACCEPTED.value
        assert booking.payment_status == PaymentStatus.PAID.value

    def test_completion_releases_to_seller(
        self, booking_service, payment_service, buyer, seller, service, fake_gateway
    ):
        booking = booking_service.book_now(buyer.id, service.id)
        _pay(payment_service, booking)
        _deliver(booking_service, booking, seller.id)

        booking_service.confirm_booking_completion(buyer.id, booking.id)

        transfers = fake_gateway.calls_for("create_transfer")
        assert len(transfers) == 1
        assert transfers[0]["amount_minor"] == 5000
        assert transfers[0]["recipient_code"] == seller.paystack_recipient_code
        assert transfers[0]["reference"] == f"release-{booking.id}"
        assert booking.status == BookingStatus.COMPLETED.value
        assert booking.payment_status == PaymentStatus.RELEASED.value
        assert booking.payment_released_at is not None
        assert booking.payment_release_reference == f"release-{booking.id}"

    def test_completion_without_payment_skips_transfer(self, booking_service, buyer, seller, service, fake_gateway):
        booking = _deliver(booking_service, booking_service.book_now(buyer.id, service.id), seller.id)

        booking_service.confirm_booking_completion(buyer.id, booking.id)

        assert fake_gateway.calls_for("create_transfer") == []
        assert booking.status == BookingStatus.COMPLETED.value
        assert booking.payment_status == PaymentStatus.RELEASED.value

    def test_transfer_failure_rolls_back_completion(
        self, db, booking_service, payment_service, buyer, seller, service, fake_gateway
    ):
        booking = booking_service.book_now(buyer.id, service.id)
        _pay(payment_service, booking)
        _deliver(booking_service, booking, seller.id)
        fake_gateway.fail_operations.add("create_transfer")

        with pytest.raises(UpstreamServiceException):
            booking_service.confirm_booking_completion(buyer.id, booking.id)

        reloaded = db.get(Booking, booking.id)
        assert reloaded.status == BookingStatus.DELIVERED.value
        assert reloaded.payment_status == PaymentStatus.IN_ESCROW.value
        assert reloaded.completed_at is None

        # The buyer can simply retry once the gateway recovers
        fake_gateway.fail_operations.clear()
        booking_service.confirm_booking_completion(buyer.id, booking.id)
        assert reloaded.status == BookingStatus.COMPLETED.value

    def test_missing_payout_account_blocks_completion(
        self, db, booking_service, payment_service, buyer, seller, service
    ):
        booking = booking_service.book_now(buyer.id, service.id)
        _pay(payment_service, booking)
        _deliver(booking_service, booking, seller.id)
        seller.paystack_recipient_code = None
        db.commit()

        with pytest.raises(ConflictException) as exc_info:
            booking_service.confirm_booking_completion(buyer.id, booking.id)

        assert exc_info.value.code == "PAYOUT_ACCOUNT_MISSING"
        assert db.get(Booking, booking.id).status == BookingStatus.DELIVERED.value
