# backend/tests/unit/repositories/test_booking_repository.py
"""BookingRepository against SQLite: the active-pair index, CAS writes and lists."""

from decimal import Decimal

import pytest

from hustle.core.enums import BookingStatus
from hustle.core.exceptions import DuplicateRecordException
from hustle.models.booking import Booking
from hustle.repositories.booking_repository import BookingRepository


@pytest.fixture
def repository(db):
    return BookingRepository(db)


def _create(repository, buyer_id, service_id, status=BookingStatus.PENDING):
    booking = repository.create(buyer_id=buyer_id, service_id=service_id, status=status.value)
    repository.db.commit()
    return booking


class TestActiveBookingIndex:
    def test_second_active_row_is_rejected(self, db, repository, buyer, service):
        _create(repository, buyer.id, service.id)

        with pytest.raises(DuplicateRecordException):
            repository.create(buyer_id=buyer.id, service_id=service.id, status=BookingStatus.ACCEPTED.value)
        db.rollback()

        assert db.query(Booking).count() == 1

    @pytest.mark.parametrize(
        "finished", [BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.DELIVERED]
    )
    def test_finished_rows_do_not_block(self, repository, buyer, service, finished):
        _create(repository, buyer.id, service.id, finished)

        booking = _create(repository, buyer.id, service.id)

        assert booking.status == BookingStatus.PENDING.value

    def test_find_active(self, repository, buyer, service):
        _create(repository, buyer.id, service.id, BookingStatus.CANCELLED)
        assert repository.find_active_for_buyer_service(buyer.id, service.id) == []

        active = _create(repository, buyer.id, service.id, BookingStatus.IN_PROGRESS)
        assert [b.id for b in repository.find_active_for_buyer_service(buyer.id, service.id)] == [active.id]


class TestCompareAndSet:
    def test_matching_status_is_updated(self, db, repository, buyer, service):
        booking = _create(repository, buyer.id, service.id)

        changed = repository.compare_and_set_status(
            booking.id, BookingStatus.PENDING.value, BookingStatus.ACCEPTED.value, accepted_at=None
        )
        db.commit()

        assert changed
        # The caller's own instance sees the write without a manual refresh
        assert booking.status == BookingStatus.ACCEPTED.value
        assert booking.updated_at is not None
        assert db.get(Booking, booking.id) is booking

    def test_unflushed_edits_survive_the_update(self, db, repository, buyer, service):
        booking = _create(repository, buyer.id, service.id)
        booking.note = "Use the blue palette"

        repository.compare_and_set_status(booking.id, BookingStatus.PENDING.value, BookingStatus.ACCEPTED.value)
        db.commit()
        db.expire_all()

        assert booking.note == "Use the blue palette"
        assert booking.status == BookingStatus.ACCEPTED.value

    def test_stale_status_is_left_alone(self, db, repository, buyer, service):
        booking = _create(repository, buyer.id, service.id, BookingStatus.ACCEPTED)

        changed = repository.compare_and_set_status(
            booking.id, BookingStatus.PENDING.value, BookingStatus.CANCELLED.value
        )

        assert not changed
        assert booking.status == BookingStatus.ACCEPTED.value
        assert booking.updated_at is None


class TestPaymentFields:
    def test_amount_is_written_once(self, db, repository, buyer, service):
        booking = _create(repository, buyer.id, service.id)

        assert repository.set_payment_amount_if_unset(booking.id, Decimal("50.00"))
        assert booking.payment_amount == Decimal("50.00")

        assert not repository.set_payment_amount_if_unset(booking.id, Decimal("99.00"))
        db.commit()

        assert booking.payment_amount == Decimal("50.00")

    def test_lookup_by_reference(self, repository, buyer, service):
        booking = _create(repository, buyer.id, service.id)
        repository.update_payment_fields(booking.id, payment_transaction_id="hv_ref_123")

        found = repository.find_by_payment_reference("hv_ref_123")

        assert found.id == booking.id
        assert found.seller_id == service.user_id
        assert repository.find_by_payment_reference("hv_ref_missing") is None


class TestLists:
    def test_seller_list_covers_owned_services_only(self, repository, buyer, seller, other_user, service):
        booking = _create(repository, buyer.id, service.id)

        assert [b.id for b in repository.list_for_seller(seller.id)] == [booking.id]
        assert repository.list_for_seller(other_user.id) == []
        assert [b.id for b in repository.list_for_buyer(buyer.id)] == [booking.id]
