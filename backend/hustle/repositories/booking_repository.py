# backend/hustle/repositories/booking_repository.py
"""
Booking Repository for the Hustle Village backend.

Handles:
- Active-booking lookups backing the one-active-booking-per-pair rule
- Booking + service loads used for buyer/seller authorization
- Buyer and seller booking lists (newest first)
- Compare-and-swap status updates (optimistic concurrency)
- Payment sub-state writes and reference lookups
"""

import logging
from typing import Any, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload

from ..core.constants import DEFAULT_QUERY_LIMIT
from ..core.enums import BookingStatus
from ..core.exceptions import RepositoryException
from ..models.booking import Booking, utc_now
from ..models.profile import Service
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def find_active_for_buyer_service(self, buyer_id: str, service_id: str) -> List[Booking]:
        """Bookings for the pair whose status still blocks a new booking."""
        query = self.db.query(Booking).filter(
            Booking.buyer_id == buyer_id,
            Booking.service_id == service_id,
            Booking.status.in_([s.value for s in BookingStatus.active()]),
        )
        return self._execute_query(query)

    def get_with_service(self, booking_id: str) -> Optional[Booking]:
        """Load a booking with just enough of its service to know the seller."""
        query = self.db.query(Booking).options(joinedload(Booking.service)).filter(Booking.id == booking_id)
        return self._execute_first(query)

    def find_by_payment_reference(self, reference: str) -> Optional[Booking]:
        query = (
            self.db.query(Booking)
            .options(joinedload(Booking.service))
            .filter(Booking.payment_transaction_id == reference)
        )
        return self._execute_first(query)

    def list_for_buyer(self, buyer_id: str, limit: int = DEFAULT_QUERY_LIMIT) -> List[Booking]:
        query = (
            self._apply_eager_loading(self.db.query(Booking))
            .filter(Booking.buyer_id == buyer_id)
            .order_by(Booking.created_at.desc(), Booking.id.desc())
            .limit(limit)
        )
        return self._execute_query(query)

    def list_for_seller(self, seller_id: str, limit: int = DEFAULT_QUERY_LIMIT) -> List[Booking]:
        """Bookings on every service the seller owns."""
        query = (
            self._apply_eager_loading(self.db.query(Booking))
            .join(Service, Booking.service_id == Service.id)
            .filter(Service.user_id == seller_id)
            .order_by(Booking.created_at.desc(), Booking.id.desc())
            .limit(limit)
        )
        return self._execute_query(query)

    def compare_and_set_status(
        self,
        booking_id: str,
        expected_status: str,
        new_status: str,
        **fields: Any,
    ) -> bool:
        """
        Move ``booking_id`` to ``new_status`` only if it is still ``expected_status``.

        Extra column values (lifecycle stamps) are written in the same statement.
        Returns False when another request changed the booking first.
        """
        values = {"status": new_status, "updated_at": utc_now(), **fields}
        try:
            self.db.flush()
            result = self.db.execute(
                update(Booking)
                .where(Booking.id == booking_id, Booking.status == expected_status)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            self._expire_cached(booking_id)
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating status of booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to update booking status: {str(e)}")
        return bool(result.rowcount)

    def set_payment_amount_if_unset(self, booking_id: str, amount: Any) -> bool:
        """First write wins: only stores the amount while it is still null."""
        try:
            self.db.flush()
            result = self.db.execute(
                update(Booking)
                .where(Booking.id == booking_id, Booking.payment_amount.is_(None))
                .values(payment_amount=amount, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            self._expire_cached(booking_id)
        except SQLAlchemyError as e:
            self.logger.error(f"Error setting payment amount for booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to set payment amount: {str(e)}")
        return bool(result.rowcount)

    def update_payment_fields(self, booking_id: str, **fields: Any) -> Optional[Booking]:
        """Write payment sub-attributes (status, reference, stamps)."""
        return self.update(booking_id, updated_at=utc_now(), **fields)

    def _expire_cached(self, booking_id: str) -> None:
        """Bulk UPDATEs bypass the identity map; drop the stale copy so the next read reloads it."""
        cached = self.db.identity_map.get(self.db.identity_key(Booking, booking_id))
        if cached is not None:
            self.db.expire(cached)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(joinedload(Booking.service))
