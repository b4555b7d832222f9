# backend/hustle/services/booking_service.py
"""
Booking Service for the Hustle Village marketplace.

Implements the booking lifecycle:

    pending -> accepted -> in_progress -> delivered -> completed
    pending/accepted -> cancelled (buyer or seller)
    in_progress/delivered -> cancelled (seller only)

completed and cancelled are terminal. Sellers drive the work forward; only
the buyer can confirm completion, which releases the payment. Every status
write is a compare-and-swap on the status that was read, and transitions that
move money (completion releases, cancellation refunds) commit only if the
gateway call succeeds.
"""

from datetime import date, datetime, time
import logging
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.constants import MAX_BOOKING_NOTE_LENGTH
from ..core.enums import BookingRole, BookingStatus
from ..core.exceptions import (
    BookingConflictException,
    ConcurrentModificationException,
    DuplicateRecordException,
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    UpstreamServiceException,
    ValidationException,
)
from ..models.booking import Booking, utc_now
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.booking_repository import BookingRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.profile_repository import ProfileRepository, ServiceRepository
from .base import BaseService
from .notification_service import NotificationService
from .payment_service import PaymentService

logger = logging.getLogger(__name__)

_BUYER = BookingRole.BUYER
_SELLER = BookingRole.SELLER

# (from, to) -> roles allowed to make the move
TRANSITIONS: Dict[Tuple[BookingStatus, BookingStatus], FrozenSet[BookingRole]] = {
    (BookingStatus.PENDING, BookingStatus.ACCEPTED): frozenset({_SELLER}),
    (BookingStatus.ACCEPTED, BookingStatus.IN_PROGRESS): frozenset({_SELLER}),
    (BookingStatus.IN_PROGRESS, BookingStatus.DELIVERED): frozenset({_SELLER}),
    (BookingStatus.DELIVERED, BookingStatus.COMPLETED): frozenset({_BUYER}),
    (BookingStatus.PENDING, BookingStatus.CANCELLED): frozenset({_BUYER, _SELLER}),
    (BookingStatus.ACCEPTED, BookingStatus.CANCELLED): frozenset({_BUYER, _SELLER}),
    (BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED): frozenset({_SELLER}),
    (BookingStatus.DELIVERED, BookingStatus.CANCELLED): frozenset({_SELLER}),
}

# Messages for forward moves requested from the wrong status
_PREREQUISITE_MESSAGES = {
    BookingStatus.IN_PROGRESS: "Cannot mark as in progress. Booking must be accepted first.",
    BookingStatus.DELIVERED: "Cannot mark as delivered. Booking must be in progress first.",
    BookingStatus.COMPLETED: "Cannot confirm completion. Booking must be marked as delivered by the seller first.",
}

# Lifecycle timestamp written when a booking lands in a status
_STAMP_COLUMNS = {
    BookingStatus.ACCEPTED: "accepted_at",
    BookingStatus.DELIVERED: "delivered_at",
    BookingStatus.COMPLETED: "completed_at",
    BookingStatus.CANCELLED: "cancelled_at",
}


def parse_status(value: Any) -> BookingStatus:
    try:
        return BookingStatus(value)
    except ValueError:
        valid = ", ".join(s.value for s in BookingStatus)
        raise ValidationException(f"Invalid status. Must be one of: {valid}", details={"status": value})


def validate_transition(current: BookingStatus, requested: BookingStatus, role: BookingRole) -> None:
    """
    Raise unless ``role`` may move a booking from ``current`` to ``requested``.

    Authorization failures raise ForbiddenException; moves the graph does not
    allow raise InvalidTransitionException carrying both statuses.
    """
    if current.is_terminal:
        raise InvalidTransitionException(
            current.value, requested.value, f"Cannot update booking with status: {current.value}"
        )

    if requested == BookingStatus.COMPLETED and role == _SELLER:
        raise ForbiddenException("Sellers cannot mark booking as completed. The buyer must confirm completion.")

    if role == _BUYER and requested not in (BookingStatus.COMPLETED, BookingStatus.CANCELLED):
        raise ForbiddenException("Buyers can only confirm completion or cancel bookings.")

    if requested == BookingStatus.CANCELLED and role not in TRANSITIONS.get((current, requested), frozenset()):
        if current == BookingStatus.IN_PROGRESS:
            raise ForbiddenException("Cannot cancel booking that is in progress. Contact the seller.")
        raise ForbiddenException(
            "Cannot cancel booking that has been delivered. Please confirm or dispute the delivery."
        )

    allowed = TRANSITIONS.get((current, requested))
    if allowed is None:
        if requested == BookingStatus.ACCEPTED:
            message = f"Cannot accept booking with status: {current.value}"
        else:
            message = _PREREQUISITE_MESSAGES.get(requested)
        raise InvalidTransitionException(current.value, requested.value, message)
    if role not in allowed:
        raise ForbiddenException("You do not have permission to make this status change")


def _parse_schedule(raw_date: Optional[str], raw_time: Optional[str]) -> Tuple[Optional[date], Optional[time]]:
    """Both or neither; a scheduled date may not be in the past."""
    if not raw_date and not raw_time:
        return None, None
    if not raw_date or not raw_time:
        raise ValidationException("Both date and time are required if scheduling")

    try:
        scheduled_date = date.fromisoformat(raw_date)
    except ValueError:
        raise ValidationException("Invalid date format", details={"date": raw_date})
    try:
        scheduled_time = time.fromisoformat(raw_time)
    except ValueError:
        raise ValidationException("Invalid time format", details={"time": raw_time})

    if scheduled_date < date.today():
        raise ValidationException("Booking date must be in the future")
    return scheduled_date, scheduled_time


class BookingService(BaseService):
    """Service layer for booking lifecycle operations."""

    def __init__(
        self,
        db: Session,
        payment_service: PaymentService,
        notification_service: Optional[NotificationService] = None,
        booking_repository: Optional[BookingRepository] = None,
        service_repository: Optional[ServiceRepository] = None,
        profile_repository: Optional[ProfileRepository] = None,
    ):
        super().__init__(db)
        self.payment_service = payment_service
        self.notification_service = notification_service or NotificationService(db)
        self.repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.service_repository = service_repository or RepositoryFactory.create_service_repository(db)
        self.profile_repository = profile_repository or RepositoryFactory.create_profile_repository(db)

    # ---------------------------------------------------------------- creation
    @BaseService.measure_operation("book_now")
    def book_now(
        self,
        buyer_id: str,
        service_id: str,
        *,
        date: Optional[str] = None,
        time: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Booking:
        """
        Create a pending booking for ``service_id``.

        Raises:
            ValidationException: Bad schedule or note
            NotFoundException: Buyer profile or service missing
            ForbiddenException: Service unverified/inactive or owned by the buyer
            BookingConflictException: Buyer already has an active booking for it
        """
        scheduled_date, scheduled_time = _parse_schedule(date, time)
        note = (note or "").strip() or None
        if note and len(note) > MAX_BOOKING_NOTE_LENGTH:
            raise ValidationException(f"Note must be at most {MAX_BOOKING_NOTE_LENGTH} characters")

        if self.profile_repository.get_by_id(buyer_id, load_relationships=False) is None:
            raise NotFoundException("User profile not found. Please complete your profile setup.")

        service = self.service_repository.get_by_id(service_id, load_relationships=False)
        if service is None:
            raise NotFoundException("Service not found")
        if not service.is_verified:
            raise ForbiddenException("Cannot book unverified service")
        if not service.is_active:
            raise ForbiddenException("Cannot book inactive service")
        if service.user_id == buyer_id:
            raise ForbiddenException("Cannot book your own service")

        with self.transaction():
            if self.repository.find_active_for_buyer_service(buyer_id, service_id):
                raise BookingConflictException()
            try:
                booking = self.repository.create(
                    buyer_id=buyer_id,
                    service_id=service_id,
                    scheduled_date=scheduled_date,
                    scheduled_time=scheduled_time,
                    note=note,
                    status=BookingStatus.PENDING.value,
                )
            except DuplicateRecordException as exc:
                # Lost the race against a concurrent request for the same pair
                raise BookingConflictException() from exc
            booking.service = service
            self.notification_service.notify_booking_created(booking)

        self.log_operation("booking_created", booking_id=booking.id, buyer_id=buyer_id, service_id=service_id)
        return booking

    # ------------------------------------------------------------------- reads
    @BaseService.measure_operation("get_booking")
    def get_booking_by_id(self, user_id: str, booking_id: str) -> Booking:
        booking = self._load(booking_id)
        self._role_for(booking, user_id, "You do not have permission to view this booking")
        return booking

    @BaseService.measure_operation("get_user_bookings")
    def get_user_bookings(self, user_id: str, role: str) -> List[Booking]:
        """Newest first; the seller view covers every service the seller owns."""
        if role == BookingRole.BUYER.value:
            return self.repository.list_for_buyer(user_id)
        if role == BookingRole.SELLER.value:
            return self.repository.list_for_seller(user_id)
        raise ValidationException("Invalid role. Must be 'buyer' or 'seller'")

    # ------------------------------------------------------------- transitions
    @BaseService.measure_operation("accept_booking")
    def accept_booking(self, user_id: str, booking_id: str) -> Booking:
        """Seller accepts a pending booking; a paid booking moves into escrow."""
        booking = self._load(booking_id)
        if booking.seller_id != user_id:
            raise ForbiddenException("You do not have permission to accept this booking")
        if booking.status != BookingStatus.PENDING.value:
            raise InvalidTransitionException(
                booking.status,
                BookingStatus.ACCEPTED.value,
                f"Cannot accept booking with status: {booking.status}",
            )
        return self._apply_transition(booking, user_id, _SELLER, BookingStatus.ACCEPTED)

    @BaseService.measure_operation("update_booking_status")
    def update_booking_status(self, user_id: str, booking_id: str, status: Any) -> Booking:
        requested = parse_status(status)
        booking = self._load(booking_id)
        role = self._role_for(booking, user_id, "You do not have permission to update this booking")
        return self._apply_transition(booking, user_id, role, requested)

    @BaseService.measure_operation("confirm_booking_completion")
    def confirm_booking_completion(self, user_id: str, booking_id: str) -> Booking:
        """Buyer confirms delivered work; releases the payment to the seller."""
        booking = self._load(booking_id)
        if booking.buyer_id != user_id:
            raise ForbiddenException("Only the buyer can confirm booking completion")
        if booking.status != BookingStatus.DELIVERED.value:
            raise InvalidTransitionException(
                booking.status,
                BookingStatus.COMPLETED.value,
                "Cannot confirm completion. Booking must be marked as delivered by the seller first. "
                f"Current status: {booking.status}",
            )
        return self._apply_transition(booking, user_id, _BUYER, BookingStatus.COMPLETED)

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(self, user_id: str, booking_id: str) -> Booking:
        return self.update_booking_status(user_id, booking_id, BookingStatus.CANCELLED)

    # ----------------------------------------------------------------- helpers
    def _load(self, booking_id: str) -> Booking:
        booking = self.repository.get_with_service(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        return booking

    def _role_for(self, booking: Booking, user_id: str, denied_message: str) -> BookingRole:
        if booking.buyer_id == user_id:
            return _BUYER
        if booking.seller_id == user_id:
            return _SELLER
        raise ForbiddenException(denied_message)

    def _apply_transition(
        self,
        booking: Booking,
        user_id: str,
        role: BookingRole,
        requested: BookingStatus,
    ) -> Booking:
        current = BookingStatus(booking.status)
        validate_transition(current, requested, role)

        now = utc_now()
        fields: Dict[str, Any] = {}
        stamp_column = _STAMP_COLUMNS.get(requested)
        if stamp_column:
            fields[stamp_column] = now
        if requested == BookingStatus.CANCELLED:
            fields["cancelled_by_id"] = user_id

        with self.transaction():
            if not self.repository.compare_and_set_status(booking.id, current.value, requested.value, **fields):
                raise ConcurrentModificationException(booking.id, current.value)

            # Money movement shares the transaction: a gateway failure rolls the status back
            if requested == BookingStatus.COMPLETED:
                self.payment_service.release_payment(booking)
            elif requested == BookingStatus.CANCELLED:
                self.payment_service.refund_payment(booking)
            elif requested == BookingStatus.ACCEPTED:
                self._capture_if_paid(booking)

            self.notification_service.notify_status_changed(booking, current.value, user_id)

        prometheus_metrics.record_booking_transition(current.value, requested.value)
        self.log_operation(
            "booking_status_changed",
            booking_id=booking.id,
            from_status=current.value,
            to_status=requested.value,
            actor_id=user_id,
        )
        # The status write expired the instance; reload it with its service here
        return self.repository.get_with_service(booking.id)

    def _capture_if_paid(self, booking: Booking) -> None:
        """Escrow capture is best-effort; acceptance stands if the gateway is down."""
        try:
            self.payment_service.capture_payment(booking)
        except UpstreamServiceException as exc:
            self.logger.warning(f"Capture failed for accepted booking {booking.id}; payment stays paid: {exc.message}")
