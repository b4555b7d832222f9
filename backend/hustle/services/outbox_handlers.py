# backend/hustle/services/outbox_handlers.py
"""
Handlers that replay secondary writes delivered through the event outbox.

Every handler is idempotent: it re-checks current state first and does
nothing when the write already happened, so a redelivered event is harmless.
"""

from decimal import Decimal, InvalidOperation
import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from ..core.enums import OutboxEventType, PaymentStatus
from ..core.exceptions import ServiceException
from ..repositories.booking_repository import BookingRepository
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .invoice_service import InvoiceService
from .notification_service import NotificationService
from .payment_service import PaymentService

logger = logging.getLogger(__name__)

HANDLED = "handled"
SKIPPED = "skipped"

_FUNDS_HELD = frozenset(s.value for s in PaymentStatus.funds_held())

_NOTIFICATION_EVENTS = frozenset(
    {
        OutboxEventType.NOTIFY_BOOKING_CREATED.value,
        OutboxEventType.NOTIFY_BOOKING_STATUS_CHANGED.value,
        OutboxEventType.NOTIFY_PAYMENT_RECEIVED.value,
    }
)


class OutboxEventHandler(BaseService):
    """Dispatches one outbox event to the write it stands for."""

    def __init__(
        self,
        db: Session,
        payment_service: PaymentService,
        invoice_service: Optional[InvoiceService] = None,
        notification_service: Optional[NotificationService] = None,
        booking_repository: Optional[BookingRepository] = None,
    ):
        super().__init__(db)
        self.payment_service = payment_service
        self.invoice_service = invoice_service or InvoiceService(db)
        self.notification_service = notification_service or NotificationService(db)
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self._handlers: Dict[str, Callable[[Dict[str, Any]], str]] = {
            OutboxEventType.PAYMENT_REFERENCE_PERSIST.value: self._persist_reference,
            OutboxEventType.INVOICE_CREATE.value: self._create_invoice,
            OutboxEventType.PAYMENT_REFUND_REQUIRED.value: self._refund,
            OutboxEventType.PAYMENT_RELEASE_REQUIRED.value: self._release,
        }

    @BaseService.measure_operation("handle_outbox_event")
    def handle(self, event_type: str, payload: Dict[str, Any]) -> str:
        """
        Apply the event. Returns ``"handled"`` or ``"skipped"``.

        Raises:
            ServiceException: Unknown event type or a failed write (the
                dispatcher retries with backoff)
        """
        if event_type in _NOTIFICATION_EVENTS:
            sent = self.notification_service.deliver(event_type, payload)
            return HANDLED if sent else SKIPPED

        handler = self._handlers.get(event_type)
        if handler is None:
            raise ServiceException(f"No handler for outbox event type {event_type}")
        return handler(payload)

    def _persist_reference(self, payload: Dict[str, Any]) -> str:
        booking = self.booking_repository.get_by_id(payload.get("booking_id", ""), load_relationships=False)
        if booking is None:
            self.logger.warning(f"Booking {payload.get('booking_id')} missing; dropping reference persist")
            return SKIPPED
        if booking.payment_transaction_id:
            return SKIPPED

        fields: Dict[str, Any] = {"payment_transaction_id": payload["reference"]}
        if booking.payment_status is None:
            fields["payment_status"] = PaymentStatus.PENDING.value
        with self.transaction():
            self.booking_repository.update_payment_fields(booking.id, **fields)
        self.log_operation("reference_persisted", booking_id=booking.id, reference=payload["reference"])
        return HANDLED

    def _create_invoice(self, payload: Dict[str, Any]) -> str:
        reference = payload["reference"]
        if self.invoice_service.invoice_repository.get_by_reference(reference) is not None:
            return SKIPPED

        booking = self.booking_repository.get_with_service(payload.get("booking_id", ""))
        if booking is None:
            self.logger.warning(f"Booking {payload.get('booking_id')} missing; cannot invoice {reference}")
            return SKIPPED

        amount = _parse_amount(payload.get("amount")) or booking.payment_amount
        if amount is None:
            raise ServiceException("Invoice amount is unknown", details={"reference": reference})
        currency = payload.get("currency") or self.payment_service.currency
        self.invoice_service.create_for_booking(booking, reference, amount, currency)
        return HANDLED

    def _refund(self, payload: Dict[str, Any]) -> str:
        booking = self.booking_repository.get_with_service(payload.get("booking_id", ""))
        if booking is None:
            self.logger.warning(f"Booking {payload.get('booking_id')} missing; refund needs manual review")
            return SKIPPED

        with self.transaction():
            result = self.payment_service.refund_payment(booking)
        return HANDLED if result["refunded"] else SKIPPED

    def _release(self, payload: Dict[str, Any]) -> str:
        booking = self.booking_repository.get_with_service(payload.get("booking_id", ""))
        if booking is None:
            self.logger.warning(f"Booking {payload.get('booking_id')} missing; payout needs manual review")
            return SKIPPED
        if booking.payment_status not in _FUNDS_HELD:
            return SKIPPED

        with self.transaction():
            result = self.payment_service.release_payment(booking)
        self.log_operation("late_payout_released", booking_id=booking.id, transfer_reference=result["transaction_id"])
        return HANDLED


def _parse_amount(raw: Any) -> Optional[Decimal]:
    if raw is None:
        return None
    try:
        return Decimal(str(raw))
    except (InvalidOperation, ValueError):
        return None
