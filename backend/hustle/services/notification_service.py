# backend/hustle/services/notification_service.py
"""
Booking and payment notifications.

Enqueue methods write outbox rows inside the caller's transaction; they never
talk to the email provider. ``deliver`` is invoked by the outbox dispatcher
and renders/sends the emails.
"""

from decimal import Decimal
import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.constants import BRAND_NAME
from ..core.enums import OutboxEventType
from ..models.booking import Booking
from ..repositories.event_outbox_repository import EventOutboxRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.profile_repository import ProfileRepository
from .base import BaseService
from .email import EmailService

logger = logging.getLogger(__name__)

_STATUS_LABELS = {
    "accepted": "accepted",
    "in_progress": "started",
    "delivered": "delivered",
    "completed": "completed",
    "cancelled": "cancelled",
}


class NotificationService(BaseService):
    """Outbox-backed notifications for booking and payment events."""

    def __init__(
        self,
        db: Session,
        outbox_repository: Optional[EventOutboxRepository] = None,
        profile_repository: Optional[ProfileRepository] = None,
        email_service_factory: Optional[Callable[[], EmailService]] = None,
    ):
        super().__init__(db)
        self.outbox_repository = outbox_repository or RepositoryFactory.create_event_outbox_repository(db)
        self.profile_repository = profile_repository or RepositoryFactory.create_profile_repository(db)
        self._email_service_factory = email_service_factory or (lambda: EmailService(db))

    # ------------------------------------------------------------------ enqueue
    def notify_booking_created(self, booking: Booking) -> None:
        self.outbox_repository.enqueue(
            event_type=OutboxEventType.NOTIFY_BOOKING_CREATED.value,
            aggregate_id=booking.id,
            payload=self._booking_payload(booking),
            idempotency_key=f"booking_created:{booking.id}",
        )

    def notify_status_changed(self, booking: Booking, from_status: str, actor_id: str) -> None:
        payload = self._booking_payload(booking)
        payload.update({"from_status": from_status, "to_status": booking.status, "actor_id": actor_id})
        self.outbox_repository.enqueue(
            event_type=OutboxEventType.NOTIFY_BOOKING_STATUS_CHANGED.value,
            aggregate_id=booking.id,
            payload=payload,
            idempotency_key=f"booking_status:{booking.id}:{booking.status}",
        )

    def notify_payment_received(self, booking: Booking, reference: str) -> None:
        payload = self._booking_payload(booking)
        payload.update(
            {
                "reference": reference,
                "amount": _decimal_str(booking.payment_amount),
            }
        )
        self.outbox_repository.enqueue(
            event_type=OutboxEventType.NOTIFY_PAYMENT_RECEIVED.value,
            aggregate_id=booking.id,
            payload=payload,
            idempotency_key=f"payment_received:{reference}",
        )

    # ------------------------------------------------------------------ deliver
    @BaseService.measure_operation("deliver_notification")
    def deliver(self, event_type: str, payload: Dict[str, Any]) -> int:
        """
        Render and send the emails for one notification event.

        Returns the number of emails sent. Raises when the provider fails so the
        dispatcher can retry.
        """
        messages = self._render(event_type, payload)
        if not messages:
            return 0
        if not EmailService.is_configured():
            self.logger.info("Email not configured; skipping %s for booking %s", event_type, payload.get("booking_id"))
            return 0

        email_service = self._email_service_factory()
        sent = 0
        for recipient_id, subject, html in messages:
            to_email = self.profile_repository.get_email(recipient_id) if recipient_id else None
            if not to_email:
                self.logger.warning("No email on file for %s; skipping %s", recipient_id, event_type)
                continue
            email_service.send_email(to_email=to_email, subject=subject, html_content=html)
            sent += 1
        return sent

    def _render(self, event_type: str, payload: Dict[str, Any]) -> List[tuple[Optional[str], str, str]]:
        title = payload.get("service_title") or "your service"
        booking_id = payload.get("booking_id")

        if event_type == OutboxEventType.NOTIFY_BOOKING_CREATED.value:
            return [
                (
                    payload.get("seller_id"),
                    f"New booking request for {title}",
                    f"<p>You have a new booking request for <b>{title}</b> (booking {booking_id}).</p>"
                    f"<p>Open {BRAND_NAME} to accept it.</p>",
                )
            ]

        if event_type == OutboxEventType.NOTIFY_BOOKING_STATUS_CHANGED.value:
            label = _STATUS_LABELS.get(payload.get("to_status", ""), payload.get("to_status"))
            actor_id = payload.get("actor_id")
            recipient = payload.get("buyer_id") if actor_id == payload.get("seller_id") else payload.get("seller_id")
            return [
                (
                    recipient,
                    f"Your booking for {title} was {label}",
                    f"<p>Booking {booking_id} for <b>{title}</b> was {label}.</p>",
                )
            ]

        if event_type == OutboxEventType.NOTIFY_PAYMENT_RECEIVED.value:
            amount = payload.get("amount") or ""
            return [
                (
                    payload.get("buyer_id"),
                    f"Payment received for {title}",
                    f"<p>We received your payment of {amount} for <b>{title}</b>. "
                    f"Reference: {payload.get('reference')}.</p>",
                ),
                (
                    payload.get("seller_id"),
                    f"Booking {booking_id} has been paid",
                    f"<p>The buyer has paid for <b>{title}</b>. Funds are held until they confirm completion.</p>",
                ),
            ]

        self.logger.warning("No template for notification event %s", event_type)
        return []

    @staticmethod
    def _booking_payload(booking: Booking) -> Dict[str, Any]:
        service = booking.service
        return {
            "booking_id": booking.id,
            "service_id": booking.service_id,
            "service_title": service.title if service is not None else None,
            "buyer_id": booking.buyer_id,
            "seller_id": service.user_id if service is not None else None,
        }


def _decimal_str(value: Optional[Decimal]) -> Optional[str]:
    return f"{value:.2f}" if value is not None else None
