# backend/hustle/services/payment_service.py
"""
Payment reconciliation for bookings.

Flows:
- initiate: buyer starts a hosted checkout for a booking
- verify: gateway callback/polling marks the booking paid and issues the invoice
- capture: a paid booking moves into escrow when the seller accepts it
- release: escrowed funds are transferred to the seller on buyer confirmation
- refund: held funds are returned when a booking is cancelled

Capture, release and refund run inside the caller's transaction (they flush,
never commit) so the booking service can make status changes atomic with
money movement.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import MINOR_UNITS_PER_MAJOR
from ..core.enums import BookingStatus, OutboxEventType, PaymentStatus
from ..core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    RepositoryException,
    ServiceException,
    UpstreamServiceException,
    ValidationException,
)
from ..integrations.paystack_client import PaymentGateway, PaystackError
from ..models.booking import Booking, utc_now
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.booking_repository import BookingRepository
from ..repositories.event_outbox_repository import EventOutboxRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.profile_repository import ProfileRepository
from .base import BaseService
from .identity import IdentityProvider
from .invoice_service import InvoiceService
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

ALREADY_PAID_STATUSES = (
    PaymentStatus.PAID.value,
    PaymentStatus.CAPTURED.value,
    PaymentStatus.IN_ESCROW.value,
    PaymentStatus.RELEASED.value,
)
_FUNDS_HELD = tuple(s.value for s in PaymentStatus.funds_held())
_CENT = Decimal("0.01")


@dataclass
class PaymentVerification:
    """Outcome of verifying a gateway reference."""

    success: bool
    gateway_status: str
    booking_id: Optional[str] = None
    invoice_id: Optional[str] = None


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount (e.g. 120.00 GHS) to the gateway's integer minor units."""
    return int((amount * MINOR_UNITS_PER_MAJOR).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _released_without_transfer(booking: Booking) -> bool:
    """A completed booking stamped released while no funds were held yet."""
    return (
        booking.status == BookingStatus.COMPLETED.value
        and booking.payment_status == PaymentStatus.RELEASED.value
        and booking.payment_release_reference is None
    )


def normalize_amount(raw: Any, minimum: Decimal) -> Decimal:
    """
    Validate a payment amount and enforce the minimum charge.

    Non-numeric, non-finite, zero and negative amounts are rejected; positive
    amounts below the minimum are raised to it.
    """
    try:
        amount = Decimal(str(raw))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationException("Invalid payment amount", details={"amount": str(raw)})
    if not amount.is_finite() or amount <= 0:
        raise ValidationException("Invalid payment amount", details={"amount": str(raw)})
    return max(amount, minimum).quantize(_CENT, rounding=ROUND_HALF_UP)


class PaymentService(BaseService):
    """Orchestrates gateway calls and the payment sub-state of bookings."""

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        identity: Optional[IdentityProvider] = None,
        invoice_service: Optional[InvoiceService] = None,
        notification_service: Optional[NotificationService] = None,
        booking_repository: Optional[BookingRepository] = None,
        profile_repository: Optional[ProfileRepository] = None,
        outbox_repository: Optional[EventOutboxRepository] = None,
        currency: Optional[str] = None,
        callback_url: Optional[str] = None,
    ):
        super().__init__(db)
        self.gateway = gateway
        self.identity = identity or IdentityProvider(db)
        self.invoice_service = invoice_service or InvoiceService(db)
        self.notification_service = notification_service or NotificationService(db)
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.profile_repository = profile_repository or RepositoryFactory.create_profile_repository(db)
        self.outbox_repository = outbox_repository or RepositoryFactory.create_event_outbox_repository(db)
        self.currency = currency or settings.payment_currency
        self.callback_url = callback_url or settings.payment_callback_url
        self.minimum_amount = Decimal(settings.minimum_payment_amount)

    # ------------------------------------------------------------------ initiate
    @BaseService.measure_operation("initiate_payment")
    def initiate_payment_for_booking(
        self,
        user_id: str,
        booking_id: str,
        token_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Start a hosted checkout for the buyer's booking.

        Returns ``authorization_url`` and ``reference``. The amount always comes
        from the booking (or the service's default price on first payment).
        """
        booking = self.booking_repository.get_with_service(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        if booking.buyer_id != user_id:
            raise ForbiddenException("You can only pay for your own bookings")
        if booking.payment_status in ALREADY_PAID_STATUSES:
            raise ConflictException("This booking has already been paid", code="PAYMENT_ALREADY_COMPLETED")
        if booking.status == BookingStatus.CANCELLED.value:
            raise ValidationException("Cannot pay for a cancelled booking")

        with self.transaction():
            amount = self._resolve_amount(booking)
            email = self.identity.get_user_email(user_id, token_email)
            if not email:
                raise ValidationException("An email address is required to start payment")

            result = self._call_gateway(
                "initialize",
                self.gateway.initialize_transaction,
                email=email,
                amount_minor=to_minor_units(amount),
                currency=self.currency,
                callback_url=self.callback_url,
                metadata={
                    "booking_id": booking.id,
                    "buyer_id": booking.buyer_id,
                    "service_id": booking.service_id,
                },
            )

        reference = str(result["reference"])
        self._persist_reference(booking.id, reference)
        self.log_operation("payment_initiated", booking_id=booking.id, reference=reference)
        return {
            "authorization_url": result["authorization_url"],
            "reference": reference,
            "access_code": result.get("access_code"),
        }

    def _resolve_amount(self, booking: Booking) -> Decimal:
        """Stored amount, or the service's default price persisted on first use."""
        if booking.payment_amount is not None:
            return normalize_amount(booking.payment_amount, self.minimum_amount)

        price = booking.service.default_price if booking.service is not None else None
        if price is None:
            raise ValidationException("This service does not have a price set")
        amount = normalize_amount(price, self.minimum_amount)

        if not self.booking_repository.set_payment_amount_if_unset(booking.id, amount):
            # Another request stored it first; its value wins
            self.db.refresh(booking)
            return normalize_amount(booking.payment_amount, self.minimum_amount)
        return amount

    def _persist_reference(self, booking_id: str, reference: str) -> None:
        """Best-effort: the authorization URL stays usable even if this write fails."""
        try:
            with self.transaction():
                self.booking_repository.update_payment_fields(
                    booking_id,
                    payment_transaction_id=reference,
                    payment_status=PaymentStatus.PENDING.value,
                )
        except (ServiceException, RepositoryException) as exc:
            self.logger.error(f"Failed to persist payment reference {reference} for booking {booking_id}: {exc}")
            self._enqueue_secondary_write(
                OutboxEventType.PAYMENT_REFERENCE_PERSIST,
                booking_id,
                {"booking_id": booking_id, "reference": reference},
                idempotency_key=f"reference_persist:{reference}",
            )

    # -------------------------------------------------------------------- verify
    @BaseService.measure_operation("verify_payment")
    def verify_payment_reference(self, reference: str) -> PaymentVerification:
        """
        Confirm a gateway transaction and record it against its booking.

        A non-success gateway status leaves everything untouched. A failed
        invoice write still reports the payment as successful with
        ``invoice_id=None`` and is retried through the outbox.
        """
        reference = (reference or "").strip()
        if not reference:
            raise ValidationException("Payment reference is required")

        transaction = self._call_gateway("verify", self.gateway.verify_transaction, reference)
        gateway_status = str(transaction.get("status") or "unknown").lower()
        if gateway_status != "success":
            self.logger.info(f"Payment {reference} not successful (gateway status: {gateway_status})")
            return PaymentVerification(success=False, gateway_status=gateway_status)

        booking = self._resolve_booking(reference, transaction.get("metadata") or {})
        if booking is None:
            raise NotFoundException("Related booking not found", details={"reference": reference})

        with self.transaction():
            self._record_payment(booking, reference, transaction)

        invoice_id = self._issue_invoice(booking, reference, transaction)
        self.log_operation("payment_verified", booking_id=booking.id, reference=reference, invoice_id=invoice_id)
        return PaymentVerification(
            success=True,
            gateway_status=gateway_status,
            booking_id=booking.id,
            invoice_id=invoice_id,
        )

    def _resolve_booking(self, reference: str, metadata: Dict[str, Any]) -> Optional[Booking]:
        booking_id = metadata.get("booking_id")
        if booking_id:
            booking = self.booking_repository.get_with_service(str(booking_id))
            if booking is not None:
                return booking
        return self.booking_repository.find_by_payment_reference(reference)

    def _record_payment(self, booking: Booking, reference: str, transaction: Dict[str, Any]) -> None:
        fields: Dict[str, Any] = {"payment_transaction_id": reference}
        payout_missed = _released_without_transfer(booking)
        # Never move a payment backwards (escrowed/released/refunded stay put)
        if booking.payment_status in (None, PaymentStatus.PENDING.value):
            fields["payment_status"] = PaymentStatus.PAID.value
        elif payout_missed:
            # Completed before the charge landed, so the release moved no money
            fields["payment_status"] = PaymentStatus.PAID.value
            fields["payment_released_at"] = None
        if booking.payment_captured_at is None:
            fields["payment_captured_at"] = utc_now()
        if booking.payment_amount is None and transaction.get("amount") is not None:
            fields["payment_amount"] = self._from_minor_units(transaction["amount"])
        self.booking_repository.update_payment_fields(booking.id, **fields)

        if booking.status == BookingStatus.CANCELLED.value and booking.payment_status != PaymentStatus.REFUNDED.value:
            event = self.outbox_repository.enqueue(
                event_type=OutboxEventType.PAYMENT_REFUND_REQUIRED.value,
                aggregate_id=booking.id,
                payload={"booking_id": booking.id, "reference": reference},
                idempotency_key=f"refund_required:{reference}",
            )
            self.logger.warning(
                f"Payment {reference} received for cancelled booking {booking.id}; refund queued as event {event.id}"
            )
        elif payout_missed:
            event = self.outbox_repository.enqueue(
                event_type=OutboxEventType.PAYMENT_RELEASE_REQUIRED.value,
                aggregate_id=booking.id,
                payload={"booking_id": booking.id, "reference": reference},
                idempotency_key=f"release_required:{reference}",
            )
            self.logger.warning(
                f"Payment {reference} received for completed booking {booking.id}; payout queued as event {event.id}"
            )

        self.notification_service.notify_payment_received(booking, reference)

    def _issue_invoice(self, booking: Booking, reference: str, transaction: Dict[str, Any]) -> Optional[str]:
        currency = str(transaction.get("currency") or self.currency).upper()
        amount = booking.payment_amount
        if amount is None and transaction.get("amount") is not None:
            amount = self._from_minor_units(transaction["amount"])
        try:
            if amount is None:
                raise ServiceException("Invoice amount is unknown")
            invoice = self.invoice_service.create_for_booking(booking, reference, amount, currency)
            return invoice.id
        except (ServiceException, RepositoryException) as exc:
            self.logger.error(f"Invoice creation failed for booking {booking.id}, reference {reference}: {exc}")
            self._enqueue_secondary_write(
                OutboxEventType.INVOICE_CREATE,
                booking.id,
                {
                    "booking_id": booking.id,
                    "reference": reference,
                    "amount": str(amount) if amount is not None else None,
                    "currency": currency,
                },
                idempotency_key=f"invoice_create:{reference}",
            )
            return None

    # ------------------------------------------------------- capture/release/refund
    def capture_payment(self, booking: Booking) -> bool:
        """
        Move a paid booking into escrow after re-verifying the charge.

        Returns False when there is nothing to capture. Raises
        UpstreamServiceException when the gateway cannot be reached.
        """
        if booking.payment_status != PaymentStatus.PAID.value or not booking.payment_transaction_id:
            return False

        transaction = self._call_gateway("verify", self.gateway.verify_transaction, booking.payment_transaction_id)
        if str(transaction.get("status") or "").lower() != "success":
            self.logger.warning(
                f"Capture skipped for booking {booking.id}: gateway status {transaction.get('status')}"
            )
            return False

        self.booking_repository.update_payment_fields(booking.id, payment_status=PaymentStatus.IN_ESCROW.value)
        self.log_operation("payment_captured", booking_id=booking.id)
        return True

    def release_payment(self, booking: Booking) -> Dict[str, Any]:
        """
        Pay the seller and stamp the booking as released.

        With no funds held nothing is transferred. The transfer reference is
        deterministic per booking so a retried release is idempotent at the
        gateway.
        """
        released_at = utc_now()
        transfer_reference: Optional[str] = None

        if booking.payment_status in _FUNDS_HELD:
            seller = self.profile_repository.get_by_id(booking.seller_id, load_relationships=False)
            recipient_code = seller.paystack_recipient_code if seller is not None else None
            if not recipient_code:
                raise ConflictException(
                    "The seller has no payout account configured, so payment cannot be released yet",
                    code="PAYOUT_ACCOUNT_MISSING",
                    details={"booking_id": booking.id},
                )
            if booking.payment_amount is None:
                raise ServiceException("Booking holds funds but has no payment amount", details={"booking_id": booking.id})

            result = self._call_gateway(
                "transfer",
                self.gateway.create_transfer,
                amount_minor=to_minor_units(booking.payment_amount),
                recipient_code=recipient_code,
                reference=f"release-{booking.id}",
                reason=f"Payout for booking {booking.id}",
            )
            transfer_reference = str(result.get("reference") or f"release-{booking.id}")

        self.booking_repository.update_payment_fields(
            booking.id,
            payment_status=PaymentStatus.RELEASED.value,
            payment_released_at=released_at,
            payment_release_reference=transfer_reference,
        )
        self.log_operation("payment_released", booking_id=booking.id, transfer_reference=transfer_reference)
        return {"transaction_id": transfer_reference, "released_at": released_at}

    def refund_payment(self, booking: Booking) -> Dict[str, Any]:
        """Return held funds to the buyer; a no-op when nothing is held."""
        if booking.payment_status not in _FUNDS_HELD:
            return {"refunded": False, "refunded_at": None}
        if not booking.payment_transaction_id:
            raise ServiceException("Booking holds funds but has no gateway reference", details={"booking_id": booking.id})

        amount_minor = to_minor_units(booking.payment_amount) if booking.payment_amount is not None else None
        self._call_gateway(
            "refund",
            self.gateway.refund_transaction,
            reference=booking.payment_transaction_id,
            amount_minor=amount_minor,
        )
        refunded_at = utc_now()
        self.booking_repository.update_payment_fields(
            booking.id,
            payment_status=PaymentStatus.REFUNDED.value,
            payment_refunded_at=refunded_at,
        )
        self.log_operation("payment_refunded", booking_id=booking.id)
        return {"refunded": True, "refunded_at": refunded_at}

    # -------------------------------------------------------------------- status
    @BaseService.measure_operation("get_payment_status")
    def get_payment_status(self, user_id: str, booking_id: str) -> Dict[str, Any]:
        """Payment sub-attributes of a booking, visible to its buyer and seller."""
        booking = self.booking_repository.get_with_service(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        if user_id not in (booking.buyer_id, booking.seller_id):
            raise ForbiddenException("You do not have permission to view this booking")
        return booking.payment_snapshot()

    # ------------------------------------------------------------------- helpers
    def _call_gateway(self, operation: str, func: Callable[..., Dict[str, Any]], *args: Any, **kwargs: Any) -> Dict[str, Any]:
        try:
            result = func(*args, **kwargs)
        except PaystackError as exc:
            prometheus_metrics.record_gateway_call(operation, "error")
            self.logger.error(f"Payment gateway {operation} failed: {exc}")
            raise UpstreamServiceException(
                "Payment gateway request failed. Please try again.",
                code="PAYMENT_GATEWAY_ERROR",
                details={"operation": operation, "gateway_status_code": exc.status_code},
            ) from exc
        prometheus_metrics.record_gateway_call(operation, "success")
        return result

    @staticmethod
    def _from_minor_units(value: Any) -> Decimal:
        return (Decimal(str(value)) / MINOR_UNITS_PER_MAJOR).quantize(_CENT)

    def _enqueue_secondary_write(
        self,
        event_type: OutboxEventType,
        aggregate_id: str,
        payload: Dict[str, Any],
        idempotency_key: str,
    ) -> None:
        try:
            with self.transaction():
                event = self.outbox_repository.enqueue(
                    event_type=event_type.value,
                    aggregate_id=aggregate_id,
                    payload=payload,
                    idempotency_key=idempotency_key,
                )
        except (ServiceException, RepositoryException) as exc:
            self.logger.error(
                f"Could not queue {event_type.value} for {aggregate_id}; manual reconciliation required: {exc}"
            )
            return
        self.logger.warning(f"Queued {event_type.value} for {aggregate_id} as outbox event {event.id}")
