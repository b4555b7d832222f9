# backend/hustle/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Every request gets services bound to its own session. Booking and payment
services share that session so status changes and money movement commit
together.
"""

from functools import lru_cache
import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from ...core.config import settings
from ...integrations import FakePaystackClient, PaymentGateway, PaystackClient
from ...services.booking_service import BookingService
from ...services.invoice_service import InvoiceService
from ...services.notification_service import NotificationService
from ...services.payment_service import PaymentService
from ...services.review_service import ReviewService
from .database import get_db

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_payment_gateway() -> PaymentGateway:
    """Provide the payment gateway client selected by configuration."""
    secret_key = settings.paystack_secret_key.get_secret_value()
    use_fake = bool(settings.use_fake_payment_gateway) and not settings.is_production

    logger.info(
        "Payment gateway client selection",
        extra={"environment": settings.environment, "use_fake": use_fake},
    )

    if use_fake:
        return FakePaystackClient()
    if not secret_key:
        if settings.is_production:
            raise ValueError("PAYSTACK_SECRET_KEY is required in production")
        logger.warning("PAYSTACK_SECRET_KEY not set; falling back to FakePaystackClient")
        return FakePaystackClient()
    return PaystackClient(
        secret_key=secret_key,
        base_url=settings.paystack_base_url,
        timeout=settings.paystack_timeout_seconds,
    )


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


def get_invoice_service(db: Session = Depends(get_db)) -> InvoiceService:
    return InvoiceService(db)


def get_payment_service(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notification_service: NotificationService = Depends(get_notification_service),
    invoice_service: InvoiceService = Depends(get_invoice_service),
) -> PaymentService:
    """Provide the payment service wired to the configured gateway."""
    return PaymentService(
        db,
        gateway,
        invoice_service=invoice_service,
        notification_service=notification_service,
    )


def get_booking_service(
    db: Session = Depends(get_db),
    payment_service: PaymentService = Depends(get_payment_service),
    notification_service: NotificationService = Depends(get_notification_service),
) -> BookingService:
    return BookingService(
        db,
        payment_service=payment_service,
        notification_service=notification_service,
    )


def get_review_service(db: Session = Depends(get_db)) -> ReviewService:
    return ReviewService(db)
