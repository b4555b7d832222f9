# backend/hustle/api/dependencies/__init__.py
"""
Central export point for all dependencies.
"""

from .auth import CurrentUser, get_current_user
from .database import get_db
from .services import (
    get_booking_service,
    get_invoice_service,
    get_notification_service,
    get_payment_gateway,
    get_payment_service,
    get_review_service,
)

__all__ = [
    # Auth
    "CurrentUser",
    "get_current_user",
    # Database
    "get_db",
    # Services
    "get_booking_service",
    "get_invoice_service",
    "get_notification_service",
    "get_payment_gateway",
    "get_payment_service",
    "get_review_service",
]
