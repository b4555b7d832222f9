"""
Repository layer for data access.

Repositories flush but never commit; services own the transaction.

Usage:
    from hustle.repositories import RepositoryFactory

    booking_repository = RepositoryFactory.create_booking_repository(db)
    active = booking_repository.find_active_for_buyer_service(buyer_id, service_id)
"""

from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .event_outbox_repository import EventOutboxRepository
from .factory import RepositoryFactory
from .invoice_repository import InvoiceRepository, ReviewRepository
from .profile_repository import ProfileRepository, ServiceRepository

__all__ = [
    "BaseRepository",
    "BookingRepository",
    "EventOutboxRepository",
    "InvoiceRepository",
    "ProfileRepository",
    "RepositoryFactory",
    "ReviewRepository",
    "ServiceRepository",
]
