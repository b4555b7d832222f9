# backend/hustle/repositories/factory.py
"""
Repository Factory for the Hustle Village backend.

Centralizes repository creation so services can receive either the real
repositories or test doubles through their constructors.
"""

from sqlalchemy.orm import Session

from .booking_repository import BookingRepository
from .event_outbox_repository import EventOutboxRepository
from .invoice_repository import InvoiceRepository, ReviewRepository
from .profile_repository import ProfileRepository, ServiceRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_booking_repository(db: Session) -> BookingRepository:
        return BookingRepository(db)

    @staticmethod
    def create_profile_repository(db: Session) -> ProfileRepository:
        return ProfileRepository(db)

    @staticmethod
    def create_service_repository(db: Session) -> ServiceRepository:
        return ServiceRepository(db)

    @staticmethod
    def create_invoice_repository(db: Session) -> InvoiceRepository:
        return InvoiceRepository(db)

    @staticmethod
    def create_review_repository(db: Session) -> ReviewRepository:
        return ReviewRepository(db)

    @staticmethod
    def create_event_outbox_repository(db: Session) -> EventOutboxRepository:
        return EventOutboxRepository(db)
