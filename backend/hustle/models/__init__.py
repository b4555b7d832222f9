"""
Database models for the Hustle Village booking engine.

Profiles and services are owned by the wider marketplace and read here;
bookings, invoices, reviews and the event outbox belong to this backend.
"""

from .booking import Booking
from .event_outbox import EventOutbox, EventOutboxStatus
from .invoice import Invoice, Review
from .profile import Profile, Service

__all__ = [
    "Booking",
    "EventOutbox",
    "EventOutboxStatus",
    "Invoice",
    "Profile",
    "Review",
    "Service",
]
