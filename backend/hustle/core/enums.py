# backend/hustle/core/enums.py
"""
Core enums for the Hustle Village platform.

Booking and payment statuses are stored as their lowercase string values.
"""

from enum import Enum


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def active(cls) -> tuple["BookingStatus", ...]:
        """Statuses that block a second booking for the same buyer and service."""
        return (cls.PENDING, cls.ACCEPTED, cls.IN_PROGRESS)

    @classmethod
    def terminal(cls) -> tuple["BookingStatus", ...]:
        return (cls.COMPLETED, cls.CANCELLED)

    @property
    def is_terminal(self) -> bool:
        return self in BookingStatus.terminal()


class PaymentStatus(str, Enum):
    """Payment sub-state tracked on a booking (null until payment starts)."""

    PENDING = "pending"
    PAID = "paid"
    CAPTURED = "captured"
    IN_ESCROW = "in_escrow"
    RELEASED = "released"
    REFUNDED = "refunded"

    @classmethod
    def funds_held(cls) -> tuple["PaymentStatus", ...]:
        """Statuses where the platform is holding the buyer's money."""
        return (cls.PAID, cls.CAPTURED, cls.IN_ESCROW)


class BookingRole(str, Enum):
    """Relationship of a user to a booking."""

    BUYER = "buyer"
    SELLER = "seller"


class OutboxEventType(str, Enum):
    """Secondary writes and notifications delivered through the outbox."""

    PAYMENT_REFERENCE_PERSIST = "payment.reference_persist"
    INVOICE_CREATE = "invoice.create"
    PAYMENT_REFUND_REQUIRED = "payment.refund_required"
    PAYMENT_RELEASE_REQUIRED = "payment.release_required"
    NOTIFY_BOOKING_CREATED = "notification.booking_created"
    NOTIFY_BOOKING_STATUS_CHANGED = "notification.booking_status_changed"
    NOTIFY_PAYMENT_RECEIVED = "notification.payment_received"
