# backend/hustle/models/booking.py
"""
Booking model for the Hustle Village marketplace.

A booking is a buyer's request to receive one service from its seller. The
record carries its own lifecycle status plus the payment sub-state used by
the escrow flow (initialize -> verify -> escrow -> release/refund).

Architecture: at most one booking per (buyer, service) may be active
(pending/accepted/in_progress). The rule is enforced by a partial unique
index so two concurrent requests cannot both insert.
"""

from datetime import datetime, timezone
import logging
from typing import Any, Dict

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from hustle.core.enums import BookingStatus
from hustle.database import Base

logger = logging.getLogger(__name__)

_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in BookingStatus)
_ACTIVE_PREDICATE = "status IN ({})".format(", ".join(f"'{s.value}'" for s in BookingStatus.active()))


class Booking(Base):
    """
    Booking between a buyer and the seller who owns the referenced service.

    Scheduled date/time are optional; both null means an instant booking.
    """

    __tablename__ = "bookings"

    # Primary key
    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    # Core relationships
    buyer_id = Column(String(64), ForeignKey("profiles.id"), nullable=False, index=True)
    service_id = Column(String(64), ForeignKey("services.id"), nullable=False, index=True)

    # Scheduling (null/null = instant booking)
    scheduled_date = Column("date", Date, nullable=True)
    scheduled_time = Column("time", Time, nullable=True)
    note = Column(Text, nullable=True)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)

    # Lifecycle timestamps
    created_at = Column(DateTime(timezone=True), default=lambda: utc_now(), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by_id = Column(String(64), ForeignKey("profiles.id"), nullable=True)

    # Payment sub-state
    payment_status = Column(String(20), nullable=True, index=True)
    payment_amount = Column(Numeric(10, 2), nullable=True, comment="Set by the system from the service price")
    payment_transaction_id = Column(String(100), nullable=True, index=True, comment="Gateway reference")
    payment_captured_at = Column(DateTime(timezone=True), nullable=True)
    payment_released_at = Column(DateTime(timezone=True), nullable=True)
    payment_release_reference = Column(String(100), nullable=True)
    payment_refunded_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    buyer = relationship("Profile", foreign_keys=[buyer_id])
    service = relationship("Service")
    invoices = relationship("Invoice", back_populates="booking")

    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_bookings_status"),
        CheckConstraint("payment_amount IS NULL OR payment_amount > 0", name="ck_bookings_payment_amount_positive"),
        Index(
            "uq_bookings_active_buyer_service",
            "buyer_id",
            "service_id",
            unique=True,
            postgresql_where=text(_ACTIVE_PREDICATE),
            sqlite_where=text(_ACTIVE_PREDICATE),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: buyer={self.buyer_id}, service={self.service_id}, "
            f"status={self.status}, payment_status={self.payment_status}>"
        )

    @property
    def is_instant(self) -> bool:
        return self.scheduled_date is None and self.scheduled_time is None

    @property
    def seller_id(self) -> str | None:
        """Owner of the booked service (requires the service relationship)."""
        return self.service.user_id if self.service is not None else None

    def payment_snapshot(self) -> Dict[str, Any]:
        """Payment sub-attributes exposed to buyer and seller."""
        return {
            "booking_id": self.id,
            "payment_status": self.payment_status,
            "payment_amount": self.payment_amount,
            "payment_transaction_id": self.payment_transaction_id,
            "payment_captured_at": self.payment_captured_at,
            "payment_released_at": self.payment_released_at,
            "payment_refunded_at": self.payment_refunded_at,
        }


def utc_now() -> datetime:
    """Timezone-aware now used for lifecycle and payment stamps."""
    return datetime.now(timezone.utc)
