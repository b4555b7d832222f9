# backend/hustle/models/profile.py
"""
Profile and Service models.

Both are owned by the wider marketplace (profile pages, listing CRUD); the
booking engine only reads them. A profile's primary key is the identity
provider's user id, so ``bookings.buyer_id`` and ``services.user_id`` always
hold that same identifier.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hustle.database import Base


class Profile(Base):
    """Marketplace user profile keyed by the identity provider's user id."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    paystack_recipient_code: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, comment="Paystack transfer recipient used for seller payouts"
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    services: Mapped[list["Service"]] = relationship("Service", back_populates="owner")

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) if parts else "there"

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, email={self.email})>"


class Service(Base):
    """A student seller's bookable offering."""

    __tablename__ = "services"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    default_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    express_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    owner: Mapped["Profile"] = relationship("Profile", back_populates="services")

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, owner={self.user_id}, verified={self.is_verified})>"
