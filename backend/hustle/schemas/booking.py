"""Booking request/response schemas."""

from datetime import date, datetime, time
from typing import Optional

from pydantic import AliasChoices, ConfigDict, Field

from ..core.constants import MAX_BOOKING_NOTE_LENGTH
from .base import Money, StandardizedModel


class BookNowRequest(StandardizedModel):
    """
    Body of ``POST /bookings/book-now``.

    Date and time are kept as strings so the service can report the exact
    parse failure. Unknown fields (including any client-supplied ``status``)
    are ignored: new bookings always start pending.
    """

    model_config = ConfigDict(extra="ignore")

    service_id: str = Field(..., min_length=1)
    date: Optional[str] = None
    time: Optional[str] = None
    note: Optional[str] = Field(default=None, max_length=MAX_BOOKING_NOTE_LENGTH)


class BookingStatusUpdate(StandardizedModel):
    status: str = Field(..., min_length=1, description="Requested booking status")


class ServiceSummary(StandardizedModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    category: Optional[str] = None
    default_price: Optional[Money] = None


class BookingResponse(StandardizedModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    buyer_id: str
    service_id: str
    scheduled_date: Optional[date] = Field(
        default=None,
        validation_alias=AliasChoices("scheduled_date", "date"),
        serialization_alias="date",
    )
    scheduled_time: Optional[time] = Field(
        default=None,
        validation_alias=AliasChoices("scheduled_time", "time"),
        serialization_alias="time",
    )
    note: Optional[str] = None
    status: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by_id: Optional[str] = None
    payment_status: Optional[str] = None
    payment_amount: Optional[Money] = None
    payment_transaction_id: Optional[str] = None
    payment_captured_at: Optional[datetime] = None
    payment_released_at: Optional[datetime] = None
    payment_refunded_at: Optional[datetime] = None
    service: Optional[ServiceSummary] = None


class PaymentStatusResponse(StandardizedModel):
    booking_id: str
    payment_status: Optional[str] = None
    payment_amount: Optional[Money] = None
    payment_transaction_id: Optional[str] = None
    payment_captured_at: Optional[datetime] = None
    payment_released_at: Optional[datetime] = None
    payment_refunded_at: Optional[datetime] = None
