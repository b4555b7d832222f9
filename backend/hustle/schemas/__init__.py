# backend/hustle/schemas/__init__.py
"""Pydantic schemas for the Hustle Village API."""

from .base import ApiResponse, Money, StandardizedModel, envelope
from .booking import (
    BookingResponse,
    BookingStatusUpdate,
    BookNowRequest,
    PaymentStatusResponse,
    ServiceSummary,
)
from .invoice import InvoiceResponse
from .payment import (
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    VerifyFailureResponse,
    VerifyPaymentResponse,
)
from .review import ReviewCheckResponse, ReviewCreate, ReviewerSummary, ReviewResponse

__all__ = [
    "ApiResponse",
    "BookNowRequest",
    "BookingResponse",
    "BookingStatusUpdate",
    "InitiatePaymentRequest",
    "InitiatePaymentResponse",
    "InvoiceResponse",
    "Money",
    "PaymentStatusResponse",
    "ReviewCheckResponse",
    "ReviewCreate",
    "ReviewResponse",
    "ReviewerSummary",
    "ServiceSummary",
    "StandardizedModel",
    "VerifyFailureResponse",
    "VerifyPaymentResponse",
    "envelope",
]
