"""Payment request/response schemas."""

from typing import Optional

from pydantic import Field

from .base import StandardizedModel


class InitiatePaymentRequest(StandardizedModel):
    booking_id: str = Field(..., min_length=1)


class InitiatePaymentResponse(StandardizedModel):
    authorization_url: str
    reference: str
    access_code: Optional[str] = None


class VerifyPaymentResponse(StandardizedModel):
    booking_id: Optional[str] = None
    invoice_id: Optional[str] = None


class VerifyFailureResponse(StandardizedModel):
    status: str
