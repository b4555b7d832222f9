"""Invoice response schema."""

from datetime import datetime
from typing import Optional

from pydantic import ConfigDict

from .base import Money, StandardizedModel
from .booking import ServiceSummary


class InvoiceResponse(StandardizedModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    invoice_number: str
    booking_id: str
    buyer_id: str
    service_id: str
    amount: Money
    currency: str
    paystack_reference: str
    created_at: datetime
    service: Optional[ServiceSummary] = None
