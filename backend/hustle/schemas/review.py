"""Review request/response schemas."""

from datetime import datetime
from typing import Optional

from pydantic import ConfigDict, Field

from ..core.constants import MAX_REVIEW_TEXT_LENGTH
from .base import StandardizedModel


class ReviewCreate(StandardizedModel):
    # Range is enforced by the service so the error uses the domain message
    rating: int
    review_text: Optional[str] = Field(default=None, max_length=MAX_REVIEW_TEXT_LENGTH)


class ReviewerSummary(StandardizedModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    display_name: str


class ReviewResponse(StandardizedModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    booking_id: str
    reviewer_id: str
    seller_id: str
    service_id: str
    rating: int
    review_text: Optional[str] = None
    created_at: datetime
    reviewer: Optional[ReviewerSummary] = None


class ReviewCheckResponse(StandardizedModel):
    has_review: bool
    review: Optional[ReviewResponse] = None
