# backend/hustle/services/review_service.py
"""Post-completion reviews: one per booking, written by its buyer."""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.constants import MAX_RATING, MAX_REVIEW_TEXT_LENGTH, MIN_RATING
from ..core.enums import BookingStatus
from ..core.exceptions import (
    ConflictException,
    DuplicateRecordException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from ..models.invoice import Review
from ..repositories.booking_repository import BookingRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.invoice_repository import ReviewRepository
from .base import BaseService

logger = logging.getLogger(__name__)

_DUPLICATE_MESSAGE = "You have already left a review for this booking"


class ReviewService(BaseService):
    def __init__(
        self,
        db: Session,
        review_repository: Optional[ReviewRepository] = None,
        booking_repository: Optional[BookingRepository] = None,
    ):
        super().__init__(db)
        self.review_repository = review_repository or RepositoryFactory.create_review_repository(db)
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(db)

    @BaseService.measure_operation("create_review")
    def create_review(
        self,
        user_id: str,
        booking_id: str,
        rating: Any,
        review_text: Optional[str] = None,
    ) -> Review:
        """
        Leave a review for a completed booking.

        Raises:
            ValidationException: Rating outside 1..5, text too long, booking not completed
            NotFoundException: Booking missing
            ForbiddenException: Caller is not the buyer
            ConflictException: Booking already reviewed
        """
        if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
            raise ValidationException(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
        review_text = (review_text or "").strip() or None
        if review_text and len(review_text) > MAX_REVIEW_TEXT_LENGTH:
            raise ValidationException(f"Review must be at most {MAX_REVIEW_TEXT_LENGTH} characters")

        booking = self.booking_repository.get_with_service(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        if booking.buyer_id != user_id:
            raise ForbiddenException("Only the buyer can leave a review for this booking")
        if booking.status != BookingStatus.COMPLETED.value:
            raise ValidationException("You can only leave a review for completed bookings")

        with self.transaction():
            if self.review_repository.get_for_booking(booking_id) is not None:
                raise ConflictException(_DUPLICATE_MESSAGE, code="REVIEW_EXISTS")
            try:
                review = self.review_repository.create(
                    booking_id=booking.id,
                    reviewer_id=user_id,
                    seller_id=booking.seller_id,
                    service_id=booking.service_id,
                    rating=rating,
                    review_text=review_text,
                )
            except DuplicateRecordException as exc:
                raise ConflictException(_DUPLICATE_MESSAGE, code="REVIEW_EXISTS") from exc

        self.log_operation("review_created", review_id=review.id, booking_id=booking_id, rating=rating)
        return review

    @BaseService.measure_operation("get_seller_reviews")
    def get_seller_reviews(self, seller_id: str) -> List[Review]:
        return self.review_repository.list_for_seller(seller_id)

    @BaseService.measure_operation("check_existing_review")
    def check_existing_review(self, user_id: str, booking_id: str) -> Dict[str, Any]:
        """``{"has_review": bool, "review": Review | None}`` for the caller's booking."""
        booking = self.booking_repository.get_with_service(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        if user_id not in (booking.buyer_id, booking.seller_id):
            raise ForbiddenException("You do not have permission to view this booking")

        review = self.review_repository.get_for_booking(booking_id)
        return {"has_review": review is not None, "review": review}
