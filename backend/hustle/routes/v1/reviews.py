# backend/hustle/routes/v1/reviews.py
"""
Review routes - API v1

Endpoints:
    POST /booking/{booking_id} - Buyer reviews a completed booking
    GET /seller/{seller_id} - Public list of a seller's reviews
    GET /booking/{booking_id}/check - Whether the booking has been reviewed
"""

import asyncio
from typing import List

from fastapi import APIRouter, Depends, status

from ...api.dependencies import CurrentUser, get_current_user, get_review_service
from ...core.exceptions import DomainException
from ...schemas.base import ApiResponse, envelope
from ...schemas.review import ReviewCheckResponse, ReviewCreate, ReviewResponse
from ...services.review_service import ReviewService
from .bookings import handle_domain_exception

router = APIRouter(tags=["reviews-v1"])


@router.post(
    "/booking/{booking_id}",
    response_model=ApiResponse[ReviewResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_review(
    booking_id: str,
    payload: ReviewCreate,
    current_user: CurrentUser = Depends(get_current_user),
    review_service: ReviewService = Depends(get_review_service),
) -> dict:
    try:
        review = await asyncio.to_thread(
            review_service.create_review,
            current_user.id,
            booking_id,
            payload.rating,
            payload.review_text,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return envelope(
        ReviewResponse.model_validate(review),
        message="Review submitted successfully",
        status_code=status.HTTP_201_CREATED,
    )


@router.get("/seller/{seller_id}", response_model=ApiResponse[List[ReviewResponse]])
async def get_seller_reviews(
    seller_id: str,
    review_service: ReviewService = Depends(get_review_service),
) -> dict:
    try:
        reviews = await asyncio.to_thread(review_service.get_seller_reviews, seller_id)
    except DomainException as e:
        handle_domain_exception(e)
    return envelope(
        [ReviewResponse.model_validate(r) for r in reviews],
        message="Reviews retrieved successfully",
    )


@router.get("/booking/{booking_id}/check", response_model=ApiResponse[ReviewCheckResponse])
async def check_existing_review(
    booking_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    review_service: ReviewService = Depends(get_review_service),
) -> dict:
    try:
        result = await asyncio.to_thread(review_service.check_existing_review, current_user.id, booking_id)
    except DomainException as e:
        handle_domain_exception(e)
    review = result["review"]
    return envelope(
        ReviewCheckResponse(
            has_review=result["has_review"],
            review=ReviewResponse.model_validate(review) if review is not None else None,
        ),
        message="Review check completed",
    )
