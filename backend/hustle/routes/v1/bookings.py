# backend/hustle/routes/v1/bookings.py
"""
Booking routes - API v1

Versioned booking endpoints under /api/v1/bookings.
All business logic delegated to BookingService and PaymentService.

Endpoints:
    POST /book-now - Create a booking (instant or scheduled)
    GET / - List the caller's bookings as buyer or seller
    GET /{booking_id} - Booking details (buyer or seller)
    PATCH /{booking_id}/accept - Seller accepts a pending booking
    PATCH /{booking_id}/status - Generic status change
    PATCH /{booking_id}/confirm - Buyer confirms delivery (releases payment)
    PATCH /{booking_id}/cancel - Cancel (refunds held payment)
    GET /{booking_id}/payment-status - Payment sub-state
"""

import asyncio
import logging
from typing import List, NoReturn

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...api.dependencies import CurrentUser, get_booking_service, get_current_user, get_payment_service
from ...core.exceptions import DomainException
from ...schemas.base import ApiResponse, envelope
from ...schemas.booking import (
    BookingResponse,
    BookingStatusUpdate,
    BookNowRequest,
    PaymentStatusResponse,
)
from ...services.booking_service import BookingService
from ...services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bookings-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post(
    "/book-now",
    response_model=ApiResponse[BookingResponse],
    status_code=status.HTTP_201_CREATED,
    responses={
        403: {"description": "Service not bookable or owned by the caller"},
        404: {"description": "Profile or service not found"},
        409: {"description": "Active booking already exists for this service"},
    },
)
async def book_now(
    payload: BookNowRequest,
    current_user: CurrentUser = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> dict:
    """Create a booking; instant when date and time are omitted."""
    try:
        booking = await asyncio.to_thread(
            booking_service.book_now,
            current_user.id,
            payload.service_id,
            date=payload.date,
            time=payload.time,
            note=payload.note,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return envelope(
        BookingResponse.model_validate(booking),
        message="Booking created successfully",
        status_code=status.HTTP_201_CREATED,
    )


@router.get("", response_model=ApiResponse[List[BookingResponse]])
async def get_user_bookings(
    role: str = Query("buyer", description="buyer or seller"),
    current_user: CurrentUser = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> dict:
    try:
        bookings = await asyncio.to_thread(booking_service.get_user_bookings, current_user.id, role)
    except DomainException as e:
        handle_domain_exception(e)
    return envelope(
        [BookingResponse.model_validate(b) for b in bookings],
        message="Bookings retrieved successfully",
    )


@router.get("/{booking_id}", response_model=ApiResponse[BookingResponse])
async def get_booking(
    booking_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> dict:
    try:
        booking = await asyncio.to_thread(booking_service.get_booking_by_id, current_user.id, booking_id)
    except DomainException as e:
        handle_domain_exception(e)
    return envelope(BookingResponse.model_validate(booking), message="Booking retrieved successfully")


@router.patch("/{booking_id}/accept", response_model=ApiResponse[BookingResponse])
async def accept_booking(
    booking_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> dict:
    try:
        booking = await asyncio.to_thread(booking_service.accept_booking, current_user.id, booking_id)
    except DomainException as e:
        handle_domain_exception(e)
    return envelope(BookingResponse.model_validate(booking), message="Booking accepted successfully")


@router.patch("/{booking_id}/status", response_model=ApiResponse[BookingResponse])
async def update_booking_status(
    booking_id: str,
    payload: BookingStatusUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> dict:
    try:
        booking = await asyncio.to_thread(
            booking_service.update_booking_status,
            current_user.id,
            booking_id,
            payload.status,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return envelope(BookingResponse.model_validate(booking), message="Booking status updated successfully")


@router.patch("/{booking_id}/confirm", response_model=ApiResponse[BookingResponse])
async def confirm_booking_completion(
    booking_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> dict:
    """Buyer confirms delivery; held funds are released to the seller."""
    try:
        booking = await asyncio.to_thread(
            booking_service.confirm_booking_completion, current_user.id, booking_id
        )
    except DomainException as e:
        handle_domain_exception(e)
    return envelope(
        BookingResponse.model_validate(booking),
        message="Booking completed successfully. Payment has been released to the seller.",
    )


@router.patch("/{booking_id}/cancel", response_model=ApiResponse[BookingResponse])
async def cancel_booking(
    booking_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> dict:
    try:
        booking = await asyncio.to_thread(booking_service.cancel_booking, current_user.id, booking_id)
    except DomainException as e:
        handle_domain_exception(e)
    return envelope(BookingResponse.model_validate(booking), message="Booking cancelled successfully")


@router.get("/{booking_id}/payment-status", response_model=ApiResponse[PaymentStatusResponse])
async def get_payment_status(
    booking_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
) -> dict:
    try:
        snapshot = await asyncio.to_thread(payment_service.get_payment_status, current_user.id, booking_id)
    except DomainException as e:
        handle_domain_exception(e)
    return envelope(PaymentStatusResponse(**snapshot), message="Payment status retrieved successfully")
