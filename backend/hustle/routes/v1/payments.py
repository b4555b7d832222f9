# backend/hustle/routes/v1/payments.py
"""
Payment routes - API v1

Endpoints:
    POST /initiate - Start a hosted checkout for the caller's booking
    GET /verify - Confirm a gateway reference (callback target, no auth)
    POST /webhook - Paystack webhook, authenticated by HMAC signature
"""

import asyncio
import hashlib
import hmac
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from ...api.dependencies import CurrentUser, get_current_user, get_payment_service
from ...core.config import settings
from ...core.exceptions import DomainException, NotFoundException, ValidationException
from ...schemas.base import ApiResponse, envelope
from ...schemas.payment import InitiatePaymentRequest, InitiatePaymentResponse, VerifyPaymentResponse
from ...services.payment_service import PaymentService
from .bookings import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments-v1"])

PAYSTACK_SIGNATURE_HEADER = "x-paystack-signature"
HANDLED_WEBHOOK_EVENTS = frozenset({"charge.success"})


def verify_paystack_signature(raw_body: bytes, signature: Optional[str], secret_key: str) -> bool:
    """True when ``signature`` is the HMAC-SHA512 of the raw body under the secret key."""
    if not signature or not secret_key:
        return False
    expected = hmac.new(secret_key.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())


@router.post("/initiate", response_model=ApiResponse[InitiatePaymentResponse])
async def initiate_payment(
    payload: InitiatePaymentRequest,
    current_user: CurrentUser = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
) -> dict:
    try:
        result = await asyncio.to_thread(
            payment_service.initiate_payment_for_booking,
            current_user.id,
            payload.booking_id,
            current_user.email,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return envelope(InitiatePaymentResponse(**result), message="Payment initialized successfully")


@router.get(
    "/verify",
    response_model=ApiResponse[VerifyPaymentResponse],
    responses={400: {"description": "Gateway reports the payment as not successful"}},
)
async def verify_payment(
    reference: str = Query("", description="Gateway transaction reference"),
    payment_service: PaymentService = Depends(get_payment_service),
) -> dict:
    try:
        result = await asyncio.to_thread(payment_service.verify_payment_reference, reference)
    except DomainException as e:
        handle_domain_exception(e)

    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": "Payment was not successful",
                "code": "PAYMENT_NOT_SUCCESSFUL",
                "data": {"status": result.gateway_status},
            },
        )
    return envelope(
        VerifyPaymentResponse(booking_id=result.booking_id, invoice_id=result.invoice_id),
        message="Payment verified successfully",
    )


@router.post("/webhook", response_model=ApiResponse[Dict[str, Any]])
async def paystack_webhook(
    request: Request,
    signature: Optional[str] = Header(default=None, alias=PAYSTACK_SIGNATURE_HEADER),
    payment_service: PaymentService = Depends(get_payment_service),
) -> dict:
    """
    Handle Paystack webhook deliveries.

    Only ``charge.success`` is acted on; the reference is re-verified with the
    gateway rather than trusting the webhook body. Events for unknown
    references are acknowledged so Paystack stops retrying them.
    """
    raw_body = await request.body()
    if not verify_paystack_signature(raw_body, signature, settings.paystack_secret_key.get_secret_value()):
        logger.warning("Rejected Paystack webhook with invalid signature")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")

    try:
        event = json.loads(raw_body or b"{}")
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload")

    event_type = event.get("event") if isinstance(event, dict) else None
    if event_type not in HANDLED_WEBHOOK_EVENTS:
        logger.info(f"Ignoring Paystack webhook event {event_type}")
        return envelope({"event": event_type, "handled": False}, message="Event ignored")

    data = event.get("data") or {}
    reference = str(data.get("reference") or "")
    try:
        result = await asyncio.to_thread(payment_service.verify_payment_reference, reference)
    except (NotFoundException, ValidationException) as e:
        logger.warning(f"Paystack webhook for reference {reference!r} not applied: {e.message}")
        return envelope({"event": event_type, "handled": False}, message="Event acknowledged")
    except DomainException as e:
        handle_domain_exception(e)

    return envelope(
        {
            "event": event_type,
            "handled": result.success,
            "booking_id": result.booking_id,
            "invoice_id": result.invoice_id,
        },
        message="Webhook processed",
    )
