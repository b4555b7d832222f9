# backend/hustle/routes/v1/invoices.py
"""Invoice routes - API v1."""

import asyncio

from fastapi import APIRouter, Depends

from ...api.dependencies import CurrentUser, get_current_user, get_invoice_service
from ...core.exceptions import DomainException
from ...schemas.base import ApiResponse, envelope
from ...schemas.invoice import InvoiceResponse
from ...services.invoice_service import InvoiceService
from .bookings import handle_domain_exception

router = APIRouter(tags=["invoices-v1"])


@router.get("/{invoice_id}", response_model=ApiResponse[InvoiceResponse])
async def get_invoice(
    invoice_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    invoice_service: InvoiceService = Depends(get_invoice_service),
) -> dict:
    """Invoice details; visible to the buyer who paid it."""
    try:
        invoice = await asyncio.to_thread(invoice_service.get_invoice_by_id, current_user.id, invoice_id)
    except DomainException as e:
        handle_domain_exception(e)
    return envelope(InvoiceResponse.model_validate(invoice), message="Invoice retrieved successfully")
