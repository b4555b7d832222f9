# backend/hustle/services/invoice_service.py
"""
Invoice generation for verified payments.

Invoice numbers look like ``HV-2025-0007``: a prefix, the calendar year and a
zero-padded sequence that restarts every year. The sequence is computed from
the latest existing number and protected by a unique constraint; a losing
concurrent writer retries with the next number inside a savepoint.
"""

from datetime import datetime, timezone
from decimal import Decimal
import logging
import re
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import INVOICE_CREATE_MAX_ATTEMPTS, INVOICE_SEQUENCE_WIDTH
from ..core.exceptions import (
    DuplicateRecordException,
    ForbiddenException,
    NotFoundException,
    ServiceException,
)
from ..models.booking import Booking
from ..models.invoice import Invoice
from ..repositories.factory import RepositoryFactory
from ..repositories.invoice_repository import InvoiceRepository
from .base import BaseService

logger = logging.getLogger(__name__)

_TRAILING_SEQUENCE = re.compile(r"(\d+)$")


class InvoiceService(BaseService):
    """Creates and reads invoice ledger rows."""

    def __init__(
        self,
        db: Session,
        invoice_repository: Optional[InvoiceRepository] = None,
        prefix: Optional[str] = None,
    ):
        super().__init__(db)
        self.invoice_repository = invoice_repository or RepositoryFactory.create_invoice_repository(db)
        self.prefix = prefix or settings.invoice_prefix

    def next_invoice_number(self, year: int) -> str:
        """
        Next sequential number for ``year``.

        Starts at 0001 when the year has no invoices yet.
        """
        year_prefix = f"{self.prefix}-{year}-"
        latest = self.invoice_repository.latest_number_with_prefix(year_prefix)

        sequence = 1
        if latest:
            match = _TRAILING_SEQUENCE.search(latest)
            if match:
                sequence = int(match.group(1)) + 1
            else:
                self.logger.warning(f"Unparseable invoice number {latest}; restarting sequence at 1")

        return f"{year_prefix}{sequence:0{INVOICE_SEQUENCE_WIDTH}d}"

    @BaseService.measure_operation("create_invoice")
    def create_for_booking(
        self,
        booking: Booking,
        reference: str,
        amount: Decimal,
        currency: str,
        issued_at: Optional[datetime] = None,
    ) -> Invoice:
        """
        Record the invoice for a verified gateway reference.

        Idempotent per reference: a second call returns the existing invoice.
        """
        year = (issued_at or datetime.now(timezone.utc)).year

        with self.transaction():
            existing = self.invoice_repository.get_by_reference(reference)
            if existing is not None:
                return existing

            for attempt in range(1, INVOICE_CREATE_MAX_ATTEMPTS + 1):
                invoice_number = self.next_invoice_number(year)
                try:
                    with self.db.begin_nested():
                        invoice = self.invoice_repository.create(
                            invoice_number=invoice_number,
                            booking_id=booking.id,
                            buyer_id=booking.buyer_id,
                            service_id=booking.service_id,
                            amount=amount,
                            currency=currency,
                            paystack_reference=reference,
                        )
                except DuplicateRecordException:
                    # Either another writer took the number or already invoiced this reference
                    existing = self.invoice_repository.get_by_reference(reference)
                    if existing is not None:
                        return existing
                    self.logger.info(
                        f"Invoice number {invoice_number} taken (attempt {attempt}); retrying"
                    )
                    continue

                self.log_operation(
                    "invoice_created",
                    invoice_id=invoice.id,
                    invoice_number=invoice_number,
                    booking_id=booking.id,
                )
                return invoice

        raise ServiceException(
            f"Could not allocate an invoice number after {INVOICE_CREATE_MAX_ATTEMPTS} attempts",
            details={"booking_id": booking.id, "reference": reference},
        )

    @BaseService.measure_operation("get_invoice")
    def get_invoice_by_id(self, user_id: str, invoice_id: str) -> Invoice:
        """Invoice with its service summary; only the buyer may read it."""
        invoice = self.invoice_repository.get_with_service(invoice_id)
        if invoice is None:
            raise NotFoundException("Invoice not found")
        if invoice.buyer_id != user_id:
            raise ForbiddenException("You do not have permission to view this invoice")
        return invoice
