# backend/hustle/repositories/invoice_repository.py
"""
Invoice and review data access.

Invoices are append-only: this repository exposes create and read helpers
only. The latest-number query drives year-scoped sequencing.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from ..core.constants import DEFAULT_QUERY_LIMIT
from ..models.invoice import Invoice, Review
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class InvoiceRepository(BaseRepository[Invoice]):
    """Repository for invoice ledger rows."""

    def __init__(self, db: Session):
        super().__init__(db, Invoice)

    def latest_number_with_prefix(self, number_prefix: str) -> Optional[str]:
        """
        Most recent invoice number starting with ``number_prefix`` (e.g. ``HV-2025-``).

        Sequences are zero-padded, so lexical order matches numeric order.
        """
        query = (
            self.db.query(Invoice.invoice_number)
            .filter(Invoice.invoice_number.like(f"{number_prefix}%"))
            .order_by(Invoice.invoice_number.desc())
            .limit(1)
        )
        row = self._execute_first(query)
        return row[0] if row else None

    def get_by_reference(self, reference: str) -> Optional[Invoice]:
        return self.find_one_by(paystack_reference=reference)

    def get_with_service(self, invoice_id: str) -> Optional[Invoice]:
        query = self.db.query(Invoice).options(joinedload(Invoice.service)).filter(Invoice.id == invoice_id)
        return self._execute_first(query)


class ReviewRepository(BaseRepository[Review]):
    """Repository for booking reviews."""

    def __init__(self, db: Session):
        super().__init__(db, Review)

    def get_for_booking(self, booking_id: str) -> Optional[Review]:
        return self.find_one_by(booking_id=booking_id)

    def list_for_seller(self, seller_id: str, limit: int = DEFAULT_QUERY_LIMIT) -> List[Review]:
        query = (
            self.db.query(Review)
            .options(joinedload(Review.reviewer), joinedload(Review.service))
            .filter(Review.seller_id == seller_id)
            .order_by(Review.created_at.desc(), Review.id.desc())
            .limit(limit)
        )
        return self._execute_query(query)
