"""Application-wide constants for the Hustle Village backend."""

from __future__ import annotations

BRAND_NAME = "Hustle Village"

# Text constraints
MAX_BOOKING_NOTE_LENGTH = 1000
MAX_REVIEW_TEXT_LENGTH = 2000

# Review ratings
MIN_RATING = 1
MAX_RATING = 5

# Gateway amounts are integers in the currency's minor unit (pesewas for GHS)
MINOR_UNITS_PER_MAJOR = 100

# Invoice sequence
INVOICE_SEQUENCE_WIDTH = 4
INVOICE_CREATE_MAX_ATTEMPTS = 5

# Query limits
DEFAULT_QUERY_LIMIT = 100

# API metadata
API_TITLE = f"{BRAND_NAME} API"
API_DESCRIPTION = "Service bookings, escrowed payments, invoices and reviews for the Hustle Village marketplace."
API_VERSION = "1.0.0"
