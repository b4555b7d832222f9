# backend/hustle/routes/v1/__init__.py
"""Versioned API routers mounted under /api/v1."""

from . import bookings, invoices, payments, reviews

__all__ = ["bookings", "invoices", "payments", "reviews"]
