# backend/hustle/core/exceptions.py
"""
Domain-specific exceptions for the Hustle Village platform.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException carrying the domain payload."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenException(DomainException):
    """Raised when user lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data or state."""

    status_code = status.HTTP_409_CONFLICT


class UpstreamServiceException(DomainException):
    """Raised when the payment gateway (or another upstream) fails or refuses."""

    status_code = status.HTTP_502_BAD_GATEWAY


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class BookingConflictException(ConflictException):
    """Raised when the buyer already holds an active booking for the service."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message
            or (
                "You already have an active booking for this service. Please complete or "
                "cancel your existing booking before creating a new one."
            ),
            code="BOOKING_CONFLICT",
            details=details or {},
        )


class InvalidTransitionException(ConflictException):
    """Raised when a requested status change is not allowed from the current status."""

    def __init__(self, current_status: str, requested_status: str, message: Optional[str] = None):
        super().__init__(
            message=message
            or f"Cannot change booking status from {current_status} to {requested_status}",
            code="INVALID_STATUS_TRANSITION",
            details={
                "current_status": current_status,
                "requested_status": requested_status,
            },
        )


class ConcurrentModificationException(ConflictException):
    """Raised when a compare-and-swap status update loses a race."""

    def __init__(self, booking_id: str, expected_status: str):
        super().__init__(
            message="Booking was modified by another request. Reload and try again.",
            code="CONCURRENT_MODIFICATION",
            details={"booking_id": booking_id, "expected_status": expected_status},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """


class DuplicateRecordException(RepositoryException):
    """Raised when a write is rejected by a unique or check constraint."""

    def __init__(self, message: str, constraint: Optional[str] = None):
        super().__init__(message)
        self.constraint = constraint
