"""External service integrations for the Hustle Village backend."""

from .paystack_client import FakePaystackClient, PaymentGateway, PaystackClient, PaystackError

__all__ = ["FakePaystackClient", "PaymentGateway", "PaystackClient", "PaystackError"]
