"""Minimal Paystack API client for booking payments, payouts and refunds."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Protocol, cast
from urllib.parse import quote
from uuid import uuid4

import httpx
from pydantic import SecretStr

logger = logging.getLogger(__name__)


class PaystackError(RuntimeError):
    """Raised when Paystack responds with an error or cannot be reached."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        *,
        error_body: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_body = error_body


class PaymentGateway(Protocol):
    """Operations the payment service needs from a gateway (amounts in minor units)."""

    def initialize_transaction(
        self,
        *,
        email: str,
        amount_minor: int,
        currency: str,
        callback_url: str,
        metadata: Dict[str, Any],
    ) -> Dict[str, Any]: ...

    def verify_transaction(self, reference: str) -> Dict[str, Any]: ...

    def create_transfer(
        self,
        *,
        amount_minor: int,
        recipient_code: str,
        reference: str,
        reason: str,
    ) -> Dict[str, Any]: ...

    def refund_transaction(self, *, reference: str, amount_minor: Optional[int] = None) -> Dict[str, Any]: ...


def _normalize_metadata(raw: Any) -> Dict[str, Any]:
    """Paystack echoes metadata either as an object or as a JSON string."""
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and raw:
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


class PaystackClient:
    """Thin client for the Paystack REST API."""

    def __init__(
        self,
        *,
        secret_key: str | SecretStr,
        base_url: str = "https://api.paystack.co",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        secret_value = secret_key.get_secret_value() if isinstance(secret_key, SecretStr) else secret_key
        if not secret_value:
            raise ValueError("Paystack secret key must be provided")

        self._secret_key = secret_value
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def initialize_transaction(
        self,
        *,
        email: str,
        amount_minor: int,
        currency: str,
        callback_url: str,
        metadata: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Start a hosted checkout; returns ``authorization_url``, ``access_code`` and ``reference``."""

        body = {
            "email": email,
            "amount": int(amount_minor),
            "currency": currency,
            "callback_url": callback_url,
            "metadata": metadata,
        }
        data = self.request("POST", "/transaction/initialize", json_body=body)
        if not data.get("authorization_url") or not data.get("reference"):
            raise PaystackError("Paystack initialize response missing authorization_url/reference", error_body=data)
        return data

    def verify_transaction(self, reference: str) -> Dict[str, Any]:
        """Look up a transaction; ``status`` is ``success`` only for a completed charge."""

        if not reference:
            raise ValueError("reference must be provided")
        data = self.request("GET", f"/transaction/verify/{quote(reference, safe='')}")
        data["metadata"] = _normalize_metadata(data.get("metadata"))
        return data

    def create_transfer(
        self,
        *,
        amount_minor: int,
        recipient_code: str,
        reference: str,
        reason: str,
    ) -> Dict[str, Any]:
        """Pay out from the platform balance to a transfer recipient."""

        body = {
            "source": "balance",
            "amount": int(amount_minor),
            "recipient": recipient_code,
            "reference": reference,
            "reason": reason,
        }
        return self.request("POST", "/transfer", json_body=body)

    def refund_transaction(self, *, reference: str, amount_minor: Optional[int] = None) -> Dict[str, Any]:
        """Refund a charge in full, or partially when ``amount_minor`` is given."""

        body: Dict[str, Any] = {"transaction": reference}
        if amount_minor is not None:
            body["amount"] = int(amount_minor)
        return self.request("POST", "/refund", json_body=body)

    def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Dict[str, Any] | None = None,
        params: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        """Perform a Paystack request and return the ``data`` member of its envelope."""

        url = f"{self._base_url}{path}"
        with httpx.Client(
            timeout=self._timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self._secret_key}",
                "Accept": "application/json",
            },
        ) as client:
            try:
                response = client.request(method, url, json=json_body, params=params)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                error_payload: Any | None
                try:
                    error_payload = exc.response.json()
                except json.JSONDecodeError:
                    error_payload = exc.response.text

                message = None
                if isinstance(error_payload, dict):
                    message = error_payload.get("message")
                logger.error(
                    "Paystack API error %s for %s %s: %s",
                    status,
                    method,
                    path,
                    exc.response.text[:500],
                )
                raise PaystackError(
                    message or f"Paystack API responded with status {status}",
                    status_code=status,
                    error_body=error_payload,
                ) from exc
            except httpx.RequestError as exc:
                logger.error("Paystack request failure for %s %s: %s", method, path, str(exc))
                raise PaystackError("Failed to reach Paystack API") from exc

        try:
            envelope = cast(Dict[str, Any], response.json())
        except json.JSONDecodeError as exc:
            logger.error("Invalid JSON from Paystack for %s %s: %s", method, path, response.text[:500])
            raise PaystackError("Received malformed JSON from Paystack") from exc

        if not envelope.get("status"):
            raise PaystackError(
                envelope.get("message") or "Paystack request was not successful",
                status_code=response.status_code,
                error_body=envelope,
            )
        data = envelope.get("data")
        return dict(data) if isinstance(data, dict) else {"value": data}


class FakePaystackClient:
    """
    In-memory stand-in that mimics Paystack for non-production flows and tests.

    Every call is appended to ``calls`` as ``(operation, kwargs)``. Set
    ``verify_status`` to simulate abandoned/failed charges and add operation
    names to ``fail_operations`` to simulate gateway outages.
    """

    def __init__(self, *, verify_status: str = "success") -> None:
        self.verify_status = verify_status
        self.fail_operations: set[str] = set()
        self.calls: List[tuple[str, Dict[str, Any]]] = []
        self.transactions: Dict[str, Dict[str, Any]] = {}
        self._logger = logging.getLogger(self.__class__.__name__)

    def _record(self, operation: str, **kwargs: Any) -> None:
        self.calls.append((operation, kwargs))
        if operation in self.fail_operations:
            raise PaystackError(f"Simulated Paystack failure for {operation}", status_code=503)

    def calls_for(self, operation: str) -> List[Dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == operation]

    def initialize_transaction(
        self,
        *,
        email: str,
        amount_minor: int,
        currency: str,
        callback_url: str,
        metadata: Dict[str, Any],
    ) -> Dict[str, Any]:
        self._record(
            "initialize_transaction",
            email=email,
            amount_minor=amount_minor,
            currency=currency,
            callback_url=callback_url,
            metadata=metadata,
        )
        reference = f"hv_fake_{uuid4().hex[:16]}"
        self.transactions[reference] = {
            "amount": amount_minor,
            "currency": currency,
            "metadata": dict(metadata),
        }
        self._logger.debug("Fake transaction initialized", extra={"reference": reference})
        return {
            "authorization_url": f"https://checkout.paystack.com/{reference}",
            "access_code": f"ac_{reference}",
            "reference": reference,
        }

    def verify_transaction(self, reference: str) -> Dict[str, Any]:
        self._record("verify_transaction", reference=reference)
        known = self.transactions.get(reference, {})
        return {
            "reference": reference,
            "status": self.verify_status,
            "amount": known.get("amount"),
            "currency": known.get("currency"),
            "paid_at": "2026-01-01T00:00:00.000Z" if self.verify_status == "success" else None,
            "metadata": dict(known.get("metadata", {})),
        }

    def create_transfer(
        self,
        *,
        amount_minor: int,
        recipient_code: str,
        reference: str,
        reason: str,
    ) -> Dict[str, Any]:
        self._record(
            "create_transfer",
            amount_minor=amount_minor,
            recipient_code=recipient_code,
            reference=reference,
            reason=reason,
        )
        return {"reference": reference, "transfer_code": f"TRF_{uuid4().hex[:12]}", "status": "success"}

    def refund_transaction(self, *, reference: str, amount_minor: Optional[int] = None) -> Dict[str, Any]:
        self._record("refund_transaction", reference=reference, amount_minor=amount_minor)
        return {"transaction": {"reference": reference}, "status": "pending", "amount": amount_minor}
