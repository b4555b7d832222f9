# backend/tests/unit/integrations/test_paystack_client.py
"""PaystackClient request/response handling over httpx.MockTransport."""

import json

import httpx
import pytest

from hustle.integrations import FakePaystackClient, PaystackClient, PaystackError


def _client(handler):
    return PaystackClient(
        secret_key="sk_test_abc",
        base_url="https://paystack.test/",
        transport=httpx.MockTransport(handler),
    )


def _ok(data):
    return httpx.Response(200, json={"status": True, "message": "ok", "data": data})


class TestPaystackClient:
    def test_requires_secret_key(self):
        with pytest.raises(ValueError):
            PaystackClient(secret_key="")

    def test_initialize_transaction(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return _ok({"authorization_url": "https://checkout.paystack.com/x", "access_code": "ac", "reference": "r1"})

        result = _client(handler).initialize_transaction(
            email="ama@example.com",
            amount_minor=12000,
            currency="GHS",
            callback_url="https://hustlevillage.test/payment/callback",
            metadata={"booking_id": "bk_1"},
        )

        assert result["reference"] == "r1"
        assert seen["method"] == "POST"
        assert seen["url"] == "https://paystack.test/transaction/initialize"
        assert seen["auth"] == "Bearer sk_test_abc"
        assert seen["body"] == {
            "email": "ama@example.com",
            "amount": 12000,
            "currency": "GHS",
            "callback_url": "https://hustlevillage.test/payment/callback",
            "metadata": {"booking_id": "bk_1"},
        }

    def test_initialize_without_reference_is_an_error(self):
        client = _client(lambda request: _ok({"authorization_url": "https://checkout.paystack.com/x"}))

        with pytest.raises(PaystackError):
            client.initialize_transaction(
                email="a@b.c", amount_minor=100, currency="GHS", callback_url="https://x", metadata={}
            )

    def test_verify_decodes_string_metadata(self):
        def handler(request):
            assert request.url.path == "/transaction/verify/r1"
            return _ok({"status": "success", "amount": 5000, "metadata": json.dumps({"booking_id": "bk_1"})})

        result = _client(handler).verify_transaction("r1")

        assert result["status"] == "success"
        assert result["metadata"] == {"booking_id": "bk_1"}

    def test_verify_escapes_the_reference(self):
        seen = {}

        def handler(request):
            seen["raw_path"] = request.url.raw_path
            seen["query"] = request.url.query
            return _ok({"status": "failed", "metadata": None})

        _client(handler).verify_transaction("hv/../bank?perPage=1")

        assert seen["raw_path"] == b"/transaction/verify/hv%2F..%2Fbank%3FperPage%3D1"
        assert seen["query"] == b""

    def test_verify_with_unusable_metadata(self):
        result = _client(lambda request: _ok({"status": "failed", "metadata": "not json"})).verify_transaction("r1")

        assert result["metadata"] == {}

    def test_transfer_body(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return _ok({"reference": "release-bk_1", "status": "success"})

        _client(handler).create_transfer(
            amount_minor=5000, recipient_code="RCP_1", reference="release-bk_1", reason="Payout"
        )

        assert seen["body"] == {
            "source": "balance",
            "amount": 5000,
            "recipient": "RCP_1",
            "reference": "release-bk_1",
            "reason": "Payout",
        }

    @pytest.mark.parametrize("amount_minor,expected", [(None, {"transaction": "r1"}), (2500, {"transaction": "r1", "amount": 2500})])
    def test_refund_body(self, amount_minor, expected):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return _ok({"status": "pending"})

        _client(handler).refund_transaction(reference="r1", amount_minor=amount_minor)

        assert seen["body"] == expected

    def test_status_false_envelope(self):
        client = _client(lambda request: httpx.Response(200, json={"status": False, "message": "Invalid key"}))

        with pytest.raises(PaystackError) as exc_info:
            client.verify_transaction("r1")

        assert str(exc_info.value) == "Invalid key"

    def test_http_error_carries_status_and_message(self):
        client = _client(lambda request: httpx.Response(400, json={"status": False, "message": "Transfer failed"}))

        with pytest.raises(PaystackError) as exc_info:
            client.create_transfer(amount_minor=1, recipient_code="RCP", reference="r", reason="x")

        assert exc_info.value.status_code == 400
        assert str(exc_info.value) == "Transfer failed"
        assert exc_info.value.error_body == {"status": False, "message": "Transfer failed"}

    def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(PaystackError) as exc_info:
            _client(handler).verify_transaction("r1")

        assert str(exc_info.value) == "Failed to reach Paystack API"

    def test_malformed_json(self):
        client = _client(lambda request: httpx.Response(200, content=b"<html>oops</html>"))

        with pytest.raises(PaystackError) as exc_info:
            client.verify_transaction("r1")

        assert "malformed JSON" in str(exc_info.value)


class TestFakePaystackClient:
    def test_round_trip_keeps_amount_and_metadata(self):
        fake = FakePaystackClient()
        started = fake.initialize_transaction(
            email="a@b.c", amount_minor=5000, currency="GHS", callback_url="https://x", metadata={"booking_id": "bk"}
        )

        verified = fake.verify_transaction(started["reference"])

        assert verified["status"] == "success"
        assert verified["amount"] == 5000
        assert verified["metadata"] == {"booking_id": "bk"}

    def test_simulated_failure_is_recorded(self):
        fake = FakePaystackClient()
        fake.fail_operations.add("create_transfer")

        with pytest.raises(PaystackError):
            fake.create_transfer(amount_minor=1, recipient_code="RCP", reference="r", reason="x")

        assert fake.calls_for("create_transfer") == [
            {"amount_minor": 1, "recipient_code": "RCP", "reference": "r", "reason": "x"}
        ]
