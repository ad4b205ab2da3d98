# CREATE FILE: services/order_service/tests/test_payment.py

import pytest
import requests
from decimal import Decimal
from services.order_service.payment import MockPaymentGateway, PayMongoGateway, to_centavos


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self._body


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.auth = None
        self.calls = []

    def post(self, url, json=None, timeout=None):
        self.calls.append((url, json))
        if self.error:
            raise self.error
        return self.response


def test_to_centavos():
    assert to_centavos(Decimal('278.48')) == 27848
    assert to_centavos(Decimal('0.005')) == 1


class TestMockGateway:

    def test_capture_then_refund(self):
        gateway = MockPaymentGateway()
        capture = gateway.capture(Decimal('100'), "PHP", "F2T-20240315-0001", "gcash")
        assert capture.success
        assert capture.reference.startswith("mock_pi_")

        refund = gateway.refund(capture.reference, Decimal('100'), "test")
        assert refund.success

    def test_refund_unknown_reference(self):
        assert not MockPaymentGateway().refund("mock_pi_missing", Decimal('1'), "test").success


class TestPayMongoGateway:

    def test_requires_secret_key(self, monkeypatch):
        monkeypatch.delenv("PAYMONGO_SECRET_KEY", raising=False)
        with pytest.raises(ValueError):
            PayMongoGateway()

    def test_capture_creates_payment_intent(self):
        session = FakeSession(FakeResponse(200, {"data": {
            "id": "pi_123",
            "attributes": {"next_action": {"redirect": {"url": "https://pay.example/3ds"}}}
        }}))
        gateway = PayMongoGateway(secret_key="sk_test", session=session)

        result = gateway.capture(Decimal('278.48'), "PHP", "F2T-20240315-0001", "card")

        assert result.success
        assert result.reference == "pi_123"
        assert result.redirect_url == "https://pay.example/3ds"
        url, payload = session.calls[0]
        assert url.endswith("/payment_intents")
        assert payload["data"]["attributes"]["amount"] == 27848
        assert session.auth == ("sk_test", "")

    def test_capture_api_error(self):
        session = FakeSession(FakeResponse(400, {"errors": [{"detail": "amount is invalid"}]}))
        result = PayMongoGateway(secret_key="sk_test", session=session).capture(
            Decimal('1'), "PHP", "F2T-20240315-0002", "card")
        assert not result.success
        assert result.error == "amount is invalid"

    def test_refund_network_error(self):
        session = FakeSession(error=requests.ConnectionError("unreachable"))
        result = PayMongoGateway(secret_key="sk_test", session=session).refund(
            "pi_123", Decimal('10'), "write failed")
        assert not result.success
