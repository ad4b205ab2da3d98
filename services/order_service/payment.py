# CREATE FILE: services/order_service/payment.py

import os
import time
import uuid
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Any, Optional

import requests

from utils.logging import get_logger


@dataclass
class PaymentResult:
    success: bool
    reference: Optional[str] = None
    redirect_url: Optional[str] = None
    error: Optional[str] = None


def to_centavos(amount: Decimal) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


class PaymentGateway:
    """Payment gateway seam; the checkout only hands over a total and currency"""

    def capture(self, amount: Decimal, currency: str, order_number: str,
                payment_method: str) -> PaymentResult:
        raise NotImplementedError

    def refund(self, reference: str, amount: Decimal, reason: str) -> PaymentResult:
        raise NotImplementedError


class MockPaymentGateway(PaymentGateway):
    """In-process gateway for local development and tests"""

    def __init__(self, fail_capture: bool = False, fail_refund: bool = False):
        self.fail_capture = fail_capture
        self.fail_refund = fail_refund
        self.captures: Dict[str, Dict[str, Any]] = {}
        self.refunds: Dict[str, Dict[str, Any]] = {}

    def capture(self, amount, currency, order_number, payment_method) -> PaymentResult:
        if self.fail_capture:
            return PaymentResult(success=False, error="Card declined")

        reference = f"mock_pi_{uuid.uuid4().hex[:12]}"
        self.captures[reference] = {
            "amount_centavos": to_centavos(amount),
            "currency": currency,
            "order_number": order_number,
            "payment_method": payment_method,
        }
        return PaymentResult(success=True, reference=reference)

    def refund(self, reference, amount, reason) -> PaymentResult:
        if self.fail_refund or reference not in self.captures:
            return PaymentResult(success=False, reference=reference, error="Refund rejected")

        refund_id = f"mock_refund_{uuid.uuid4().hex[:8]}"
        self.refunds[refund_id] = {
            "payment_reference": reference,
            "amount_centavos": to_centavos(amount),
            "reason": reason,
        }
        return PaymentResult(success=True, reference=refund_id)


class PayMongoGateway(PaymentGateway):
    """PayMongo payment intents over HTTPS"""

    BASE_URL = "https://api.paymongo.com/v1"

    def __init__(self, secret_key: str = None, session: requests.Session = None,
                 timeout: float = 10.0):
        self.secret_key = secret_key or os.getenv("PAYMONGO_SECRET_KEY")
        if not self.secret_key:
            raise ValueError("PAYMONGO_SECRET_KEY is not set")
        self.session = session or requests.Session()
        self.session.auth = (self.secret_key, "")
        self.timeout = timeout
        self.logger = get_logger("order_service.paymongo")

    def _post(self, endpoint: str, attributes: Dict[str, Any]) -> Dict[str, Any]:
        start_time = time.time()
        response = self.session.post(
            f"{self.BASE_URL}{endpoint}",
            json={"data": {"attributes": attributes}},
            timeout=self.timeout,
        )
        self.logger.api_call("paymongo", endpoint,
                             duration_ms=(time.time() - start_time) * 1000,
                             status_code=response.status_code)
        body = response.json()
        if not response.ok:
            errors = body.get("errors") or [{}]
            raise requests.HTTPError(errors[0].get("detail", f"PayMongo error {response.status_code}"),
                                     response=response)
        return body["data"]

    def capture(self, amount, currency, order_number, payment_method) -> PaymentResult:
        try:
            intent = self._post("/payment_intents", {
                "amount": to_centavos(amount),
                "currency": currency,
                "payment_method_allowed": [payment_method],
                "description": f"Order {order_number}",
                "metadata": {"order_number": order_number},
            })
        except requests.RequestException as e:
            self.logger.error("Payment intent creation failed", error=e, order_number=order_number)
            return PaymentResult(success=False, error=str(e))

        next_action = intent.get("attributes", {}).get("next_action") or {}
        return PaymentResult(
            success=True,
            reference=intent["id"],
            redirect_url=(next_action.get("redirect") or {}).get("url"),
        )

    def refund(self, reference, amount, reason) -> PaymentResult:
        try:
            refund = self._post("/refunds", {
                "amount": to_centavos(amount),
                "payment_id": reference,
                "reason": "others",
                "notes": reason,
            })
        except requests.RequestException as e:
            self.logger.error("Refund failed", error=e, payment_reference=reference)
            return PaymentResult(success=False, reference=reference, error=str(e))
        return PaymentResult(success=True, reference=refund["id"])
