"""HTTP client for the Razorpay REST API.

Every call uses a bounded timeout.  Writes (create order, refund) are never
retried: once a request may have reached the gateway, a timeout or a dropped
connection is reported as ``GatewayOutcomeUnknown`` and the caller must not
assume either success or failure.  Reads are retried with backoff.
"""

from __future__ import annotations

import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

import requests
import structlog
from django.conf import settings

from modules.payments.exceptions import GatewayError, GatewayOutcomeUnknown

logger = structlog.get_logger(__name__)


def to_minor_units(amount: Decimal) -> int:
    """Convert a currency amount to the gateway's integer minor units (paise)."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


class RazorpayGateway:
    """Thin client over the subset of the Razorpay API the shop uses."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: int = 3,
        backoff: float = 0.5,
    ) -> None:
        self.base_url = (base_url or settings.RAZORPAY_API_URL).rstrip("/")
        self.timeout = timeout or settings.PAYMENT_GATEWAY_TIMEOUT
        self.max_retries = max_retries
        self.backoff = backoff
        self.session = requests.Session()
        self.session.auth = (
            key_id or settings.RAZORPAY_KEY_ID,
            key_secret or settings.RAZORPAY_KEY_SECRET,
        )
        self.session.headers.update({"Accept": "application/json"})

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    @staticmethod
    def _raise_for_status(resp: requests.Response, operation: str) -> Dict[str, Any]:
        if resp.status_code < 400:
            return resp.json()
        try:
            description = resp.json().get("error", {}).get("description")
        except ValueError:
            description = None
        logger.warning(
            "payment.gateway_rejected",
            operation=operation,
            status_code=resp.status_code,
            description=description,
        )
        raise GatewayError(
            description or f"Payment gateway returned HTTP {resp.status_code}."
        )

    def _post(self, path: str, payload: Dict[str, Any], operation: str) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.exceptions.ConnectTimeout as exc:
            logger.error("payment.gateway_unreachable", operation=operation)
            raise GatewayError("Payment gateway is unreachable.") from exc
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as exc:
            logger.error("payment.gateway_outcome_unknown", operation=operation)
            raise GatewayOutcomeUnknown() from exc
        except requests.exceptions.RequestException as exc:
            logger.error("payment.gateway_error", operation=operation, error=str(exc))
            raise GatewayError(str(exc)) from exc
        return self._raise_for_status(resp, operation)

    def _get(self, path: str, operation: str) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        for attempt in range(self.max_retries):
            try:
                resp = self.session.get(url, timeout=self.timeout)
            except requests.exceptions.RequestException as exc:
                if attempt == self.max_retries - 1:
                    logger.error(
                        "payment.gateway_error", operation=operation, error=str(exc)
                    )
                    raise GatewayError(
                        f"Payment gateway request failed after "
                        f"{self.max_retries} attempts."
                    ) from exc
                wait = self.backoff * 2**attempt
                logger.warning(
                    "payment.gateway_retry",
                    operation=operation,
                    attempt=attempt + 1,
                    wait=wait,
                )
                time.sleep(wait)
                continue
            return self._raise_for_status(resp, operation)
        raise GatewayError(f"Max retries ({self.max_retries}) exceeded for {operation}.")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create_order(
        self,
        amount: Decimal,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        payload = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        data = self._post("/orders", payload, "create_order")
        logger.info("payment.gateway_order_created", external_order_id=data.get("id"))
        return data

    def refund(
        self,
        external_payment_id: str,
        amount: Decimal,
        notes: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        payload = {
            "amount": to_minor_units(amount),
            "speed": "normal",
            "notes": notes or {},
        }
        data = self._post(f"/payments/{external_payment_id}/refund", payload, "refund")
        logger.info(
            "payment.gateway_refund_created",
            external_payment_id=external_payment_id,
            refund_id=data.get("id"),
        )
        return data

    def fetch_payment(self, external_payment_id: str) -> Dict[str, Any]:
        return self._get(f"/payments/{external_payment_id}", "fetch_payment")

    def close(self) -> None:
        self.session.close()


_shared_gateway: Optional[RazorpayGateway] = None


def get_gateway() -> RazorpayGateway:
    """Process-wide gateway client; its HTTP session and connection pool are reused."""
    global _shared_gateway
    if _shared_gateway is None:
        _shared_gateway = RazorpayGateway()
    return _shared_gateway
