"""Razorpay REST client and signature checks.

Only the orders API is used: the checkout widget collects the payment and
hands back (razorpay_order_id, razorpay_payment_id, razorpay_signature),
which /payment/verify checks against the tenant's key secret.
"""
import hashlib
import hmac
from decimal import Decimal
from typing import Optional

import httpx
import structlog

from shared.config import settings
from shared.errors import UpstreamError

logger = structlog.get_logger(__name__)


def to_minor_units(amount: Decimal) -> int:
    """Rupees to paise."""
    return int((amount * 100).to_integral_value())


def sign(secret: str, gateway_order_id: str, gateway_payment_id: str) -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def signature_matches(secret: str, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
    if not secret or not signature:
        return False
    return hmac.compare_digest(sign(secret, gateway_order_id, gateway_payment_id), signature)


class RazorpayClient:
    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = settings.RAZORPAY_BASE_URL,
        timeout: float = settings.HTTP_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    async def create_order(self, amount: Decimal, currency: str, receipt: str, notes: dict | None = None) -> dict:
        if not self.configured:
            raise UpstreamError("Payment gateway is not configured")

        payload = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        async with httpx.AsyncClient(
            base_url=self.base_url,
            auth=(self.key_id, self.key_secret),
            timeout=self.timeout,
            transport=self.transport,
        ) as client:
            try:
                resp = await client.post("/v1/orders", json=payload)
                resp.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.error("gateway_order_rejected", status=e.response.status_code, receipt=receipt)
                raise UpstreamError("Payment gateway rejected the order") from e
            except httpx.HTTPError as e:
                logger.error("gateway_unreachable", error=str(e), receipt=receipt)
                raise UpstreamError("Payment gateway is unavailable") from e

        body = resp.json()
        if not body.get("id"):
            raise UpstreamError("Payment gateway returned no order id")
        return body
