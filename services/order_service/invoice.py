"""Invoice documents for placed orders.

Rendering is a plain HTML document; storage is whatever object store sits
behind INVOICE_STORAGE_URL (PUT <base>/<tenant>/invoices/<file>, answering
with {"url": ...}). Both run after the order has committed.
"""
import secrets
from html import escape
from typing import Optional

import httpx
import structlog

from shared.config import settings
from shared.errors import UpstreamError
from .schemas import OrderConfirmation

logger = structlog.get_logger(__name__)


class InvoiceStorageClient:
    def __init__(self, base_url: str, timeout: float = settings.HTTP_TIMEOUT_SECONDS,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def upload(self, tenant_id: str, file_name: str, content: bytes, content_type: str) -> str:
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
            try:
                resp = await client.put(
                    f"/{tenant_id}/invoices/{file_name}",
                    content=content,
                    headers={"Content-Type": content_type},
                )
                resp.raise_for_status()
            except httpx.HTTPError as e:
                raise UpstreamError("Invoice upload failed") from e
        try:
            body = resp.json()
        except ValueError:
            body = {}
        return body.get("url") or str(resp.url)


class InvoiceService:
    def __init__(self, storage: Optional[InvoiceStorageClient] = None):
        self.storage = storage

    @staticmethod
    def render(confirmation: OrderConfirmation) -> str:
        rows = "\n".join(
            f"<tr><td>{escape(item.name)}</td><td>{escape(item.sku)}</td><td>{item.quantity}</td>"
            f"<td>{item.price_per_unit:.2f}</td><td>{item.tax_per_unit:.2f}</td><td>{item.total:.2f}</td></tr>"
            for item in confirmation.items
        )
        summary = confirmation.price_summary
        address = confirmation.delivery_address
        return f"""<!DOCTYPE html>
<html><head><meta charset="utf-8"><title>Invoice {escape(confirmation.order_number)}</title></head>
<body>
<h1>Invoice {escape(confirmation.order_number)}</h1>
<p>{escape(confirmation.date)} {escape(confirmation.time)}</p>
<p>{escape(confirmation.customer.name)}<br>{escape(address.address)}, {escape(address.city)}
 {escape(address.state)} {escape(address.postal_code)} {escape(address.country)}</p>
<table>
<tr><th>Item</th><th>SKU</th><th>Qty</th><th>Price</th><th>Tax</th><th>Total</th></tr>
{rows}
</table>
<p>Subtotal {summary.sub_total:.2f} &middot; Discount {summary.discount:.2f} &middot; Tax {summary.tax:.2f}
 &middot; Shipping {summary.shipping_fee:.2f}</p>
<h2>Total {summary.total:.2f}</h2>
<p>Payment: {escape(confirmation.payment_method)} ({escape(confirmation.payment_status)})</p>
</body></html>
"""

    async def publish(self, tenant_id: str, confirmation: OrderConfirmation) -> Optional[str]:
        if self.storage is None:
            logger.info("invoice_storage_not_configured", order_number=confirmation.order_number)
            return None
        file_name = f"invoice-{confirmation.order_number}-{secrets.token_hex(4)}.html"
        document = self.render(confirmation).encode("utf-8")
        return await self.storage.upload(tenant_id, file_name, document, "text/html; charset=utf-8")


def get_invoice_service() -> InvoiceService:
    storage = InvoiceStorageClient(settings.INVOICE_STORAGE_URL) if settings.INVOICE_STORAGE_URL else None
    return InvoiceService(storage)
