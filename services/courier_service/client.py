"""Porter courier API client and webhook vocabulary."""
import hashlib
import hmac
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
import structlog

from shared.config import settings
from shared.errors import UpstreamError
from services.order_service.status import OrderStatus

logger = structlog.get_logger(__name__)

COURIER_STATUS_MAP = {
    "open": OrderStatus.PENDING,
    "accepted": OrderStatus.ORDER_PLACED,
    "rider_assigned": OrderStatus.ORDER_PLACED,
    "pickup_requested": OrderStatus.ORDER_PLACED,
    "picked_up": OrderStatus.SHIPPED,
    "out_for_delivery": OrderStatus.SHIPPED,
    "delivered": OrderStatus.DELIVERED,
    "cancelled": OrderStatus.CANCELLED,
    "reopened": OrderStatus.PENDING,
}


def map_status(courier_status: str | None) -> Optional[OrderStatus]:
    """Courier vocabulary to order status; None for anything unrecognised."""
    if not courier_status:
        return None
    return COURIER_STATUS_MAP.get(courier_status.strip().lower())


def sign_payload(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def webhook_signature_valid(secret: str, body: bytes, signature: str | None) -> bool:
    if not secret:
        # Unsigned webhooks are accepted until a secret is configured for the tenant
        return True
    if not signature:
        return False
    return hmac.compare_digest(sign_payload(secret, body), signature)


@dataclass(frozen=True)
class RiderDetails:
    name: Optional[str] = None
    phone: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass(frozen=True)
class CourierUpdate:
    reference: str
    courier_status: str
    event_id: Optional[str] = None
    timestamp: Optional[str] = None
    rider: RiderDetails = field(default_factory=RiderDetails)
    estimated_pickup_time: Optional[str] = None
    estimated_drop_time: Optional[str] = None
    actual_pickup_time: Optional[str] = None
    actual_drop_time: Optional[str] = None
    raw: dict = field(default_factory=dict)

    @property
    def status(self) -> Optional[OrderStatus]:
        return map_status(self.courier_status)

    @property
    def event_key(self) -> str:
        """Replays of one courier event share this key."""
        if self.event_id:
            return self.event_id
        return f"{self.courier_status.strip().lower()}|{self.timestamp or ''}"


def parse_webhook_event(data: dict) -> CourierUpdate:
    return CourierUpdate(
        reference=str(data["order_id"]),
        courier_status=str(data["status"]),
        event_id=data.get("event_id"),
        timestamp=data.get("timestamp"),
        rider=RiderDetails(
            name=data.get("rider_name"),
            phone=data.get("rider_number"),
            latitude=data.get("rider_lat"),
            longitude=data.get("rider_lng"),
        ),
        estimated_pickup_time=data.get("estimated_pickup_time"),
        estimated_drop_time=data.get("estimated_drop_time"),
        actual_pickup_time=data.get("actual_pickup_time"),
        actual_drop_time=data.get("actual_drop_time"),
        raw=data,
    )


class PorterClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = settings.PORTER_BASE_URL,
        timeout: float = settings.HTTP_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _request(self, method: str, path: str, json: Any = None) -> dict:
        if not self.configured:
            raise UpstreamError("Courier is not configured")
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers={"X-API-KEY": self.api_key},
            timeout=self.timeout,
            transport=self.transport,
        ) as client:
            try:
                resp = await client.request(method, path, json=json)
                resp.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.error("courier_request_rejected", path=path, status=e.response.status_code)
                raise UpstreamError("Courier rejected the request") from e
            except httpx.HTTPError as e:
                logger.error("courier_unreachable", path=path, error=str(e))
                raise UpstreamError("Courier is unavailable") from e
        return resp.json()

    async def create_order(self, payload: dict) -> dict:
        return await self._request("POST", "/v1/orders/create", json=payload)

    async def get_partner_location(self, courier_order_id: str) -> dict:
        return await self._request("GET", f"/v1/orders/{courier_order_id}/partner-location")


def _address(address: str, city: str | None, state: str | None, postal_code: str | None, country: str | None,
             lat: float | None, lng: float | None) -> dict:
    return {
        "apartment_address": address,
        "street_address1": address,
        "street_address2": "",
        "landmark": "",
        "city": city or "",
        "state": state or "",
        "pincode": postal_code or "",
        "country": country or "",
        "lat": float(lat or 0),
        "lng": float(lng or 0),
    }


def build_create_payload(order, shop, customer) -> dict:
    """Porter create-order body: pickup at the shop, drop at the order's delivery snapshot."""
    customer_phone = (customer.phone if customer else "") or ""
    return {
        "request_id": order.order_number,
        "delivery_instructions": {
            "instructions_list": [
                {"type": "text", "description": order.delivery_instructions or "Handle with care"}
            ]
        },
        "pickup_details": {
            "address": _address(
                shop.address or "", shop.city, shop.state, shop.postal_code, shop.country, shop.latitude,
                shop.longitude,
            ),
            "contact_details": {"name": shop.name, "phone_number": shop.phone or ""},
        },
        "drop_details": {
            "address": _address(
                order.delivery_address, order.delivery_city, order.delivery_state, order.delivery_postal_code,
                order.delivery_country, order.delivery_latitude, order.delivery_longitude,
            ),
            "contact_details": {"name": customer.name if customer else "", "phone_number": customer_phone},
        },
        "customer": {
            "name": customer.name if customer else "",
            "mobile": {"country_code": "+91", "number": customer_phone},
        },
        "order_details": {
            "order_value": float(order.total_amount),
            "order_type": "standard",
            "items": [
                {"name": (item.product_snapshot or {}).get("name", ""), "quantity": item.quantity}
                for item in order.items
            ],
        },
    }
