"""Courier webhooks, dispatch and tracking."""

import json

import httpx
import pytest
from sqlalchemy import select, update

from services.courier_service.client import PorterClient, map_status, parse_webhook_event, sign_payload
from services.courier_service.main import courier_app
from services.courier_service.models import CourierEvent
from services.courier_service.router import get_courier_client
from services.courier_service import service as courier_service
from services.courier_service.service import CourierService
from services.notification_service.repository import NotificationRepository
from services.order_service.models import Order
from services.order_service.status import OrderStatus

from .conftest import COURIER_KEY, CUSTOMER_USER, OTHER_VENDOR_USER, TENANT_ID, VENDOR_USER

WEBHOOK_HEADERS = {"X-Tenant-ID": TENANT_ID}


async def _webhook(client, body, headers=None):
    return await client.post(
        "/courier/webhook", content=json.dumps(body), headers={**WEBHOOK_HEADERS, **(headers or {})}
    )


@pytest.fixture
def porter():
    """Serve the courier API from an in-memory handler."""
    calls = []

    def install(handler):
        def _handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return handler(request)

        client = PorterClient(COURIER_KEY, transport=httpx.MockTransport(_handler))
        courier_app.dependency_overrides[get_courier_client] = lambda: client
        return calls

    yield install
    courier_app.dependency_overrides.pop(get_courier_client, None)


def test_status_vocabulary():
    assert map_status("PICKED_UP") == OrderStatus.SHIPPED
    assert map_status("rider_assigned") == OrderStatus.ORDER_PLACED
    assert map_status("teleported") is None
    assert map_status(None) is None


class TestWebhook:
    async def test_duplicate_delivery_is_applied_once(self, client, auth, place_order, load_order, db):
        order_number = await place_order()
        event = {"order_id": order_number, "status": "delivered", "event_id": "evt-1", "rider_name": "Kiran"}

        first = await _webhook(client, event)
        second = await _webhook(client, event)

        assert first.json()["outcome"] == "applied"
        assert second.status_code == 200
        assert second.json()["outcome"] == "duplicate"
        order = await load_order(order_number)
        assert order.order_status == "delivered"
        assert [e.status for e in order.status_history] == [OrderStatus.PENDING, OrderStatus.DELIVERED]
        assert order.status_history.latest.source_status == "delivered"
        assert order.rider_name == "Kiran"
        assert await NotificationRepository.count_for_order(db, order.id, "ORDER_DELIVERED") == 2
        customer_notes = (await client.get("/notifications/", headers=auth(CUSTOMER_USER))).json()["data"]
        assert [n["type"] for n in customer_notes] == ["ORDER_DELIVERED"]

    async def test_replay_without_event_id_uses_status_and_timestamp(self, client, place_order, db, load_order):
        order_number = await place_order()
        event = {"order_id": order_number, "status": "picked_up", "timestamp": "2024-05-01T10:00:00Z"}

        await _webhook(client, event)
        await _webhook(client, event)

        order = await load_order(order_number)
        events = (await db.execute(select(CourierEvent).where(CourierEvent.order_id == order.id))).scalars().all()
        assert [e.event_key for e in events] == ["picked_up|2024-05-01T10:00:00Z"]
        assert len(order.status_history) == 2

    async def test_stale_event_is_recorded_but_never_regresses(self, client, place_order, load_order, db):
        order_number = await place_order()
        await _webhook(client, {"order_id": order_number, "status": "picked_up", "event_id": "evt-2"})

        resp = await _webhook(client, {"order_id": order_number, "status": "rider_assigned", "event_id": "evt-1"})

        assert resp.status_code == 200
        assert resp.json()["outcome"] == "stale"
        assert resp.json()["status"] == "shipped"
        order = await load_order(order_number)
        assert order.order_status == "shipped"
        outcomes = (
            await db.execute(select(CourierEvent.outcome).where(CourierEvent.order_id == order.id)
                             .order_by(CourierEvent.id))
        ).scalars().all()
        assert outcomes == ["applied", "stale"]

    async def test_unknown_status_is_rejected(self, client, place_order, load_order):
        order_number = await place_order()

        resp = await _webhook(client, {"order_id": order_number, "status": "teleported"})

        assert resp.status_code == 400
        assert (await load_order(order_number)).order_status == "pending"

    async def test_unknown_order(self, client, seed):
        resp = await _webhook(client, {"order_id": "ORD-missing", "status": "delivered"})

        assert resp.status_code == 404

    async def test_malformed_body(self, client, seed):
        resp = await _webhook(client, {"status": "delivered"})

        assert resp.status_code == 400
        assert resp.json()["error"] == "Malformed courier event"

    async def test_missing_tenant_header(self, client, seed):
        resp = await client.post("/courier/webhook", json={"order_id": "x", "status": "delivered"})

        assert resp.status_code == 400
        assert resp.json()["error"] == "Unknown tenant"

    async def test_signature_enforced_once_a_secret_is_set(self, client, tenant, place_order, load_order):
        tenant.webhook_secret = "hook-secret"
        order_number = await place_order()
        body = json.dumps({"order_id": order_number, "status": "picked_up", "event_id": "evt-9"})

        unsigned = await client.post("/courier/webhook", content=body, headers=WEBHOOK_HEADERS)
        signed = await client.post(
            "/courier/webhook",
            content=body,
            headers={**WEBHOOK_HEADERS, "X-Courier-Signature": sign_payload("hook-secret", body.encode())},
        )

        assert unsigned.status_code == 400
        assert unsigned.json()["error"] == "Invalid courier signature"
        assert signed.status_code == 200
        assert (await load_order(order_number)).order_status == "shipped"

    async def test_racing_duplicate_reports_the_real_order(self, client, place_order, load_order, db, monkeypatch):
        order_number = await place_order()
        await db.execute(update(Order).where(Order.order_number == order_number).values(courier_order_id="CRN9"))
        await db.commit()
        await _webhook(client, {"order_id": "CRN9", "status": "delivered", "event_id": "evt-1"})

        # The dedup read misses, as it would for a replay that committed in between
        async def not_seen(*args):
            return False

        monkeypatch.setattr(courier_service, "event_seen", not_seen)
        result = await CourierService.ingest_event(
            db, parse_webhook_event({"order_id": "CRN9", "status": "picked_up", "event_id": "evt-1"})
        )

        assert result.outcome == "duplicate"
        assert result.order_number == order_number
        assert result.status == "delivered"
        assert (await load_order(order_number)).order_status == "delivered"


class TestDispatchAndTracking:
    async def test_dispatch_books_the_courier(self, client, auth, place_order, load_order, porter):
        calls = porter(lambda request: httpx.Response(
            200, json={"order_id": "CRN123", "tracking_url": "https://porter.test/t/CRN123"}
        ))
        order_number = await place_order()

        resp = await client.post(
            "/courier/dispatch", json={"order_number": order_number}, headers=auth(VENDOR_USER, role="VENDOR")
        )

        assert resp.status_code == 200, resp.text
        assert resp.json()["courier_order_id"] == "CRN123"
        sent = json.loads(calls[0].content)
        assert calls[0].headers["X-API-KEY"] == COURIER_KEY
        assert sent["request_id"] == order_number
        assert sent["pickup_details"]["address"]["pincode"] == "560001"
        assert sent["drop_details"]["contact_details"]["phone_number"] == "9000000001"
        order = await load_order(order_number)
        assert order.courier_order_id == "CRN123"
        assert order.courier_tracking_url == "https://porter.test/t/CRN123"

    async def test_dispatch_twice_conflicts(self, client, auth, place_order, porter):
        porter(lambda request: httpx.Response(200, json={"order_id": "CRN123"}))
        order_number = await place_order()
        headers = auth(VENDOR_USER, role="VENDOR")
        await client.post("/courier/dispatch", json={"order_number": order_number}, headers=headers)

        resp = await client.post("/courier/dispatch", json={"order_number": order_number}, headers=headers)

        assert resp.status_code == 409

    async def test_other_shop_cannot_dispatch(self, client, auth, place_order, porter):
        calls = porter(lambda request: httpx.Response(200, json={"order_id": "CRN123"}))
        order_number = await place_order()

        resp = await client.post(
            "/courier/dispatch", json={"order_number": order_number},
            headers=auth(OTHER_VENDOR_USER, role="VENDOR"),
        )

        assert resp.status_code == 404
        assert calls == []

    async def test_courier_outage_is_a_bad_gateway(self, client, auth, place_order, load_order, porter):
        porter(lambda request: httpx.Response(503))
        order_number = await place_order()

        resp = await client.post(
            "/courier/dispatch", json={"order_number": order_number}, headers=auth(VENDOR_USER, role="VENDOR")
        )

        assert resp.status_code == 502
        assert (await load_order(order_number)).courier_order_id is None

    async def test_live_location_prefers_the_courier(self, client, auth, place_order, porter):
        def handler(request):
            if request.url.path.endswith("/partner-location"):
                return httpx.Response(200, json={"latitude": 12.9, "longitude": 77.5, "timestamp": 1714557600})
            return httpx.Response(200, json={"order_id": "CRN123"})

        porter(handler)
        order_number = await place_order()
        await client.post(
            "/courier/dispatch", json={"order_number": order_number}, headers=auth(VENDOR_USER, role="VENDOR")
        )

        resp = await client.get(f"/courier/live-location/{order_number}", headers=auth(CUSTOMER_USER))

        assert resp.status_code == 200
        assert resp.json()["data"]["message"] == "Live location"
        assert resp.json()["data"]["latitude"] == 12.9

    async def test_live_location_falls_back_to_last_webhook_position(self, client, auth, place_order, porter):
        def handler(request):
            if request.url.path.endswith("/partner-location"):
                return httpx.Response(500)
            return httpx.Response(200, json={"order_id": "CRN123"})

        porter(handler)
        order_number = await place_order()
        await client.post(
            "/courier/dispatch", json={"order_number": order_number}, headers=auth(VENDOR_USER, role="VENDOR")
        )
        await _webhook(client, {"order_id": "CRN123", "status": "picked_up", "rider_lat": 12.95, "rider_lng": 77.6})

        resp = await client.get(f"/courier/live-location/{order_number}", headers=auth(CUSTOMER_USER))

        assert resp.json()["data"] == {"latitude": 12.95, "longitude": 77.6, "message": "Last known location"}

    async def test_tracking_shows_rider_and_history(self, client, auth, place_order):
        order_number = await place_order()
        await _webhook(client, {
            "order_id": order_number, "status": "picked_up", "rider_name": "Kiran", "rider_number": "9111111111",
        })

        resp = await client.get(f"/courier/tracking/{order_number}", headers=auth(CUSTOMER_USER))

        data = resp.json()["data"]
        assert data["status"] == "shipped"
        assert data["rider"]["name"] == "Kiran"
        assert data["live_tracking"] is None
        assert [entry["status"] for entry in data["status_history"]] == ["pending", "shipped"]
