"""Concurrent placements and accept races against a tenant that serialises writers."""

import asyncio

import pytest
from sqlalchemy import func, select

from services.delivery_service.models import ASSIGNMENT_ACTIVE, DeliveryAssignment
from services.inventory_service.models import Product, ProductVariant
from services.order_service.models import Order

from .conftest import AGENT_USER, CUSTOMER_USER, OTHER_CUSTOMER_USER, SECOND_AGENT_USER, registered_tenant


@pytest.fixture
async def tenant(tmp_path):
    async with registered_tenant(tmp_path, serialize_writes=True) as context:
        yield context


async def _scalar(tenant, statement):
    async with tenant.session_factory() as session:
        return (await session.execute(statement)).scalar_one()


class TestConcurrentPlacement:
    async def test_reservations_never_exceed_stock(self, client, auth, order_payload, seed, tenant):
        item = {"product_id": 1, "product_variant_id": 10, "quantity": 2}
        buyers = [CUSTOMER_USER, OTHER_CUSTOMER_USER] * 2

        responses = await asyncio.gather(*[
            client.post("/orders/placeOrder", json=order_payload(item), headers=auth(user_id))
            for user_id in buyers
        ])

        codes = sorted(resp.status_code for resp in responses)
        granted = 2 * codes.count(201)
        remaining = await _scalar(tenant, select(ProductVariant.stock).where(ProductVariant.id == 10))
        assert codes == [201, 201, 409, 409]
        assert granted + remaining == 5
        assert await _scalar(tenant, select(Product.stock_quantity).where(Product.id == 1)) == remaining
        assert await _scalar(tenant, select(func.count(Order.id))) == 2

    async def test_last_unit_goes_to_exactly_one_buyer(self, client, auth, order_payload, seed, tenant):
        item = {"product_id": 3, "quantity": 1}

        responses = await asyncio.gather(
            client.post("/orders/placeOrder", json=order_payload(item), headers=auth(CUSTOMER_USER)),
            client.post("/orders/placeOrder", json=order_payload(item), headers=auth(OTHER_CUSTOMER_USER)),
        )

        assert sorted(resp.status_code for resp in responses) == [201, 409]
        assert await _scalar(tenant, select(Product.stock_quantity).where(Product.id == 3)) == 0


class TestAcceptRace:
    async def test_exactly_one_agent_wins(self, client, auth, place_order, load_order, tenant):
        order = await load_order(await place_order())

        responses = await asyncio.gather(*[
            client.post(
                "/delivery/acceptOrder", json={"order_id": order.id}, headers=auth(user_id, role="DELIVERY_BOY")
            )
            for user_id in (AGENT_USER, SECOND_AGENT_USER)
        ])

        codes = [resp.status_code for resp in responses]
        assert sorted(codes) == [200, 409]
        loser = responses[codes.index(409)]
        assert loser.json()["error"] == "Order is already assigned to a delivery agent"
        active = await _scalar(
            tenant,
            select(func.count(DeliveryAssignment.id)).where(
                DeliveryAssignment.order_id == order.id, DeliveryAssignment.order_status == ASSIGNMENT_ACTIVE
            ),
        )
        assert active == 1
        winner_agent_id = 1 if codes[0] == 200 else 2
        assert (await load_order(order.order_number)).delivery_agent_id == winner_agent_id
