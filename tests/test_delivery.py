"""Delivery agent workflow: open pool, accept races, completion and release."""

from .conftest import AGENT_USER, CUSTOMER_USER, OFFLINE_AGENT_USER, SECOND_AGENT_USER


def _agent(auth, user_id=AGENT_USER):
    return auth(user_id, role="DELIVERY_BOY")


async def _accept(client, auth, order_id, user_id=AGENT_USER):
    return await client.post("/delivery/acceptOrder", json={"order_id": order_id}, headers=_agent(auth, user_id))


class TestOpenOrders:
    async def test_lists_unassigned_orders_with_customer_contact(self, client, auth, place_order):
        order_number = await place_order()

        resp = await client.get("/delivery/getOrders", headers=_agent(auth))

        assert resp.status_code == 200
        body = resp.json()
        assert body["totalOrders"] == 1
        assert body["orders"][0]["order_number"] == order_number
        assert body["orders"][0]["customer_phone"] == "9000000001"

    async def test_offline_agent_sees_nothing(self, client, auth, place_order):
        await place_order()

        resp = await client.get("/delivery/getOrders", headers=_agent(auth, OFFLINE_AGENT_USER))

        assert resp.status_code == 400
        assert resp.json()["error"] == "You are offline"

    async def test_unknown_agent(self, client, auth, seed):
        resp = await client.get("/delivery/getOrders", headers=_agent(auth, 999))

        assert resp.status_code == 404

    async def test_customers_are_forbidden(self, client, auth, seed):
        resp = await client.get("/delivery/getOrders", headers=auth(CUSTOMER_USER))

        assert resp.status_code == 403


class TestAcceptOrder:
    async def test_accept_assigns_order_and_marks_agent_busy(self, client, auth, place_order, load_order):
        order = await load_order(await place_order())

        resp = await _accept(client, auth, order.id)

        assert resp.status_code == 200
        assert resp.json()["message"] == "Order accepted successfully"
        assert (await load_order(order.order_number)).delivery_agent_id == 1
        profile = await client.get("/delivery/getProfile", headers=_agent(auth))
        assert profile.json()["data"]["status"] == "ON_DELIVERY"
        active = await client.get("/delivery/getActiveOrders", headers=_agent(auth))
        assert [o["id"] for o in active.json()["orders"]] == [order.id]
        pool = await client.get("/delivery/getOrders", headers=_agent(auth, SECOND_AGENT_USER))
        assert pool.json()["orders"] == []

    async def test_second_agent_loses(self, client, auth, place_order, load_order):
        order = await load_order(await place_order())
        await _accept(client, auth, order.id)

        resp = await _accept(client, auth, order.id, SECOND_AGENT_USER)

        assert resp.status_code == 409
        assert resp.json()["error"] == "Order is already assigned to a delivery agent"
        assert (await load_order(order.order_number)).delivery_agent_id == 1

    async def test_busy_agent_cannot_take_a_second_order(self, client, auth, place_order, load_order):
        first = await load_order(await place_order({"product_id": 2, "quantity": 1}))
        second = await load_order(await place_order({"product_id": 2, "quantity": 1}))
        await _accept(client, auth, first.id)

        resp = await _accept(client, auth, second.id)

        assert resp.status_code == 409
        assert (await load_order(second.order_number)).delivery_agent_id is None

    async def test_offline_agent_cannot_accept(self, client, auth, place_order, load_order):
        order = await load_order(await place_order())

        resp = await _accept(client, auth, order.id, OFFLINE_AGENT_USER)

        assert resp.status_code == 400
        assert (await load_order(order.order_number)).delivery_agent_id is None

    async def test_cancelled_orders_are_not_offered(self, client, auth, place_order, load_order):
        order = await load_order(await place_order())
        await client.patch(
            "/orders/updateStatus",
            json={"order_number": order.order_number, "status": "cancelled"},
            headers=auth(201, role="VENDOR"),
        )

        resp = await _accept(client, auth, order.id)

        assert resp.status_code == 409

    async def test_missing_order(self, client, auth, seed):
        resp = await _accept(client, auth, 4242)

        assert resp.status_code == 404


class TestCompleteAndRelease:
    async def test_complete_delivers_and_credits_the_agent(self, client, auth, place_order, load_order):
        order = await load_order(await place_order())
        await _accept(client, auth, order.id)

        resp = await client.post("/delivery/completeOrder", json={"order_id": order.id}, headers=_agent(auth))

        assert resp.status_code == 200
        delivered = await load_order(order.order_number)
        assert delivered.order_status == "delivered"
        assert delivered.delivery_date is not None
        assert delivered.status_history.latest.actor == "delivery_agent"
        earnings = (await client.get("/delivery/getEarnings", headers=_agent(auth))).json()
        assert earnings["total_earnings"] == 40.0
        assert earnings["total_deliveries"] == 1
        assert earnings["data"][0]["order_status"] == "completed"
        assert earnings["data"][0]["earning"] == 40.0
        profile = await client.get("/delivery/getProfile", headers=_agent(auth))
        assert profile.json()["data"]["status"] == "AVAILABLE"

    async def test_only_the_assigned_agent_can_complete(self, client, auth, place_order, load_order):
        order = await load_order(await place_order())
        await _accept(client, auth, order.id)

        resp = await client.post(
            "/delivery/completeOrder", json={"order_id": order.id}, headers=_agent(auth, SECOND_AGENT_USER)
        )

        assert resp.status_code == 404
        assert resp.json()["error"] == "Order not found or not assigned to you"
        assert (await load_order(order.order_number)).order_status == "pending"

    async def test_release_returns_order_to_the_pool(self, client, auth, place_order, load_order):
        order = await load_order(await place_order())
        await _accept(client, auth, order.id)

        resp = await client.post("/delivery/releaseOrder", json={"order_id": order.id}, headers=_agent(auth))

        assert resp.status_code == 200
        assert (await load_order(order.order_number)).delivery_agent_id is None
        retry = await _accept(client, auth, order.id, SECOND_AGENT_USER)
        assert retry.status_code == 200


class TestUpdateProfile:
    async def _update(self, client, auth, body, user_id=AGENT_USER):
        return await client.patch("/delivery/updateProfile", json=body, headers=_agent(auth, user_id))

    async def test_going_offline_and_back_online(self, client, auth, place_order, load_order):
        order = await load_order(await place_order())

        offline = await self._update(client, auth, {"is_active": False})
        rejected = await _accept(client, auth, order.id)
        online = await self._update(client, auth, {"is_active": True})
        accepted = await _accept(client, auth, order.id)

        assert offline.status_code == 200
        assert offline.json()["data"]["is_active"] is False
        assert rejected.status_code == 400
        assert rejected.json()["error"] == "You are offline"
        assert online.json()["data"]["is_active"] is True
        assert accepted.status_code == 200

    async def test_offline_agent_can_come_back(self, client, auth, seed):
        resp = await self._update(client, auth, {"is_active": True}, OFFLINE_AGENT_USER)
        pool = await client.get("/delivery/getOrders", headers=_agent(auth, OFFLINE_AGENT_USER))

        assert resp.status_code == 200
        assert pool.status_code == 200

    async def test_contact_and_vehicle_details(self, client, auth, seed):
        resp = await self._update(
            client,
            auth,
            {"name": "Ravi K", "phone": "7000000099", "vehicle_type": "bike", "vehicle_number": "KA01AB1234"},
        )

        assert resp.status_code == 200
        assert resp.json()["message"] == "Profile updated successfully"
        profile = (await client.get("/delivery/getProfile", headers=_agent(auth))).json()["data"]
        assert profile["name"] == "Ravi K"
        assert profile["phone"] == "7000000099"
        assert profile["vehicle_type"] == "bike"
        assert profile["vehicle_number"] == "KA01AB1234"
        assert profile["is_active"] is True

    async def test_cannot_go_offline_mid_delivery(self, client, auth, place_order, load_order):
        order = await load_order(await place_order())
        await _accept(client, auth, order.id)

        resp = await self._update(client, auth, {"is_active": False})

        assert resp.status_code == 409
        profile = (await client.get("/delivery/getProfile", headers=_agent(auth))).json()["data"]
        assert profile["is_active"] is True

    async def test_empty_update_is_rejected(self, client, auth, seed):
        resp = await self._update(client, auth, {})

        assert resp.status_code == 400
        assert resp.json()["error"] == "No data provided"
