"""Vendor status updates, order visibility and shop listings."""

from sqlalchemy import select

from services.inventory_service.models import ProductVariant
from services.order_service.status import OrderStatus

from .conftest import CUSTOMER_USER, OTHER_CUSTOMER_USER, OTHER_VENDOR_USER, VENDOR_USER


async def _update(client, auth, order_number, status, user_id=VENDOR_USER):
    return await client.patch(
        "/orders/updateStatus",
        json={"order_number": order_number, "status": status},
        headers=auth(user_id, role="VENDOR"),
    )


class TestUpdateStatus:
    async def test_vendor_moves_order_forward(self, client, auth, place_order, load_order):
        order_number = await place_order()

        resp = await _update(client, auth, order_number, "shipped")

        assert resp.status_code == 200
        assert resp.json()["message"] == "Order status updated successfully"
        order = await load_order(order_number)
        assert order.order_status == "shipped"
        assert [e.status for e in order.status_history] == [OrderStatus.PENDING, OrderStatus.SHIPPED]
        assert order.status_history.latest.actor == "vendor"

    async def test_other_shop_cannot_touch_the_order(self, client, auth, place_order, load_order):
        order_number = await place_order()

        resp = await _update(client, auth, order_number, "shipped", user_id=OTHER_VENDOR_USER)

        assert resp.status_code == 404
        order = await load_order(order_number)
        assert order.order_status == "pending"
        assert len(order.status_history) == 1

    async def test_backward_move_is_a_conflict(self, client, auth, place_order, load_order):
        order_number = await place_order()
        await _update(client, auth, order_number, "delivered")

        resp = await _update(client, auth, order_number, "pending")

        assert resp.status_code == 409
        assert resp.json()["error"] == "Cannot move order from delivered to pending"
        order = await load_order(order_number)
        assert order.order_status == "delivered"
        assert order.delivery_date is not None

    async def test_same_status_is_a_no_op(self, client, auth, place_order, load_order):
        order_number = await place_order()

        resp = await _update(client, auth, order_number, "pending")

        assert resp.status_code == 200
        assert resp.json()["message"] == "Order is already pending"
        assert len((await load_order(order_number)).status_history) == 1

    async def test_unknown_status_is_rejected(self, client, auth, place_order):
        order_number = await place_order()

        resp = await _update(client, auth, order_number, "teleported")

        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid status"

    async def test_cancellation_restocks(self, client, auth, place_order, db):
        order_number = await place_order()

        resp = await _update(client, auth, order_number, "cancelled")

        assert resp.status_code == 200
        stock = (await db.execute(select(ProductVariant.stock).where(ProductVariant.id == 10))).scalar_one()
        assert stock == 5

    async def test_cancelling_twice_restocks_once(self, client, auth, place_order, db):
        order_number = await place_order()
        await _update(client, auth, order_number, "cancelled")

        resp = await _update(client, auth, order_number, "cancelled")

        assert resp.status_code == 200
        stock = (await db.execute(select(ProductVariant.stock).where(ProductVariant.id == 10))).scalar_one()
        assert stock == 5

    async def test_customers_cannot_update_status(self, client, auth, place_order):
        order_number = await place_order()

        resp = await client.patch(
            "/orders/updateStatus",
            json={"order_number": order_number, "status": "shipped"},
            headers=auth(CUSTOMER_USER),
        )

        assert resp.status_code == 403


class TestOrderQueries:
    async def test_customer_sees_own_orders(self, client, auth, place_order):
        order_number = await place_order()

        resp = await client.get("/orders/getOrderByCustomerID", headers=auth(CUSTOMER_USER))

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert [o["order_number"] for o in data] == [order_number]
        assert data[0]["payment"]["total"] == 210.0
        assert data[0]["customer"] is None

    async def test_order_detail_hidden_from_other_customers(self, client, auth, place_order):
        order_number = await place_order()

        own = await client.get(f"/orders/{order_number}", headers=auth(CUSTOMER_USER))
        other = await client.get(f"/orders/{order_number}", headers=auth(OTHER_CUSTOMER_USER))

        assert own.status_code == 200
        assert own.json()["data"]["status_history"][0]["status"] == "pending"
        assert other.status_code == 404

    async def test_vendor_detail_includes_customer(self, client, auth, place_order):
        order_number = await place_order()

        resp = await client.get(f"/orders/{order_number}", headers=auth(VENDOR_USER, role="VENDOR"))

        assert resp.status_code == 200
        assert resp.json()["data"]["customer"]["name"] == "Asha Rao"

    async def test_shop_listing_filters_and_paginates(self, client, auth, place_order):
        first = await place_order({"product_id": 2, "quantity": 1})
        second = await place_order({"product_id": 2, "quantity": 1})
        third = await place_order({"product_id": 2, "quantity": 1}, user_id=OTHER_CUSTOMER_USER)
        await _update(client, auth, second, "shipped")
        headers = auth(VENDOR_USER, role="VENDOR")

        page = await client.get("/orders/getOrderByShopID", params={"limit": 2, "page": 2}, headers=headers)
        shipped = await client.get("/orders/getOrderByShopID", params={"status": "shipped"}, headers=headers)
        by_name = await client.get("/orders/getOrderByShopID", params={"search": "vikram"}, headers=headers)
        by_number = await client.get("/orders/getOrderByShopID", params={"search": first.lower()}, headers=headers)

        assert page.json()["pagination"] == {"total": 3, "page": 2, "limit": 2, "totalPages": 2}
        assert len(page.json()["orders"]) == 1
        assert [o["order_number"] for o in shipped.json()["orders"]] == [second]
        assert [o["order_number"] for o in by_name.json()["orders"]] == [third]
        assert [o["order_number"] for o in by_number.json()["orders"]] == [first]

    async def test_other_vendor_sees_an_empty_shop(self, client, auth, place_order):
        await place_order()

        resp = await client.get("/orders/getOrderByShopID", headers=auth(OTHER_VENDOR_USER, role="VENDOR"))

        assert resp.status_code == 200
        assert resp.json()["orders"] == []
        assert resp.json()["pagination"]["totalPages"] == 0
