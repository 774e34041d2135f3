"""Error envelopes shared by every service."""

from .conftest import CUSTOMER_USER


class TestErrorEnvelope:
    async def test_unknown_tenant(self, client, auth, seed):
        resp = await client.get("/orders/getOrderByCustomerID", headers=auth(CUSTOMER_USER, tenant_id="globex"))

        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Unknown tenant"}

    async def test_missing_token(self, client, seed):
        resp = await client.get("/orders/getOrderByCustomerID", headers={"X-Tenant-ID": "acme"})

        assert resp.status_code == 401
        assert resp.json()["success"] is False

    async def test_wrong_role(self, client, auth, seed):
        resp = await client.get("/orders/getOrderByShopID", headers=auth(CUSTOMER_USER))

        assert resp.status_code == 403
        assert resp.json()["error"].startswith("Forbidden")

    async def test_validation_errors_name_the_field(self, client, auth, seed):
        resp = await client.patch("/orders/updateStatus", json={"status": "shipped"}, headers=auth(201, role="VENDOR"))

        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Invalid request: order_number"}

    async def test_health(self, client):
        resp = await client.get("/health")

        assert resp.status_code == 200
