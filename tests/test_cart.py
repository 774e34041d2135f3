"""Customer cart lines."""

from .conftest import CUSTOMER_USER


class TestCart:
    async def test_add_update_and_remove(self, client, auth, seed):
        headers = auth(CUSTOMER_USER)

        added = await client.post("/cart/items", json={"product_id": 1, "product_variant_id": 10, "quantity": 1},
                                  headers=headers)
        updated = await client.post("/cart/items", json={"product_id": 1, "product_variant_id": 10, "quantity": 3},
                                    headers=headers)
        removed = await client.post("/cart/items", json={"product_id": 1, "product_variant_id": 10, "quantity": 0},
                                    headers=headers)

        assert added.json()["items"][0]["unit_price"] == 100.0
        assert [(i["product_variant_id"], i["quantity"]) for i in updated.json()["items"]] == [(10, 3)]
        assert removed.json()["items"] == []

    async def test_unknown_variant(self, client, auth, seed):
        resp = await client.post(
            "/cart/items", json={"product_id": 1, "product_variant_id": 99, "quantity": 1}, headers=auth(CUSTOMER_USER)
        )

        assert resp.status_code == 404
        assert resp.json()["error"] == "Product 1 variant 99 not found"

    async def test_negative_quantity_is_invalid(self, client, auth, seed):
        resp = await client.post("/cart/items", json={"product_id": 2, "quantity": -1}, headers=auth(CUSTOMER_USER))

        assert resp.status_code == 400
