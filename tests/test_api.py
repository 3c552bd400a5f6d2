"""
HTTP surface: request parsing, response shapes and error-to-status mapping.

Only the ``client`` fixture touches the database here; each request gets its
own session.
"""

import pytest

API = "/api/v1"


@pytest.fixture
def store(client):
    return client.post(f"{API}/stores", json={"name": "Downtown", "address": "1 Main St"}).json()


@pytest.fixture
def product(client):
    return client.post(
        f"{API}/products", json={"name": "Bolt", "sku": "BLT-1", "base_price": 2.5, "category": "Hardware"}
    ).json()


def move(client, store_id, product_id, quantity, type, **extra):
    payload = {"store_id": store_id, "product_id": product_id, "quantity": quantity, "type": type, **extra}
    return client.post(f"{API}/movements", json=payload)


class TestCatalog:
    def test_create_and_fetch_store(self, client, store):
        response = client.get(f"{API}/stores/{store['id']}")

        assert response.status_code == 200
        assert response.json()["name"] == "Downtown"

    def test_missing_store_is_404(self, client):
        response = client.get(f"{API}/stores/999")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_duplicate_sku_is_400(self, client, product):
        response = client.post(f"{API}/products", json={"name": "Other", "sku": "BLT-1"})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_unreferenced_store_can_be_deleted(self, client, store):
        assert client.delete(f"{API}/stores/{store['id']}").status_code == 204
        assert client.get(f"{API}/stores/{store['id']}").status_code == 404

    def test_store_with_movements_cannot_be_deleted(self, client, store, product):
        move(client, store["id"], product["id"], 5, "STOCK_IN")

        response = client.delete(f"{API}/stores/{store['id']}")

        assert response.status_code == 409
        assert response.json()["code"] == "ENTITY_REFERENCED"

    def test_product_with_movements_cannot_be_deleted(self, client, store, product):
        move(client, store["id"], product["id"], 5, "STOCK_IN")

        assert client.delete(f"{API}/products/{product['id']}").status_code == 409


class TestMovements:
    def test_stock_in_returns_new_quantity(self, client, store, product):
        response = move(client, store["id"], product["id"], 50, "STOCK_IN", reference_id="PO-1")

        assert response.status_code == 201
        body = response.json()
        assert body["movement"]["type"] == "STOCK_IN"
        assert body["movement"]["quantity"] == 50
        assert body["movement"]["reference_id"] == "PO-1"
        assert body["inventory"] == {"store_id": store["id"], "product_id": product["id"], "new_quantity": 50}
        assert body["replayed"] is False

    def test_resubmission_is_replayed(self, client, store, product):
        move(client, store["id"], product["id"], 50, "STOCK_IN", reference_id="PO-1")

        response = move(client, store["id"], product["id"], 50, "STOCK_IN", reference_id="PO-1")

        assert response.status_code == 201
        assert response.json()["replayed"] is True
        assert response.json()["inventory"]["new_quantity"] == 50

    def test_transfer_returns_both_legs(self, client, store, product):
        other = client.post(f"{API}/stores", json={"name": "Uptown"}).json()
        move(client, store["id"], product["id"], 20, "STOCK_IN")

        response = move(client, store["id"], product["id"], 8, "TRANSFER", destination_store_id=other["id"])

        assert response.status_code == 201
        body = response.json()
        assert body["movement"]["type"] == "TRANSFER_OUT"
        assert body["transfer_in"]["type"] == "TRANSFER_IN"
        assert body["transfer_in"]["reference_id"] == body["movement"]["reference_id"]
        assert body["inventory"]["new_quantity"] == 12
        assert body["destination_inventory"]["new_quantity"] == 8

    def test_insufficient_stock_is_422(self, client, store, product):
        move(client, store["id"], product["id"], 3, "STOCK_IN")

        response = move(client, store["id"], product["id"], 5, "SALE")

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "INSUFFICIENT_STOCK"
        assert body["available"] == 3
        assert body["requested"] == 5

    @pytest.mark.parametrize(
        "overrides",
        [
            {"quantity": 0},
            {"quantity": -4},
            {"quantity": 2.5},
            {"quantity": 2**63},
            {"type": "THEFT"},
            {"type": "TRANSFER"},
            {"destination_store_id": 2},
        ],
    )
    def test_malformed_request_is_400(self, client, store, product, overrides):
        payload = {"store_id": store["id"], "product_id": product["id"], "quantity": 1, "type": "STOCK_IN"}
        payload.update(overrides)

        response = client.post(f"{API}/movements", json=payload)

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert response.json()["errors"]

    def test_unknown_product_is_404(self, client, store):
        response = move(client, store["id"], 999, 1, "STOCK_IN")

        assert response.status_code == 404

    def test_actor_header_is_recorded(self, client, store, product):
        response = client.post(
            f"{API}/movements",
            json={
                "store_id": store["id"], "product_id": product["id"], "quantity": 1,
                "type": "STOCK_IN", "notes": "Delivery",
            },
            headers={"X-Actor": "clerk"},
        )

        assert response.json()["movement"]["notes"] == "Delivery (by clerk)"

    def test_listing_is_paginated(self, client, store, product):
        for quantity in range(1, 6):
            move(client, store["id"], product["id"], quantity, "STOCK_IN")

        response = client.get(f"{API}/stores/{store['id']}/movements", params={"page": 2, "limit": 2})

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 5
        assert body["total_pages"] == 3
        assert [m["quantity"] for m in body["items"]] == [3, 2]

    def test_listing_rejects_unknown_sort_field(self, client):
        response = client.get(f"{API}/movements", params={"sort_by": "notes"})

        assert response.status_code == 400

    def test_listing_for_unknown_product_is_404(self, client):
        assert client.get(f"{API}/products/999/movements").status_code == 404


class TestInventory:
    def test_get_inventory_row(self, client, store, product):
        move(client, store["id"], product["id"], 7, "STOCK_IN")

        response = client.get(f"{API}/inventory/{store['id']}/{product['id']}")

        assert response.status_code == 200
        body = response.json()
        assert body["quantity"] == 7
        assert body["effective_price"] == 2.5
        assert body["version"] == 1

    def test_missing_inventory_row_is_404(self, client, store, product):
        assert client.get(f"{API}/inventory/{store['id']}/{product['id']}").status_code == 404

    def test_manual_adjustment_is_booked(self, client, store, product):
        move(client, store["id"], product["id"], 10, "STOCK_IN")

        response = client.put(
            f"{API}/inventory/{store['id']}/{product['id']}",
            json={"quantity": 4, "price": 3.0},
            headers={"X-Actor": "manager"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["inventory"]["quantity"] == 4
        assert body["inventory"]["effective_price"] == 3.0
        assert body["movement"]["type"] == "REMOVAL"
        assert body["movement"]["quantity"] == 6
        assert body["movement"]["notes"] == "Manual inventory adjustment by manager"

    def test_negative_adjustment_is_400(self, client, store, product):
        response = client.put(f"{API}/inventory/{store['id']}/{product['id']}", json={"quantity": -1})

        assert response.status_code == 400

    def test_store_inventory_page(self, client, store, product):
        other = client.post(f"{API}/products", json={"name": "Anchor", "base_price": 1.0}).json()
        move(client, store["id"], product["id"], 20, "STOCK_IN")
        move(client, store["id"], other["id"], 4, "STOCK_IN")

        response = client.get(f"{API}/stores/{store['id']}/inventory")

        assert response.status_code == 200
        body = response.json()
        assert [item["product_name"] for item in body["items"]] == ["Anchor", "Bolt"]
        assert body["summary"] == {"total_items": 2, "total_value": 54.0, "low_stock_count": 1}

    def test_product_inventory_across_stores(self, client, store, product):
        other = client.post(f"{API}/stores", json={"name": "Uptown"}).json()
        move(client, store["id"], product["id"], 20, "STOCK_IN")
        move(client, store["id"], product["id"], 5, "TRANSFER", destination_store_id=other["id"])

        response = client.get(f"{API}/products/{product['id']}/inventory")

        body = response.json()
        assert body["total_quantity"] == 20
        assert body["total_stores"] == 2
        assert {item["store_name"]: item["quantity"] for item in body["items"]} == {"Downtown": 15, "Uptown": 5}


class TestReports:
    def test_movement_report(self, client, store, product):
        move(client, store["id"], product["id"], 30, "STOCK_IN")
        move(client, store["id"], product["id"], 4, "SALE")
        move(client, store["id"], product["id"], 1, "REMOVAL")

        body = client.get(f"{API}/reports/movements").json()

        assert body["total_movements"] == 3
        assert body["units_in"] == 30
        assert body["units_out"] == 5
        assert body["net_change"] == 25
        assert body["by_type"]["SALE"] == {"count": 1, "quantity": 4}

    def test_inventory_report_flags_low_stock(self, client, store, product):
        move(client, store["id"], product["id"], 3, "STOCK_IN")

        body = client.get(f"{API}/reports/inventory", params={"low_stock_threshold": 5}).json()

        assert body["total_units"] == 3
        assert body["low_stock_count"] == 1
        assert body["by_category"][0]["category"] == "Hardware"

    def test_consistency_report(self, client, store, product):
        move(client, store["id"], product["id"], 30, "STOCK_IN")
        client.put(f"{API}/inventory/{store['id']}/{product['id']}", json={"quantity": 12})

        body = client.get(f"{API}/reports/consistency").json()

        assert body == {"checked_pairs": 1, "consistent": True, "drift": []}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
