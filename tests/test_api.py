"""
Tests for the HTTP API.
"""

from unittest.mock import patch

import pytest


def _checkout_body(items, **overrides):
    body = {
        "items": items,
        "destination_postal_code": "600017",
        "destination_address": "T. Nagar, Chennai",
        "delivery_window": "Afternoon",
    }
    body.update(overrides)
    return body


BUYER = {"X-Buyer-Id": "buyer-1"}


class TestCheckoutEndpoint:
    def test_creates_order_per_seller(self, client):
        items = [
            {"item_id": "tomato", "quantity": 10},
            {"item_id": "onion", "quantity": 4},
            {"item_id": "potato", "quantity": 20},
        ]

        r = client.post("/checkout", json=_checkout_body(items), headers=BUYER)

        assert r.status_code == 200
        data = r.json()
        assert data["failures"] == []
        assert [o["seller_id"] for o in data["orders"]] == ["seller-1", "seller-2"]
        first = data["orders"][0]
        assert first["status"] == "PLACED"
        assert first["items_subtotal"] == 1000.0
        assert first["delivery_charge"] == 62
        assert first["delivery_window"] == "Afternoon"
        assert [i["item_id"] for i in first["items"]] == ["tomato", "potato"]

    def test_missing_buyer(self, client, store):
        r = client.post("/checkout", json=_checkout_body([{"item_id": "tomato", "quantity": 1}]))

        assert r.status_code == 401
        assert store.orders == {}

    @pytest.mark.parametrize("buyer_id", ["", "   "])
    def test_blank_buyer(self, client, store, buyer_id):
        r = client.post(
            "/checkout",
            json=_checkout_body([{"item_id": "tomato", "quantity": 1}]),
            headers={"X-Buyer-Id": buyer_id},
        )

        assert r.status_code == 401
        assert store.orders == {}

    def test_empty_cart(self, client, store):
        r = client.post("/checkout", json=_checkout_body([]), headers=BUYER)

        assert r.status_code == 400
        assert r.json()["detail"] == "Cart is empty"
        assert store.orders == {}

    def test_malformed_destination(self, client):
        body = _checkout_body([{"item_id": "tomato", "quantity": 1}], destination_postal_code="60017")
        r = client.post("/checkout", json=body, headers=BUYER)

        assert r.status_code == 400

    def test_unknown_delivery_window(self, client):
        body = _checkout_body([{"item_id": "tomato", "quantity": 1}], delivery_window="Midnight")
        r = client.post("/checkout", json=body, headers=BUYER)

        assert r.status_code == 422

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity(self, client, quantity):
        r = client.post("/checkout", json=_checkout_body([{"item_id": "tomato", "quantity": quantity}]), headers=BUYER)

        assert r.status_code == 422

    def test_partial_failure_reported(self, client, store):
        store.failing_sellers.add("seller-1")
        items = [{"item_id": "tomato", "quantity": 1}, {"item_id": "onion", "quantity": 1}]

        r = client.post("/checkout", json=_checkout_body(items), headers=BUYER)

        assert r.status_code == 200
        data = r.json()
        assert [o["seller_id"] for o in data["orders"]] == ["seller-2"]
        assert data["failures"][0]["seller_id"] == "seller-1"

    def test_request_id_echoed(self, client):
        r = client.post(
            "/checkout",
            json=_checkout_body([{"item_id": "tomato", "quantity": 1}]),
            headers={**BUYER, "X-Request-ID": "req-abc"},
        )

        assert r.headers["X-Request-ID"] == "req-abc"


class TestDistanceEndpoint:
    def test_resolved(self, client):
        r = client.post("/distance", json={"seller_postal_code": "600001", "destination_postal_code": "600017"})

        assert r.status_code == 200
        assert r.json() == {
            "seller_postal_code": "600001",
            "destination_postal_code": "600017",
            "distance_km": 6,
            "delivery_charge": 62,
            "resolved": True,
            "formula": "Distance (km) x 10",
        }

    def test_fallback(self, client):
        r = client.post("/distance", json={"seller_postal_code": "600001", "destination_postal_code": "000000"})

        data = r.json()
        assert data["resolved"] is False
        assert data["delivery_charge"] >= 0

    def test_missing_code(self, client):
        r = client.post("/distance", json={"seller_postal_code": "600001"})

        assert r.status_code == 400


class TestOrderEndpoints:
    def _place(self, client):
        items = [{"item_id": "tomato", "quantity": 1}, {"item_id": "onion", "quantity": 1}]
        return client.post("/checkout", json=_checkout_body(items), headers=BUYER).json()["orders"]

    def test_list_for_buyer(self, client):
        placed = self._place(client)

        r = client.get("/orders", headers=BUYER)

        assert r.status_code == 200
        assert [o["id"] for o in r.json()["orders"]] == [o["id"] for o in reversed(placed)]

    def test_list_for_seller(self, client):
        self._place(client)

        r = client.get("/orders", headers={"X-Seller-Id": "seller-2"})

        assert [o["seller_id"] for o in r.json()["orders"]] == ["seller-2"]

    def test_list_requires_identity(self, client):
        assert client.get("/orders").status_code == 401

    def test_get_order(self, client):
        order_id = self._place(client)[0]["id"]

        r = client.get(f"/orders/{order_id}")

        assert r.status_code == 200
        assert r.json()["items"][0]["unit_price_at_purchase"] == 40.0

    def test_get_missing_order(self, client):
        assert client.get("/orders/does-not-exist").status_code == 404

    def test_advance_status(self, client):
        order_id = self._place(client)[0]["id"]

        r = client.patch(
            f"/orders/{order_id}/status",
            json={"status": "ACCEPTED"},
            headers={"X-Seller-Id": "seller-1"},
        )

        assert r.status_code == 200
        assert r.json()["status"] == "ACCEPTED"

    def test_status_cannot_go_back(self, client):
        order_id = self._place(client)[0]["id"]
        headers = {"X-Seller-Id": "seller-1"}
        client.patch(f"/orders/{order_id}/status", json={"status": "DELIVERED"}, headers=headers)

        r = client.patch(f"/orders/{order_id}/status", json={"status": "ACCEPTED"}, headers=headers)

        assert r.status_code == 409

    def test_status_by_other_seller(self, client):
        order_id = self._place(client)[0]["id"]

        r = client.patch(
            f"/orders/{order_id}/status",
            json={"status": "ACCEPTED"},
            headers={"X-Seller-Id": "seller-2"},
        )

        assert r.status_code == 404

    def test_status_requires_seller(self, client):
        order_id = self._place(client)[0]["id"]

        r = client.patch(f"/orders/{order_id}/status", json={"status": "ACCEPTED"})

        assert r.status_code == 401

    def test_unknown_status(self, client):
        order_id = self._place(client)[0]["id"]

        r = client.patch(
            f"/orders/{order_id}/status",
            json={"status": "LOST"},
            headers={"X-Seller-Id": "seller-1"},
        )

        assert r.status_code == 422


class TestHealth:
    def test_healthy(self, client):
        with patch("farmdirect.main.ping", return_value=True):
            r = client.get("/health")

        assert r.json() == {"ok": True, "database": "connected"}

    def test_database_down(self, client):
        with patch("farmdirect.main.ping", return_value=False):
            r = client.get("/health")

        assert r.json() == {"ok": False, "database": "disconnected"}
