"""
Test configuration and fixtures
"""

import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from farmdirect.checkout import OrderFanout
from farmdirect.domain import ListedItem, NewOrder, Order, OrderStatus
from farmdirect.exceptions import OrderNotFound, PersistenceError
from farmdirect.geo import StaticGeoResolver
from farmdirect.main import app, get_pricing, get_store
from farmdirect.pricing import PricingPolicy
from farmdirect.store import OrderStore


class InMemoryOrderStore(OrderStore):
    """Order store backed by dicts; sellers in ``failing_sellers`` refuse writes."""

    def __init__(self, items=(), seller_postal_codes=None, failing_sellers=()):
        self.items = {item.id: item for item in items}
        self.seller_postal_codes = dict(seller_postal_codes or {})
        self.failing_sellers = set(failing_sellers)
        self.orders: dict[str, Order] = {}
        self.item_reads: list[str] = []
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def get_item(self, item_id: str) -> Optional[ListedItem]:
        self.item_reads.append(item_id)
        return self.items.get(item_id)

    def get_seller_postal_code(self, seller_id: str) -> Optional[str]:
        return self.seller_postal_codes.get(seller_id)

    def create_order(self, new_order: NewOrder) -> Order:
        if new_order.seller_id in self.failing_sellers:
            raise PersistenceError(new_order.seller_id, reason="simulated outage")

        order_id = str(uuid.uuid4())
        self._clock += timedelta(seconds=1)
        order = Order(
            id=order_id,
            buyer_id=new_order.buyer_id,
            seller_id=new_order.seller_id,
            status=OrderStatus.PLACED,
            items_subtotal=new_order.items_subtotal,
            delivery_charge=new_order.delivery_charge,
            destination_postal_code=new_order.destination_postal_code,
            destination_address=new_order.destination_address,
            requested_delivery_window=new_order.requested_delivery_window,
            created_at=self._clock,
            lines=tuple(replace(line, order_id=order_id) for line in new_order.lines),
        )
        self.orders[order_id] = order
        return order

    def get_order(self, order_id: str) -> Order:
        try:
            return self.orders[order_id]
        except KeyError:
            raise OrderNotFound(order_id)

    def list_orders(self, buyer_id=None, seller_id=None) -> list[Order]:
        if seller_id:
            matches = [o for o in self.orders.values() if o.seller_id == seller_id]
        else:
            matches = [o for o in self.orders.values() if o.buyer_id == buyer_id]
        return sorted(matches, key=lambda o: o.created_at, reverse=True)

    def update_status(self, order_id: str, status: OrderStatus) -> Order:
        order = replace(self.get_order(order_id), status=status)
        self.orders[order_id] = order
        return order


@pytest.fixture
def listed_items():
    """Tomato and potato from seller-1, onion from seller-2, greens from seller-3."""
    return [
        ListedItem(id="tomato", seller_id="seller-1", unit_price=Decimal("40"), available_quantity=Decimal("50")),
        ListedItem(id="potato", seller_id="seller-1", unit_price=Decimal("30"), available_quantity=Decimal("100")),
        ListedItem(id="onion", seller_id="seller-2", unit_price=Decimal("35"), available_quantity=Decimal("75")),
        ListedItem(id="greens", seller_id="seller-3", unit_price=Decimal("20"), available_quantity=Decimal("10")),
    ]


@pytest.fixture
def store(listed_items):
    # seller-3 has no postal code on file
    return InMemoryOrderStore(
        items=listed_items,
        seller_postal_codes={"seller-1": "600001", "seller-2": "600020"},
    )


@pytest.fixture
def pricing():
    return PricingPolicy(resolver=StaticGeoResolver(), rate_per_km=10, timeout_seconds=1.0)


@pytest.fixture
def fanout(store, pricing):
    return OrderFanout(store, pricing, default_seller_postal_code="600001")


@pytest.fixture
def client(store, pricing):
    """Test client with the store and pricing dependencies swapped out."""
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_pricing] = lambda: pricing
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
