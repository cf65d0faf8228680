"""Domain types for checkout fan-out and delivery pricing.

Request-scoped values (CartLine, Coordinate, DeliveryQuote) are never stored.
Order and OrderLine are written once per seller group and only the order
status changes afterwards.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Literal, Optional


DeliveryWindow = Literal["Morning", "Afternoon", "Evening"]


class OrderStatus(str, Enum):
    PLACED = "PLACED"
    ACCEPTED = "ACCEPTED"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"

    @property
    def rank(self) -> int:
        return _STATUS_SEQUENCE.index(self)

    def can_advance_to(self, other: "OrderStatus") -> bool:
        return other.rank > self.rank


_STATUS_SEQUENCE = list(OrderStatus)


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class CartLine:
    item_id: str
    quantity: Decimal


@dataclass(frozen=True)
class ListedItem:
    """A seller's crop listing as seen at checkout time."""

    id: str
    seller_id: str
    unit_price: Decimal
    available_quantity: Decimal


@dataclass(frozen=True)
class DeliveryQuote:
    """Delivery charge for one seller/buyer pair.

    - charge_amount: whole currency units, never negative
    - distance_km: haversine distance, or the coarse estimate when unresolved
    - resolved: False when the fallback estimator produced the quote
    """

    charge_amount: int
    distance_km: float
    resolved: bool


@dataclass(frozen=True)
class OrderLine:
    item_id: str
    quantity: Decimal
    unit_price_at_purchase: Decimal
    order_id: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price_at_purchase


@dataclass(frozen=True)
class NewOrder:
    """Everything needed to write one seller's order in a single transaction."""

    buyer_id: str
    seller_id: str
    items_subtotal: Decimal
    delivery_charge: int
    destination_postal_code: str
    destination_address: str
    requested_delivery_window: DeliveryWindow
    lines: tuple[OrderLine, ...]


@dataclass(frozen=True)
class Order:
    id: str
    buyer_id: str
    seller_id: str
    status: OrderStatus
    items_subtotal: Decimal
    delivery_charge: int
    destination_postal_code: str
    destination_address: str
    requested_delivery_window: DeliveryWindow
    created_at: datetime
    lines: tuple[OrderLine, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class SellerFailure:
    seller_id: str
    reason: str


@dataclass
class CheckoutResult:
    orders: list[Order] = field(default_factory=list)
    failures: list[SellerFailure] = field(default_factory=list)
