"""Checkout fan-out: one priced, persisted order per seller in the cart."""

import asyncio
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import structlog

from .domain import (
    CartLine,
    CheckoutResult,
    DeliveryQuote,
    DeliveryWindow,
    ListedItem,
    NewOrder,
    OrderLine,
    SellerFailure,
)
from .exceptions import CheckoutRejected, PersistenceError
from .geo import is_valid_postal_code
from .partition import partition_cart
from .pricing import PricingPolicy
from .store import OrderStore

logger = structlog.get_logger(__name__)

# Column scales of order_items.quantity and orders.items_subtotal.
QUANTITY_STEP = Decimal("0.001")
MONEY_STEP = Decimal("0.01")


class OrderFanout:
    """
    Splits a multi-seller cart into per-seller orders.

    Pricing for all sellers runs concurrently and always yields a quote.
    Each seller's order is then written in its own transaction, so a failed
    write is reported for that seller only and never rolls back a sibling.
    """

    def __init__(self, store: OrderStore, pricing: PricingPolicy, default_seller_postal_code: str):
        self.store = store
        self.pricing = pricing
        self.default_seller_postal_code = default_seller_postal_code

    def _validate(
        self,
        buyer_id: Optional[str],
        lines: list[CartLine],
        destination_postal_code: str,
    ) -> None:
        if not buyer_id or not buyer_id.strip():
            raise CheckoutRejected("Buyer identity is required", field="buyer_id")
        if not lines:
            raise CheckoutRejected("Cart is empty", field="items")
        if not is_valid_postal_code(destination_postal_code):
            raise CheckoutRejected(
                "Destination postal code must be exactly 6 digits",
                field="destination_postal_code",
            )

    def _snapshot_items(self, lines: list[CartLine]) -> dict[str, ListedItem]:
        items: dict[str, ListedItem] = {}
        for line in lines:
            if line.item_id in items:
                continue
            item = self.store.get_item(line.item_id)
            if item is not None:
                items[line.item_id] = item
        return items

    async def _quote_for(self, seller_id: str, destination_postal_code: str) -> DeliveryQuote:
        try:
            seller_postal_code = self.store.get_seller_postal_code(seller_id)
        except PersistenceError as e:
            logger.warning("Seller postal code lookup failed, using default", seller_id=seller_id, error=e.message)
            seller_postal_code = None
        if not seller_postal_code:
            logger.info("Seller has no postal code, using default", seller_id=seller_id)
            seller_postal_code = self.default_seller_postal_code
        return await self.pricing.quote(seller_postal_code, destination_postal_code)

    def _order_lines(self, group: list[tuple[CartLine, ListedItem]]) -> tuple[OrderLine, ...]:
        lines = []
        for line, item in group:
            quantity = line.quantity.quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)
            if quantity <= 0:
                logger.info("Dropping line below quantity precision", item_id=item.id, quantity=str(line.quantity))
                continue
            lines.append(OrderLine(item_id=item.id, quantity=quantity, unit_price_at_purchase=item.unit_price))
        return tuple(lines)

    async def checkout(
        self,
        buyer_id: Optional[str],
        lines: list[CartLine],
        destination_postal_code: str,
        destination_address: str,
        delivery_window: DeliveryWindow,
    ) -> CheckoutResult:
        self._validate(buyer_id, lines, destination_postal_code)

        groups = partition_cart(lines, self._snapshot_items(lines))
        order_lines_by_seller = {seller_id: self._order_lines(group) for seller_id, group in groups.items()}
        seller_ids = [seller_id for seller_id, order_lines in order_lines_by_seller.items() if order_lines]

        quotes = await asyncio.gather(
            *(self._quote_for(seller_id, destination_postal_code) for seller_id in seller_ids)
        )

        result = CheckoutResult()
        for seller_id, quote in zip(seller_ids, quotes):
            order_lines = order_lines_by_seller[seller_id]
            subtotal = sum((line.line_total for line in order_lines), Decimal("0"))
            new_order = NewOrder(
                buyer_id=buyer_id,
                seller_id=seller_id,
                items_subtotal=subtotal.quantize(MONEY_STEP, rounding=ROUND_HALF_UP),
                delivery_charge=quote.charge_amount,
                destination_postal_code=destination_postal_code,
                destination_address=destination_address,
                requested_delivery_window=delivery_window,
                lines=order_lines,
            )

            try:
                order = self.store.create_order(new_order)
            except PersistenceError as e:
                result.failures.append(SellerFailure(seller_id=seller_id, reason=e.message))
                continue

            logger.info(
                "Order placed",
                order_id=order.id,
                seller_id=seller_id,
                items_subtotal=str(order.items_subtotal),
                delivery_charge=order.delivery_charge,
                delivery_resolved=quote.resolved,
            )
            result.orders.append(order)

        return result
