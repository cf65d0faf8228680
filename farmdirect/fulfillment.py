"""Seller-driven order status updates after checkout."""

import structlog

from .domain import Order, OrderStatus
from .exceptions import InvalidStatusTransition, OrderNotFound
from .store import OrderStore

logger = structlog.get_logger(__name__)


def advance_status(store: OrderStore, order_id: str, seller_id: str, status: OrderStatus) -> Order:
    """Move a seller's order forward to ``status``.

    Orders only move forward through Placed, Accepted, OutForDelivery and
    Delivered. An order owned by another seller is reported as not found.
    """
    order = store.get_order(order_id)
    if order.seller_id != seller_id:
        raise OrderNotFound(order_id)
    if not order.status.can_advance_to(status):
        raise InvalidStatusTransition(order.status.value, status.value)

    updated = store.update_status(order_id, status)
    logger.info("Order status updated", order_id=order_id, status=status.value)
    return updated
