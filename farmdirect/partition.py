"""Grouping of a flat cart into seller groups."""

from typing import Mapping

import structlog

from .domain import CartLine, ListedItem

logger = structlog.get_logger(__name__)


def partition_cart(
    lines: list[CartLine],
    items: Mapping[str, ListedItem],
) -> dict[str, list[tuple[CartLine, ListedItem]]]:
    """Group cart lines by the seller that owns each listed item.

    Sellers appear in the order they are first seen in ``lines`` and each
    seller's lines keep their cart order. Lines whose item is not in
    ``items`` (deleted since it was added to the cart) are skipped.

    Args:
        lines: Cart lines in the order the buyer added them.
        items: Listed items by id, as read at checkout time.

    Returns:
        Mapping of seller id to that seller's (line, item) pairs.
    """
    groups: dict[str, list[tuple[CartLine, ListedItem]]] = {}

    for line in lines:
        item = items.get(line.item_id)
        if item is None:
            logger.info("Skipping cart line for missing item", item_id=line.item_id)
            continue
        groups.setdefault(item.seller_id, []).append((line, item))

    return groups
