"""Order persistence.

``OrderStore`` is the collaborator the checkout depends on; the Postgres
implementation opens one connection (and so one transaction) per call, which
keeps each seller's order independent of its siblings.
"""

import uuid
from abc import ABC, abstractmethod
from typing import Optional

import psycopg
import structlog

from .db import get_conn
from .domain import ListedItem, NewOrder, Order, OrderLine, OrderStatus
from .exceptions import OrderNotFound, PersistenceError
from .settings import DATABASE_URL

logger = structlog.get_logger(__name__)


class OrderStore(ABC):
    @abstractmethod
    def get_item(self, item_id: str) -> Optional[ListedItem]:
        """Return the listed item, or None if it no longer exists."""

    @abstractmethod
    def get_seller_postal_code(self, seller_id: str) -> Optional[str]:
        """Return the seller's registered postal code, if any."""

    @abstractmethod
    def create_order(self, new_order: NewOrder) -> Order:
        """Write an order and all of its lines atomically.

        Raises:
            PersistenceError: nothing was written.
        """

    @abstractmethod
    def get_order(self, order_id: str) -> Order:
        """Raises OrderNotFound when there is no such order."""

    @abstractmethod
    def list_orders(self, buyer_id: Optional[str] = None, seller_id: Optional[str] = None) -> list[Order]:
        """Orders for a buyer or a seller, newest first."""

    @abstractmethod
    def update_status(self, order_id: str, status: OrderStatus) -> Order:
        """Set the order status. Raises OrderNotFound."""


def _line_from_row(row: dict) -> OrderLine:
    return OrderLine(
        order_id=str(row["order_id"]),
        item_id=str(row["item_id"]),
        quantity=row["quantity"],
        unit_price_at_purchase=row["unit_price"],
    )


def _order_from_row(row: dict, lines: list[OrderLine]) -> Order:
    return Order(
        id=str(row["id"]),
        buyer_id=str(row["buyer_id"]),
        seller_id=str(row["seller_id"]),
        status=OrderStatus(row["status"]),
        items_subtotal=row["items_subtotal"],
        delivery_charge=row["delivery_charge"],
        destination_postal_code=row["destination_postal_code"],
        destination_address=row["destination_address"],
        requested_delivery_window=row["delivery_window"],
        created_at=row["created_at"],
        lines=tuple(lines),
    )


_ORDER_COLUMNS = (
    "id, buyer_id, seller_id, status, items_subtotal, delivery_charge, "
    "destination_postal_code, destination_address, delivery_window, created_at"
)


def _is_uuid(value: Optional[str]) -> bool:
    # Ids are UUID columns; anything else cannot match a row.
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


class PostgresOrderStore(OrderStore):
    def __init__(self, url: str = DATABASE_URL):
        self.url = url

    def get_item(self, item_id: str) -> Optional[ListedItem]:
        if not _is_uuid(item_id):
            return None
        with get_conn(self.url) as conn:
            row = conn.execute(
                "SELECT id, seller_id, unit_price, available_quantity FROM items WHERE id = %s",
                (item_id,),
            ).fetchone()
        if not row:
            return None
        return ListedItem(
            id=str(row["id"]),
            seller_id=str(row["seller_id"]),
            unit_price=row["unit_price"],
            available_quantity=row["available_quantity"],
        )

    def get_seller_postal_code(self, seller_id: str) -> Optional[str]:
        if not _is_uuid(seller_id):
            return None
        try:
            with get_conn(self.url) as conn:
                row = conn.execute(
                    "SELECT postal_code FROM users WHERE id = %s AND role = 'SELLER'",
                    (seller_id,),
                ).fetchone()
        except psycopg.Error as e:
            raise PersistenceError(seller_id, reason=str(e)) from e
        return row["postal_code"] if row else None

    def create_order(self, new_order: NewOrder) -> Order:
        try:
            with get_conn(self.url) as conn:
                row = conn.execute(
                    "INSERT INTO orders(buyer_id, seller_id, status, items_subtotal, delivery_charge, "
                    "destination_postal_code, destination_address, delivery_window) "
                    f"VALUES (%s, %s, %s, %s, %s, %s, %s, %s) RETURNING {_ORDER_COLUMNS}",
                    (
                        new_order.buyer_id,
                        new_order.seller_id,
                        OrderStatus.PLACED.value,
                        new_order.items_subtotal,
                        new_order.delivery_charge,
                        new_order.destination_postal_code,
                        new_order.destination_address,
                        new_order.requested_delivery_window,
                    ),
                ).fetchone()

                with conn.cursor() as cur:
                    cur.executemany(
                        "INSERT INTO order_items(order_id, item_id, quantity, unit_price) "
                        "VALUES (%s, %s, %s, %s)",
                        [
                            (row["id"], line.item_id, line.quantity, line.unit_price_at_purchase)
                            for line in new_order.lines
                        ],
                    )
        except psycopg.Error as e:
            logger.error("Order transaction rolled back", seller_id=new_order.seller_id, error=str(e))
            raise PersistenceError(new_order.seller_id, reason=str(e)) from e

        order_id = str(row["id"])
        lines = [
            OrderLine(
                order_id=order_id,
                item_id=line.item_id,
                quantity=line.quantity,
                unit_price_at_purchase=line.unit_price_at_purchase,
            )
            for line in new_order.lines
        ]
        return _order_from_row(row, lines)

    def _lines_for(self, conn, order_ids: list) -> dict[str, list[OrderLine]]:
        by_order: dict[str, list[OrderLine]] = {str(oid): [] for oid in order_ids}
        if not order_ids:
            return by_order
        rows = conn.execute(
            "SELECT order_id, item_id, quantity, unit_price FROM order_items "
            "WHERE order_id = ANY(%s) ORDER BY id",
            (order_ids,),
        ).fetchall()
        for r in rows:
            by_order[str(r["order_id"])].append(_line_from_row(r))
        return by_order

    def get_order(self, order_id: str) -> Order:
        if not _is_uuid(order_id):
            raise OrderNotFound(order_id)
        with get_conn(self.url) as conn:
            row = conn.execute(
                f"SELECT {_ORDER_COLUMNS} FROM orders WHERE id = %s",
                (order_id,),
            ).fetchone()
            if not row:
                raise OrderNotFound(order_id)
            lines = self._lines_for(conn, [row["id"]])
        return _order_from_row(row, lines[str(row["id"])])

    def list_orders(self, buyer_id: Optional[str] = None, seller_id: Optional[str] = None) -> list[Order]:
        if seller_id:
            where, param = "seller_id = %s", seller_id
        else:
            where, param = "buyer_id = %s", buyer_id
        if not _is_uuid(param):
            return []

        with get_conn(self.url) as conn:
            rows = conn.execute(
                f"SELECT {_ORDER_COLUMNS} FROM orders WHERE {where} ORDER BY created_at DESC",
                (param,),
            ).fetchall()
            lines = self._lines_for(conn, [r["id"] for r in rows])
        return [_order_from_row(r, lines[str(r["id"])]) for r in rows]

    def update_status(self, order_id: str, status: OrderStatus) -> Order:
        if not _is_uuid(order_id):
            raise OrderNotFound(order_id)
        with get_conn(self.url) as conn:
            row = conn.execute(
                "UPDATE orders SET status = %s, updated_at = NOW() WHERE id = %s "
                f"RETURNING {_ORDER_COLUMNS}",
                (status.value, order_id),
            ).fetchone()
            if not row:
                raise OrderNotFound(order_id)
            lines = self._lines_for(conn, [row["id"]])
        return _order_from_row(row, lines[str(row["id"])])
