"""
Exceptions raised by the checkout and order workflows.

Degraded geocoding is deliberately absent: it never surfaces as an error,
pricing falls back instead.
"""

from typing import Optional


class FarmDirectError(Exception):
    """Base exception for all marketplace order errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class CheckoutRejected(FarmDirectError):
    """Raised when a checkout request fails validation before any I/O."""

    def __init__(self, reason: str, field: Optional[str] = None):
        super().__init__(message=reason, details={"field": field})


class PersistenceError(FarmDirectError):
    """Raised when an order could not be committed for one seller."""

    def __init__(self, seller_id: str, reason: Optional[str] = None):
        message = f"Could not store order for seller '{seller_id}'"
        if reason:
            message += f": {reason}"
        super().__init__(message=message, details={"seller_id": seller_id, "reason": reason})


class OrderNotFound(FarmDirectError):
    def __init__(self, order_id: str):
        super().__init__(message=f"Order not found: {order_id}", details={"order_id": order_id})


class InvalidStatusTransition(FarmDirectError):
    """Raised when a status update would move an order backwards or sideways."""

    def __init__(self, current: str, requested: str):
        super().__init__(
            message=f"Cannot move order from {current} to {requested}",
            details={"current": current, "requested": requested},
        )
