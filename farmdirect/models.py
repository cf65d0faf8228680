from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Literal, Optional

from .domain import DeliveryWindow, Order

OrderStatusName = Literal["PLACED", "ACCEPTED", "OUT_FOR_DELIVERY", "DELIVERED"]

class CartLineIn(BaseModel):
    item_id: str = Field(min_length=1)
    quantity: float = Field(gt=0)

class CheckoutRequest(BaseModel):
    items: List[CartLineIn] = Field(default_factory=list)
    destination_postal_code: str
    destination_address: str = Field(min_length=1)
    delivery_window: DeliveryWindow

class OrderLineOut(BaseModel):
    item_id: str
    quantity: float
    unit_price_at_purchase: float

class OrderOut(BaseModel):
    id: str
    buyer_id: str
    seller_id: str
    status: OrderStatusName
    items_subtotal: float
    delivery_charge: int
    destination_postal_code: str
    destination_address: str
    delivery_window: DeliveryWindow
    created_at: datetime
    items: List[OrderLineOut] = Field(default_factory=list)

    @classmethod
    def from_order(cls, order: Order) -> "OrderOut":
        return cls(
            id=order.id,
            buyer_id=order.buyer_id,
            seller_id=order.seller_id,
            status=order.status.value,
            items_subtotal=float(order.items_subtotal),
            delivery_charge=order.delivery_charge,
            destination_postal_code=order.destination_postal_code,
            destination_address=order.destination_address,
            delivery_window=order.requested_delivery_window,
            created_at=order.created_at,
            items=[
                OrderLineOut(
                    item_id=line.item_id,
                    quantity=float(line.quantity),
                    unit_price_at_purchase=float(line.unit_price_at_purchase),
                )
                for line in order.lines
            ],
        )

class SellerFailureOut(BaseModel):
    seller_id: str
    reason: str

class CheckoutResponse(BaseModel):
    orders: List[OrderOut]
    failures: List[SellerFailureOut] = Field(default_factory=list)

class OrderList(BaseModel):
    orders: List[OrderOut]

class StatusUpdate(BaseModel):
    status: OrderStatusName

class DistanceRequest(BaseModel):
    seller_postal_code: Optional[str] = None
    destination_postal_code: Optional[str] = None

class DistanceResponse(BaseModel):
    seller_postal_code: str
    destination_postal_code: str
    distance_km: int
    delivery_charge: int
    resolved: bool
    formula: str
