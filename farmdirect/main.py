from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Optional

import structlog
from fastapi import Depends, FastAPI, Header, HTTPException, Request

from . import settings
from .checkout import OrderFanout
from .db import ping
from .domain import CartLine, OrderStatus
from .exceptions import CheckoutRejected, InvalidStatusTransition, OrderNotFound
from .fulfillment import advance_status
from .geo import build_resolver
from .log_config import configure_logging
from .models import (
    CheckoutRequest,
    CheckoutResponse,
    DistanceRequest,
    DistanceResponse,
    OrderList,
    OrderOut,
    SellerFailureOut,
    StatusUpdate,
)
from .pricing import PricingPolicy
from .store import OrderStore, PostgresOrderStore

configure_logging(settings.LOG_LEVEL)
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.resolver = build_resolver(
        settings.GEOCODER_BACKEND,
        settings.GEOCODER_URL,
        settings.GEOCODER_TIMEOUT_SECONDS,
    )
    logger.info("Geocoder ready", backend=settings.GEOCODER_BACKEND)
    yield
    await app.state.resolver.aclose()


app = FastAPI(title="Farm Direct Orders", version="0.1.0", lifespan=lifespan)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID", f"req-{id(request)}")
    structlog.contextvars.bind_contextvars(request_id=request_id)
    try:
        response = await call_next(request)
    finally:
        structlog.contextvars.clear_contextvars()
    response.headers["X-Request-ID"] = request_id
    return response


def get_store() -> OrderStore:
    return PostgresOrderStore(settings.DATABASE_URL)


def get_pricing(request: Request) -> PricingPolicy:
    return PricingPolicy(
        resolver=request.app.state.resolver,
        rate_per_km=settings.RATE_PER_KM,
        timeout_seconds=settings.GEOCODER_TIMEOUT_SECONDS,
        min_charge=settings.MIN_DELIVERY_CHARGE,
        default_charge=settings.DEFAULT_DELIVERY_CHARGE,
        default_distance_km=settings.DEFAULT_DISTANCE_KM,
    )


def get_fanout(
    store: OrderStore = Depends(get_store),
    pricing: PricingPolicy = Depends(get_pricing),
) -> OrderFanout:
    return OrderFanout(store, pricing, settings.DEFAULT_SELLER_POSTAL_CODE)


@app.get("/health")
def health():
    database_ok = ping(settings.DATABASE_URL)
    return {"ok": database_ok, "database": "connected" if database_ok else "disconnected"}


@app.post("/checkout", response_model=CheckoutResponse)
async def checkout(
    req: CheckoutRequest,
    buyer_id: Optional[str] = Header(None, alias="X-Buyer-Id"),
    fanout: OrderFanout = Depends(get_fanout),
):
    if not buyer_id:
        raise HTTPException(status_code=401, detail="Missing X-Buyer-Id header")

    lines = [CartLine(item_id=i.item_id, quantity=Decimal(str(i.quantity))) for i in req.items]

    try:
        result = await fanout.checkout(
            buyer_id=buyer_id,
            lines=lines,
            destination_postal_code=req.destination_postal_code,
            destination_address=req.destination_address,
            delivery_window=req.delivery_window,
        )
    except CheckoutRejected as e:
        status_code = 401 if e.details.get("field") == "buyer_id" else 400
        raise HTTPException(status_code=status_code, detail=e.message)

    return CheckoutResponse(
        orders=[OrderOut.from_order(o) for o in result.orders],
        failures=[SellerFailureOut(seller_id=f.seller_id, reason=f.reason) for f in result.failures],
    )


@app.post("/distance", response_model=DistanceResponse)
async def distance(req: DistanceRequest, pricing: PricingPolicy = Depends(get_pricing)):
    if not req.seller_postal_code or not req.destination_postal_code:
        raise HTTPException(status_code=400, detail="Both postal codes required")

    quote = await pricing.quote(req.seller_postal_code, req.destination_postal_code)
    return DistanceResponse(
        seller_postal_code=req.seller_postal_code,
        destination_postal_code=req.destination_postal_code,
        distance_km=round(quote.distance_km),
        delivery_charge=quote.charge_amount,
        resolved=quote.resolved,
        formula=f"Distance (km) x {pricing.rate_per_km}",
    )


@app.get("/orders", response_model=OrderList)
def list_orders(
    buyer_id: Optional[str] = Header(None, alias="X-Buyer-Id"),
    seller_id: Optional[str] = Header(None, alias="X-Seller-Id"),
    store: OrderStore = Depends(get_store),
):
    if not buyer_id and not seller_id:
        raise HTTPException(status_code=401, detail="Missing X-Buyer-Id or X-Seller-Id header")

    orders = store.list_orders(buyer_id=buyer_id, seller_id=seller_id)
    return OrderList(orders=[OrderOut.from_order(o) for o in orders])


@app.get("/orders/{order_id}", response_model=OrderOut)
def get_order(order_id: str, store: OrderStore = Depends(get_store)):
    try:
        return OrderOut.from_order(store.get_order(order_id))
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Order not found")


@app.patch("/orders/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: str,
    update: StatusUpdate,
    seller_id: Optional[str] = Header(None, alias="X-Seller-Id"),
    store: OrderStore = Depends(get_store),
):
    if not seller_id:
        raise HTTPException(status_code=401, detail="Missing X-Seller-Id header")

    try:
        order = advance_status(store, order_id, seller_id, OrderStatus(update.status))
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Order not found or unauthorized")
    except InvalidStatusTransition as e:
        raise HTTPException(status_code=409, detail=e.message)

    return OrderOut.from_order(order)
