# CREATE FILE: services/order_service/app.py

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field
from typing import Dict, Any, Optional, List
import os
import uuid

from services.pricing_service.delivery import FulfillmentMethod
from utils.geo import Coordinate
from utils.logging import get_logger
from .cart import CartLineItem, validate_cart, validate_line
from .order_number import OrderNumberAllocator
from .payment import MockPaymentGateway, PayMongoGateway
from .pipeline import (
    CartValidationError, OrderPlacementError, OrderPlacementPipeline,
    PaymentFailedError, PlaceOrderRequest, PlacementStatus
)
from .store import OrderStore

app = FastAPI(title="Order Service", version="1.0.0")
logger = get_logger("order_service")


class Location(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class CartItem(BaseModel):
    product_id: str
    name: str = ""
    unit_price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    unit: str = "pc"
    minimum_order_quantity: int = Field(1, ge=1)
    stock: Optional[int] = Field(None, ge=0)
    seller_id: str
    seller_name: str = ""
    farmer_location: Optional[Location] = None
    requires_cold_chain: bool = False
    category: str = ""
    notes: str = ""


class CartRequest(BaseModel):
    items: List[CartItem]


class OrderRequest(BaseModel):
    buyer_id: str
    items: List[CartItem]
    fulfillment: FulfillmentMethod = FulfillmentMethod.DELIVERY
    delivery_option_id: Optional[str] = None
    payment_method: str = "cash"
    buyer_location: Optional[Location] = None
    buyer_contact: Dict[str, Any] = Field(default_factory=dict)


def _build_gateway():
    if os.getenv("PAYMENT_GATEWAY", "mock").lower() == "paymongo":
        return PayMongoGateway()
    return MockPaymentGateway()


order_store = OrderStore()
allocator = OrderNumberAllocator(order_store)
pipeline = OrderPlacementPipeline(order_store, _build_gateway(), allocator=allocator)


def _line_items(items: List[CartItem]) -> List[CartLineItem]:
    return [CartLineItem.from_dict(item.model_dump()) for item in items]


def _place_request(request: OrderRequest) -> PlaceOrderRequest:
    location = request.buyer_location
    return PlaceOrderRequest(
        buyer_id=request.buyer_id,
        items=_line_items(request.items),
        fulfillment=request.fulfillment,
        delivery_option_id=request.delivery_option_id,
        payment_method=request.payment_method,
        buyer_location=Coordinate(location.lat, location.lng) if location else None,
        buyer_contact=request.buyer_contact,
    )


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"ok": True}


@app.post("/cart/validate")
async def validate_cart_endpoint(request: CartRequest):
    """
    Validate minimum order quantities and stock for every cart line.

    All violations are reported at once, one message per line.
    """
    items = _line_items(request.items)
    validation = validate_cart(items)
    return {
        "is_valid": validation.is_valid,
        "errors": validation.errors,
        "lines": [
            {"product_id": r.product_id, "is_valid": r.is_valid, "message": r.message}
            for r in map(validate_line, items)
        ]
    }


@app.post("/orders/quote")
async def quote_order(request: OrderRequest):
    """Price a cart (delivery option, fees, VAT) without placing the order"""
    try:
        return pipeline.quote(_place_request(request))
    except CartValidationError as e:
        raise HTTPException(status_code=409, detail={"errors": e.errors})


@app.post("/orders", status_code=201)
async def place_order(request: OrderRequest):
    """
    Place an order.

    Cart validation runs again here regardless of any earlier client-side
    check. A captured payment whose order could not be saved is refunded and
    reported with a distinct status.
    """
    request_id = str(uuid.uuid4())
    try:
        result = pipeline.place(_place_request(request), request_id=request_id)
    except CartValidationError as e:
        raise HTTPException(status_code=409, detail={"errors": e.errors})
    except PaymentFailedError as e:
        raise HTTPException(status_code=402, detail=f"Payment failed: {str(e)}")
    except OrderPlacementError as e:
        logger.error("Order placement failed", error=e, request_id=request_id)
        raise HTTPException(status_code=503, detail=str(e))

    if result.status != PlacementStatus.PLACED:
        raise HTTPException(status_code=500, detail={
            "status": result.status.value,
            "order_number": result.order_number,
            "payment_reference": result.payment_reference,
            "error": result.error,
        })

    return {
        "status": result.status.value,
        "order_number": result.order_number,
        "breakdown": result.breakdown,
        "delivery_option": result.delivery_option,
        "payment_reference": result.payment_reference,
        "redirect_url": result.redirect_url,
    }


@app.get("/orders/{order_number}")
async def get_order(order_number: str):
    record = order_store.get_order(order_number)
    if not record:
        raise HTTPException(status_code=404, detail="Order not found")

    return {
        "order_number": record.order_number,
        "buyer_id": record.buyer_id,
        "status": record.status.value,
        "created_at": record.created_at.isoformat(),
        "fulfillment": record.fulfillment,
        "items": record.items,
        "seller_orders": record.seller_orders,
        "breakdown": record.breakdown,
        "delivery_option": record.delivery_option,
        "payment_reference": record.payment_reference,
    }


@app.get("/compensations/pending")
async def pending_compensations():
    """Captured payments whose order write and refund both failed"""
    return {
        "count": len(pipeline.pending_compensations),
        "compensations": pipeline.pending_compensations
    }


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "8004"))
    uvicorn.run(app, host="0.0.0.0", port=port)
