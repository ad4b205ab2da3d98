# CREATE FILE: services/pricing_service/app.py

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List, Literal
import os

from services.order_service.store import CatalogStore
from utils.geo import Coordinate
from utils.logging import get_logger
from .delivery import DeliveryCalculator
from .market import MarketPriceService
from .pricing import PricingEngine, format_breakdown

app = FastAPI(title="Pricing Service", version="1.0.0")
logger = get_logger("pricing_service")

pricing_engine = PricingEngine()
delivery_calculator = DeliveryCalculator()
catalog = CatalogStore()
market_service = MarketPriceService(catalog=catalog)

Quality = Literal["premium", "standard", "economy"]


class Location(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class BreakdownRequest(BaseModel):
    items_total: float = Field(..., ge=0, description="Sum of unit price x quantity")
    platform_fee_rate: Optional[float] = Field(None, ge=0, le=1)
    shipping_fee: float = Field(0, ge=0)


class ShippingRequest(BaseModel):
    distance_km: float = Field(..., ge=0)
    vehicle: Literal["motorcycle", "tricycle", "van"] = "motorcycle"


class DeliveryOptionsRequest(BaseModel):
    requires_cold_chain: bool = False
    buyer_location: Optional[Location] = None
    farmer_location: Optional[Location] = None
    selected_option_id: Optional[str] = None


class PriceValidationRequest(BaseModel):
    price: float = Field(..., ge=0)
    category: str
    quality: Quality = "standard"


class VatComplianceRequest(BaseModel):
    items_total: float = Field(..., ge=0)
    platform_fee: float = Field(..., ge=0)
    vat_amount: float = Field(..., ge=0)
    shipping_fee: float = Field(0, ge=0)


class DeliveryOptionsResponse(BaseModel):
    options: List[Dict[str, Any]]
    selected: Dict[str, Any]
    cold_chain_forced: bool
    smart_delivery: Optional[Dict[str, Any]] = None


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"ok": True}


@app.post("/breakdown")
async def calculate_breakdown(request: BreakdownRequest):
    """
    Calculate the tax-compliant price breakdown for an order.

    Platform fee is charged on the items total; VAT applies to items plus
    platform fee. Shipping is VAT-exempt unless configured otherwise.
    """
    try:
        breakdown = pricing_engine.compute_breakdown(
            items_total=request.items_total,
            platform_fee_rate=request.platform_fee_rate,
            shipping_fee=request.shipping_fee
        )
        return {**breakdown.to_dict(), "receipt": format_breakdown(breakdown)}

    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid input: {str(e)}")
    except Exception as e:
        logger.error("Breakdown calculation failed", error=e)
        raise HTTPException(status_code=500, detail=f"Pricing calculation failed: {str(e)}")


@app.post("/shipping/quote")
async def quote_shipping(request: ShippingRequest):
    """Distance-based shipping quote for a courier vehicle class"""
    return delivery_calculator.quote_shipping(request.distance_km, request.vehicle)


@app.post("/delivery/options", response_model=DeliveryOptionsResponse)
async def delivery_options(request: DeliveryOptionsRequest):
    """
    Delivery options available for a cart.

    Carts with cold-chain items only get the cold-chain option, auto-selected.
    The smart option is priced from the buyer-to-farmer distance when both
    locations are known.
    """
    smart_info = None
    if request.buyer_location and request.farmer_location:
        smart_info = delivery_calculator.smart_delivery_info(
            Coordinate(request.buyer_location.lat, request.buyer_location.lng),
            Coordinate(request.farmer_location.lat, request.farmer_location.lng)
        )

    options = delivery_calculator.available_options(request.requires_cold_chain, smart_info)
    selected = delivery_calculator.select_option(options, request.selected_option_id)

    return DeliveryOptionsResponse(
        options=[o.to_dict() for o in options],
        selected=selected.to_dict(),
        cold_chain_forced=request.requires_cold_chain,
        smart_delivery={
            "distance_km": smart_info.distance_km,
            "delivery_fee": float(smart_info.delivery_fee),
            "eta_minutes": smart_info.eta_minutes,
        } if smart_info else None
    )


@app.get("/benchmark/{category}")
async def benchmark_price(category: str, quality: Quality = "standard"):
    """Static benchmark price and allowed band for a category"""
    return market_service.benchmark_price(category, quality).to_dict()


@app.get("/platform-average/{category}")
async def platform_average(category: str):
    """Live average of active listings, falling back to the static benchmark"""
    return {"category": category, "average_price": float(market_service.platform_average_price(category))}


@app.post("/validate-price")
async def validate_price(request: PriceValidationRequest):
    """Advisory check of a seller price against the category benchmark"""
    return market_service.validate_price(request.price, request.category, request.quality).to_dict()


@app.post("/vat-compliance")
async def vat_compliance(request: VatComplianceRequest):
    return pricing_engine.check_vat_compliance(
        request.items_total, request.platform_fee, request.vat_amount,
        request.shipping_fee
    )


@app.get("/config")
async def get_pricing_config():
    """Get current pricing configuration"""
    return {
        "pricing": pricing_engine.config,
        "delivery": delivery_calculator.config,
        "market": market_service.config,
    }


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "8001"))
    uvicorn.run(app, host="0.0.0.0", port=port)
