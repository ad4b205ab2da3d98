# CREATE FILE: services/matching_service/app.py

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field
from typing import List, Dict, Any, Optional
import os

from utils.geo import Coordinate
from utils.logging import get_logger
from .matching import MatchingEngine, category_averages

app = FastAPI(title="Matching Service", version="1.0.0")
logger = get_logger("matching_service")

matching_engine = MatchingEngine()


class Location(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class Product(BaseModel):
    product_id: str
    category: str = ""
    price: float = Field(0, ge=0)
    stock: int = Field(0, ge=0)
    sold: int = Field(0, ge=0)
    rating: float = Field(0, ge=0, le=5)
    status: str = "active"
    farmer_location: Optional[Location] = None


class ScoreRequest(BaseModel):
    product: Product
    buyer_location: Optional[Location] = None
    category_average: Optional[float] = Field(None, ge=0)


class RankRequest(BaseModel):
    products: List[Product]
    buyer_location: Optional[Location] = None
    category_averages: Optional[Dict[str, float]] = None
    limit: Optional[int] = Field(None, ge=1)


class RankResponse(BaseModel):
    products: List[Dict[str, Any]]
    total_products: int
    smart_match_count: int


def _coordinate(location: Optional[Location]) -> Optional[Coordinate]:
    return Coordinate(location.lat, location.lng) if location else None


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"ok": True}


@app.post("/score")
async def score_product(request: ScoreRequest):
    """
    Smart match score for a single product.

    Combines proximity, price against the category average, demand and
    rating into one weighted score.
    """
    return matching_engine.score(
        request.product.model_dump(),
        _coordinate(request.buyer_location),
        request.category_average
    ).to_dict()


@app.post("/rank", response_model=RankResponse)
async def rank_products(request: RankRequest):
    """
    Rank catalog products for a buyer, best match first.

    Category averages are computed from the submitted products when not
    supplied.
    """
    try:
        products = [p.model_dump() for p in request.products]
        averages = request.category_averages or category_averages(products)
        ranked = matching_engine.rank_products(products, _coordinate(request.buyer_location), averages)

        if request.limit:
            ranked = ranked[:request.limit]

        return RankResponse(
            products=ranked,
            total_products=len(request.products),
            smart_match_count=sum(1 for p in ranked if p["smart_match"]["is_smart_match"])
        )

    except Exception as e:
        logger.error("Product ranking failed", error=e, product_count=len(request.products))
        raise HTTPException(status_code=500, detail=f"Product ranking failed: {str(e)}")


@app.get("/config")
async def get_matching_config():
    """Get current matching configuration"""
    return matching_engine.config


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "8003"))
    uvicorn.run(app, host="0.0.0.0", port=port)
