# CREATE FILE: services/matching_service/matching.py

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Mapping, Optional

from utils.config import load_config
from utils.geo import Coordinate, distance_km
from utils.logging import get_logger

logger = get_logger("matching_service")

# Priority order also breaks ties when picking the match reason
COMPONENTS = ("proximity", "price", "demand", "rating")

MATCH_REASONS = {
    "proximity": "Near your location",
    "price": "Great value",
    "demand": "Popular choice",
    "rating": "Highly rated",
}


@dataclass(frozen=True)
class ProductSignals:
    """Normalized view of a catalog product for scoring"""
    product_id: str
    category: str
    price: float
    stock: int
    sold: int
    rating: float
    farmer_location: Optional[Coordinate]


@dataclass(frozen=True)
class SmartMatchScore:
    proximity_score: float
    price_score: float
    demand_score: float
    rating_score: float
    composite_score: float
    match_reason: str
    is_smart_match: bool
    distance_km: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _first(raw: Mapping[str, Any], *keys, default=None):
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return default


def _coordinate(value: Any) -> Optional[Coordinate]:
    if isinstance(value, Coordinate):
        return value if value.is_valid() else None
    if not isinstance(value, Mapping):
        return None
    lat, lng = value.get("lat"), value.get("lng")
    if lat is None or lng is None:
        return None
    try:
        point = Coordinate(float(lat), float(lng))
    except (TypeError, ValueError):
        return None
    return point if point.is_valid() else None


def normalize_product(raw: Mapping[str, Any]) -> ProductSignals:
    """Build ProductSignals from a catalog record.

    All alternate field names are resolved here; out-of-range values are
    clamped and logged so upstream data problems stay visible.
    """
    product_id = str(_first(raw, "product_id", "id", default="unknown"))

    farmer = raw.get("farmer") if isinstance(raw.get("farmer"), Mapping) else {}
    location = _coordinate(_first(raw, "farmer_location", "farmerLocation",
                                  default=farmer.get("location")))

    price = float(_first(raw, "price", "unit_price", "unitPrice", default=0))
    stock = int(_first(raw, "stock", default=0))
    sold = int(_first(raw, "sold", "sold_count", "soldCount", default=0))
    rating = float(_first(raw, "rating", default=0))

    if price < 0:
        logger.warning("Negative product price clamped to 0", product_id=product_id, price=price)
        price = 0.0
    if stock < 0:
        logger.warning("Negative stock clamped to 0", product_id=product_id, stock=stock)
        stock = 0
    if sold < 0:
        logger.warning("Negative sold count clamped to 0", product_id=product_id, sold=sold)
        sold = 0
    if not 0 <= rating <= 5:
        logger.warning("Rating outside 0-5 clamped", product_id=product_id, rating=rating)
        rating = min(5.0, max(0.0, rating))

    return ProductSignals(
        product_id=product_id,
        category=str(raw.get("category") or ""),
        price=price,
        stock=stock,
        sold=sold,
        rating=rating,
        farmer_location=location,
    )


def category_averages(products: List[Mapping[str, Any]]) -> Dict[str, float]:
    """Mean price of active, positively priced products per category"""
    totals: Dict[str, List[float]] = {}
    for raw in products:
        if raw.get("status", "active") != "active":
            continue
        signals = normalize_product(raw)
        if signals.price > 0 and signals.category:
            totals.setdefault(signals.category, []).append(signals.price)
    return {category: sum(prices) / len(prices) for category, prices in totals.items()}


class MatchingEngine:
    """Smart match scoring for marketplace listings.

    The composite is a weighted sum of four [0, 1] signals. The match reason
    is simply the largest component (ties go to the earlier component in
    proximity, price, demand, rating order); it is an explainable label, not
    a statistical attribution.
    """

    def __init__(self, config: Dict[str, Any] = None):
        self.config = config if config is not None else load_config("matching")
        self.weights = {name: float(self.config["weights"][name]) for name in COMPONENTS}
        self.max_distance_km = float(self.config.get("max_distance_km", 50.0))
        self.threshold = float(self.config.get("smart_match_threshold", 0.6))
        self.neutral_proximity = float(self.config.get("neutral_proximity", 0.5))

        if any(w < 0 for w in self.weights.values()):
            raise ValueError("Smart match weights must be non-negative")
        if abs(sum(self.weights.values()) - 1.0) > 1e-9:
            raise ValueError(f"Smart match weights must sum to 1.0, got {sum(self.weights.values())}")
        if self.max_distance_km <= 0:
            raise ValueError("max_distance_km must be positive")

    def calculate_proximity_score(self, distance: Optional[float]) -> float:
        """Score based on proximity (closer is better); 0 when distance is unknown"""
        if distance is None or distance > self.max_distance_km:
            return 0.0
        return max(0.0, 1.0 - distance / self.max_distance_km)

    def calculate_price_score(self, price: float, category_average: Optional[float]) -> float:
        """Mild preference for prices below the category average"""
        if not category_average:
            return 0.5

        ratio = price / category_average
        if ratio < 0.7:
            return 0.7
        if ratio > 1.3:
            return 0.3
        return 1.0 - (ratio - 0.7) / 0.6

    def calculate_demand_score(self, sold: int, stock: int) -> float:
        """Sell-through proxy; nothing to recommend when stock is exhausted"""
        if stock <= 0:
            return 0.0
        return min(1.0, 2.0 * sold / (sold + stock))

    def calculate_rating_score(self, rating: float) -> float:
        return rating / 5.0

    def composite(self, scores: Mapping[str, float]) -> float:
        return sum(scores[name] * self.weights[name] for name in COMPONENTS)

    @staticmethod
    def match_reason(scores: Mapping[str, float]) -> str:
        best = COMPONENTS[0]
        for name in COMPONENTS[1:]:
            if scores[name] > scores[best]:
                best = name
        return MATCH_REASONS[best]

    def score(self, product: Mapping[str, Any], buyer_location: Optional[Coordinate],
              category_average: Optional[float]) -> SmartMatchScore:
        signals = product if isinstance(product, ProductSignals) else normalize_product(product)

        distance = None
        if buyer_location is None:
            proximity = self.neutral_proximity
        else:
            if signals.farmer_location is not None:
                distance = distance_km(buyer_location, signals.farmer_location)
            proximity = self.calculate_proximity_score(distance)

        scores = {
            "proximity": proximity,
            "price": self.calculate_price_score(signals.price, category_average),
            "demand": self.calculate_demand_score(signals.sold, signals.stock),
            "rating": self.calculate_rating_score(signals.rating),
        }
        composite = self.composite(scores)

        return SmartMatchScore(
            proximity_score=scores["proximity"],
            price_score=scores["price"],
            demand_score=scores["demand"],
            rating_score=scores["rating"],
            composite_score=composite,
            match_reason=self.match_reason(scores),
            is_smart_match=composite > self.threshold,
            distance_km=round(distance, 1) if distance is not None else None,
        )

    def rank_products(self, products: List[Mapping[str, Any]],
                      buyer_location: Optional[Coordinate],
                      averages: Dict[str, float] = None) -> List[Dict[str, Any]]:
        """Score every product and sort by composite score, highest first.

        Returns copies of the product records with a ``smart_match`` entry;
        products with equal scores keep their input order.
        """
        if averages is None:
            averages = category_averages(products)

        ranked = []
        for raw in products:
            signals = normalize_product(raw)
            match = self.score(signals, buyer_location, averages.get(signals.category))
            ranked.append({**raw, "smart_match": match.to_dict()})

        ranked.sort(key=lambda p: p["smart_match"]["composite_score"], reverse=True)
        return ranked
