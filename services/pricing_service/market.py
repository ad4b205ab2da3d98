# CREATE FILE: services/pricing_service/market.py

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Any, Optional

from services.order_service.store import StoreError
from utils.cache import TTLCache
from utils.config import load_config
from utils.logging import get_logger

QUALITIES = ("premium", "standard", "economy")


@dataclass(frozen=True)
class MarketBenchmark:
    category: str
    quality: str
    average_price: Decimal
    min_allowed: Decimal
    max_allowed: Decimal
    range_min: Decimal
    range_max: Decimal
    source: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "quality": self.quality,
            "average_price": float(self.average_price),
            "min_allowed": float(self.min_allowed),
            "max_allowed": float(self.max_allowed),
            "price_range": {"min": float(self.range_min), "max": float(self.range_max)},
            "source": self.source,
        }


@dataclass(frozen=True)
class PriceValidation:
    is_valid: bool
    reason: str
    suggestion: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "reason": self.reason,
            "suggestion": float(self.suggestion) if self.suggestion is not None else None,
        }


def _peso(amount: Decimal) -> Decimal:
    return amount.quantize(Decimal('1'), rounding=ROUND_HALF_UP)


class MarketPriceService:
    """Category benchmark prices used to keep seller-set prices coherent.

    Static benchmarks come from configuration. ``platform_average_price``
    uses the live mean of active listings, cached for
    ``average_cache_ttl_seconds``, and falls back to the static table when
    there are no listings or the catalog is unreachable.
    """

    def __init__(self, config: Dict[str, Any] = None, catalog=None, cache: TTLCache = None):
        self.config = config if config is not None else load_config("market")
        self.catalog = catalog
        self.cache = cache or TTLCache(default_ttl=self.config["average_cache_ttl_seconds"])
        self.logger = get_logger("pricing_service.market")

        band_low, band_high = self.config["validation_band"]
        self.band_low = Decimal(str(band_low))
        self.band_high = Decimal(str(band_high))

    def _benchmark_row(self, category: str) -> Dict[str, Any]:
        benchmarks = self.config["benchmarks"]
        if category in benchmarks:
            return benchmarks[category]
        return benchmarks[self.config["default_category"]]

    def benchmark_price(self, category: str, quality: str = "standard") -> MarketBenchmark:
        if quality not in QUALITIES:
            raise ValueError(f"quality must be one of {', '.join(QUALITIES)}")

        row = self._benchmark_row(category)
        multiplier = Decimal(str(self.config["quality_multipliers"][quality]))
        average = _peso(Decimal(str(row["standard"])) * multiplier)

        return MarketBenchmark(
            category=category,
            quality=quality,
            average_price=average,
            min_allowed=average * self.band_low,
            max_allowed=average * self.band_high,
            range_min=Decimal(str(row["min"])),
            range_max=Decimal(str(row["max"])),
            source="benchmark",
        )

    def platform_average_price(self, category: str) -> Decimal:
        """Mean price of active listings in a category, rounded to the peso"""
        cached = self.cache.get(f"avg:{category}")
        if cached is not None:
            return Decimal(str(cached))

        if self.catalog is None:
            return self.benchmark_price(category).average_price

        try:
            listings = self.catalog.query_products(category=category, status="active")
        except StoreError as e:
            self.logger.warning("Catalog unavailable, using static benchmark",
                                error=e, category=category)
            return self.benchmark_price(category).average_price

        prices = [Decimal(str(p["price"])) for p in listings if p.get("price")]
        prices = [p for p in prices if p > 0]
        self.logger.data_operation("query_active_prices", collection="products",
                                   record_count=len(prices), category=category)
        if not prices:
            return self.benchmark_price(category).average_price

        average = _peso(sum(prices) / len(prices))
        self.cache.set(f"avg:{category}", str(average))
        return average

    def validate_price(self, price: float, category: str,
                       quality: str = "standard") -> PriceValidation:
        """Advisory check that a seller price sits inside the benchmark band"""
        benchmark = self.benchmark_price(category, quality)
        amount = Decimal(str(price))

        if amount < benchmark.min_allowed:
            return PriceValidation(
                is_valid=False,
                suggestion=benchmark.min_allowed,
                reason=f"Price is below market average. Suggested: ₱{benchmark.min_allowed:.2f}",
            )
        if amount > benchmark.max_allowed:
            return PriceValidation(
                is_valid=False,
                suggestion=benchmark.max_allowed,
                reason=f"Price exceeds market average. Suggested: ₱{benchmark.max_allowed:.2f}",
            )
        return PriceValidation(is_valid=True, reason="Price is within market range")

    def reference_price(self, price: Optional[float], category: str) -> Decimal:
        """The seller's price when it validates, otherwise the benchmark average"""
        if price is not None and self.validate_price(price, category).is_valid:
            return Decimal(str(price))
        return self.benchmark_price(category).average_price

    def invalidate_averages(self, category: str = None):
        self.cache.invalidate(f"avg:{category}" if category else None)
