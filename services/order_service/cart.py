# CREATE FILE: services/order_service/cart.py

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from utils.geo import Coordinate
from utils.logging import get_logger

logger = get_logger("order_service.cart")


@dataclass(frozen=True)
class CartLineItem:
    product_id: str
    unit_price: float
    quantity: int
    seller_id: str
    name: str = ""
    unit: str = "pc"
    minimum_order_quantity: int = 1
    stock: Optional[int] = None
    farmer_location: Optional[Coordinate] = None
    requires_cold_chain: bool = False
    category: str = ""
    seller_name: str = ""
    notes: str = ""

    @property
    def line_total(self) -> Decimal:
        return Decimal(str(self.unit_price)) * self.quantity

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "CartLineItem":
        """Normalize a cart record, resolving legacy field names once"""
        location = raw.get("farmer_location")
        if location is None and isinstance(raw.get("farmer"), Mapping):
            location = raw["farmer"].get("location")
        if isinstance(location, Mapping) and location.get("lat") is not None:
            location = Coordinate(float(location["lat"]), float(location["lng"]))
        elif not isinstance(location, Coordinate):
            location = None

        tags = raw.get("tags") or []
        requires_cold_chain = bool(
            raw.get("requires_cold_chain")
            or raw.get("cold_chain")
            or "Cold Chain" in tags
            or raw.get("category") == "cold-chain"
        )

        moq = raw.get("minimum_order_quantity")
        if moq is None or int(moq) < 1:
            if moq is not None:
                logger.warning("Invalid minimum order quantity, defaulting to 1",
                               product_id=raw.get("product_id"), minimum_order_quantity=moq)
            moq = 1

        stock = raw.get("stock")
        return cls(
            product_id=str(raw.get("product_id") or raw.get("id") or "unknown-product"),
            unit_price=float(raw.get("unit_price", raw.get("price", 0))),
            quantity=int(raw.get("quantity", 1)),
            seller_id=str(raw.get("seller_id") or "unknown"),
            name=raw.get("name") or "Unknown Product",
            unit=raw.get("unit") or "pc",
            minimum_order_quantity=int(moq),
            stock=int(stock) if stock is not None else None,
            farmer_location=location,
            requires_cold_chain=requires_cold_chain,
            category=raw.get("category") or "",
            seller_name=raw.get("seller_name") or raw.get("farm_name") or "",
            notes=raw.get("notes") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "unit_price": self.unit_price,
            "quantity": self.quantity,
            "unit": self.unit,
            "minimum_order_quantity": self.minimum_order_quantity,
            "seller_id": self.seller_id,
            "requires_cold_chain": self.requires_cold_chain,
            "category": self.category,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class LineValidation:
    product_id: str
    is_valid: bool
    message: str = ""


@dataclass(frozen=True)
class CartValidation:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


def validate_line(item: CartLineItem) -> LineValidation:
    """Check quantity against the minimum order quantity and known stock"""
    problems = []
    moq = item.minimum_order_quantity or 1

    if item.quantity < moq:
        problems.append(
            f"Minimum order quantity for {item.name} is {moq} {item.unit}. "
            f"Current quantity: {item.quantity}"
        )
    if item.stock is not None and item.quantity > item.stock:
        problems.append(
            f"Only {item.stock} {item.unit} of {item.name} in stock. "
            f"Current quantity: {item.quantity}"
        )

    if problems:
        return LineValidation(item.product_id, False, " ".join(problems))
    return LineValidation(item.product_id, True)


def validate_cart(items: List[CartLineItem]) -> CartValidation:
    """Validate every line and report all failures at once"""
    errors = [result.message for result in map(validate_line, items) if not result.is_valid]
    return CartValidation(is_valid=not errors, errors=errors)


def items_total(items: List[CartLineItem]) -> Decimal:
    return sum((item.line_total for item in items), Decimal('0'))


def requires_cold_chain(items: List[CartLineItem]) -> bool:
    return any(item.requires_cold_chain for item in items)


def group_by_seller(items: List[CartLineItem]) -> List[Dict[str, Any]]:
    """Split a cart into per-seller sub-orders, preserving first-seen order"""
    groups: Dict[str, Dict[str, Any]] = {}
    for item in items:
        group = groups.setdefault(item.seller_id, {
            "seller_id": item.seller_id,
            "seller_name": item.seller_name,
            "items": [],
            "subtotal": Decimal('0'),
        })
        group["items"].append(item.to_dict())
        group["subtotal"] += item.line_total

    return [{**g, "subtotal": float(g["subtotal"])} for g in groups.values()]
