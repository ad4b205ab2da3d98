# CREATE FILE: services/pricing_service/delivery.py

from dataclasses import dataclass, replace
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Dict, Any, List, Optional

from utils.config import load_config
from utils.geo import Coordinate, distance_km
from utils.logging import get_logger

logger = get_logger("pricing_service.delivery")


class DeliveryType(str, Enum):
    SMART = "smart"
    PRIORITY = "priority"
    STANDARD = "standard"
    SAVER = "saver"
    COLD_CHAIN = "cold-chain"


class FulfillmentMethod(str, Enum):
    DELIVERY = "delivery"
    PICKUP = "pickup"


@dataclass(frozen=True)
class DeliveryOption:
    id: str
    name: str
    type: DeliveryType
    base_price: Decimal
    duration_label: str
    requires_cold_chain: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "base_price": float(self.base_price),
            "duration_label": self.duration_label,
            "requires_cold_chain": self.requires_cold_chain,
        }


@dataclass(frozen=True)
class SmartDeliveryInfo:
    distance_km: float
    delivery_fee: Decimal
    eta_minutes: int


class DeliveryCalculator:
    """Distance-linear delivery fees and ETAs.

    ``fee = base_fee + per_km_fee * distance`` per vehicle class, plus a single
    fixed coefficient set for the cart's smart delivery option. Distances are
    assumed non-negative.
    """

    def __init__(self, config: Dict[str, Any] = None):
        self.config = config if config is not None else load_config("delivery")
        self.vehicles = {
            name: (Decimal(str(rates["base_fee"])), Decimal(str(rates["per_km_fee"])))
            for name, rates in self.config["vehicles"].items()
        }
        smart = self.config["smart"]
        self.smart_base_fee = Decimal(str(smart["base_fee"]))
        self.smart_per_km_fee = Decimal(str(smart["per_km_fee"]))
        self.smart_base_minutes = Decimal(str(smart["base_minutes"]))
        self.smart_per_km_minutes = Decimal(str(smart["per_km_minutes"]))
        self.options = [self._parse_option(o) for o in self.config["options"]]

    @staticmethod
    def _parse_option(raw: Dict[str, Any]) -> DeliveryOption:
        return DeliveryOption(
            id=raw["id"],
            name=raw["name"],
            type=DeliveryType(raw["type"]),
            base_price=Decimal(str(raw["base_price"])),
            duration_label=raw["duration_label"],
            requires_cold_chain=bool(raw.get("requires_cold_chain", False)),
        )

    def delivery_fee(self, distance: float, vehicle: str = None) -> Decimal:
        """Delivery fee for a distance; the smart coefficients when no vehicle is given"""
        d = Decimal(str(distance))
        if vehicle is None:
            return self.smart_base_fee + self.smart_per_km_fee * d
        if vehicle not in self.vehicles:
            raise ValueError(f"Unknown vehicle class: {vehicle}")
        base_fee, per_km_fee = self.vehicles[vehicle]
        return base_fee + per_km_fee * d

    def eta_minutes(self, distance: float) -> int:
        minutes = self.smart_base_minutes + self.smart_per_km_minutes * Decimal(str(distance))
        return int(minutes.quantize(Decimal('1'), rounding=ROUND_HALF_UP))

    @staticmethod
    def estimate_time_label(distance: float) -> str:
        if distance <= 2:
            return "15-25 min"
        if distance <= 5:
            return "25-40 min"
        if distance <= 10:
            return "40-60 min"
        return "1-2 hours"

    def quote_shipping(self, distance: float, vehicle: str = "motorcycle") -> Dict[str, Any]:
        """Shipping quote for a vehicle class, rounded for display"""
        base_fee, per_km_fee = self.vehicles.get(vehicle, (None, None))
        if base_fee is None:
            raise ValueError(f"Unknown vehicle class: {vehicle}")
        total = self.delivery_fee(distance, vehicle)

        return {
            "distance_km": distance,
            "vehicle": vehicle,
            "base_rate": float(base_fee),
            "rate_per_km": float(per_km_fee),
            "estimated_time": self.estimate_time_label(distance),
            "total": float(total.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)),
        }

    def smart_delivery_info(self, buyer: Coordinate, farmer: Coordinate) -> SmartDeliveryInfo:
        distance = distance_km(buyer, farmer)
        fee = self.delivery_fee(distance)
        return SmartDeliveryInfo(
            distance_km=round(distance, 1),
            delivery_fee=fee.quantize(Decimal('1'), rounding=ROUND_HALF_UP),
            eta_minutes=self.eta_minutes(distance),
        )

    def available_options(self, requires_cold_chain: bool,
                          smart_info: Optional[SmartDeliveryInfo] = None) -> List[DeliveryOption]:
        """Delivery options offered for a cart.

        A cart with any cold-chain line gets exactly the cold-chain option.
        Otherwise every option except cold-chain is offered. The smart option
        is priced from ``smart_info`` when the distance is known and at the
        smart base fee when it is not.
        """
        if requires_cold_chain:
            return [o for o in self.options if o.type == DeliveryType.COLD_CHAIN][:1]

        options = []
        for option in self.options:
            if option.type == DeliveryType.COLD_CHAIN:
                continue
            if option.type == DeliveryType.SMART:
                if smart_info is not None:
                    option = replace(
                        option,
                        base_price=smart_info.delivery_fee,
                        duration_label=f"{smart_info.eta_minutes} min",
                    )
                else:
                    option = replace(option, base_price=self.smart_base_fee)
            options.append(option)
        return options

    def select_option(self, options: List[DeliveryOption],
                      option_id: str = None) -> DeliveryOption:
        """Pick the buyer's option; the first option when none or an unavailable one is chosen"""
        if not options:
            raise ValueError("No delivery options available")

        if len(options) == 1 and options[0].type == DeliveryType.COLD_CHAIN:
            if option_id is not None and option_id != options[0].id:
                logger.info("Cold-chain delivery forced for cart",
                            requested_option=option_id)
            return options[0]

        for option in options:
            if option.id == option_id:
                return option

        if option_id is not None:
            logger.warning("Requested delivery option unavailable, using default",
                           requested_option=option_id, default_option=options[0].id)
        return options[0]
