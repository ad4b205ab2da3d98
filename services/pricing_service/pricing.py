# CREATE FILE: services/pricing_service/pricing.py

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Any
import math

from utils.config import load_config

CENT = Decimal('0.01')


def to_money(amount: Decimal) -> float:
    """Round to centavos for display/storage"""
    return float(amount.quantize(CENT, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class PriceBreakdown:
    """Tax-compliant order price breakdown, kept at full precision.

    ``final_price = items_total + platform_fee + shipping_fee + vat_amount``
    holds exactly on the stored values; rounding happens in ``to_dict``.
    """
    items_total: Decimal
    platform_fee_rate: Decimal
    platform_fee: Decimal
    shipping_fee: Decimal
    vat_rate: Decimal
    vat_base: Decimal
    vat_amount: Decimal
    vat_on_items: Decimal
    vat_on_platform_fee: Decimal
    vat_on_shipping: Decimal
    final_price: Decimal
    currency: str
    vat_includes_shipping: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items_total": to_money(self.items_total),
            "platform_fee_rate": float(self.platform_fee_rate),
            "platform_fee": to_money(self.platform_fee),
            "shipping_fee": to_money(self.shipping_fee),
            "vat_rate": float(self.vat_rate),
            "vat_base": to_money(self.vat_base),
            "vat_amount": to_money(self.vat_amount),
            "vat_on_items": to_money(self.vat_on_items),
            "vat_on_platform_fee": to_money(self.vat_on_platform_fee),
            "vat_on_shipping": to_money(self.vat_on_shipping),
            "final_price": to_money(self.final_price),
            "currency": self.currency,
            "vat_includes_shipping": self.vat_includes_shipping,
        }


def _amount(name: str, value: float) -> Decimal:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        raise ValueError(f"{name} must be a number")
    amount = Decimal(str(value))
    if amount < 0:
        raise ValueError(f"{name} must be non-negative")
    return amount


class PricingEngine:
    """Deterministic price breakdown using exact decimal arithmetic"""

    def __init__(self, config: Dict[str, Any] = None):
        self.config = config if config is not None else load_config("pricing")
        self.default_platform_fee_rate = Decimal(str(self.config["platform_fee_rate"]))
        self.vat_rate = Decimal(str(self.config["vat_rate"]))
        self.currency = self.config.get("currency", "PHP")
        self.vat_includes_shipping = bool(self.config.get("vat_includes_shipping", False))

        if not (0 <= self.default_platform_fee_rate <= 1):
            raise ValueError("platform_fee_rate must be between 0 and 1")
        if not (0 <= self.vat_rate <= 1):
            raise ValueError("vat_rate must be between 0 and 1")

    def compute_breakdown(self, items_total: float, platform_fee_rate: float = None,
                          shipping_fee: float = 0) -> PriceBreakdown:
        """Compose items, platform fee, shipping and VAT into one total.

        Steps run in a fixed order: platform fee on the items total, VAT base
        (items + platform fee, plus shipping only when the policy says so),
        VAT, then the final sum.
        """
        items = _amount("items_total", items_total)
        shipping = _amount("shipping_fee", shipping_fee)
        if platform_fee_rate is None:
            rate = self.default_platform_fee_rate
        else:
            rate = _amount("platform_fee_rate", platform_fee_rate)
            if rate > 1:
                raise ValueError("platform_fee_rate must be between 0 and 1")

        platform_fee = items * rate
        vat_base = items + platform_fee
        if self.vat_includes_shipping:
            vat_base += shipping
        vat_amount = vat_base * self.vat_rate
        final_price = items + platform_fee + shipping + vat_amount

        return PriceBreakdown(
            items_total=items,
            platform_fee_rate=rate,
            platform_fee=platform_fee,
            shipping_fee=shipping,
            vat_rate=self.vat_rate,
            vat_base=vat_base,
            vat_amount=vat_amount,
            vat_on_items=items * self.vat_rate,
            vat_on_platform_fee=platform_fee * self.vat_rate,
            vat_on_shipping=shipping * self.vat_rate if self.vat_includes_shipping else Decimal('0'),
            final_price=final_price,
            currency=self.currency,
            vat_includes_shipping=self.vat_includes_shipping,
        )

    def check_vat_compliance(self, items_total: float, platform_fee: float,
                             vat_amount: float, shipping_fee: float = 0) -> Dict[str, Any]:
        """Check a stated VAT amount against the configured VAT base.

        The base is items + platform fee, plus shipping when
        ``vat_includes_shipping`` is set.
        """
        taxable = Decimal(str(items_total)) + Decimal(str(platform_fee))
        if self.vat_includes_shipping:
            taxable += Decimal(str(shipping_fee))
        expected_vat = taxable * self.vat_rate
        is_compliant = abs(Decimal(str(vat_amount)) - expected_vat) < CENT

        if is_compliant:
            reason = ("VAT is applied to product and platform fee with shipping included"
                      if self.vat_includes_shipping
                      else "VAT is applied to product and platform fee only")
        else:
            reason = (f"VAT should be ₱{to_money(expected_vat):.2f} "
                      f"({self.vat_rate * 100:.0f}% of ₱{to_money(taxable):.2f}), "
                      f"not ₱{float(vat_amount):.2f}")

        return {
            "is_compliant": is_compliant,
            "expected_vat": to_money(expected_vat),
            "reason": reason,
        }


def format_breakdown(breakdown: PriceBreakdown) -> str:
    """Itemized receipt text for a breakdown"""
    fee_pct = breakdown.platform_fee_rate * 100
    vat_pct = breakdown.vat_rate * 100
    shipping_note = "" if breakdown.vat_includes_shipping else " (VAT-exempt)"

    lines = [
        f"Product Price: ₱{to_money(breakdown.items_total):.2f}",
        f"Platform Fee ({fee_pct.normalize():f}%): ₱{to_money(breakdown.platform_fee):.2f}",
        f"Shipping Fee: ₱{to_money(breakdown.shipping_fee):.2f}{shipping_note}",
        "VAT Breakdown:",
        f"  - On Product: ₱{to_money(breakdown.vat_on_items):.2f}",
        f"  - On Platform Fee: ₱{to_money(breakdown.vat_on_platform_fee):.2f}",
    ]
    if breakdown.vat_includes_shipping:
        lines.append(f"  - On Shipping: ₱{to_money(breakdown.vat_on_shipping):.2f}")
    lines.extend([
        f"Total VAT ({vat_pct.normalize():f}%): ₱{to_money(breakdown.vat_amount):.2f}",
        f"Grand Total: ₱{to_money(breakdown.final_price):.2f}",
    ])
    return "\n".join(lines)
