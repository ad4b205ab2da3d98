# CREATE FILE: services/order_service/pipeline.py

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from services.order_service.cart import (
    CartLineItem, group_by_seller, items_total, requires_cold_chain, validate_cart
)
from services.order_service.order_number import OrderNumberAllocator
from services.order_service.payment import PaymentGateway, PaymentResult
from services.order_service.store import OrderRecord, OrderStatus, OrderStore, StoreError
from services.pricing_service.delivery import (
    DeliveryCalculator, DeliveryOption, FulfillmentMethod
)
from services.pricing_service.pricing import PriceBreakdown, PricingEngine, to_money
from utils.geo import Coordinate
from utils.logging import get_logger, sanitize_pii

CASH_ON_DELIVERY = "cash"


class OrderPlacementError(Exception):
    """Order could not be placed; nothing was charged"""


class CartValidationError(OrderPlacementError):
    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


class PaymentFailedError(OrderPlacementError):
    pass


class PlacementStatus(str, Enum):
    PLACED = "placed"
    PAYMENT_CAPTURED_WRITE_FAILED = "payment_captured_write_failed"
    REFUNDED_AFTER_WRITE_FAILURE = "refunded_after_write_failure"


@dataclass
class PlaceOrderRequest:
    buyer_id: str
    items: List[CartLineItem]
    fulfillment: FulfillmentMethod = FulfillmentMethod.DELIVERY
    delivery_option_id: Optional[str] = None
    payment_method: str = CASH_ON_DELIVERY
    buyer_location: Optional[Coordinate] = None
    buyer_contact: Dict[str, Any] = field(default_factory=dict)


@dataclass
class OrderPlacementResult:
    status: PlacementStatus
    order_number: str
    breakdown: Dict[str, Any]
    delivery_option: Optional[Dict[str, Any]] = None
    payment_reference: Optional[str] = None
    redirect_url: Optional[str] = None
    error: Optional[str] = None


@dataclass
class _PlacementContext:
    request: PlaceOrderRequest
    request_id: Optional[str] = None
    delivery_option: Optional[DeliveryOption] = None
    breakdown: Optional[PriceBreakdown] = None
    order_number: Optional[str] = None
    payment_reference: Optional[str] = None
    redirect_url: Optional[str] = None
    record: Optional[OrderRecord] = None


class OrderPlacementPipeline:
    """Order placement as an ordered list of steps.

    validate_cart -> price_order -> allocate_number -> capture_payment ->
    write_order -> notify. A failure before payment raises
    ``OrderPlacementError``. A failed order write after a captured payment
    is returned as ``PAYMENT_CAPTURED_WRITE_FAILED`` and compensated with a
    refund; refunds that fail stay in ``pending_compensations``.
    """

    def __init__(self, store: OrderStore, gateway: PaymentGateway,
                 pricing: PricingEngine = None, delivery: DeliveryCalculator = None,
                 allocator: OrderNumberAllocator = None,
                 notifier: Callable[[OrderRecord], None] = None,
                 now: Callable[[], datetime] = None):
        self.store = store
        self.gateway = gateway
        self.pricing = pricing or PricingEngine()
        self.delivery = delivery or DeliveryCalculator()
        self.now = now or datetime.now
        self.allocator = allocator or OrderNumberAllocator(store, now=self.now)
        self.notifier = notifier
        self.pending_compensations: List[Dict[str, Any]] = []
        self.logger = get_logger("order_service.pipeline")

        self.steps = [
            ("validate_cart", self._validate_cart),
            ("price_order", self._price_order),
            ("allocate_number", self._allocate_number),
            ("capture_payment", self._capture_payment),
            ("write_order", self._write_order),
            ("notify", self._notify),
        ]

    def place(self, request: PlaceOrderRequest, request_id: str = None) -> OrderPlacementResult:
        ctx = _PlacementContext(request=request, request_id=request_id)

        for name, step in self.steps:
            try:
                with self.logger.operation_context(name, request_id):
                    step(ctx)
            except Exception as e:
                # Captured payments are always refunded or recorded
                if name == "write_order" and ctx.payment_reference:
                    return self._compensate_captured_payment(ctx, e)
                if isinstance(e, StoreError):
                    raise OrderPlacementError(f"Order store unavailable during {name}") from e
                raise

        self.logger.business_event("order_placed", request_id=request_id,
                                   buyer_id=request.buyer_id,
                                   amount=to_money(ctx.breakdown.final_price),
                                   order_number=ctx.order_number,
                                   payment_method=request.payment_method)
        return self._result(ctx, PlacementStatus.PLACED)

    def quote(self, request: PlaceOrderRequest) -> Dict[str, Any]:
        """Validate and price a cart without allocating, charging or writing"""
        ctx = _PlacementContext(request=request)
        self._validate_cart(ctx)
        self._price_order(ctx)
        return {
            "breakdown": ctx.breakdown.to_dict(),
            "delivery_option": ctx.delivery_option.to_dict() if ctx.delivery_option else None,
        }

    # Steps

    def _validate_cart(self, ctx: _PlacementContext):
        items = ctx.request.items
        if not items:
            raise CartValidationError(["Cart is empty"])

        validation = validate_cart(items)
        if not validation.is_valid:
            self.logger.info("Cart failed validation", request_id=ctx.request_id,
                             error_count=len(validation.errors))
            raise CartValidationError(validation.errors)

    def _price_order(self, ctx: _PlacementContext):
        request = ctx.request
        shipping_fee = Decimal('0')

        if request.fulfillment == FulfillmentMethod.DELIVERY:
            smart_info = None
            farmer_location = next(
                (i.farmer_location for i in request.items if i.farmer_location), None
            )
            if request.buyer_location is not None and farmer_location is not None:
                smart_info = self.delivery.smart_delivery_info(request.buyer_location,
                                                               farmer_location)

            options = self.delivery.available_options(requires_cold_chain(request.items),
                                                      smart_info)
            ctx.delivery_option = self.delivery.select_option(options,
                                                              request.delivery_option_id)
            shipping_fee = ctx.delivery_option.base_price

        ctx.breakdown = self.pricing.compute_breakdown(items_total(request.items),
                                                       shipping_fee=shipping_fee)

    def _allocate_number(self, ctx: _PlacementContext):
        ctx.order_number = self.allocator.allocate()

    def _capture_payment(self, ctx: _PlacementContext):
        request = ctx.request
        if request.payment_method == CASH_ON_DELIVERY:
            return

        result = self.gateway.capture(ctx.breakdown.final_price, ctx.breakdown.currency,
                                      ctx.order_number, request.payment_method)
        if not result.success:
            self.logger.warning("Payment capture failed", request_id=ctx.request_id,
                                order_number=ctx.order_number, reason=result.error)
            raise PaymentFailedError(result.error or "Payment failed")

        ctx.payment_reference = result.reference
        ctx.redirect_url = result.redirect_url
        self.logger.business_event("payment_captured", request_id=ctx.request_id,
                                   buyer_id=request.buyer_id,
                                   amount=to_money(ctx.breakdown.final_price),
                                   order_number=ctx.order_number,
                                   payment_reference=result.reference)

    def _write_order(self, ctx: _PlacementContext):
        request = ctx.request
        paid = ctx.payment_reference is not None

        ctx.record = OrderRecord(
            order_number=ctx.order_number,
            buyer_id=request.buyer_id,
            created_at=self.now(),
            status=OrderStatus.CONFIRMED if paid else OrderStatus.PENDING,
            fulfillment=request.fulfillment.value,
            items=[item.to_dict() for item in request.items],
            seller_orders=group_by_seller(request.items),
            breakdown=ctx.breakdown.to_dict(),
            delivery_option=ctx.delivery_option.to_dict() if ctx.delivery_option else None,
            payment_reference=ctx.payment_reference,
            metadata={
                "payment_method": request.payment_method,
                "buyer_contact": request.buyer_contact,
            },
        )
        self.store.save_order(ctx.record)
        self.logger.data_operation("insert_order", collection="orders", record_count=1,
                                   request_id=ctx.request_id,
                                   buyer_contact=sanitize_pii(request.buyer_contact))

    def _notify(self, ctx: _PlacementContext):
        if self.notifier is None:
            return
        try:
            self.notifier(ctx.record)
        except Exception as e:
            # Order is already committed; a lost notification must not undo it
            self.logger.error("Order notification failed", error=e,
                              request_id=ctx.request_id, order_number=ctx.order_number)

    # Compensation

    def _compensate_captured_payment(self, ctx: _PlacementContext,
                                     error: Exception) -> OrderPlacementResult:
        amount = ctx.breakdown.final_price
        self.logger.critical("Payment captured but order write failed", error=error,
                             request_id=ctx.request_id, order_number=ctx.order_number,
                             payment_reference=ctx.payment_reference,
                             amount=to_money(amount))

        try:
            refund = self.gateway.refund(ctx.payment_reference, amount,
                                         f"Order {ctx.order_number} could not be saved")
        except Exception as e:
            self.logger.error("Refund call raised", error=e, request_id=ctx.request_id,
                              payment_reference=ctx.payment_reference)
            refund = PaymentResult(success=False, reference=ctx.payment_reference,
                                   error=f"{type(e).__name__}: {e}")

        if refund.success:
            self.logger.business_event("refund_after_write_failure",
                                       request_id=ctx.request_id,
                                       buyer_id=ctx.request.buyer_id,
                                       amount=to_money(amount),
                                       order_number=ctx.order_number,
                                       refund_reference=refund.reference)
            return self._result(ctx, PlacementStatus.REFUNDED_AFTER_WRITE_FAILURE,
                                error=str(error))

        self.pending_compensations.append({
            "order_number": ctx.order_number,
            "buyer_id": ctx.request.buyer_id,
            "payment_reference": ctx.payment_reference,
            "amount": to_money(amount),
            "write_error": str(error),
            "refund_error": refund.error,
        })
        self.logger.critical("Refund failed, manual recovery required",
                             request_id=ctx.request_id, order_number=ctx.order_number,
                             payment_reference=ctx.payment_reference,
                             refund_error=refund.error)
        return self._result(ctx, PlacementStatus.PAYMENT_CAPTURED_WRITE_FAILED,
                            error=str(error))

    @staticmethod
    def _result(ctx: _PlacementContext, status: PlacementStatus,
                error: str = None) -> OrderPlacementResult:
        return OrderPlacementResult(
            status=status,
            order_number=ctx.order_number,
            breakdown=ctx.breakdown.to_dict(),
            delivery_option=ctx.delivery_option.to_dict() if ctx.delivery_option else None,
            payment_reference=ctx.payment_reference,
            redirect_url=ctx.redirect_url,
            error=error,
        )
