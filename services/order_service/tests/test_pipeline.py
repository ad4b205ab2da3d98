# CREATE FILE: services/order_service/tests/test_pipeline.py

import itertools
import pytest
from datetime import datetime
from services.order_service.cart import CartLineItem
from services.order_service.order_number import OrderNumberAllocator
from services.order_service.payment import MockPaymentGateway
from services.order_service.pipeline import (
    CartValidationError, OrderPlacementError, OrderPlacementPipeline,
    PaymentFailedError, PlaceOrderRequest, PlacementStatus
)
from services.order_service.store import OrderStatus, OrderStore, StoreError
from services.pricing_service.delivery import FulfillmentMethod
from utils.geo import Coordinate

ORDER_TIME = datetime(2024, 3, 15, 10, 30)
FARM = Coordinate(14.6760, 121.0437)


class FailingWriteStore(OrderStore):
    def save_order(self, record):
        raise StoreError("write timeout")


class DisconnectedStore(OrderStore):
    def save_order(self, record):
        raise ConnectionError("connection reset by peer")


class RefundErrorGateway(MockPaymentGateway):
    def refund(self, reference, amount, reason):
        raise TimeoutError("gateway timeout")


class UnavailableStore(OrderStore):
    def latest_order_number(self, created_from, created_to, pattern=None):
        raise StoreError("timeout")

    def claim_order_number(self, order_number, created_at):
        raise StoreError("timeout")


def make_pipeline(store=None, gateway=None, notifier=None):
    store = store or OrderStore()
    counter = itertools.count(1710469800000000)
    allocator = OrderNumberAllocator(store, now=lambda: ORDER_TIME,
                                     timestamp_us=lambda: next(counter))
    return OrderPlacementPipeline(
        store, gateway or MockPaymentGateway(),
        allocator=allocator, notifier=notifier, now=lambda: ORDER_TIME
    )


@pytest.fixture
def cart():
    return [
        CartLineItem(product_id="tomato", name="Tomatoes", unit_price=40.0, quantity=3,
                     unit="kg", minimum_order_quantity=2, seller_id="farm-a",
                     farmer_location=FARM),
        CartLineItem(product_id="okra", name="Okra", unit_price=20.0, quantity=4,
                     unit="kg", seller_id="farm-b"),
    ]


def order_request(cart, **overrides):
    fields = {
        "buyer_id": "buyer-1",
        "items": cart,
        "delivery_option_id": "standard",
        "buyer_contact": {"email": "buyer@example.com", "phone": "09171234567"},
    }
    fields.update(overrides)
    return PlaceOrderRequest(**fields)


class TestOrderPlacement:

    def test_cash_order(self, cart):
        pipeline = make_pipeline()
        result = pipeline.place(order_request(cart))

        assert result.status == PlacementStatus.PLACED
        assert result.order_number == "F2T-20240315-0001"
        assert result.payment_reference is None
        # 200 items, 4 platform fee, 50 standard shipping, 24.48 VAT
        assert result.breakdown["final_price"] == 278.48
        assert result.delivery_option["id"] == "standard"

        record = pipeline.store.get_order(result.order_number)
        assert record.status == OrderStatus.PENDING
        assert len(record.seller_orders) == 2

    def test_card_order_is_captured(self, cart):
        gateway = MockPaymentGateway()
        pipeline = make_pipeline(gateway=gateway)
        result = pipeline.place(order_request(cart, payment_method="card"))

        assert result.status == PlacementStatus.PLACED
        assert result.payment_reference in gateway.captures
        assert gateway.captures[result.payment_reference]["amount_centavos"] == 27848
        assert pipeline.store.get_order(result.order_number).status == OrderStatus.CONFIRMED

    def test_pickup_has_no_shipping(self, cart):
        result = make_pipeline().place(order_request(cart, fulfillment=FulfillmentMethod.PICKUP))
        assert result.delivery_option is None
        assert result.breakdown["shipping_fee"] == 0
        assert result.breakdown["final_price"] == 228.48

    def test_delivery_without_locations_charges_smart_base_fee(self, cart):
        result = make_pipeline().place(order_request(cart, delivery_option_id=None))

        assert result.delivery_option["id"] == "smart"
        assert result.breakdown["shipping_fee"] == 40.0
        # 200 items, 4 platform fee, 40 shipping, 24.48 VAT
        assert result.breakdown["final_price"] == 268.48

    def test_smart_delivery_priced_from_distance(self, cart):
        pipeline = make_pipeline()
        result = pipeline.place(order_request(cart, delivery_option_id="smart",
                                              buyer_location=FARM))
        assert result.delivery_option["base_price"] == 40.0
        assert result.breakdown["shipping_fee"] == 40.0

    def test_cold_chain_cart_forces_cold_chain(self, cart):
        cart.append(CartLineItem(product_id="tilapia", name="Tilapia", unit_price=150.0,
                                 quantity=1, seller_id="farm-c", requires_cold_chain=True))
        result = make_pipeline().place(order_request(cart, delivery_option_id="saver"))
        assert result.delivery_option["id"] == "cold-chain"
        assert result.breakdown["shipping_fee"] == 75.0

    def test_moq_violation_blocks_order(self, cart):
        cart[0] = CartLineItem(product_id="tomato", name="Tomatoes", unit_price=40.0,
                               quantity=1, unit="kg", minimum_order_quantity=2,
                               seller_id="farm-a")
        pipeline = make_pipeline()

        with pytest.raises(CartValidationError) as exc_info:
            pipeline.place(order_request(cart))

        assert exc_info.value.errors == [
            "Minimum order quantity for Tomatoes is 2 kg. Current quantity: 1"
        ]
        assert pipeline.store.list_orders_by_buyer("buyer-1") == []

    def test_empty_cart(self):
        with pytest.raises(CartValidationError):
            make_pipeline().place(order_request([]))

    def test_payment_failure(self, cart):
        pipeline = make_pipeline(gateway=MockPaymentGateway(fail_capture=True))
        with pytest.raises(PaymentFailedError):
            pipeline.place(order_request(cart, payment_method="card"))
        assert pipeline.store.list_orders_by_buyer("buyer-1") == []

    def test_store_unavailable_uses_fallback_number(self, cart):
        gateway = MockPaymentGateway()
        pipeline = make_pipeline(store=UnavailableStore(), gateway=gateway)

        result = pipeline.place(order_request(cart, payment_method="card"))

        assert result.order_number == "F2T-20240315-T1710469800000000"
        assert result.status == PlacementStatus.REFUNDED_AFTER_WRITE_FAILURE
        assert len(gateway.refunds) == 1

    def test_notifier_receives_record(self, cart):
        notified = []
        result = make_pipeline(notifier=notified.append).place(order_request(cart))
        assert [r.order_number for r in notified] == [result.order_number]

    def test_notifier_failure_does_not_fail_order(self, cart):
        def notifier(record):
            raise RuntimeError("SMS gateway down")

        pipeline = make_pipeline(notifier=notifier)
        result = pipeline.place(order_request(cart))
        assert result.status == PlacementStatus.PLACED
        assert pipeline.store.get_order(result.order_number) is not None

    def test_quote_does_not_allocate(self, cart):
        pipeline = make_pipeline()
        quote = pipeline.quote(order_request(cart))

        assert quote["breakdown"]["final_price"] == 278.48
        assert not pipeline.store.order_number_exists("F2T-20240315-0001")


class TestWriteFailureCompensation:

    def test_captured_payment_is_refunded(self, cart):
        gateway = MockPaymentGateway()
        pipeline = make_pipeline(store=FailingWriteStore(), gateway=gateway)

        result = pipeline.place(order_request(cart, payment_method="card"))

        assert result.status == PlacementStatus.REFUNDED_AFTER_WRITE_FAILURE
        assert result.error == "write timeout"
        refund = next(iter(gateway.refunds.values()))
        assert refund["payment_reference"] == result.payment_reference
        assert refund["amount_centavos"] == 27848
        assert pipeline.pending_compensations == []

    def test_failed_refund_is_kept_for_recovery(self, cart):
        gateway = MockPaymentGateway(fail_refund=True)
        pipeline = make_pipeline(store=FailingWriteStore(), gateway=gateway)

        result = pipeline.place(order_request(cart, payment_method="card"))

        assert result.status == PlacementStatus.PAYMENT_CAPTURED_WRITE_FAILED
        assert len(pipeline.pending_compensations) == 1
        pending = pipeline.pending_compensations[0]
        assert pending["payment_reference"] == result.payment_reference
        assert pending["amount"] == 278.48

    def test_cash_write_failure_is_an_error(self, cart):
        pipeline = make_pipeline(store=FailingWriteStore())
        with pytest.raises(OrderPlacementError):
            pipeline.place(order_request(cart))

    def test_non_store_write_error_is_refunded(self, cart):
        gateway = MockPaymentGateway()
        pipeline = make_pipeline(store=DisconnectedStore(), gateway=gateway)

        result = pipeline.place(order_request(cart, payment_method="card"))

        assert result.status == PlacementStatus.REFUNDED_AFTER_WRITE_FAILURE
        assert len(gateway.captures) == 1
        assert len(gateway.refunds) == 1
        assert result.error == "connection reset by peer"

    def test_refund_call_raising_is_kept_for_recovery(self, cart):
        pipeline = make_pipeline(store=DisconnectedStore(), gateway=RefundErrorGateway())

        result = pipeline.place(order_request(cart, payment_method="card"))

        assert result.status == PlacementStatus.PAYMENT_CAPTURED_WRITE_FAILED
        assert len(pipeline.pending_compensations) == 1
        assert pipeline.pending_compensations[0]["refund_error"] == "TimeoutError: gateway timeout"

    def test_non_store_write_error_without_payment_propagates(self, cart):
        pipeline = make_pipeline(store=DisconnectedStore())
        with pytest.raises(ConnectionError):
            pipeline.place(order_request(cart))
