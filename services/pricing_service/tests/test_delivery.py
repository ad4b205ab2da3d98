# CREATE FILE: services/pricing_service/tests/test_delivery.py

import pytest
from decimal import Decimal
from services.pricing_service.delivery import DeliveryCalculator, DeliveryType
from utils.geo import Coordinate, distance_km


class TestDeliveryFees:

    @pytest.fixture
    def calculator(self):
        return DeliveryCalculator()

    @pytest.mark.parametrize("vehicle,distance,expected", [
        ("motorcycle", 0, Decimal('20')),
        ("motorcycle", 10, Decimal('70')),
        ("tricycle", 10, Decimal('100')),
        ("van", 2.5, Decimal('75')),
    ])
    def test_vehicle_fees(self, calculator, vehicle, distance, expected):
        assert calculator.delivery_fee(distance, vehicle) == expected

    def test_fee_non_decreasing_in_distance(self, calculator):
        distances = [0, 0.5, 1, 2, 5, 10, 25, 50]
        for vehicle in ("motorcycle", "tricycle", "van", None):
            fees = [calculator.delivery_fee(d, vehicle) for d in distances]
            assert fees == sorted(fees)

    def test_smart_fee_and_eta(self, calculator):
        """Smart delivery: 40 + 5/km, 15 min + 3 min/km"""
        assert calculator.delivery_fee(4) == Decimal('60')
        assert calculator.eta_minutes(4) == 27
        assert calculator.eta_minutes(0) == 15

    def test_unknown_vehicle(self, calculator):
        with pytest.raises(ValueError):
            calculator.delivery_fee(3, "helicopter")
        with pytest.raises(ValueError):
            calculator.quote_shipping(3, "helicopter")

    @pytest.mark.parametrize("distance,label", [
        (1.5, "15-25 min"),
        (2, "15-25 min"),
        (4, "25-40 min"),
        (10, "40-60 min"),
        (12, "1-2 hours"),
    ])
    def test_time_labels(self, distance, label):
        assert DeliveryCalculator.estimate_time_label(distance) == label

    def test_quote_shipping(self, calculator):
        quote = calculator.quote_shipping(3.3, "motorcycle")
        assert quote["total"] == 36.5
        assert quote["base_rate"] == 20.0
        assert quote["rate_per_km"] == 5.0
        assert quote["estimated_time"] == "25-40 min"

    def test_smart_delivery_info(self, calculator):
        buyer = Coordinate(14.5995, 120.9842)
        farmer = Coordinate(14.6760, 121.0437)
        info = calculator.smart_delivery_info(buyer, farmer)

        distance = distance_km(buyer, farmer)
        assert info.distance_km == round(distance, 1)
        assert info.delivery_fee == Decimal(round(40 + 5 * distance))
        assert info.eta_minutes == calculator.eta_minutes(distance)

    def test_smart_delivery_same_location(self, calculator):
        point = Coordinate(14.5995, 120.9842)
        info = calculator.smart_delivery_info(point, point)
        assert info.distance_km == 0
        assert info.delivery_fee == Decimal('40')
        assert info.eta_minutes == 15


class TestDeliveryOptions:

    @pytest.fixture
    def calculator(self):
        return DeliveryCalculator()

    def test_cold_chain_cart_gets_single_option(self, calculator):
        options = calculator.available_options(requires_cold_chain=True)
        assert len(options) == 1
        assert options[0].type == DeliveryType.COLD_CHAIN
        assert options[0].base_price == Decimal('75')

    def test_cold_chain_is_auto_selected(self, calculator):
        options = calculator.available_options(requires_cold_chain=True)
        selected = calculator.select_option(options, "saver")
        assert selected.id == "cold-chain"

    def test_regular_cart_excludes_cold_chain(self, calculator):
        options = calculator.available_options(requires_cold_chain=False)
        ids = [o.id for o in options]
        assert "cold-chain" not in ids
        assert ids == ["smart", "priority", "standard", "saver"]

    def test_smart_option_priced_from_distance(self, calculator):
        point = Coordinate(14.5995, 120.9842)
        info = calculator.smart_delivery_info(point, point)
        options = calculator.available_options(False, info)

        smart = next(o for o in options if o.type == DeliveryType.SMART)
        assert smart.base_price == Decimal('40')
        assert smart.duration_label == "15 min"

    def test_smart_option_without_distance_uses_base_fee(self, calculator):
        options = calculator.available_options(False)

        smart = next(o for o in options if o.type == DeliveryType.SMART)
        assert smart.base_price == Decimal('40')
        assert all(o.base_price > 0 for o in options)

    def test_select_requested_option(self, calculator):
        options = calculator.available_options(False)
        assert calculator.select_option(options, "priority").base_price == Decimal('80')

    def test_unavailable_option_falls_back_to_first(self, calculator):
        options = calculator.available_options(False)
        assert calculator.select_option(options, "drone").id == "smart"
        assert calculator.select_option(options).id == "smart"

    def test_no_options(self, calculator):
        with pytest.raises(ValueError):
            calculator.select_option([])
