# CREATE FILE: services/pricing_service/tests/test_pricing_api.py

import pytest
from fastapi.testclient import TestClient
from services.pricing_service.app import app


@pytest.fixture
def client():
    return TestClient(app)


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_breakdown_endpoint(client):
    response = client.post("/breakdown", json={
        "items_total": 200.0,
        "platform_fee_rate": 0.02,
        "shipping_fee": 50.0
    })
    assert response.status_code == 200
    data = response.json()
    assert data["final_price"] == 278.48
    assert data["vat_amount"] == 24.48
    assert "Grand Total: ₱278.48" in data["receipt"]


def test_breakdown_rejects_negative_total(client):
    response = client.post("/breakdown", json={"items_total": -5})
    assert response.status_code == 422


def test_shipping_quote(client):
    response = client.post("/shipping/quote", json={"distance_km": 10, "vehicle": "motorcycle"})
    assert response.status_code == 200
    assert response.json()["total"] == 70.0


def test_cold_chain_delivery_options(client):
    response = client.post("/delivery/options", json={
        "requires_cold_chain": True,
        "selected_option_id": "standard"
    })
    data = response.json()
    assert [o["id"] for o in data["options"]] == ["cold-chain"]
    assert data["selected"]["id"] == "cold-chain"
    assert data["cold_chain_forced"] is True


def test_smart_delivery_options(client):
    location = {"lat": 14.5995, "lng": 120.9842}
    response = client.post("/delivery/options", json={
        "buyer_location": location,
        "farmer_location": location
    })
    data = response.json()
    assert data["smart_delivery"] == {"distance_km": 0.0, "delivery_fee": 40.0, "eta_minutes": 15}
    assert data["selected"]["base_price"] == 40.0


def test_benchmark_endpoint(client):
    response = client.get("/benchmark/vegetables", params={"quality": "premium"})
    assert response.json()["average_price"] == 78.0


def test_validate_price_endpoint(client):
    response = client.post("/validate-price", json={"price": 30, "category": "vegetables"})
    data = response.json()
    assert data["is_valid"] is False
    assert data["suggestion"] == 36.0


def test_vat_compliance_endpoint(client):
    response = client.post("/vat-compliance", json={
        "items_total": 150.0, "platform_fee": 3.0, "vat_amount": 18.36
    })
    assert response.json()["is_compliant"] is True
