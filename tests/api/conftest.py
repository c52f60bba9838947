"""Shared fixtures for API tests."""

from typing import Any

import pytest
from fastapi.testclient import TestClient

from craftly_orders.application.order_service import set_clock
from craftly_orders.infrastructure.user_directory import get_user_directory
from craftly_orders.main import app


@pytest.fixture(autouse=True)
def frozen_time(reset_singletons, clock):
    """Run the app on the frozen clock with admin-1 as an admin."""
    set_clock(clock)
    get_user_directory().grant_admin("admin-1")
    return clock


@pytest.fixture
def client() -> TestClient:
    """Create test client without an acting user."""
    return TestClient(app)


@pytest.fixture
def order_payload() -> dict[str, Any]:
    """Checkout body for a two-seller cart (120000 + 5000 delivery)."""
    return {
        "items": [
            {
                "productId": "basket-1",
                "productName": "Woven Basket",
                "quantity": 2,
                "price": 45000,
                "sellerId": "seller-a",
            },
            {
                "productId": "mug-1",
                "productName": "Clay Mug",
                "quantity": 1,
                "price": 30000,
                "sellerId": "seller-b",
                "stock": 4,
            },
        ],
        "shippingAddress": {
            "streetAddress": "123 Mabini Street",
            "barangay": "San Roque",
            "city": "Marikina",
        },
        "recipientName": "Maria Santos",
        "recipientPhone": "09171234567",
        "shippingMethod": "local-delivery",
        "paymentMethod": "cod",
    }


@pytest.fixture
def create_order(client: TestClient, order_payload):
    """Place an order over HTTP and return its JSON representation."""

    def _create(buyer_id: str = "buyer-1", **overrides: Any) -> dict[str, Any]:
        response = client.post(
            "/api/orders",
            json={**order_payload, **overrides},
            headers={"x-user-id": buyer_id},
        )
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _create
