"""Shared fixtures for all tests."""

from datetime import datetime, timedelta, timezone

import pytest

from craftly_orders.application.cache import TTLCache
from craftly_orders.application.idempotency_service import reset_idempotency_service
from craftly_orders.application.notifications import (
    RecordingNotificationDispatcher,
    set_notification_dispatcher,
)
from craftly_orders.application.order_service import OrderService, reset_order_service_state
from craftly_orders.domain.clock import FrozenClock
from craftly_orders.domain.value_objects import (
    CartLine,
    CheckoutSelections,
    Money,
    PaymentMethod,
    ShippingAddress,
    ShippingMethod,
)
from craftly_orders.infrastructure.order_store import InMemoryOrderStore, reset_order_store
from craftly_orders.infrastructure.user_directory import (
    SettingsUserDirectory,
    reset_user_directory,
)

# 10:00 in Manila
START = datetime(2026, 3, 2, 2, 0, tzinfo=timezone.utc)

BUYER = "buyer-1"
SELLER_A = "seller-a"
SELLER_B = "seller-b"
ADMIN = "admin-1"
STRANGER = "someone-else"


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset module-level singletons before and after each test."""
    _reset()
    yield
    _reset()


def _reset() -> None:
    reset_order_store()
    reset_user_directory()
    reset_idempotency_service()
    set_notification_dispatcher(None)
    reset_order_service_state()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(START)


@pytest.fixture
def make_line():
    """Factory for cart lines."""

    def _make(
        product_id: str = "basket-1",
        product_name: str = "Woven Basket",
        quantity: int = 1,
        price: int = 45000,
        seller_id: str = SELLER_A,
        stock: int | None = None,
    ) -> CartLine:
        return CartLine(
            product_id=product_id,
            product_name=product_name,
            quantity=quantity,
            unit_price=Money(price),
            seller_id=seller_id,
            stock=stock,
        )

    return _make


@pytest.fixture
def two_seller_cart(make_line) -> list[CartLine]:
    """Two baskets from seller A and one mug from seller B (120000 centavos)."""
    return [
        make_line(quantity=2),
        make_line(
            product_id="mug-1",
            product_name="Clay Mug",
            quantity=1,
            price=30000,
            seller_id=SELLER_B,
        ),
    ]


@pytest.fixture
def make_selections():
    """Factory for checkout selections."""

    def _make(
        shipping_method: ShippingMethod = ShippingMethod.LOCAL_DELIVERY,
        payment_method: PaymentMethod = PaymentMethod.COD,
        street_address: str | None = "123 Mabini Street",
        barangay: str | None = "San Roque",
        recipient_name: str = "Maria Santos",
        recipient_phone: str = "09171234567",
        receipt_image_url: str | None = None,
        expected_total: int | None = None,
    ) -> CheckoutSelections:
        return CheckoutSelections(
            shipping_method=shipping_method,
            payment_method=payment_method,
            shipping_address=ShippingAddress(
                street_address=street_address,
                barangay=barangay,
                city="Marikina",
                postal_code="1800",
            ),
            recipient_name=recipient_name,
            recipient_phone=recipient_phone,
            receipt_image_url=receipt_image_url,
            expected_total=Money(expected_total) if expected_total is not None else None,
        )

    return _make


@pytest.fixture
def store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def directory() -> SettingsUserDirectory:
    return SettingsUserDirectory(admin_user_ids=[ADMIN])


@pytest.fixture
def dispatcher() -> RecordingNotificationDispatcher:
    return RecordingNotificationDispatcher()


@pytest.fixture
def service(store, directory, dispatcher, clock) -> OrderService:
    return OrderService(
        store=store,
        directory=directory,
        dispatcher=dispatcher,
        clock=clock,
        cache=TTLCache(ttl=timedelta(seconds=1), clock=clock),
    )
