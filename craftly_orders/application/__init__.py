"""Application services for Craftly orders."""

from craftly_orders.application.order_service import (
    CreateOrderResult,
    OrderService,
    SellerOrderView,
    TransitionResult,
    get_order_service,
)

__all__ = [
    "CreateOrderResult",
    "OrderService",
    "SellerOrderView",
    "TransitionResult",
    "get_order_service",
]
