"""Domain layer - order aggregate, state machines, settlement rules.

This module exports the core domain building blocks:

- **Order aggregate**: one order per checkout, items from many sellers
- **Value Objects**: Money in centavos, cart lines, checkout choices
- **State Machines**: OrderStatus and PaymentStatus with their edges
- **Policies**: the edit lock and revenue attribution
- **Exceptions**: domain errors with stable error codes

Example usage:
    from craftly_orders.domain import CartLine, Money, partition_cart

    line = CartLine(
        product_id="p-1",
        product_name="Woven Basket",
        quantity=2,
        unit_price=Money(45000),
        seller_id="seller-1",
    )
    order = partition_cart(order_id="o-1", buyer_id="buyer-1", lines=[line], ...)
    print(order.total_amount)  # ₱950.00 PHP with local delivery
"""

# Base classes
from craftly_orders.domain.base import AggregateRoot, DomainEvent, ValueObject

# Time
from craftly_orders.domain.clock import (
    Clock,
    FrozenClock,
    SystemClock,
    format_timestamp,
    parse_timestamp,
)

# Policies
from craftly_orders.domain.edit_lock import DEFAULT_EDIT_WINDOW, EditLockPolicy, LockState

# Entities
from craftly_orders.domain.entities import Order, OrderItem, StatusHistoryEntry

# Domain Events
from craftly_orders.domain.events import (
    OrderPlaced,
    OrderStatusChanged,
    PaymentStatusChanged,
    ReceiptUploaded,
)

# Exceptions
from craftly_orders.domain.exceptions import (
    ConflictError,
    CurrencyMismatchError,
    DomainError,
    ForbiddenError,
    InvalidTransitionError,
    LockedOrderError,
    NegativeMoneyError,
    NotFoundError,
    StockExceededError,
    StoreUnavailableError,
    ValidationError,
)
from craftly_orders.domain.partitioner import delivery_fee_for, partition_cart
from craftly_orders.domain.revenue import (
    RevenueReport,
    SellerPartition,
    partition_for,
    partitions,
    seller_revenue_report,
)

# State Machines
from craftly_orders.domain.state_machines import (
    OrderStatus,
    PaymentStatus,
    validate_order_transition,
    validate_payment_transition,
)

# Value Objects
from craftly_orders.domain.value_objects import (
    CartLine,
    CheckoutSelections,
    Money,
    PaymentMethod,
    ShippingAddress,
    ShippingMethod,
    new_order_id,
)

__all__ = [
    # Base
    "AggregateRoot",
    "DomainEvent",
    "ValueObject",
    # Time
    "Clock",
    "FrozenClock",
    "SystemClock",
    "format_timestamp",
    "parse_timestamp",
    # Policies
    "DEFAULT_EDIT_WINDOW",
    "EditLockPolicy",
    "LockState",
    # Entities
    "Order",
    "OrderItem",
    "StatusHistoryEntry",
    # Events
    "OrderPlaced",
    "OrderStatusChanged",
    "PaymentStatusChanged",
    "ReceiptUploaded",
    # Exceptions
    "ConflictError",
    "CurrencyMismatchError",
    "DomainError",
    "ForbiddenError",
    "InvalidTransitionError",
    "LockedOrderError",
    "NegativeMoneyError",
    "NotFoundError",
    "StockExceededError",
    "StoreUnavailableError",
    "ValidationError",
    # Partitioning and revenue
    "delivery_fee_for",
    "partition_cart",
    "RevenueReport",
    "SellerPartition",
    "partition_for",
    "partitions",
    "seller_revenue_report",
    # State machines
    "OrderStatus",
    "PaymentStatus",
    "validate_order_transition",
    "validate_payment_transition",
    # Value objects
    "CartLine",
    "CheckoutSelections",
    "Money",
    "PaymentMethod",
    "ShippingAddress",
    "ShippingMethod",
    "new_order_id",
]
