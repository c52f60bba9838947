"""State machines for orders.

Two independent axes live on every order: the fulfillment status and
the payment status. Both are plain enums with their edges defined in
transition tables next to them.
"""

from enum import Enum

from craftly_orders.domain.exceptions import InvalidTransitionError
from craftly_orders.domain.value_objects import PaymentMethod


# ============================================================================
# Order Status State Machine
# ============================================================================


class OrderStatus(str, Enum):
    """Order fulfillment states.

    State diagram:
        PENDING ──────────────┬──────────────┬────────► CANCELLED
          │                   │              │              ▲
          │                   ▼              │              │
          ├──────────────► PROCESSING ───────┼──────────────┘
          │                   │              │
          │                   ▼              │
          ├──────────────► SHIPPED           │
          │                   │              │
          │                   ▼              ▼
          └──────────────► DELIVERED ◄───────┘

    Sellers may jump forward to any later state, not only the next one.
    Once shipped, an order can no longer be cancelled.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    def can_transition_to(self, target: "OrderStatus") -> bool:
        """Check if transition to target state is valid.

        Args:
            target: Target state to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _ORDER_TRANSITIONS.get(self, frozenset())

    def allowed_transitions(self) -> list["OrderStatus"]:
        """Get valid target states in lifecycle order."""
        edges = _ORDER_TRANSITIONS.get(self, frozenset())
        return [status for status in OrderStatus if status in edges]

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state."""
        return not _ORDER_TRANSITIONS.get(self)

    def is_cancellable(self) -> bool:
        return OrderStatus.CANCELLED in _ORDER_TRANSITIONS.get(self, frozenset())

    @property
    def display_color(self) -> str:
        """Hex colour the clients use for this status badge."""
        return _STATUS_COLORS[self]


_ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset(
        {
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
            OrderStatus.CANCELLED,
        }
    ),
    OrderStatus.PROCESSING: frozenset(
        {OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED}
    ),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),  # Terminal state
    OrderStatus.CANCELLED: frozenset(),  # Terminal state
}

_STATUS_COLORS: dict[OrderStatus, str] = {
    OrderStatus.PENDING: "#D97706",
    OrderStatus.PROCESSING: "#FACC15",
    OrderStatus.SHIPPED: "#60A5FA",
    OrderStatus.DELIVERED: "#4ADE80",
    OrderStatus.CANCELLED: "#EF4444",
}


# ============================================================================
# Payment Status State Machine
# ============================================================================


class PaymentStatus(str, Enum):
    """Payment verification states.

    GCash (manual transfer with receipt):
        UNPAID ──upload receipt──► PENDING_VERIFICATION
        PENDING_VERIFICATION ──approve──► PAID
        PENDING_VERIFICATION ──reject───► UNPAID
        PAID ──refund (admin)──► REFUNDED

    Cash on delivery:
        UNPAID ──cash collected──► PAID ──refund (admin)──► REFUNDED
    """

    UNPAID = "unpaid"
    PENDING_VERIFICATION = "pending_verification"
    PAID = "paid"
    REFUNDED = "refunded"

    def can_transition_to(self, target: "PaymentStatus", method: PaymentMethod) -> bool:
        """Check if transition to target state is valid for a payment method.

        Args:
            target: Target payment state.
            method: Payment method of the order.

        Returns:
            True if transition is valid.
        """
        return target in _payment_table(method).get(self, frozenset())

    def allowed_transitions(self, method: PaymentMethod) -> list["PaymentStatus"]:
        edges = _payment_table(method).get(self, frozenset())
        return [status for status in PaymentStatus if status in edges]

    def is_terminal(self) -> bool:
        return self == PaymentStatus.REFUNDED


_GCASH_PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.UNPAID: frozenset({PaymentStatus.PENDING_VERIFICATION}),
    PaymentStatus.PENDING_VERIFICATION: frozenset({PaymentStatus.PAID, PaymentStatus.UNPAID}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),  # Terminal state
}

_COD_PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.UNPAID: frozenset({PaymentStatus.PAID}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),  # Terminal state
}


def _payment_table(method: PaymentMethod) -> dict[PaymentStatus, frozenset[PaymentStatus]]:
    if method == PaymentMethod.GCASH:
        return _GCASH_PAYMENT_TRANSITIONS
    return _COD_PAYMENT_TRANSITIONS


# ============================================================================
# State Machine Helpers
# ============================================================================


def validate_order_transition(
    order_id: str,
    current_status: OrderStatus,
    target_status: OrderStatus,
) -> None:
    """Validate and raise if an order status transition is invalid.

    Raises:
        InvalidTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidTransitionError(
            order_id=order_id,
            field="orderStatus",
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )


def validate_payment_transition(
    order_id: str,
    method: PaymentMethod,
    current_status: PaymentStatus,
    target_status: PaymentStatus,
) -> None:
    """Validate and raise if a payment status transition is invalid.

    Raises:
        InvalidTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status, method):
        raise InvalidTransitionError(
            order_id=order_id,
            field="paymentStatus",
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions(method)],
        )
