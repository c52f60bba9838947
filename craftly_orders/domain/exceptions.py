"""Domain exceptions.

All domain-level errors that represent business rule violations.
Each error carries a stable machine-readable ``error_code`` so the API
layer can render it without inspecting the message text.
"""

from datetime import datetime
from typing import Any, ClassVar


class DomainError(Exception):
    """Base class for all domain exceptions.

    All domain errors should inherit from this class to allow
    catching domain-specific errors at the application layer.
    """

    error_code: ClassVar[str] = "DOMAIN_ERROR"
    retryable: ClassVar[bool] = False

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# Input Errors
# ============================================================================


class ValidationError(DomainError):
    """Raised for malformed or missing input.

    The caller can always recover by correcting the input; these are
    never retried automatically.
    """

    error_code: ClassVar[str] = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = dict(details or {})
        if field is not None:
            merged["field"] = field
        super().__init__(message, details=merged)
        self.field = field


class StockExceededError(DomainError):
    """Raised when a cart line asks for more units than were in stock at checkout."""

    error_code: ClassVar[str] = "STOCK_EXCEEDED"

    def __init__(self, product_id: str, product_name: str, requested: int, available: int) -> None:
        """Initialize stock exceeded error.

        Args:
            product_id: Product identifier.
            product_name: Product name for display.
            requested: Quantity requested in the cart.
            available: Stock recorded at checkout.
        """
        super().__init__(
            f"Only {available} of '{product_name}' available, {requested} requested",
            details={
                "product_id": product_id,
                "requested": requested,
                "available": available,
            },
        )


# ============================================================================
# State Machine Errors
# ============================================================================


class InvalidTransitionError(DomainError):
    """Raised when a status or payment transition is not reachable.

    Kept distinct from LockedOrderError so clients can tell
    "that move isn't allowed" apart from "too late to change this".
    """

    error_code: ClassVar[str] = "INVALID_TRANSITION"

    def __init__(
        self,
        order_id: str,
        field: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
    ) -> None:
        """Initialize invalid transition error.

        Args:
            order_id: ID of the order.
            field: Which axis is changing ("orderStatus" or "paymentStatus").
            current_state: Current state value.
            target_state: Attempted target state.
            allowed_transitions: States reachable from the current one.
        """
        allowed = allowed_transitions or []
        message = (
            f"Cannot change {field} of order {order_id} "
            f"from '{current_state}' to '{target_state}'. "
            f"Allowed: {allowed}"
        )
        super().__init__(
            message,
            details={
                "order_id": order_id,
                "field": field,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed,
            },
        )


class LockedOrderError(DomainError):
    """Raised when the edit window of an order has elapsed."""

    error_code: ClassVar[str] = "ORDER_LOCKED"

    def __init__(
        self,
        order_id: str,
        locked_at: datetime,
        elapsed_seconds: int,
        locked_for_seconds: int,
    ) -> None:
        """Initialize locked order error.

        Args:
            order_id: ID of the order.
            locked_at: Moment the edit window closed.
            elapsed_seconds: Seconds since the order was created.
            locked_for_seconds: Seconds since the edit window closed.
        """
        hours_ago = locked_for_seconds // 3600
        super().__init__(
            f"Order {order_id} was locked {hours_ago} hour(s) ago and can no longer be changed",
            details={
                "order_id": order_id,
                "locked_at": locked_at.isoformat(),
                "elapsed_seconds": elapsed_seconds,
                "locked_for_seconds": locked_for_seconds,
            },
        )
        self.locked_at = locked_at
        self.elapsed_seconds = elapsed_seconds
        self.locked_for_seconds = locked_for_seconds


# ============================================================================
# Access Errors
# ============================================================================


class NotFoundError(DomainError):
    """Raised for unknown orders or orders the actor has no relationship to."""

    error_code: ClassVar[str] = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: str) -> None:
        super().__init__(
            f"{resource} not found: {resource_id}",
            details={"resource": resource, "id": resource_id},
        )


class ForbiddenError(DomainError):
    """Raised when an actor related to an order requests an action reserved to others."""

    error_code: ClassVar[str] = "FORBIDDEN"

    def __init__(self, message: str, actor_id: str, action: str) -> None:
        super().__init__(message, details={"actor_id": actor_id, "action": action})


# ============================================================================
# Persistence Errors
# ============================================================================


class ConflictError(DomainError):
    """Raised when concurrent writers keep winning after the retry budget is spent.

    The caller should re-fetch the order and retry the whole operation.
    """

    error_code: ClassVar[str] = "CONFLICT"
    retryable: ClassVar[bool] = True

    def __init__(self, order_id: str, attempts: int) -> None:
        super().__init__(
            f"Order {order_id} was modified concurrently; gave up after {attempts} attempts",
            details={"order_id": order_id, "attempts": attempts},
        )


class StoreUnavailableError(DomainError):
    """Raised when the order store times out or is unreachable."""

    error_code: ClassVar[str] = "STORE_UNAVAILABLE"
    retryable: ClassVar[bool] = True

    def __init__(self, operation: str, timeout_seconds: float | None = None) -> None:
        super().__init__(
            f"Order store did not complete '{operation}' in time",
            details={"operation": operation, "timeout_seconds": timeout_seconds},
        )


# ============================================================================
# Money Errors
# ============================================================================


class CurrencyMismatchError(ValidationError):
    """Raised when attempting to combine money with different currencies."""

    def __init__(self, currency1: str, currency2: str) -> None:
        """Initialize currency mismatch error.

        Args:
            currency1: First currency code.
            currency2: Second currency code.
        """
        super().__init__(
            f"Cannot combine money with different currencies: {currency1} and {currency2}",
            details={"currency1": currency1, "currency2": currency2},
        )


class NegativeMoneyError(ValidationError):
    """Raised when attempting to create money with negative amount."""

    def __init__(self, amount: int) -> None:
        """Initialize negative money error.

        Args:
            amount: The negative amount in centavos.
        """
        super().__init__(
            f"Money amount cannot be negative: {amount}",
            details={"amount": amount},
        )
