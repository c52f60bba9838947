"""Order application service.

Orchestrates the order lifecycle:
- Creating one order per checkout from a cart snapshot
- Status and payment transitions with authorisation and the edit lock
- Admin overrides of the edit lock
- Buyer, seller and revenue read models

Every mutation is a read-modify-write against the order store guarded
by a version compare-and-swap. When another writer wins the race the
whole mutation (authorisation, lock, state machine) is re-applied to a
fresh read, up to a bounded number of attempts.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterator, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Generic, TypeVar

import structlog

from craftly_orders.application.cache import TTLCache
from craftly_orders.application.notifications import (
    NotificationDispatcher,
    get_notification_dispatcher,
    publish_events,
)
from craftly_orders.domain.clock import Clock, SystemClock
from craftly_orders.domain.edit_lock import EditLockPolicy, LockState
from craftly_orders.domain.entities import Order
from craftly_orders.domain.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from craftly_orders.domain.partitioner import partition_cart
from craftly_orders.domain.revenue import (
    RevenueReport,
    SellerPartition,
    partition_for,
    seller_revenue_report,
)
from craftly_orders.domain.state_machines import OrderStatus, PaymentStatus
from craftly_orders.domain.value_objects import (
    CartLine,
    CheckoutSelections,
    Money,
    new_order_id,
)
from craftly_orders.infrastructure.config import settings
from craftly_orders.infrastructure.order_store import (
    DuplicateOrderError,
    OrderStore,
    VersionConflict,
    get_order_store,
)
from craftly_orders.infrastructure.user_directory import UserDirectory, get_user_directory

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 100

# Payment targets reachable through the review/refund endpoint
REVIEWABLE_PAYMENT_TARGETS = frozenset(
    {PaymentStatus.PAID, PaymentStatus.UNPAID, PaymentStatus.REFUNDED}
)


class ActorRole(str, Enum):
    """How the acting user relates to an order."""

    ADMIN = "admin"
    SELLER = "seller"
    BUYER = "buyer"


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class CreateOrderResult:
    """Result of placing an order.

    Attributes:
        order: The stored order.
        created: False when an earlier submit with the same key already created it.
    """

    order: Order
    created: bool = True


@dataclass
class TransitionResult:
    """Result of a status or payment change.

    Attributes:
        order: The order as stored after the call.
        previous_status: Value of the changed axis before the call.
        new_status: Value of the changed axis after the call.
        changed: False for a same-target replay.
    """

    order: Order
    previous_status: str
    new_status: str
    changed: bool


@dataclass
class SellerOrderView:
    """An order as one seller sees it."""

    order: Order
    partition: SellerPartition


@dataclass
class OrderPage(Generic[T]):
    """One newest-first page of a longer list.

    Attributes:
        items: The entries on this page.
        total: Entries in the whole list.
    """

    items: list[T]
    total: int

    @property
    def count(self) -> int:
        return len(self.items)

    @property
    def has_more(self) -> bool:
        return self.total > len(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.items)

    def __getitem__(self, index: int) -> T:
        return self.items[index]


# ============================================================================
# Shared Service State
# ============================================================================


_clock: Clock | None = None
_orders_cache: TTLCache[list[Order]] | None = None


def get_clock() -> Clock:
    """Get the clock shared by services."""
    global _clock
    if _clock is None:
        _clock = SystemClock()
    return _clock


def set_clock(clock: Clock | None) -> None:
    """Replace the shared clock (None restores the system clock).

    Resets the order list cache, which reads time from the same clock.
    """
    global _clock, _orders_cache
    _clock = clock
    _orders_cache = None


def get_orders_cache() -> TTLCache[list[Order]]:
    """Get the cache holding buyer and seller order lists."""
    global _orders_cache
    if _orders_cache is None:
        _orders_cache = TTLCache(
            ttl=timedelta(seconds=settings.orders_cache_ttl_seconds),
            clock=get_clock(),
        )
    return _orders_cache


def _buyer_key(buyer_id: str) -> str:
    return f"buyer:{buyer_id}"


def _seller_key(seller_id: str) -> str:
    return f"seller:{seller_id}"


def _clamp_limit(limit: int | None) -> int:
    if limit is None:
        return DEFAULT_LIST_LIMIT
    return max(1, min(limit, MAX_LIST_LIMIT))


# ============================================================================
# Order Service
# ============================================================================


class OrderService:
    """Application service for the order lifecycle."""

    def __init__(
        self,
        store: OrderStore | None = None,
        directory: UserDirectory | None = None,
        dispatcher: NotificationDispatcher | None = None,
        clock: Clock | None = None,
        lock_policy: EditLockPolicy | None = None,
        cache: TTLCache[list[Order]] | None = None,
        request_id: str | None = None,
        max_write_retries: int | None = None,
        store_timeout_seconds: float | None = None,
    ) -> None:
        """Initialize service.

        Args:
            store: Order store.
            directory: User directory for roles and seller preferences.
            dispatcher: Notification dispatcher.
            clock: Time source.
            lock_policy: Edit-lock policy.
            cache: Cache for buyer and seller order lists.
            request_id: Request ID for correlation.
            max_write_retries: Extra attempts after a version conflict.
            store_timeout_seconds: Deadline for each store call.
        """
        self.store = store or get_order_store()
        self.directory = directory or get_user_directory()
        self.dispatcher = dispatcher or get_notification_dispatcher()
        self.clock = clock or get_clock()
        self.lock_policy = lock_policy or EditLockPolicy(window=settings.edit_window)
        self.cache = cache if cache is not None else get_orders_cache()
        self.request_id = request_id
        self.max_write_retries = (
            settings.max_write_retries if max_write_retries is None else max_write_retries
        )
        self.store_timeout_seconds = (
            settings.store_timeout_seconds
            if store_timeout_seconds is None
            else store_timeout_seconds
        )
        self.commission_rate_bps = settings.commission_rate_bps

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    async def create_order(
        self,
        *,
        buyer_id: str,
        lines: Sequence[CartLine],
        selections: CheckoutSelections,
        idempotency_key: str | None = None,
    ) -> CreateOrderResult:
        """Place one order for a whole cart.

        A repeated submit with the same idempotency key returns the order
        created by the first one.

        Args:
            buyer_id: Buyer placing the order.
            lines: Cart snapshot.
            selections: Checkout choices.
            idempotency_key: Checkout token or Idempotency-Key header value.

        Returns:
            CreateOrderResult with the stored order.

        Raises:
            ValidationError: On invalid cart or checkout fields.
            StockExceededError: If a line exceeds its recorded stock.
            StoreUnavailableError: If the store does not answer in time.
        """
        order_id = new_order_id(buyer_id, idempotency_key)

        if idempotency_key:
            existing = await self._call(self.store.get(order_id), "get")
            if existing is not None:
                logger.info(
                    "Order already exists for checkout",
                    order_id=order_id,
                    buyer_id=buyer_id,
                    request_id=self.request_id,
                )
                return CreateOrderResult(order=existing, created=False)

        await self._check_seller_delivery(lines, selections)

        order = partition_cart(
            order_id=order_id,
            buyer_id=buyer_id,
            lines=lines,
            selections=selections,
            local_delivery_fee=Money(settings.local_delivery_fee_cents, settings.currency),
            now=self.clock.now(),
        )

        try:
            await self._call(self.store.insert(order), "insert")
        except DuplicateOrderError:
            existing = await self._call(self.store.get(order_id), "get")
            if existing is None:
                raise ConflictError(order_id, attempts=1) from None
            logger.info(
                "Concurrent submit resolved to existing order",
                order_id=order_id,
                request_id=self.request_id,
            )
            return CreateOrderResult(order=existing, created=False)

        self.cache.invalidate(
            _buyer_key(buyer_id), *(_seller_key(s) for s in order.seller_ids)
        )
        await publish_events(self.dispatcher, order.collect_events())

        logger.info(
            "Order created",
            order_id=order.id,
            buyer_id=buyer_id,
            seller_ids=order.seller_ids,
            total_cents=order.total_amount.amount_cents,
            payment_method=order.payment_method.value,
            request_id=self.request_id,
        )
        return CreateOrderResult(order=order)

    async def _check_seller_delivery(
        self, lines: Sequence[CartLine], selections: CheckoutSelections
    ) -> None:
        seller_ids = list(dict.fromkeys(line.seller_id for line in lines if line.seller_id))
        for seller_id in seller_ids:
            methods = await self.directory.delivery_methods(seller_id)
            if selections.shipping_method not in methods:
                raise ValidationError(
                    f"Seller {seller_id} does not offer {selections.shipping_method.value}",
                    field="shippingMethod",
                    details={
                        "seller_id": seller_id,
                        "available_methods": sorted(m.value for m in methods),
                    },
                )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_order(self, order_id: str, actor_id: str) -> Order:
        """Get one order visible to the actor.

        Raises:
            NotFoundError: If the order does not exist or the actor has no relation to it.
        """
        order = await self._load(order_id)
        await self._role_of(order, actor_id)
        return order

    async def list_buyer_orders(
        self, buyer_id: str, actor_id: str, limit: int | None = None
    ) -> OrderPage[Order]:
        """Newest-first orders of a buyer.

        Raises:
            ForbiddenError: If the actor is neither the buyer nor an admin.
        """
        if actor_id != buyer_id and not await self.directory.is_admin(actor_id):
            raise ForbiddenError(
                "Only the buyer can list their orders", actor_id=actor_id, action="list_orders"
            )
        orders = await self.cache.get_or_load(
            _buyer_key(buyer_id),
            lambda: self._call(self.store.list_by_buyer(buyer_id, MAX_LIST_LIMIT), "list_by_buyer"),
        )
        return OrderPage(items=orders[: _clamp_limit(limit)], total=len(orders))

    async def list_seller_orders(
        self, seller_id: str, actor_id: str, limit: int | None = None
    ) -> OrderPage[SellerOrderView]:
        """Newest-first orders containing the seller's items, with the seller's share.

        Raises:
            ForbiddenError: If the actor is neither the seller nor an admin.
        """
        orders = await self._seller_orders(seller_id, actor_id)
        views = [
            SellerOrderView(
                order=order,
                partition=partition_for(order, seller_id, self.commission_rate_bps),
            )
            for order in orders[: _clamp_limit(limit)]
        ]
        return OrderPage(items=views, total=len(orders))

    async def seller_revenue(self, seller_id: str, actor_id: str) -> RevenueReport:
        """Revenue report over every order of a seller."""
        orders = await self._seller_orders(seller_id, actor_id)
        return seller_revenue_report(
            orders,
            seller_id,
            now=self.clock.now(),
            tz=settings.tzinfo,
            currency=settings.currency,
            commission_rate_bps=self.commission_rate_bps,
        )

    async def _seller_orders(self, seller_id: str, actor_id: str) -> list[Order]:
        if actor_id != seller_id and not await self.directory.is_admin(actor_id):
            raise ForbiddenError(
                "Only the seller can view their orders",
                actor_id=actor_id,
                action="list_seller_orders",
            )
        return await self.cache.get_or_load(
            _seller_key(seller_id),
            lambda: self._call(self.store.list_by_seller(seller_id), "list_by_seller"),
        )

    def lock_state(self, order: Order) -> LockState:
        """Edit-lock state of an order right now."""
        return self.lock_policy.state(order.created_at, self.clock.now())

    # -------------------------------------------------------------------------
    # Status Transitions
    # -------------------------------------------------------------------------

    async def transition_status(
        self,
        order_id: str,
        target: OrderStatus,
        actor_id: str,
        reason: str | None = None,
    ) -> TransitionResult:
        """Move an order's fulfillment status.

        Sellers with an item in the order and admins may move the order
        along the state machine; the buyer may only cancel a pending order.

        Raises:
            NotFoundError: If the actor has no relation to the order.
            ForbiddenError: If the actor may not request this status.
            LockedOrderError: If the edit window has elapsed.
            InvalidTransitionError: If the status is not reachable.
            ConflictError: If concurrent writers keep winning.
        """

        def apply(order: Order, role: ActorRole, now: datetime) -> bool:
            if role == ActorRole.BUYER:
                self._check_buyer_cancel(order, target, actor_id)
            return order.change_status(
                target, actor_id=actor_id, now=now, lock=self.lock_policy, reason=reason
            )

        return await self._mutate(order_id, actor_id, "orderStatus", apply, "transition_status")

    async def force_transition_status(
        self,
        order_id: str,
        target: OrderStatus,
        actor_id: str,
        reason: str | None = None,
    ) -> TransitionResult:
        """Admin-only status change that ignores the edit lock.

        The state machine still applies; the audit entry is flagged.

        Raises:
            ForbiddenError: If the actor is not an admin.
        """
        await self._require_admin(actor_id, "force_status")

        def apply(order: Order, role: ActorRole, now: datetime) -> bool:
            return order.change_status(
                target,
                actor_id=actor_id,
                now=now,
                lock=self.lock_policy,
                bypass_lock=True,
                reason=reason,
            )

        return await self._mutate(order_id, actor_id, "orderStatus", apply, "force_status")

    @staticmethod
    def _check_buyer_cancel(order: Order, target: OrderStatus, actor_id: str) -> None:
        if target != OrderStatus.CANCELLED:
            raise ForbiddenError(
                "Buyers can only cancel their orders", actor_id=actor_id, action="change_status"
            )
        if order.order_status not in (OrderStatus.PENDING, OrderStatus.CANCELLED):
            raise ForbiddenError(
                "Orders can only be cancelled by the buyer while pending",
                actor_id=actor_id,
                action="cancel",
            )

    # -------------------------------------------------------------------------
    # Payment Transitions
    # -------------------------------------------------------------------------

    async def update_payment_status(
        self,
        order_id: str,
        target: PaymentStatus,
        actor_id: str,
        reason: str | None = None,
    ) -> TransitionResult:
        """Review or refund a payment.

        ``paid`` and ``unpaid`` are seller or admin decisions; ``refunded``
        is admin only. ``pending_verification`` is only reached by
        uploading a receipt.

        Raises:
            ValidationError: For pending_verification.
            NotFoundError: If the actor has no relation to the order.
            ForbiddenError: If the actor may not make this decision.
            LockedOrderError: If the edit window has elapsed.
            InvalidTransitionError: If the status is not reachable.
            ConflictError: If concurrent writers keep winning.
        """
        if target not in REVIEWABLE_PAYMENT_TARGETS:
            raise ValidationError(
                "Payment verification starts by uploading a receipt",
                field="paymentStatus",
                details={"allowed": sorted(s.value for s in REVIEWABLE_PAYMENT_TARGETS)},
            )

        def apply(order: Order, role: ActorRole, now: datetime) -> bool:
            if role == ActorRole.BUYER:
                raise ForbiddenError(
                    "Buyers cannot change payment status",
                    actor_id=actor_id,
                    action="change_payment_status",
                )
            if target == PaymentStatus.REFUNDED and role != ActorRole.ADMIN:
                raise ForbiddenError(
                    "Only admins can refund payments", actor_id=actor_id, action="refund"
                )
            return order.change_payment_status(
                target, actor_id=actor_id, now=now, lock=self.lock_policy, reason=reason
            )

        return await self._mutate(
            order_id, actor_id, "paymentStatus", apply, "update_payment_status"
        )

    async def force_payment_status(
        self,
        order_id: str,
        target: PaymentStatus,
        actor_id: str,
        reason: str | None = None,
    ) -> TransitionResult:
        """Admin-only payment change that ignores the edit lock.

        Raises:
            ForbiddenError: If the actor is not an admin.
        """
        await self._require_admin(actor_id, "force_payment_status")

        def apply(order: Order, role: ActorRole, now: datetime) -> bool:
            return order.change_payment_status(
                target,
                actor_id=actor_id,
                now=now,
                lock=self.lock_policy,
                bypass_lock=True,
                reason=reason,
            )

        return await self._mutate(
            order_id, actor_id, "paymentStatus", apply, "force_payment_status"
        )

    async def upload_receipt(
        self, order_id: str, receipt_image_url: str, actor_id: str
    ) -> TransitionResult:
        """Attach a GCash receipt on behalf of the buyer.

        Raises:
            NotFoundError: If the actor has no relation to the order.
            ForbiddenError: If the actor is not the buyer.
            ValidationError: If the order is not a GCash order.
            LockedOrderError: If the edit window has elapsed.
            InvalidTransitionError: If the payment is already settled.
        """

        def apply(order: Order, role: ActorRole, now: datetime) -> bool:
            if actor_id != order.buyer_id:
                raise ForbiddenError(
                    "Only the buyer can upload a payment receipt",
                    actor_id=actor_id,
                    action="upload_receipt",
                )
            return order.attach_receipt(
                receipt_image_url, actor_id=actor_id, now=now, lock=self.lock_policy
            )

        return await self._mutate(order_id, actor_id, "paymentStatus", apply, "upload_receipt")

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _mutate(
        self,
        order_id: str,
        actor_id: str,
        axis: str,
        apply: Callable[..., bool],
        operation: str,
    ) -> TransitionResult:
        """Run a read-modify-write with compare-and-swap and bounded retries."""
        attempts = self.max_write_retries + 1
        for attempt in range(1, attempts + 1):
            order = await self._load(order_id)
            role = await self._role_of(order, actor_id)
            previous = self._axis_value(order, axis)

            changed = apply(order, role, self.clock.now())
            if not changed:
                logger.debug(
                    "Transition replayed without change",
                    order_id=order_id,
                    operation=operation,
                    status=previous,
                    request_id=self.request_id,
                )
                return TransitionResult(
                    order=order, previous_status=previous, new_status=previous, changed=False
                )

            try:
                await self._call(
                    self.store.compare_and_swap(order, expected_version=order.version),
                    "compare_and_swap",
                )
            except VersionConflict as e:
                order.discard_events()
                logger.info(
                    "Version conflict, retrying",
                    order_id=order_id,
                    operation=operation,
                    attempt=attempt,
                    expected_version=e.expected,
                    actual_version=e.actual,
                    request_id=self.request_id,
                )
                continue

            self.cache.invalidate(
                _buyer_key(order.buyer_id), *(_seller_key(s) for s in order.seller_ids)
            )
            await publish_events(self.dispatcher, order.collect_events())

            new = self._axis_value(order, axis)
            logger.info(
                "Order updated",
                order_id=order_id,
                operation=operation,
                field=axis,
                from_status=previous,
                to_status=new,
                order_status=order.order_status.value,
                payment_status=order.payment_status.value,
                actor_id=actor_id,
                version=order.version,
                request_id=self.request_id,
            )
            return TransitionResult(
                order=order, previous_status=previous, new_status=new, changed=True
            )

        logger.warning(
            "Giving up after repeated version conflicts",
            order_id=order_id,
            operation=operation,
            attempts=attempts,
            request_id=self.request_id,
        )
        raise ConflictError(order_id, attempts)

    @staticmethod
    def _axis_value(order: Order, axis: str) -> str:
        if axis == "orderStatus":
            return order.order_status.value
        return order.payment_status.value

    async def _load(self, order_id: str) -> Order:
        order = await self._call(self.store.get(order_id), "get")
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    async def _role_of(self, order: Order, actor_id: str) -> ActorRole:
        if await self.directory.is_admin(actor_id):
            return ActorRole.ADMIN
        if order.has_seller(actor_id):
            return ActorRole.SELLER
        if order.buyer_id == actor_id:
            return ActorRole.BUYER
        # Unrelated actors must not learn that the order exists
        raise NotFoundError("Order", order.id)

    async def _require_admin(self, actor_id: str, action: str) -> None:
        if not await self.directory.is_admin(actor_id):
            logger.warning(
                "Admin action refused",
                actor_id=actor_id,
                action=action,
                request_id=self.request_id,
            )
            raise ForbiddenError("Admin role required", actor_id=actor_id, action=action)

    async def _call(self, awaitable: Awaitable[T], operation: str) -> T:
        """Await a store call under the configured deadline."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.store_timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.error(
                "Order store timed out",
                operation=operation,
                timeout_seconds=self.store_timeout_seconds,
                request_id=self.request_id,
            )
            raise StoreUnavailableError(operation, self.store_timeout_seconds) from e


# ============================================================================
# Service Factory
# ============================================================================


def get_order_service(request_id: str | None = None) -> OrderService:
    """Get order service instance.

    Args:
        request_id: Request ID for correlation.

    Returns:
        OrderService instance.
    """
    return OrderService(request_id=request_id)


def reset_order_service_state() -> None:
    """Reset the shared clock and list cache (for testing)."""
    set_clock(None)
