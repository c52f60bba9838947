"""Domain entities for Craftly orders.

The Order aggregate owns two independent state machines (fulfillment
and payment), the single coupling between them, and the edit-lock
guard in front of every mutation.
"""

from dataclasses import dataclass, field
from datetime import datetime

from craftly_orders.domain.base import AggregateRoot
from craftly_orders.domain.edit_lock import EditLockPolicy
from craftly_orders.domain.events import (
    OrderPlaced,
    OrderStatusChanged,
    PaymentStatusChanged,
    ReceiptUploaded,
)
from craftly_orders.domain.exceptions import InvalidTransitionError, ValidationError
from craftly_orders.domain.state_machines import (
    OrderStatus,
    PaymentStatus,
    validate_order_transition,
    validate_payment_transition,
)
from craftly_orders.domain.value_objects import (
    DEFAULT_CURRENCY,
    Money,
    PaymentMethod,
    ShippingAddress,
    ShippingMethod,
)


# ============================================================================
# Order Item
# ============================================================================


@dataclass(frozen=True)
class OrderItem:
    """A line item in an order.

    Order items are immutable snapshots of cart lines at checkout; the
    live catalog never changes them afterwards.
    """

    product_id: str
    product_name: str
    quantity: int
    price: Money
    seller_id: str
    image: str | None = None

    @property
    def line_total(self) -> Money:
        """Unit price multiplied by quantity."""
        return self.price * self.quantity


# ============================================================================
# Audit Trail
# ============================================================================


@dataclass(frozen=True)
class StatusHistoryEntry:
    """One recorded change of orderStatus or paymentStatus."""

    field: str
    from_status: str | None
    to_status: str
    actor_id: str
    at: datetime
    reason: str | None = None
    lock_bypassed: bool = False


# ============================================================================
# Order Aggregate Root
# ============================================================================


@dataclass(kw_only=True, eq=False)
class Order(AggregateRoot):
    """Order aggregate root.

    One order per checkout, possibly spanning several sellers. The
    lifecycle is order-scoped: every seller partition shares the same
    order and payment status.

    Attributes:
        buyer_id: Owning buyer.
        items: Line items in cart order.
        shipping_method: Delivery or pickup.
        payment_method: COD or GCash.
        shipping_address: Address snapshot.
        recipient_name: Recipient on the parcel.
        recipient_phone: Recipient contact number.
        delivery_fee: Buyer-facing fee, never attributed to sellers.
        total_amount: Item subtotal plus delivery fee.
        order_status: Fulfillment status.
        payment_status: Payment verification status.
        receipt_image_url: GCash receipt, kept for audit even after rejection.
        status_history: Append-only audit trail.
    """

    buyer_id: str
    items: tuple[OrderItem, ...]
    shipping_method: ShippingMethod
    payment_method: PaymentMethod
    shipping_address: ShippingAddress
    recipient_name: str
    recipient_phone: str
    delivery_fee: Money
    total_amount: Money
    order_status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    receipt_image_url: str | None = None
    status_history: list[StatusHistoryEntry] = field(default_factory=list)

    @classmethod
    def place(
        cls,
        *,
        order_id: str,
        buyer_id: str,
        items: list[OrderItem],
        shipping_method: ShippingMethod,
        payment_method: PaymentMethod,
        shipping_address: ShippingAddress,
        recipient_name: str,
        recipient_phone: str,
        delivery_fee: Money,
        receipt_image_url: str | None,
        now: datetime,
    ) -> "Order":
        """Create a new order in its initial state.

        Returns:
            New Order with a recorded OrderPlaced event.
        """
        currency = delivery_fee.currency
        subtotal = sum((item.line_total for item in items), Money.zero(currency))

        payment_status = PaymentStatus.UNPAID
        if payment_method == PaymentMethod.GCASH and receipt_image_url:
            payment_status = PaymentStatus.PENDING_VERIFICATION
        else:
            receipt_image_url = receipt_image_url if payment_method == PaymentMethod.GCASH else None

        order = cls(
            id=order_id,
            buyer_id=buyer_id,
            items=tuple(items),
            shipping_method=shipping_method,
            payment_method=payment_method,
            shipping_address=shipping_address,
            recipient_name=recipient_name.strip(),
            recipient_phone=recipient_phone.strip(),
            delivery_fee=delivery_fee,
            total_amount=subtotal + delivery_fee,
            payment_status=payment_status,
            receipt_image_url=receipt_image_url,
            created_at=now,
            updated_at=now,
        )
        order.status_history.append(
            StatusHistoryEntry(
                field="orderStatus",
                from_status=None,
                to_status=OrderStatus.PENDING.value,
                actor_id=buyer_id,
                at=now,
                reason="Order placed",
            )
        )
        order._raise_event(
            OrderPlaced(
                aggregate_id=order.id,
                occurred_at=now,
                buyer_id=buyer_id,
                seller_ids=tuple(order.seller_ids),
                recipient_name=order.recipient_name,
                total_cents=order.total_amount.amount_cents,
                payment_method=payment_method.value,
            )
        )
        return order

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    @property
    def currency(self) -> str:
        return self.total_amount.currency if self.total_amount else DEFAULT_CURRENCY

    @property
    def subtotal(self) -> Money:
        """Sum of line totals, excluding the delivery fee."""
        return sum((item.line_total for item in self.items), Money.zero(self.currency))

    @property
    def seller_ids(self) -> list[str]:
        """Distinct seller ids in the order they first appear."""
        return list(dict.fromkeys(item.seller_id for item in self.items))

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def has_seller(self, seller_id: str) -> bool:
        return any(item.seller_id == seller_id for item in self.items)

    def is_reconciled(self) -> bool:
        """Check that the stored total still equals items plus delivery fee."""
        return self.subtotal + self.delivery_fee == self.total_amount

    # -------------------------------------------------------------------------
    # State Transitions
    # -------------------------------------------------------------------------

    def change_status(
        self,
        target: OrderStatus,
        *,
        actor_id: str,
        now: datetime,
        lock: EditLockPolicy,
        bypass_lock: bool = False,
        reason: str | None = None,
    ) -> bool:
        """Move the fulfillment status.

        Asking for the current status, or one the order already passed
        through, is a no-op. A retried request never fails after its first
        attempt succeeded, even when another actor has moved the order on.

        Returns:
            True if the order changed, False for a replay.

        Raises:
            LockedOrderError: If the edit window has elapsed.
            InvalidTransitionError: If target is not reachable.
        """
        if target == self.order_status:
            return False
        if not self.order_status.can_transition_to(target) and self._has_reached(
            "orderStatus", target.value
        ):
            return False
        if not bypass_lock:
            lock.guard(self.id, self.created_at, now)
        validate_order_transition(self.id, self.order_status, target)

        self._set_order_status(target, actor_id, now, reason, bypass_lock)

        # Cash on delivery is settled when the parcel is handed over
        if (
            target == OrderStatus.DELIVERED
            and self.payment_method == PaymentMethod.COD
            and self.payment_status == PaymentStatus.UNPAID
        ):
            self._set_payment_status(
                PaymentStatus.PAID, actor_id, now, "Cash collected on delivery", bypass_lock
            )

        self._changed_at(now)
        return True

    def change_payment_status(
        self,
        target: PaymentStatus,
        *,
        actor_id: str,
        now: datetime,
        lock: EditLockPolicy,
        bypass_lock: bool = False,
        reason: str | None = None,
    ) -> bool:
        """Move the payment status.

        Marking an order paid while it is still pending also moves it to
        processing; orders already past pending are left alone.

        Returns:
            True if the order changed, False for a replay.

        Raises:
            LockedOrderError: If the edit window has elapsed.
            InvalidTransitionError: If target is not reachable.
        """
        if target == self.payment_status:
            return False
        # Unpaid and pending_verification can alternate, so only a target that
        # is no longer reachable counts as already done
        if not self.payment_status.can_transition_to(
            target, self.payment_method
        ) and self._has_reached("paymentStatus", target.value):
            return False
        if not bypass_lock:
            lock.guard(self.id, self.created_at, now)
        validate_payment_transition(self.id, self.payment_method, self.payment_status, target)

        self._set_payment_status(target, actor_id, now, reason, bypass_lock)

        if target == PaymentStatus.PAID and self.order_status == OrderStatus.PENDING:
            self._set_order_status(
                OrderStatus.PROCESSING, actor_id, now, "Payment confirmed", bypass_lock
            )

        self._changed_at(now)
        return True

    def attach_receipt(
        self,
        receipt_image_url: str,
        *,
        actor_id: str,
        now: datetime,
        lock: EditLockPolicy,
    ) -> bool:
        """Attach a GCash receipt and queue the payment for review.

        Re-uploading while verification is pending replaces the image.

        Returns:
            True if the order changed.

        Raises:
            ValidationError: If the order is not a GCash order or the URL is empty.
            LockedOrderError: If the edit window has elapsed.
            InvalidTransitionError: If the payment is already settled.
        """
        url = (receipt_image_url or "").strip()
        if not url:
            raise ValidationError("Receipt image URL is required", field="receiptImageUrl")
        if self.payment_method != PaymentMethod.GCASH:
            raise ValidationError(
                "Receipts can only be attached to GCash orders",
                field="receiptImageUrl",
                details={"payment_method": self.payment_method.value},
            )
        if (
            self.payment_status == PaymentStatus.PENDING_VERIFICATION
            and self.receipt_image_url == url
        ):
            return False

        lock.guard(self.id, self.created_at, now)

        if self.payment_status == PaymentStatus.UNPAID:
            self.receipt_image_url = url
            self._set_payment_status(
                PaymentStatus.PENDING_VERIFICATION, actor_id, now, "Receipt uploaded", False
            )
        elif self.payment_status == PaymentStatus.PENDING_VERIFICATION:
            self.receipt_image_url = url
        else:
            raise InvalidTransitionError(
                order_id=self.id,
                field="paymentStatus",
                current_state=self.payment_status.value,
                target_state=PaymentStatus.PENDING_VERIFICATION.value,
                allowed_transitions=[
                    s.value for s in self.payment_status.allowed_transitions(self.payment_method)
                ],
            )

        self._raise_event(
            ReceiptUploaded(
                aggregate_id=self.id,
                occurred_at=now,
                buyer_id=self.buyer_id,
                seller_ids=tuple(self.seller_ids),
                receipt_image_url=url,
            )
        )
        self._changed_at(now)
        return True

    def _has_reached(self, field_name: str, status: str) -> bool:
        return any(
            entry.field == field_name and entry.to_status == status
            for entry in self.status_history
        )

    def _set_order_status(
        self,
        target: OrderStatus,
        actor_id: str,
        now: datetime,
        reason: str | None,
        lock_bypassed: bool,
    ) -> None:
        previous = self.order_status
        self.order_status = target
        self.status_history.append(
            StatusHistoryEntry(
                field="orderStatus",
                from_status=previous.value,
                to_status=target.value,
                actor_id=actor_id,
                at=now,
                reason=reason,
                lock_bypassed=lock_bypassed,
            )
        )
        self._raise_event(
            OrderStatusChanged(
                aggregate_id=self.id,
                occurred_at=now,
                buyer_id=self.buyer_id,
                from_status=previous.value,
                to_status=target.value,
                actor_id=actor_id,
                lock_bypassed=lock_bypassed,
            )
        )

    def _set_payment_status(
        self,
        target: PaymentStatus,
        actor_id: str,
        now: datetime,
        reason: str | None,
        lock_bypassed: bool,
    ) -> None:
        previous = self.payment_status
        self.payment_status = target
        self.status_history.append(
            StatusHistoryEntry(
                field="paymentStatus",
                from_status=previous.value,
                to_status=target.value,
                actor_id=actor_id,
                at=now,
                reason=reason,
                lock_bypassed=lock_bypassed,
            )
        )
        self._raise_event(
            PaymentStatusChanged(
                aggregate_id=self.id,
                occurred_at=now,
                buyer_id=self.buyer_id,
                from_status=previous.value,
                to_status=target.value,
                actor_id=actor_id,
                lock_bypassed=lock_bypassed,
            )
        )
