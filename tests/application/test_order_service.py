"""Tests for the order application service."""

from datetime import timedelta

import pytest

from craftly_orders.application.cache import TTLCache
from craftly_orders.application.order_service import OrderService
from craftly_orders.domain import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ShippingMethod,
)
from craftly_orders.domain.exceptions import (
    ForbiddenError,
    InvalidTransitionError,
    LockedOrderError,
    NotFoundError,
    StockExceededError,
    ValidationError,
)

pytestmark = pytest.mark.asyncio


# ============================================================================
# Creation
# ============================================================================


class TestCreateOrder:
    """Tests for OrderService.create_order."""

    async def test_creates_one_order_per_checkout(self, service, place, store) -> None:
        order = await place()

        stored = await store.get(order.id)
        assert stored is not None
        assert stored.version == 1
        assert stored.seller_ids == ["seller-a", "seller-b"]
        assert stored.total_amount.amount_cents == 125000

    async def test_sellers_are_notified(self, place, dispatcher) -> None:
        order = await place()

        kinds = {(n.recipient_id, n.kind) for n in dispatcher.sent}
        assert kinds == {("seller-a", "new_order"), ("seller-b", "new_order")}
        assert all(n.order_id == order.id for n in dispatcher.sent)

    async def test_buyer_selling_to_themself_not_notified(self, place, make_line, dispatcher) -> None:
        await place(buyer_id="seller-a", lines=[make_line()])
        assert dispatcher.sent == []

    async def test_same_checkout_token_returns_same_order(
        self, service, two_seller_cart, make_selections, store
    ) -> None:
        first = await service.create_order(
            buyer_id="buyer-1",
            lines=two_seller_cart,
            selections=make_selections(),
            idempotency_key="checkout-42",
        )
        second = await service.create_order(
            buyer_id="buyer-1",
            lines=two_seller_cart,
            selections=make_selections(),
            idempotency_key="checkout-42",
        )

        assert first.created is True
        assert second.created is False
        assert second.order.id == first.order.id
        assert len(await store.list_by_buyer("buyer-1", 10)) == 1

    async def test_without_token_each_submit_creates(self, place, store) -> None:
        await place()
        await place()
        assert len(await store.list_by_buyer("buyer-1", 10)) == 2

    async def test_seller_delivery_methods_respected(self, place, directory) -> None:
        directory.set_delivery_methods("seller-b", {ShippingMethod.STORE_PICKUP})

        with pytest.raises(ValidationError) as exc_info:
            await place()

        assert exc_info.value.field == "shippingMethod"
        assert exc_info.value.details["seller_id"] == "seller-b"

    async def test_rejected_cart_is_not_stored(self, place, make_line, store) -> None:
        with pytest.raises(StockExceededError):
            await place(lines=[make_line(quantity=5, stock=1)])
        assert await store.list_by_buyer("buyer-1", 10) == []


# ============================================================================
# Queries
# ============================================================================


class TestQueries:
    """Tests for order reads and their visibility rules."""

    @pytest.mark.parametrize("actor", ["buyer-1", "seller-a", "seller-b", "admin-1"])
    async def test_related_actors_can_read(self, service, place, actor) -> None:
        order = await place()
        assert (await service.get_order(order.id, actor)).id == order.id

    async def test_unrelated_actor_gets_not_found(self, service, place) -> None:
        order = await place()
        with pytest.raises(NotFoundError):
            await service.get_order(order.id, "someone-else")

    async def test_missing_order(self, service) -> None:
        with pytest.raises(NotFoundError):
            await service.get_order("missing", "buyer-1")

    async def test_buyer_list_newest_first(self, service, place, clock) -> None:
        first = await place()
        clock.advance(timedelta(minutes=1))
        second = await place()

        orders = await service.list_buyer_orders("buyer-1", "buyer-1")

        assert [o.id for o in orders] == [second.id, first.id]

    async def test_buyer_list_limit(self, service, place, clock) -> None:
        for _ in range(3):
            await place()
            clock.advance(timedelta(seconds=1))

        page = await service.list_buyer_orders("buyer-1", "buyer-1", limit=2)

        assert len(page) == 2
        assert page.count == 2
        assert page.total == 3
        assert page.has_more is True

    async def test_buyer_list_forbidden_for_others(self, service, place) -> None:
        await place()
        with pytest.raises(ForbiddenError):
            await service.list_buyer_orders("buyer-1", "seller-a")

    async def test_admin_can_list_any_buyer(self, service, place) -> None:
        await place()
        assert len(await service.list_buyer_orders("buyer-1", "admin-1")) == 1

    async def test_seller_list_carries_partition(self, service, place) -> None:
        await place()

        views = await service.list_seller_orders("seller-b", "seller-b")

        assert len(views) == 1
        assert [item.product_id for item in views[0].partition.items] == ["mug-1"]
        assert views[0].partition.seller_total.amount_cents == 30000
        assert len(views[0].order.items) == 2

    async def test_seller_list_forbidden_for_other_seller(self, service) -> None:
        with pytest.raises(ForbiddenError):
            await service.list_seller_orders("seller-a", "seller-b")

    async def test_seller_revenue(self, service, place) -> None:
        await place()
        cancelled = await place()
        await service.transition_status(cancelled.id, OrderStatus.CANCELLED, "buyer-1")

        report = await service.seller_revenue("seller-a", "seller-a")

        assert report.gross == 90000
        assert report.order_count == 1
        assert report.by_status["pending"] == 1
        assert report.by_status["cancelled"] == 1
        assert report.today_earnings == 90000

    async def test_lists_cached_until_ttl(
        self, service, place, store, directory, dispatcher, clock, two_seller_cart, make_selections
    ) -> None:
        """Writes made by another instance show up once the TTL has passed."""
        await place()
        assert len(await service.list_buyer_orders("buyer-1", "buyer-1")) == 1

        other = OrderService(
            store=store,
            directory=directory,
            dispatcher=dispatcher,
            clock=clock,
            cache=TTLCache(ttl=timedelta(seconds=1), clock=clock),
        )
        await other.create_order(
            buyer_id="buyer-1", lines=two_seller_cart, selections=make_selections()
        )
        assert len(await service.list_buyer_orders("buyer-1", "buyer-1")) == 1

        clock.advance(timedelta(seconds=2))
        assert len(await service.list_buyer_orders("buyer-1", "buyer-1")) == 2

    async def test_own_writes_invalidate_lists(self, service, place) -> None:
        await place()
        assert len(await service.list_buyer_orders("buyer-1", "buyer-1")) == 1

        await place()

        assert len(await service.list_buyer_orders("buyer-1", "buyer-1")) == 2


# ============================================================================
# Status Transitions
# ============================================================================


class TestTransitionStatus:
    """Tests for fulfillment status changes through the service."""

    async def test_seller_moves_order(self, service, place, store) -> None:
        order = await place()

        result = await service.transition_status(order.id, OrderStatus.SHIPPED, "seller-b")

        assert result.changed is True
        assert result.previous_status == "pending"
        assert result.new_status == "shipped"
        stored = await store.get(order.id)
        assert stored.order_status == OrderStatus.SHIPPED
        assert stored.version == 2

    async def test_status_is_order_wide(self, service, place) -> None:
        """A status change by one seller is seen by every seller."""
        order = await place()
        await service.transition_status(order.id, OrderStatus.PROCESSING, "seller-a")

        seen_by_b = await service.get_order(order.id, "seller-b")

        assert seen_by_b.order_status == OrderStatus.PROCESSING

    async def test_buyer_notified_of_seller_change(self, service, place, dispatcher) -> None:
        order = await place()
        dispatcher.sent.clear()

        await service.transition_status(order.id, OrderStatus.PROCESSING, "seller-a")

        assert [(n.recipient_id, n.kind) for n in dispatcher.sent] == [
            ("buyer-1", "order_status_changed")
        ]

    async def test_buyer_can_cancel_pending(self, service, place, dispatcher) -> None:
        order = await place()
        dispatcher.sent.clear()

        result = await service.transition_status(order.id, OrderStatus.CANCELLED, "buyer-1")

        assert result.order.order_status == OrderStatus.CANCELLED
        assert dispatcher.sent == []

    async def test_buyer_cannot_advance(self, service, place) -> None:
        order = await place()
        with pytest.raises(ForbiddenError):
            await service.transition_status(order.id, OrderStatus.DELIVERED, "buyer-1")

    async def test_buyer_cannot_cancel_after_pending(self, service, place) -> None:
        order = await place()
        await service.transition_status(order.id, OrderStatus.PROCESSING, "seller-a")

        with pytest.raises(ForbiddenError):
            await service.transition_status(order.id, OrderStatus.CANCELLED, "buyer-1")

    async def test_seller_can_cancel_processing(self, service, place) -> None:
        order = await place()
        await service.transition_status(order.id, OrderStatus.PROCESSING, "seller-a")

        result = await service.transition_status(order.id, OrderStatus.CANCELLED, "seller-a")

        assert result.new_status == "cancelled"

    async def test_unrelated_actor_gets_not_found(self, service, place) -> None:
        order = await place()
        with pytest.raises(NotFoundError):
            await service.transition_status(order.id, OrderStatus.PROCESSING, "someone-else")

    async def test_invalid_transition(self, service, place) -> None:
        order = await place()
        await service.transition_status(order.id, OrderStatus.SHIPPED, "seller-a")

        with pytest.raises(InvalidTransitionError):
            await service.transition_status(order.id, OrderStatus.CANCELLED, "seller-a")

    async def test_locked_after_window(self, service, place, clock, store) -> None:
        order = await place()
        clock.advance(timedelta(hours=24, seconds=1))

        with pytest.raises(LockedOrderError):
            await service.transition_status(order.id, OrderStatus.PROCESSING, "seller-a")
        assert (await store.get(order.id)).version == 1

    async def test_admin_is_locked_out_too(self, service, place, clock) -> None:
        order = await place()
        clock.advance(timedelta(days=2))

        with pytest.raises(LockedOrderError):
            await service.transition_status(order.id, OrderStatus.PROCESSING, "admin-1")

    async def test_replay_does_not_write(self, service, place, store, dispatcher) -> None:
        order = await place()
        await service.transition_status(order.id, OrderStatus.PROCESSING, "seller-a")
        dispatcher.sent.clear()

        result = await service.transition_status(order.id, OrderStatus.PROCESSING, "seller-a")

        assert result.changed is False
        assert (await store.get(order.id)).version == 2
        assert dispatcher.sent == []

    async def test_cod_delivery_marks_paid(self, service, place) -> None:
        order = await place()

        result = await service.transition_status(order.id, OrderStatus.DELIVERED, "seller-a")

        assert result.order.payment_status == PaymentStatus.PAID


class TestForceTransitionStatus:
    """Tests for admin overrides of the edit lock."""

    async def test_requires_admin(self, service, place) -> None:
        order = await place()
        with pytest.raises(ForbiddenError):
            await service.force_transition_status(order.id, OrderStatus.CANCELLED, "seller-a")

    async def test_bypasses_lock_and_is_audited(self, service, place, clock, store) -> None:
        order = await place()
        clock.advance(timedelta(days=5))

        await service.force_transition_status(
            order.id, OrderStatus.CANCELLED, "admin-1", reason="Fraudulent order"
        )

        stored = await store.get(order.id)
        entry = stored.status_history[-1]
        assert stored.order_status == OrderStatus.CANCELLED
        assert entry.lock_bypassed is True
        assert entry.actor_id == "admin-1"
        assert entry.reason == "Fraudulent order"

    async def test_state_machine_still_applies(self, service, place) -> None:
        order = await place()
        await service.force_transition_status(order.id, OrderStatus.DELIVERED, "admin-1")

        with pytest.raises(InvalidTransitionError):
            await service.force_transition_status(order.id, OrderStatus.CANCELLED, "admin-1")


# ============================================================================
# Payment Transitions
# ============================================================================


class TestUpdatePaymentStatus:
    """Tests for payment review and refunds."""

    async def test_seller_confirms_cod_payment(self, service, place) -> None:
        order = await place()

        result = await service.update_payment_status(order.id, PaymentStatus.PAID, "seller-a")

        assert result.new_status == "paid"
        assert result.order.order_status == OrderStatus.PROCESSING

    async def test_seller_approves_gcash_receipt(self, service, place) -> None:
        order = await place(payment_method=PaymentMethod.GCASH, receipt_image_url="https://x/r.jpg")

        result = await service.update_payment_status(order.id, PaymentStatus.PAID, "seller-b")

        assert result.previous_status == "pending_verification"
        assert result.new_status == "paid"

    async def test_seller_rejects_gcash_receipt(self, service, place) -> None:
        order = await place(payment_method=PaymentMethod.GCASH, receipt_image_url="https://x/r.jpg")

        result = await service.update_payment_status(order.id, PaymentStatus.UNPAID, "seller-a")

        assert result.order.payment_status == PaymentStatus.UNPAID
        assert result.order.order_status == OrderStatus.PENDING

    async def test_pending_verification_not_settable(self, service, place) -> None:
        order = await place(payment_method=PaymentMethod.GCASH)
        with pytest.raises(ValidationError):
            await service.update_payment_status(
                order.id, PaymentStatus.PENDING_VERIFICATION, "seller-a"
            )

    async def test_buyer_cannot_change_payment(self, service, place) -> None:
        order = await place()
        with pytest.raises(ForbiddenError):
            await service.update_payment_status(order.id, PaymentStatus.PAID, "buyer-1")

    async def test_refund_is_admin_only(self, service, place) -> None:
        order = await place()
        await service.update_payment_status(order.id, PaymentStatus.PAID, "seller-a")

        with pytest.raises(ForbiddenError):
            await service.update_payment_status(order.id, PaymentStatus.REFUNDED, "seller-a")

        result = await service.update_payment_status(order.id, PaymentStatus.REFUNDED, "admin-1")
        assert result.new_status == "refunded"

    async def test_locked_payment(self, service, place, clock) -> None:
        order = await place()
        clock.advance(timedelta(hours=25))

        with pytest.raises(LockedOrderError):
            await service.update_payment_status(order.id, PaymentStatus.PAID, "seller-a")

    async def test_force_payment_after_lock(self, service, place, clock) -> None:
        order = await place()
        await service.update_payment_status(order.id, PaymentStatus.PAID, "seller-a")
        clock.advance(timedelta(days=10))

        result = await service.force_payment_status(order.id, PaymentStatus.REFUNDED, "admin-1")

        assert result.new_status == "refunded"
        assert result.order.status_history[-1].lock_bypassed is True

    async def test_force_payment_requires_admin(self, service, place) -> None:
        order = await place()
        with pytest.raises(ForbiddenError):
            await service.force_payment_status(order.id, PaymentStatus.PAID, "seller-a")


class TestUploadReceipt:
    """Tests for GCash receipt uploads."""

    async def test_buyer_uploads_and_sellers_are_told(self, service, place, dispatcher) -> None:
        order = await place(payment_method=PaymentMethod.GCASH)
        dispatcher.sent.clear()

        result = await service.upload_receipt(order.id, "https://x/r.jpg", "buyer-1")

        assert result.new_status == "pending_verification"
        assert {n.recipient_id for n in dispatcher.sent} == {"seller-a", "seller-b"}
        assert {n.kind for n in dispatcher.sent} == {"payment_receipt_uploaded"}

    async def test_seller_cannot_upload(self, service, place) -> None:
        order = await place(payment_method=PaymentMethod.GCASH)
        with pytest.raises(ForbiddenError):
            await service.upload_receipt(order.id, "https://x/r.jpg", "seller-a")

    async def test_cod_order_rejects_receipt(self, service, place) -> None:
        order = await place()
        with pytest.raises(ValidationError):
            await service.upload_receipt(order.id, "https://x/r.jpg", "buyer-1")
