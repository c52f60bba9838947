"""Tests for seller partitions and revenue reports."""

from datetime import timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from craftly_orders.domain import Money, OrderStatus, PaymentStatus
from craftly_orders.domain.edit_lock import EditLockPolicy
from craftly_orders.domain.partitioner import partition_cart
from craftly_orders.domain.revenue import (
    counts_toward_revenue,
    partition_for,
    partitions,
    seller_revenue_report,
)

MANILA = ZoneInfo("Asia/Manila")


@pytest.fixture
def place(clock, two_seller_cart, make_selections):
    def _place(order_id="order-1", lines=None, now=None):
        return partition_cart(
            order_id=order_id,
            buyer_id="buyer-1",
            lines=two_seller_cart if lines is None else lines,
            selections=make_selections(),
            local_delivery_fee=Money(5000),
            now=now or clock.now(),
        )

    return _place


class TestPartitions:
    def test_seller_only_sees_own_items(self, place) -> None:
        partition = partition_for(place(), "seller-b")

        assert [item.product_id for item in partition.items] == ["mug-1"]
        assert partition.item_count == 1
        assert partition.seller_total == Money(30000)

    def test_partitions_sum_to_total_minus_delivery_fee(self, place) -> None:
        order = place()
        total = sum((p.seller_total.amount_cents for p in partitions(order)), 0)
        assert total == order.total_amount.amount_cents - order.delivery_fee.amount_cents

    def test_commission_plus_payout_equals_seller_total(self, place) -> None:
        for partition in partitions(place(), commission_rate_bps=750):
            assert partition.commission + partition.net_payout == partition.seller_total

    def test_commission_rate_applied(self, place) -> None:
        partition = partition_for(place(), "seller-a", commission_rate_bps=1000)
        assert partition.commission == Money(9000)
        assert partition.net_payout == Money(81000)

    def test_unrelated_seller_gets_empty_partition(self, place) -> None:
        partition = partition_for(place(), "seller-z")
        assert partition.items == ()
        assert partition.seller_total.is_zero()


class TestCountsTowardRevenue:
    def test_cancelled_orders_excluded(self, place, clock) -> None:
        order = place()
        order.change_status(
            OrderStatus.CANCELLED, actor_id="buyer-1", now=clock.now(), lock=EditLockPolicy()
        )
        assert not counts_toward_revenue(order)

    def test_refunded_orders_excluded(self, place, clock) -> None:
        order = place()
        lock = EditLockPolicy()
        order.change_payment_status(PaymentStatus.PAID, actor_id="seller-a", now=clock.now(), lock=lock)
        order.change_payment_status(PaymentStatus.REFUNDED, actor_id="admin-1", now=clock.now(), lock=lock)
        assert not counts_toward_revenue(order)

    def test_pending_orders_count(self, place) -> None:
        assert counts_toward_revenue(place())


class TestSellerRevenueReport:
    """Tests for seller_revenue_report."""

    def test_totals_and_counts(self, place, clock) -> None:
        orders = [place("order-1"), place("order-2")]

        report = seller_revenue_report(
            orders, "seller-a", now=clock.now(), tz=MANILA, currency="PHP"
        )

        assert report.gross == 180000
        assert report.net_payout == 180000
        assert report.order_count == 2
        assert report.items_sold == 4
        assert report.by_status["pending"] == 2

    def test_by_status_lists_every_status(self, place, clock) -> None:
        report = seller_revenue_report(
            [place()], "seller-b", now=clock.now(), tz=MANILA, currency="PHP"
        )
        assert set(report.by_status) == {status.value for status in OrderStatus}
        assert report.by_status["delivered"] == 0

    def test_cancelled_counted_by_status_but_not_in_money(self, place, clock) -> None:
        cancelled = place("order-1")
        cancelled.change_status(
            OrderStatus.CANCELLED, actor_id="buyer-1", now=clock.now(), lock=EditLockPolicy()
        )

        report = seller_revenue_report(
            [cancelled, place("order-2")], "seller-b", now=clock.now(), tz=MANILA, currency="PHP"
        )

        assert report.by_status["cancelled"] == 1
        assert report.order_count == 1
        assert report.gross == 30000

    def test_orders_without_seller_are_skipped(self, place, make_line, clock) -> None:
        other = place("order-9", lines=[make_line(seller_id="seller-c")])

        report = seller_revenue_report(
            [other], "seller-a", now=clock.now(), tz=MANILA, currency="PHP"
        )

        assert report.order_count == 0
        assert sum(report.by_status.values()) == 0

    def test_today_uses_seller_timezone(self, place, clock) -> None:
        """17:00 UTC on the previous day is already 01:00 today in Manila."""
        now = clock.now()
        just_after_midnight = place("order-1", now=now.replace(hour=0) - timedelta(hours=7))
        yesterday = place("order-2", now=now - timedelta(days=1))

        report = seller_revenue_report(
            [just_after_midnight, yesterday], "seller-b", now=now, tz=MANILA, currency="PHP"
        )
        assert report.today_earnings == 30000

        utc_report = seller_revenue_report(
            [just_after_midnight, yesterday], "seller-b", now=now, tz=timezone.utc, currency="PHP"
        )
        assert utc_report.today_earnings == 0

    def test_commission_is_reported(self, place, clock) -> None:
        report = seller_revenue_report(
            [place()], "seller-a", now=clock.now(), tz=MANILA, currency="PHP", commission_rate_bps=500
        )
        assert report.commission == 4500
        assert report.net_payout == 85500
