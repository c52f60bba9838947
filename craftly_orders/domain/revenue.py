"""Revenue attribution.

Seller shares are projections over an order's items, computed on every
read and never stored, so they cannot drift from the items themselves.
The delivery fee belongs to the buyer-facing total only and is never
attributed to a seller.
"""

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, tzinfo

from craftly_orders.domain.clock import ensure_utc
from craftly_orders.domain.entities import Order, OrderItem
from craftly_orders.domain.state_machines import OrderStatus, PaymentStatus
from craftly_orders.domain.value_objects import Money


@dataclass(frozen=True)
class SellerPartition:
    """One seller's slice of an order.

    Attributes:
        seller_id: Seller the slice belongs to.
        items: The seller's line items, in order.
        item_count: Units across those items.
        seller_total: Sum of the seller's line totals.
        commission: Platform commission taken from seller_total.
        net_payout: What the seller keeps.
    """

    seller_id: str
    items: tuple[OrderItem, ...]
    item_count: int
    seller_total: Money
    commission: Money
    net_payout: Money


def partition_for(order: Order, seller_id: str, commission_rate_bps: int = 0) -> SellerPartition:
    """Project an order onto one seller.

    A seller with no items in the order gets an empty partition.

    Args:
        order: Order to project.
        seller_id: Requesting seller.
        commission_rate_bps: Platform commission in basis points.

    Returns:
        The seller's partition.
    """
    items = tuple(item for item in order.items if item.seller_id == seller_id)
    total = sum((item.line_total for item in items), Money.zero(order.currency))
    commission = total.share_bps(commission_rate_bps)
    return SellerPartition(
        seller_id=seller_id,
        items=items,
        item_count=sum(item.quantity for item in items),
        seller_total=total,
        commission=commission,
        net_payout=total - commission,
    )


def partitions(order: Order, commission_rate_bps: int = 0) -> list[SellerPartition]:
    """One partition per distinct seller, in first-appearance order.

    The partition totals always add up to ``total_amount - delivery_fee``.
    """
    return [partition_for(order, seller_id, commission_rate_bps) for seller_id in order.seller_ids]


def counts_toward_revenue(order: Order) -> bool:
    """Cancelled and refunded orders never count as seller revenue."""
    return (
        order.order_status != OrderStatus.CANCELLED
        and order.payment_status != PaymentStatus.REFUNDED
    )


@dataclass
class RevenueReport:
    """Aggregate earnings of one seller over a set of orders."""

    seller_id: str
    currency: str
    gross: int = 0
    commission: int = 0
    net_payout: int = 0
    today_earnings: int = 0
    order_count: int = 0
    items_sold: int = 0
    by_status: dict[str, int] = field(default_factory=dict)


def seller_revenue_report(
    orders: Iterable[Order],
    seller_id: str,
    *,
    now: datetime,
    tz: tzinfo,
    currency: str,
    commission_rate_bps: int = 0,
) -> RevenueReport:
    """Summarise a seller's revenue.

    Every order touching the seller is counted by status; only orders
    that are neither cancelled nor refunded contribute money.

    Args:
        orders: Candidate orders (non-matching ones are skipped).
        seller_id: Seller to report on.
        now: Reference time for "today".
        tz: Timezone that defines the seller's calendar day.
        currency: Report currency.
        commission_rate_bps: Platform commission in basis points.

    Returns:
        RevenueReport with amounts in centavos.
    """
    report = RevenueReport(seller_id=seller_id, currency=currency)
    statuses: Counter[str] = Counter()
    today = ensure_utc(now).astimezone(tz).date()

    for order in orders:
        if not order.has_seller(seller_id):
            continue
        statuses[order.order_status.value] += 1
        if not counts_toward_revenue(order):
            continue

        partition = partition_for(order, seller_id, commission_rate_bps)
        report.order_count += 1
        report.items_sold += partition.item_count
        report.gross += partition.seller_total.amount_cents
        report.commission += partition.commission.amount_cents
        report.net_payout += partition.net_payout.amount_cents
        if ensure_utc(order.created_at).astimezone(tz).date() == today:
            report.today_earnings += partition.seller_total.amount_cents

    report.by_status = {status.value: statuses.get(status.value, 0) for status in OrderStatus}
    return report
