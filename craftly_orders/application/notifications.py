"""Notification dispatch.

Buyers and sellers are told about new orders and status changes after
the order write has committed. Delivery is best-effort: a failing
dispatcher is logged and never undoes the order change.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

from craftly_orders.domain.base import DomainEvent
from craftly_orders.domain.events import (
    OrderPlaced,
    OrderStatusChanged,
    PaymentStatusChanged,
    ReceiptUploaded,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class Notification:
    """A message addressed to one user.

    Attributes:
        recipient_id: User to notify.
        kind: Notification type, e.g. "new_order".
        order_id: Order the notification is about.
        message: Human-readable text.
        data: Extra structured fields for the client.
    """

    recipient_id: str
    kind: str
    order_id: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)


class NotificationDispatcher(Protocol):
    """Outbound notification port."""

    async def send(self, notification: Notification) -> None:
        ...


class LoggingNotificationDispatcher:
    """Dispatcher that only writes notifications to the log."""

    async def send(self, notification: Notification) -> None:
        logger.info(
            "Notification dispatched",
            recipient_id=notification.recipient_id,
            kind=notification.kind,
            order_id=notification.order_id,
        )


class RecordingNotificationDispatcher:
    """Dispatcher that keeps every notification in memory."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)

    def for_recipient(self, recipient_id: str) -> list[Notification]:
        return [n for n in self.sent if n.recipient_id == recipient_id]


def notifications_for(event: DomainEvent) -> list[Notification]:
    """Translate a domain event into the notifications it triggers."""
    if isinstance(event, OrderPlaced):
        return [
            Notification(
                recipient_id=seller_id,
                kind="new_order",
                order_id=event.aggregate_id,
                message=f"New order from {event.recipient_name}",
                data={"total_cents": event.total_cents, "payment_method": event.payment_method},
            )
            for seller_id in event.seller_ids
            if seller_id != event.buyer_id
        ]

    if isinstance(event, OrderStatusChanged):
        if event.actor_id == event.buyer_id:
            return []
        return [
            Notification(
                recipient_id=event.buyer_id,
                kind="order_status_changed",
                order_id=event.aggregate_id,
                message=f"Your order is now {event.to_status}",
                data={"from_status": event.from_status, "to_status": event.to_status},
            )
        ]

    if isinstance(event, PaymentStatusChanged):
        if event.actor_id == event.buyer_id:
            return []
        return [
            Notification(
                recipient_id=event.buyer_id,
                kind="payment_status_changed",
                order_id=event.aggregate_id,
                message=f"Your payment is now {event.to_status.replace('_', ' ')}",
                data={"from_status": event.from_status, "to_status": event.to_status},
            )
        ]

    if isinstance(event, ReceiptUploaded):
        return [
            Notification(
                recipient_id=seller_id,
                kind="payment_receipt_uploaded",
                order_id=event.aggregate_id,
                message="A GCash receipt is waiting for review",
                data={"receipt_image_url": event.receipt_image_url},
            )
            for seller_id in event.seller_ids
            if seller_id != event.buyer_id
        ]

    return []


async def publish_events(dispatcher: NotificationDispatcher, events: list[DomainEvent]) -> int:
    """Send the notifications for committed events.

    Failures are logged per notification and do not propagate.

    Returns:
        Number of notifications delivered.
    """
    delivered = 0
    for event in events:
        for notification in notifications_for(event):
            try:
                await dispatcher.send(notification)
                delivered += 1
            except Exception as e:
                logger.warning(
                    "Notification dispatch failed",
                    recipient_id=notification.recipient_id,
                    kind=notification.kind,
                    order_id=notification.order_id,
                    error=str(e),
                )
    return delivered


_dispatcher: NotificationDispatcher | None = None


def get_notification_dispatcher() -> NotificationDispatcher:
    """Get or create the notification dispatcher."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = LoggingNotificationDispatcher()
    return _dispatcher


def set_notification_dispatcher(dispatcher: NotificationDispatcher | None) -> None:
    """Replace the dispatcher (None restores the default)."""
    global _dispatcher
    _dispatcher = dispatcher
