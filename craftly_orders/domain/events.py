"""Domain events for orders.

Events are raised on the Order aggregate while it changes and turned
into notifications after the store write commits.
"""

from dataclasses import dataclass, field
from typing import ClassVar

from craftly_orders.domain.base import DomainEvent


@dataclass(frozen=True)
class OrderPlaced(DomainEvent):
    """A buyer checked out."""

    event_type: ClassVar[str] = "order.placed"

    buyer_id: str = ""
    seller_ids: tuple[str, ...] = field(default_factory=tuple)
    recipient_name: str = ""
    total_cents: int = 0
    payment_method: str = ""


@dataclass(frozen=True)
class _StatusMoved(DomainEvent):
    buyer_id: str = ""
    from_status: str = ""
    to_status: str = ""
    actor_id: str = ""
    lock_bypassed: bool = False


@dataclass(frozen=True)
class OrderStatusChanged(_StatusMoved):
    """The fulfillment status moved."""

    event_type: ClassVar[str] = "order.status_changed"


@dataclass(frozen=True)
class PaymentStatusChanged(_StatusMoved):
    """The payment status moved."""

    event_type: ClassVar[str] = "order.payment_status_changed"


@dataclass(frozen=True)
class ReceiptUploaded(DomainEvent):
    """The buyer attached a GCash receipt."""

    event_type: ClassVar[str] = "order.receipt_uploaded"

    buyer_id: str = ""
    seller_ids: tuple[str, ...] = field(default_factory=tuple)
    receipt_image_url: str = ""
