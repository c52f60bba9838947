"""Order store.

The store is the only shared state of the service. Orders are written
as whole documents, and every update is a compare-and-swap on the
document version: a writer that read version N may only commit if the
stored version is still N, which turns lost updates into an explicit
VersionConflict the caller can retry.

Two backends share the same interface:
- InMemoryOrderStore for development and tests
- SqlAlchemyOrderStore for PostgreSQL (and SQLite in tests)
"""

import asyncio
import copy
from typing import Any, Protocol

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from craftly_orders.domain.clock import format_timestamp, parse_timestamp
from craftly_orders.domain.entities import Order, OrderItem, StatusHistoryEntry
from craftly_orders.domain.state_machines import OrderStatus, PaymentStatus
from craftly_orders.domain.value_objects import (
    Money,
    PaymentMethod,
    ShippingAddress,
    ShippingMethod,
)
from craftly_orders.infrastructure.config import settings
from craftly_orders.infrastructure.database import Base, get_session_factory
from craftly_orders.infrastructure.models import OrderDocumentModel, OrderSellerModel

logger = structlog.get_logger()


# ============================================================================
# Store Errors
# ============================================================================


class VersionConflict(Exception):
    """Raised when the stored version no longer matches the expected one."""

    def __init__(self, order_id: str, expected: int, actual: int | None) -> None:
        super().__init__(
            f"Version conflict on order {order_id}: expected {expected}, found {actual}"
        )
        self.order_id = order_id
        self.expected = expected
        self.actual = actual


class DuplicateOrderError(Exception):
    """Raised when inserting an order whose id already exists."""

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order already exists: {order_id}")
        self.order_id = order_id


# ============================================================================
# Document Codec
# ============================================================================


def order_to_document(order: Order) -> dict[str, Any]:
    """Serialize an order to a JSON-compatible document.

    Money is stored as integer centavos and timestamps as ISO-8601 UTC.
    """
    address = order.shipping_address
    return {
        "id": order.id,
        "buyerId": order.buyer_id,
        "sellerIds": order.seller_ids,
        "items": [
            {
                "productId": item.product_id,
                "productName": item.product_name,
                "quantity": item.quantity,
                "price": item.price.amount_cents,
                "sellerId": item.seller_id,
                "image": item.image,
            }
            for item in order.items
        ],
        "currency": order.currency,
        "shippingMethod": order.shipping_method.value,
        "paymentMethod": order.payment_method.value,
        "shippingAddress": {
            "streetAddress": address.street_address,
            "barangay": address.barangay,
            "city": address.city,
            "postalCode": address.postal_code,
            "landmark": address.landmark,
            "email": address.email,
        },
        "recipientName": order.recipient_name,
        "recipientPhone": order.recipient_phone,
        "deliveryFee": order.delivery_fee.amount_cents,
        "totalAmount": order.total_amount.amount_cents,
        "orderStatus": order.order_status.value,
        "paymentStatus": order.payment_status.value,
        "receiptImageUrl": order.receipt_image_url,
        "statusHistory": [
            {
                "field": entry.field,
                "fromStatus": entry.from_status,
                "toStatus": entry.to_status,
                "actor": entry.actor_id,
                "at": format_timestamp(entry.at),
                "reason": entry.reason,
                "lockBypassed": entry.lock_bypassed,
            }
            for entry in order.status_history
        ],
        "createdAt": format_timestamp(order.created_at),
        "updatedAt": format_timestamp(order.updated_at),
    }


def order_from_document(document: dict[str, Any], version: int) -> Order:
    """Rebuild an Order aggregate from its stored document."""
    currency = document.get("currency", settings.currency)
    address = document.get("shippingAddress") or {}
    return Order(
        id=document["id"],
        version=version,
        buyer_id=document["buyerId"],
        items=tuple(
            OrderItem(
                product_id=item["productId"],
                product_name=item["productName"],
                quantity=item["quantity"],
                price=Money(item["price"], currency),
                seller_id=item["sellerId"],
                image=item.get("image"),
            )
            for item in document["items"]
        ),
        shipping_method=ShippingMethod(document["shippingMethod"]),
        payment_method=PaymentMethod(document["paymentMethod"]),
        shipping_address=ShippingAddress(
            street_address=address.get("streetAddress"),
            barangay=address.get("barangay"),
            city=address.get("city"),
            postal_code=address.get("postalCode"),
            landmark=address.get("landmark"),
            email=address.get("email"),
        ),
        recipient_name=document["recipientName"],
        recipient_phone=document["recipientPhone"],
        delivery_fee=Money(document["deliveryFee"], currency),
        total_amount=Money(document["totalAmount"], currency),
        order_status=OrderStatus(document["orderStatus"]),
        payment_status=PaymentStatus(document["paymentStatus"]),
        receipt_image_url=document.get("receiptImageUrl"),
        status_history=[
            StatusHistoryEntry(
                field=entry["field"],
                from_status=entry.get("fromStatus"),
                to_status=entry["toStatus"],
                actor_id=entry["actor"],
                at=parse_timestamp(entry["at"]),
                reason=entry.get("reason"),
                lock_bypassed=entry.get("lockBypassed", False),
            )
            for entry in document.get("statusHistory", [])
        ],
        created_at=parse_timestamp(document["createdAt"]),
        updated_at=parse_timestamp(document["updatedAt"]),
    )


# ============================================================================
# Store Interface
# ============================================================================


class OrderStore(Protocol):
    """Persistence port for orders."""

    async def get(self, order_id: str) -> Order | None:
        """Load an order, or None if it does not exist."""
        ...

    async def insert(self, order: Order) -> Order:
        """Insert a new order at version 1.

        Raises:
            DuplicateOrderError: If the id is already taken.
        """
        ...

    async def compare_and_swap(self, order: Order, expected_version: int) -> Order:
        """Replace the stored document if its version is still ``expected_version``.

        Raises:
            VersionConflict: If another writer committed first.
        """
        ...

    async def list_by_buyer(self, buyer_id: str, limit: int) -> list[Order]:
        """Newest-first orders placed by a buyer."""
        ...

    async def list_by_seller(self, seller_id: str, limit: int | None = None) -> list[Order]:
        """Newest-first orders containing at least one item of a seller."""
        ...

    async def ping(self) -> bool:
        """Check the backend is reachable."""
        ...


# ============================================================================
# In-Memory Store
# ============================================================================


class InMemoryOrderStore:
    """In-memory order store.

    Documents are deep-copied in and out so callers never share mutable
    state with the store, mirroring what a database round trip does.
    """

    def __init__(self) -> None:
        self._documents: dict[str, tuple[int, dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    async def get(self, order_id: str) -> Order | None:
        entry = self._documents.get(order_id)
        if entry is None:
            return None
        version, document = entry
        return order_from_document(copy.deepcopy(document), version)

    async def insert(self, order: Order) -> Order:
        async with self._lock:
            if order.id in self._documents:
                raise DuplicateOrderError(order.id)
            order.version = 1
            self._documents[order.id] = (1, order_to_document(order))
        return order

    async def compare_and_swap(self, order: Order, expected_version: int) -> Order:
        async with self._lock:
            entry = self._documents.get(order.id)
            actual = entry[0] if entry else None
            if actual != expected_version:
                raise VersionConflict(order.id, expected_version, actual)
            order.version = expected_version + 1
            self._documents[order.id] = (order.version, order_to_document(order))
        return order

    async def list_by_buyer(self, buyer_id: str, limit: int) -> list[Order]:
        matches = [
            (version, document)
            for version, document in self._documents.values()
            if document["buyerId"] == buyer_id
        ]
        return self._newest_first(matches, limit)

    async def list_by_seller(self, seller_id: str, limit: int | None = None) -> list[Order]:
        matches = [
            (version, document)
            for version, document in self._documents.values()
            if seller_id in document["sellerIds"]
        ]
        return self._newest_first(matches, limit)

    async def ping(self) -> bool:
        return True

    def clear(self) -> None:
        """Remove every order."""
        self._documents.clear()

    @staticmethod
    def _newest_first(
        matches: list[tuple[int, dict[str, Any]]], limit: int | None
    ) -> list[Order]:
        orders = [order_from_document(copy.deepcopy(doc), version) for version, doc in matches]
        orders.sort(key=lambda order: order.created_at, reverse=True)
        return orders if limit is None else orders[:limit]


# ============================================================================
# SQLAlchemy Store
# ============================================================================


class SqlAlchemyOrderStore:
    """Order store backed by SQLAlchemy (PostgreSQL in production)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, order_id: str) -> Order | None:
        async with self._session_factory() as session:
            row = await session.get(OrderDocumentModel, order_id)
            if row is None:
                return None
            return order_from_document(row.document, row.version)

    async def insert(self, order: Order) -> Order:
        document = order_to_document(order)
        async with self._session_factory() as session:
            session.add(
                OrderDocumentModel(
                    id=order.id,
                    buyer_id=order.buyer_id,
                    version=1,
                    document=document,
                    created_at=order.created_at,
                    updated_at=order.updated_at,
                )
            )
            try:
                # Parent row first so the seller index foreign key resolves
                await session.flush()
                session.add_all(
                    OrderSellerModel(
                        order_id=order.id,
                        seller_id=seller_id,
                        created_at=order.created_at,
                    )
                    for seller_id in order.seller_ids
                )
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise DuplicateOrderError(order.id) from e
        order.version = 1
        return order

    async def compare_and_swap(self, order: Order, expected_version: int) -> Order:
        document = order_to_document(order)
        async with self._session_factory() as session:
            result = await session.execute(
                update(OrderDocumentModel)
                .where(
                    OrderDocumentModel.id == order.id,
                    OrderDocumentModel.version == expected_version,
                )
                .values(
                    version=expected_version + 1,
                    document=document,
                    updated_at=order.updated_at,
                )
            )
            if result.rowcount != 1:
                await session.rollback()
                actual = await session.scalar(
                    select(OrderDocumentModel.version).where(OrderDocumentModel.id == order.id)
                )
                raise VersionConflict(order.id, expected_version, actual)
            await session.commit()
        order.version = expected_version + 1
        return order

    async def list_by_buyer(self, buyer_id: str, limit: int) -> list[Order]:
        stmt = (
            select(OrderDocumentModel)
            .where(OrderDocumentModel.buyer_id == buyer_id)
            .order_by(OrderDocumentModel.created_at.desc())
            .limit(limit)
        )
        async with self._session_factory() as session:
            rows = (await session.scalars(stmt)).all()
        return [order_from_document(row.document, row.version) for row in rows]

    async def list_by_seller(self, seller_id: str, limit: int | None = None) -> list[Order]:
        stmt = (
            select(OrderDocumentModel)
            .join(OrderSellerModel, OrderSellerModel.order_id == OrderDocumentModel.id)
            .where(OrderSellerModel.seller_id == seller_id)
            .order_by(OrderDocumentModel.created_at.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._session_factory() as session:
            rows = (await session.scalars(stmt)).all()
        return [order_from_document(row.document, row.version) for row in rows]

    async def ping(self) -> bool:
        async with self._session_factory() as session:
            await session.execute(select(1))
        return True


async def create_tables(engine: AsyncEngine) -> None:
    """Create the order tables (development and tests; production uses Alembic)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ============================================================================
# Store Factory
# ============================================================================


_order_store: OrderStore | None = None


def get_order_store() -> OrderStore:
    """Get or create the configured order store."""
    global _order_store
    if _order_store is None:
        if settings.order_store_backend == "sql":
            _order_store = SqlAlchemyOrderStore(get_session_factory())
        else:
            _order_store = InMemoryOrderStore()
        logger.info("Order store initialised", backend=settings.order_store_backend)
    return _order_store


def reset_order_store() -> None:
    """Reset the order store (for testing)."""
    global _order_store
    _order_store = None
