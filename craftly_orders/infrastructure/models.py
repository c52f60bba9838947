"""SQLAlchemy models for database tables.

Orders are stored as whole documents with a version column used for
compare-and-swap writes. ``order_sellers`` indexes orders by seller so
seller listings do not scan every document.
"""

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.dialects.postgresql import JSONB

from craftly_orders.infrastructure.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
DocumentType = JSON().with_variant(JSONB(), "postgresql")


class OrderDocumentModel(Base):
    """Order document with its optimistic concurrency version."""

    __tablename__ = "orders"

    id = Column(String(64), primary_key=True)
    buyer_id = Column(String(128), nullable=False, index=True)
    version = Column(Integer, nullable=False, default=1)
    document = Column(DocumentType, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<OrderDocumentModel {self.id} v{self.version}>"


class OrderSellerModel(Base):
    """Seller index row, one per distinct seller in an order."""

    __tablename__ = "order_sellers"

    order_id = Column(
        String(64),
        ForeignKey("orders.id", ondelete="CASCADE"),
        primary_key=True,
    )
    seller_id = Column(String(128), primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
