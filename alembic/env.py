"""Alembic environment.

Runs migrations with the async engine configured for the service.
"""

import asyncio

from alembic import context
from sqlalchemy.engine import Connection

from craftly_orders.infrastructure import models  # noqa: F401  (registers tables)
from craftly_orders.infrastructure.config import settings
from craftly_orders.infrastructure.database import Base, create_engine

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit SQL without a database connection."""
    context.configure(
        url=settings.database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_sync(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = create_engine()
    async with engine.connect() as connection:
        await connection.run_sync(_run_sync)
    await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
