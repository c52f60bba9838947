"""Short-lived read cache.

Buyer and seller order lists are read far more often than they change,
so they are cached for a short TTL and invalidated explicitly whenever
a committed write touches them.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Generic, TypeVar

from craftly_orders.domain.clock import Clock, SystemClock

T = TypeVar("T")

DEFAULT_PURGE_EVERY = 100


@dataclass
class _Entry(Generic[T]):
    value: T
    expires_at: datetime


class TTLCache(Generic[T]):
    """Key-value cache whose entries expire after a fixed TTL.

    Time comes from an injected clock so tests control expiry. Expired
    entries are dropped when read, and swept every ``purge_every`` writes
    so keys nobody reads again do not pile up.
    """

    def __init__(
        self, ttl: timedelta, clock: Clock | None = None, purge_every: int = DEFAULT_PURGE_EVERY
    ) -> None:
        self.ttl = ttl
        self.purge_every = max(purge_every, 1)
        self._clock = clock or SystemClock()
        self._entries: dict[str, _Entry[T]] = {}
        self._writes = 0

    def get(self, key: str) -> T | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock.now() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: T) -> None:
        self._entries[key] = _Entry(value=value, expires_at=self._clock.now() + self.ttl)
        self._writes += 1
        if self._writes % self.purge_every == 0:
            self.purge_expired()

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value, loading and caching it on a miss.

        Args:
            key: Cache key.
            loader: Coroutine factory producing the fresh value.

        Returns:
            Cached or freshly loaded value.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        value = await loader()
        self.set(key, value)
        return value

    def invalidate(self, *keys: str) -> None:
        for key in keys:
            self._entries.pop(key, None)

    def purge_expired(self) -> int:
        now = self._clock.now()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
