"""Building blocks shared by the order domain."""

from abc import ABC
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import ClassVar


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ValueObject(ABC):
    """Immutable, compared by value."""


# ============================================================================
# Domain Events
# ============================================================================


@dataclass(frozen=True, kw_only=True)
class DomainEvent(ABC):
    """Something that happened to an aggregate.

    Events are raised while an aggregate changes and published only once
    the store has committed the change. Subclasses set ``event_type``.
    """

    event_type: ClassVar[str]

    aggregate_id: str = ""
    occurred_at: datetime = field(default_factory=_utcnow)


# ============================================================================
# Aggregate Root
# ============================================================================


@dataclass(kw_only=True, eq=False)
class AggregateRoot(ABC):
    """A unit of consistency, read and written back as a whole.

    Identity is ``id`` alone. ``version`` is the compare-and-swap token:
    the store bumps it when a write commits, and a write carrying a stale
    version is refused. Events raised during a change stay pending until
    the write succeeds, and are dropped when it loses a version race.

    Attributes:
        id: Aggregate identifier.
        version: Last committed version.
        created_at: Creation time.
        updated_at: Time of the last change.
    """

    id: str
    version: int = 1
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    _pending_events: list[DomainEvent] = field(default_factory=list, init=False, repr=False)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, type(self)) and other.id == self.id

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.id))

    @property
    def pending_events(self) -> tuple[DomainEvent, ...]:
        return tuple(self._pending_events)

    def _raise_event(self, event: DomainEvent) -> None:
        self._pending_events.append(event)

    def collect_events(self) -> list[DomainEvent]:
        """Hand over the pending events and forget them."""
        events, self._pending_events = self._pending_events, []
        return events

    def discard_events(self) -> None:
        self._pending_events.clear()

    def _changed_at(self, now: datetime) -> None:
        self.updated_at = now
