"""Edit-lock policy.

An order's status and payment fields may only change during a fixed
window after creation. The policy is a pure function of the order's
age; the guard raises a dedicated error so clients can say
"locked N hours ago" instead of a generic failure.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from craftly_orders.domain.clock import ensure_utc
from craftly_orders.domain.exceptions import LockedOrderError

DEFAULT_EDIT_WINDOW = timedelta(hours=24)


@dataclass(frozen=True)
class LockState:
    """Snapshot of an order's edit window at a given moment."""

    locked: bool
    lock_expires_at: datetime
    hours_remaining: int


@dataclass(frozen=True)
class EditLockPolicy:
    """Freezes status/payment mutation once the edit window has elapsed.

    Attributes:
        window: How long after creation an order stays editable.
    """

    window: timedelta = DEFAULT_EDIT_WINDOW

    def lock_expires_at(self, created_at: datetime) -> datetime:
        return ensure_utc(created_at) + self.window

    def is_locked(self, created_at: datetime, now: datetime) -> bool:
        """Return True once more than ``window`` has passed since creation.

        Monotonic in ``now``: once locked, every later moment is locked too.
        """
        return ensure_utc(now) - ensure_utc(created_at) > self.window

    def hours_remaining(self, created_at: datetime, now: datetime) -> int:
        """Whole hours left in the edit window, rounded up, never negative."""
        remaining = self.lock_expires_at(created_at) - ensure_utc(now)
        if remaining <= timedelta(0):
            return 0
        return math.ceil(remaining / timedelta(hours=1))

    def state(self, created_at: datetime, now: datetime) -> LockState:
        return LockState(
            locked=self.is_locked(created_at, now),
            lock_expires_at=self.lock_expires_at(created_at),
            hours_remaining=self.hours_remaining(created_at, now),
        )

    def guard(self, order_id: str, created_at: datetime, now: datetime) -> None:
        """Raise if the order can no longer be edited.

        Raises:
            LockedOrderError: With elapsed and locked-for durations.
        """
        if not self.is_locked(created_at, now):
            return
        created = ensure_utc(created_at)
        current = ensure_utc(now)
        locked_at = created + self.window
        raise LockedOrderError(
            order_id=order_id,
            locked_at=locked_at,
            elapsed_seconds=int((current - created).total_seconds()),
            locked_for_seconds=int((current - locked_at).total_seconds()),
        )
