"""Time sources and timestamp parsing.

Everything that compares against "now" takes a Clock so tests can
freeze and advance time.
"""

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""
        ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = ensure_utc(start) if start else datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> None:
        if delta < timedelta(0):
            raise ValueError("FrozenClock cannot move backwards")
        self._now = self._now + delta

    def set(self, moment: datetime) -> None:
        moment = ensure_utc(moment)
        if moment < self._now:
            raise ValueError("FrozenClock cannot move backwards")
        self._now = moment


def ensure_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts values with or without fractional seconds and with a ``Z``
    suffix, a numeric offset, or no zone at all (read as UTC).

    Args:
        value: ISO-8601 string or datetime.

    Returns:
        Aware datetime in UTC.

    Raises:
        ValueError: If the string is not ISO-8601.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def format_timestamp(moment: datetime) -> str:
    """Render a datetime as ISO-8601 UTC with millisecond precision and ``Z``."""
    return ensure_utc(moment).isoformat(timespec="milliseconds").replace("+00:00", "Z")
