"""Replay cache for requests carrying an Idempotency-Key.

A client that retries a checkout or a status change with the same key
gets the first response back byte for byte instead of a second write.
Entries are keyed by acting user, method, path and key, so one user's
key never replays another user's response. A reused key with a
different body is a conflict, not a replay.
"""

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

import structlog

from craftly_orders.application.cache import TTLCache
from craftly_orders.domain.clock import Clock, SystemClock
from craftly_orders.infrastructure.config import settings

logger = structlog.get_logger()


@dataclass(frozen=True)
class IdempotencyKey:
    """Where a key is valid: one user, one route, one method."""

    actor_id: str
    key: str
    method: str
    path: str

    def cache_key(self) -> str:
        return f"{self.actor_id}|{self.method}|{self.path}|{self.key}"


@dataclass(frozen=True)
class RecordedResponse:
    """First response sent for a key, kept for replay.

    Attributes:
        status_code: HTTP status of the first response.
        body: Raw response body.
        media_type: Content type to replay with.
        request_fingerprint: Hash of the request body that produced it.
        recorded_at: When the response was recorded.
    """

    status_code: int
    body: bytes
    media_type: str | None
    request_fingerprint: str | None
    recorded_at: datetime


class LookupOutcome(str, Enum):
    MISS = "miss"
    REPLAY = "replay"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class IdempotencyResult:
    outcome: LookupOutcome
    recorded: RecordedResponse | None = None

    @property
    def is_replay(self) -> bool:
        return self.outcome is LookupOutcome.REPLAY

    @property
    def is_conflict(self) -> bool:
        return self.outcome is LookupOutcome.CONFLICT


def request_fingerprint(body: bytes) -> str | None:
    """SHA-256 of the request body, or None for an empty body.

    JSON bodies are canonicalised first so key order and whitespace do
    not matter. Anything else is hashed as sent.
    """
    if not body:
        return None
    try:
        canonical = json.dumps(json.loads(body), sort_keys=True, separators=(",", ":"))
        payload = canonical.encode("utf-8")
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = body
    return hashlib.sha256(payload).hexdigest()


class IdempotencyService:
    """Looks up and records responses for idempotent requests."""

    def __init__(
        self,
        ttl: timedelta | None = None,
        clock: Clock | None = None,
        purge_every: int | None = None,
    ) -> None:
        self._clock = clock or SystemClock()
        # Most keys are never looked up again, so expiry cannot rely on reads
        self._responses: TTLCache[RecordedResponse] = TTLCache(
            ttl or timedelta(hours=settings.idempotency_ttl_hours),
            self._clock,
            purge_every=purge_every or settings.idempotency_purge_every,
        )

    def lookup(self, key: IdempotencyKey, request_body: bytes) -> IdempotencyResult:
        """Check whether this request was already answered.

        Args:
            key: Scope of the idempotency key.
            request_body: Raw body of the current request.

        Returns:
            MISS for an unseen key, REPLAY with the recorded response when
            the body matches, CONFLICT when it does not.
        """
        recorded = self._responses.get(key.cache_key())
        if recorded is None:
            return IdempotencyResult(LookupOutcome.MISS)

        if recorded.request_fingerprint != request_fingerprint(request_body):
            logger.warning(
                "Idempotency key reused with a different body",
                idempotency_key=key.key,
                path=key.path,
            )
            return IdempotencyResult(LookupOutcome.CONFLICT, recorded)

        return IdempotencyResult(LookupOutcome.REPLAY, recorded)

    def record(
        self,
        key: IdempotencyKey,
        request_body: bytes,
        status_code: int,
        body: bytes,
        media_type: str | None = "application/json",
    ) -> RecordedResponse:
        recorded = RecordedResponse(
            status_code=status_code,
            body=body,
            media_type=media_type,
            request_fingerprint=request_fingerprint(request_body),
            recorded_at=self._clock.now(),
        )
        self._responses.set(key.cache_key(), recorded)
        logger.debug(
            "Recorded idempotent response",
            idempotency_key=key.key,
            path=key.path,
            status_code=status_code,
        )
        return recorded

    def purge_expired(self) -> int:
        """Drop expired entries and return how many went."""
        return self._responses.purge_expired()

    def __len__(self) -> int:
        return len(self._responses)


_idempotency_service: IdempotencyService | None = None


def get_idempotency_service() -> IdempotencyService:
    global _idempotency_service
    if _idempotency_service is None:
        _idempotency_service = IdempotencyService()
    return _idempotency_service


def reset_idempotency_service() -> None:
    """Forget every recorded response (tests)."""
    global _idempotency_service
    _idempotency_service = None
