"""Idempotency-Key support for order-mutating routes.

A retried checkout or transition with the same key replays the first
response (marked ``X-Idempotent-Replayed: true``) instead of writing
again. A key reused with a different body gets 409
``IDEMPOTENCY_CONFLICT``. Responses the client is told to retry (5xx or
anything carrying ``Retry-After``) are never recorded.
"""

import re
from typing import Callable

import structlog
from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware

from craftly_orders.api.middleware import error_response
from craftly_orders.application.idempotency_service import (
    IdempotencyKey,
    IdempotencyService,
    get_idempotency_service,
)

logger = structlog.get_logger()

IDEMPOTENCY_HEADER = "Idempotency-Key"
REPLAYED_HEADER = "X-Idempotent-Replayed"


def route_regex(template: str) -> re.Pattern[str]:
    """Compile a route template such as ``/api/orders/{order_id}/status``.

    Each ``{name}`` placeholder matches exactly one path segment.
    """
    parts = [
        "[^/]+" if segment.startswith("{") and segment.endswith("}") else re.escape(segment)
        for segment in template.rstrip("/").split("/")
    ]
    return re.compile("/".join(parts))


IDEMPOTENT_ROUTES: tuple[tuple[str, re.Pattern[str]], ...] = tuple(
    ("POST", route_regex(template))
    for template in (
        "/api/orders",
        "/api/orders/{order_id}/status",
        "/api/orders/{order_id}/payment-status",
        "/api/orders/{order_id}/receipt",
        "/api/admin/orders/{order_id}/force-status",
        "/api/admin/orders/{order_id}/force-payment-status",
    )
)


def honours_idempotency(method: str, path: str) -> bool:
    path = path.rstrip("/")
    return any(
        method == route_method and regex.fullmatch(path) is not None
        for route_method, regex in IDEMPOTENT_ROUTES
    )


def should_record(response: Response) -> bool:
    return response.status_code < 500 and "retry-after" not in response.headers


class IdempotencyMiddleware(BaseHTTPMiddleware):
    """Replays or records responses for requests carrying an Idempotency-Key."""

    def __init__(self, app, service: IdempotencyService | None = None) -> None:
        super().__init__(app)
        self._service = service

    @property
    def service(self) -> IdempotencyService:
        return self._service or get_idempotency_service()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        raw_key = request.headers.get(IDEMPOTENCY_HEADER)
        actor_id = getattr(request.state, "user_id", None)
        if not raw_key or not actor_id or not honours_idempotency(request.method, request.url.path):
            return await call_next(request)

        key = IdempotencyKey(
            actor_id=actor_id,
            key=raw_key,
            method=request.method,
            path=request.url.path.rstrip("/"),
        )
        request_body = await request.body()
        lookup = self.service.lookup(key, request_body)

        if lookup.is_conflict:
            return error_response(
                request,
                status.HTTP_409_CONFLICT,
                "IDEMPOTENCY_CONFLICT",
                "Idempotency key already used with a different request body",
                {"idempotency_key": raw_key},
            )

        if lookup.is_replay:
            recorded = lookup.recorded
            logger.info(
                "Replaying idempotent response",
                idempotency_key=raw_key,
                path=key.path,
                status_code=recorded.status_code,
            )
            return Response(
                content=recorded.body,
                status_code=recorded.status_code,
                media_type=recorded.media_type,
                headers={REPLAYED_HEADER: "true"},
            )

        response = await call_next(request)
        if not should_record(response):
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])
        self.service.record(
            key,
            request_body,
            response.status_code,
            body,
            media_type=response.headers.get("content-type"),
        )
        return Response(
            content=body,
            status_code=response.status_code,
            headers=dict(response.headers),
        )
