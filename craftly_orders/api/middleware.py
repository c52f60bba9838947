"""HTTP middleware and error rendering.

Order on the way in, outermost first:
CORS -> request id -> acting user -> idempotency -> error catch-all.
"""

import time
from typing import Any, Callable
from uuid import uuid4

import structlog
from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from craftly_orders.api.schemas import ErrorResponse

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"
ACTOR_HEADER = "x-user-id"

# Reachable without an acting user
PUBLIC_PREFIXES = ("/health", "/ready", "/docs", "/redoc", "/openapi.json")


def error_response(
    request: Request,
    status_code: int,
    error_code: str,
    message: str,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Render the standard error envelope for this request."""
    body = ErrorResponse(
        error_code=error_code,
        message=message,
        details=details or {},
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


def is_public_path(path: str) -> bool:
    return not path.startswith("/api") or path.startswith(PUBLIC_PREFIXES)


# ============================================================================
# Request ID
# ============================================================================


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tags each request with a correlation id.

    The id comes from ``X-Request-ID`` when the caller sends one. It is
    echoed on the response and bound into every log line for the request.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id

        started = time.perf_counter()
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        with structlog.contextvars.bound_contextvars(request_id=request_id):
            try:
                response = await call_next(request)
                status_code = response.status_code
            finally:
                logger.info(
                    "Request completed",
                    method=request.method,
                    path=request.url.path,
                    status_code=status_code,
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


# ============================================================================
# Acting user
# ============================================================================


class IdentityMiddleware(BaseHTTPMiddleware):
    """Resolves who is acting from the ``x-user-id`` header.

    Authentication happens at the gateway; this service trusts the header
    and refuses ``/api`` calls that arrive without one.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        actor_id = (request.headers.get(ACTOR_HEADER) or "").strip() or None
        request.state.user_id = actor_id
        path = request.url.path.rstrip("/")

        if actor_id is None:
            if is_public_path(path):
                return await call_next(request)
            logger.warning("Missing acting user", path=path, method=request.method)
            return error_response(
                request,
                status.HTTP_401_UNAUTHORIZED,
                "UNAUTHENTICATED",
                f"Missing {ACTOR_HEADER} header",
            )

        with structlog.contextvars.bound_contextvars(user_id=actor_id):
            return await call_next(request)


# ============================================================================
# Catch-all
# ============================================================================


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turns anything the routes let escape into an INTERNAL_ERROR body."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            logger.exception(
                "Unhandled exception",
                path=request.url.path,
                method=request.method,
                error=str(exc),
            )
            return error_response(
                request,
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "INTERNAL_ERROR",
                "An internal error occurred",
            )

