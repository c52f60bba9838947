"""Craftly Orders application entry point.

Builds the FastAPI app: logging, the middleware stack, routers and the
mapping from domain errors to HTTP responses.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from craftly_orders.api.admin import router as admin_router
from craftly_orders.api.health import router as health_router
from craftly_orders.api.idempotency import IdempotencyMiddleware
from craftly_orders.api.middleware import (
    ErrorHandlerMiddleware,
    IdentityMiddleware,
    RequestIdMiddleware,
    error_response,
)
from craftly_orders.api.orders import router as orders_router
from craftly_orders.domain.exceptions import (
    ConflictError,
    DomainError,
    ForbiddenError,
    InvalidTransitionError,
    LockedOrderError,
    NotFoundError,
    StockExceededError,
    StoreUnavailableError,
    ValidationError,
)
from craftly_orders.infrastructure.config import settings
from craftly_orders.infrastructure.database import dispose_engine, get_engine
from craftly_orders.infrastructure.logging import configure_logging
from craftly_orders.infrastructure.order_store import create_tables

configure_logging(settings.log_level)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info(
        "Starting Craftly Orders API",
        version=settings.api_version,
        debug=settings.debug,
        order_store_backend=settings.order_store_backend,
    )
    uses_sql = settings.order_store_backend == "sql"
    if uses_sql and settings.debug:
        # Alembic owns the schema outside debug runs
        await create_tables(get_engine())

    yield

    logger.info("Shutting down Craftly Orders API")
    if uses_sql:
        await dispose_engine()


app = FastAPI(
    title="Craftly Orders API",
    description="Order lifecycle and multi-seller settlement for the Craftly marketplace",
    version=settings.api_version,
    lifespan=lifespan,
)

# Last added runs first: CORS, request id, acting user, idempotency, catch-all
app.add_middleware(ErrorHandlerMiddleware)
app.add_middleware(IdempotencyMiddleware)
app.add_middleware(IdentityMiddleware)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router, tags=["Health"])
app.include_router(orders_router)
app.include_router(admin_router)


# ============================================================================
# Error Mapping
# ============================================================================


DOMAIN_ERROR_STATUS: dict[type[DomainError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    StockExceededError: status.HTTP_409_CONFLICT,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    LockedOrderError: status.HTTP_423_LOCKED,
    ConflictError: status.HTTP_409_CONFLICT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    StoreUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(exc: DomainError) -> int:
    """HTTP status for a domain error, matching on the class hierarchy."""
    for cls in type(exc).__mro__:
        if cls in DOMAIN_ERROR_STATUS:
            return DOMAIN_ERROR_STATUS[cls]
    return status.HTTP_400_BAD_REQUEST


@app.exception_handler(DomainError)
async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
    status_code = status_for(exc)
    log = logger.warning if exc.retryable else logger.info
    log(
        "Domain error",
        path=request.url.path,
        method=request.method,
        error_code=exc.error_code,
        error=exc.message,
    )
    return error_response(
        request,
        status_code,
        exc.error_code,
        exc.message,
        exc.details,
        headers={"Retry-After": "1"} if exc.retryable else None,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Schema failures share the VALIDATION_ERROR code with domain validation."""
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", ""),
        }
        for error in exc.errors()
    ]
    return error_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        "VALIDATION_ERROR",
        "Invalid request",
        {"errors": errors},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    error_code = {
        status.HTTP_404_NOT_FOUND: "NOT_FOUND",
        status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
    }.get(exc.status_code, "HTTP_ERROR")
    return error_response(request, exc.status_code, error_code, str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled exception in handler",
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
