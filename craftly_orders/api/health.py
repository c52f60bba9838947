"""Liveness and readiness probes."""

import asyncio

import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from craftly_orders.infrastructure.config import settings
from craftly_orders.infrastructure.order_store import get_order_store

logger = structlog.get_logger()

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    service: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness: the process is up and serving."""
    return HealthResponse(
        status="healthy",
        service="craftly-orders",
        version=settings.api_version,
    )


@router.get("/ready")
async def readiness_check() -> JSONResponse:
    """200 when the order store answers within the store timeout, else 503."""
    try:
        await asyncio.wait_for(get_order_store().ping(), settings.store_timeout_seconds)
    except Exception as e:
        logger.warning("Readiness check failed", error=str(e))
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "backend": settings.order_store_backend},
        )
    return JSONResponse(content={"status": "ready", "backend": settings.order_store_backend})
