"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from cart_service import __version__
from cart_service.api.v1.deps import get_scan_lock
from cart_service.config import get_settings
from cart_service.infrastructure.database.connection import database_ready
from cart_service.infrastructure.redis import ScanLock

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str
    timestamp: str
    dependencies: dict[str, Any]


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    ready: bool
    checks: dict[str, bool]


async def redis_ready(lock: ScanLock = Depends(get_scan_lock)) -> bool:
    return await lock.health_check()


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Returns the service status and version information.
    This endpoint is used by load balancers and orchestrators
    to determine if the service is running.
    """
    settings = get_settings()

    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc).isoformat(),
        dependencies={
            "postgres": "configured",
            "redis": "configured",
            "email": settings.email_service,
        },
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(
    postgres: bool = Depends(database_ready),
    redis: bool = Depends(redis_ready),
) -> ReadinessResponse:
    """
    Readiness check endpoint.

    The service needs PostgreSQL to be ready. Redis only guards concurrent
    scans, so its absence is reported but does not fail readiness.
    """
    checks = {"postgres": postgres, "redis": redis}

    return ReadinessResponse(
        ready=postgres,
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness check endpoint.

    Simple endpoint that returns 200 if the service is running.
    This endpoint is used by Kubernetes liveness probes.
    """
    return {"status": "alive"}
