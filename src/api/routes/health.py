"""
Health Check Routes
Service health monitoring endpoints
Source: https://microservices.io/patterns/observability/health-check-api.html
"""

from typing import Any

from fastapi import APIRouter

from src.core.config import get_billing_settings
from src.core.enums import RepositoryBackend
from src.db.connection import check_db_connection

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Basic liveness check."""
    settings = get_billing_settings()
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@router.get("/health/detailed")
async def detailed_health_check() -> dict[str, Any]:
    """Health including the repository backend."""
    settings = get_billing_settings()
    checks = {"repository": settings.REPOSITORY_BACKEND.value}

    if settings.REPOSITORY_BACKEND == RepositoryBackend.DATABASE:
        db_healthy = await check_db_connection()
        checks["database"] = "healthy" if db_healthy else "unhealthy"
    else:
        db_healthy = True

    return {
        "status": "healthy" if db_healthy else "unhealthy",
        "service": settings.APP_NAME,
        "checks": checks,
    }
