"""
FastAPI Main Application
Entry point for the billing API server
Source: https://fastapi.tiangolo.com/
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routes import claims, health, payments, reports, services
from src.core.config import billing_settings as settings
from src.core.enums import RepositoryBackend
from src.db.connection import close_db_connection
from src.utils.errors import register_error_handlers
from src.utils.logging import get_logger, setup_logging

# Setup logging
setup_logging(
    level=settings.LOG_LEVEL,
    json_logs=settings.LOG_FORMAT == "json",
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore[no-untyped-def]  # noqa: ARG001
    """
    Application lifespan manager.

    Source: https://fastapi.tiangolo.com/advanced/events/
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} {settings.APP_VERSION}")
    logger.info(f"Repository backend: {settings.REPOSITORY_BACKEND.value}")

    yield

    # Shutdown
    logger.info("Shutting down application")
    if settings.REPOSITORY_BACKEND == RepositoryBackend.DATABASE:
        await close_db_connection()
        logger.info("Database connections closed")


app = FastAPI(
    title=settings.APP_NAME,
    description="HCBS billing validation, claim lifecycle, payment reconciliation and aging",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Include routers
app.include_router(health.router)
app.include_router(services.router)
app.include_router(claims.router)
app.include_router(payments.router)
app.include_router(reports.router)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "repository": settings.REPOSITORY_BACKEND.value,
        "docs": "/docs",
    }
