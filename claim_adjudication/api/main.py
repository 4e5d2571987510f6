"""
FastAPI Main Application
Entry point for the claim adjudication API
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from claim_adjudication import __version__
from claim_adjudication.api.config import settings
from claim_adjudication.api.deps import close_medical_record_store
from claim_adjudication.api.routes import claims, fraud, health
from claim_adjudication.db.connection import close_db_connection
from claim_adjudication.services.cache import cache
from claim_adjudication.utils.errors import AdjudicationError
from claim_adjudication.utils.logging import get_logger, setup_logging

# Setup logging
setup_logging(
    level=settings.LOG_LEVEL,
    log_file=settings.LOG_FILE,
    json_logs=settings.is_production,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore[no-untyped-def]  # noqa: ARG001
    """Application lifespan manager."""
    # Startup
    logger.info(f"Starting application in {settings.ENVIRONMENT} mode")
    logger.info(f"Debug mode: {settings.DEBUG}")

    yield

    # Shutdown
    logger.info("Shutting down application")
    await close_medical_record_store()
    await cache.disconnect()
    await close_db_connection()
    logger.info("Connections closed")


app = FastAPI(
    title="Claim Adjudication API",
    description="Fraud risk scoring, claim lifecycle and cached claim queries",
    version=__version__,
    docs_url="/docs" if not settings.is_production else None,  # Disable docs in production
    redoc_url="/redoc" if not settings.is_production else None,
    openapi_url="/openapi.json" if not settings.is_production else None,
    lifespan=lifespan,
)


@app.exception_handler(AdjudicationError)
async def adjudication_error_handler(request: Request, exc: AdjudicationError) -> JSONResponse:
    """Translate adjudication errors into `{"error", "detail"}` responses."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.detail},
        headers=exc.headers,
    )


# Include routers
app.include_router(health.router)
app.include_router(claims.router)
app.include_router(fraud.router)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint with API information."""
    return {
        "name": "Claim Adjudication API",
        "version": __version__,
        "environment": settings.ENVIRONMENT,
        "docs": "/docs" if not settings.is_production else "disabled",
    }
