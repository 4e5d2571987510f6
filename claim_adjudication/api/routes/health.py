"""
Health Check Routes
Service health monitoring endpoints
"""

from typing import Any

from fastapi import APIRouter

from claim_adjudication.db.connection import check_db_connection
from claim_adjudication.services.cache import cache
from claim_adjudication.utils.errors import DependencyError
from claim_adjudication.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])

SERVICE_NAME = "claim-adjudication"


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
    }


@router.get("/health/detailed")
async def detailed_health_check() -> dict[str, Any]:
    """
    Detailed health check with dependency status.

    The cache is reported but does not make the service unhealthy: reads
    fall back to the database when it is unavailable.
    """
    db_healthy = await check_db_connection()

    try:
        cache_healthy = await cache.ping()
    except DependencyError as e:
        logger.warning(f"Cache health check failed: {e.detail}")
        cache_healthy = False

    if not db_healthy:
        overall_status = "unhealthy"
    elif not cache_healthy:
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    return {
        "status": overall_status,
        "service": SERVICE_NAME,
        "checks": {
            "database": "healthy" if db_healthy else "unhealthy",
            "cache": "healthy" if cache_healthy else "unhealthy",
        },
    }
