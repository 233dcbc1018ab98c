"""
Health check routes.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue import __version__
from jobqueue.cache.backends import StatusCache, get_status_cache
from jobqueue.db import get_async_session
from jobqueue.observability.metrics import get_metrics
from jobqueue.types.api import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


async def _database_healthy(session: AsyncSession) -> bool:
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning(f"Database health check failed: {e}")
        return False
    return True


async def _cache_healthy(cache: StatusCache) -> bool:
    try:
        return await cache.ping()
    except Exception as e:
        logger.warning(f"Status cache health check failed: {e}")
        return False


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health of the API, the database and the status cache.",
)
async def health_check(
    session: AsyncSession = Depends(get_async_session),
    cache: StatusCache = Depends(get_status_cache),
) -> HealthResponse:
    """
    Perform a health check.

    The database is required; an unreachable status cache only degrades
    status-read latency.

    Args:
        session: Database session.
        cache: Status cache backend.

    Returns:
        HealthResponse with service status.
    """
    db_status = "healthy" if await _database_healthy(session) else "unhealthy"
    cache_status = "healthy" if await _cache_healthy(cache) else "unhealthy"

    return HealthResponse(
        status="healthy" if db_status == cache_status == "healthy" else "degraded",
        version=__version__,
        database=db_status,
        cache=cache_status,
        timestamp=datetime.now(timezone.utc),
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the service is ready to receive traffic.",
)
async def readiness_check(
    session: AsyncSession = Depends(get_async_session),
) -> dict:
    """
    Kubernetes readiness probe endpoint.

    Args:
        session: Database session.

    Returns:
        Ready status.
    """
    return {"ready": await _database_healthy(session)}


@router.get(
    "/live",
    summary="Liveness check",
    description="Check if the service is alive.",
)
async def liveness_check() -> dict:
    """Kubernetes liveness probe endpoint."""
    return {"alive": True}


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics.",
)
async def metrics() -> Response:
    """
    Expose Prometheus metrics.

    Returns:
        Prometheus-formatted metrics.
    """
    metrics_collector = get_metrics()
    return Response(
        content=metrics_collector.get_metrics(),
        media_type=metrics_collector.get_content_type(),
    )
