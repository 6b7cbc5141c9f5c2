"""Health check endpoints."""

from fastapi import APIRouter, Request, Response, status

from src.config import get_settings
from src.core.database import AsyncCassandraConnection
from src.core.redis import get_redis


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request, response: Response) -> dict[str, str | bool]:
    """Readiness probe - ready once Cassandra and the comment service are up.

    Redis is reported but optional.
    """
    settings = get_settings()
    cassandra_ok = AsyncCassandraConnection.is_connected()
    service_ok = getattr(request.app.state, "comment_service", None) is not None
    ready = cassandra_ok and service_ok

    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return {
        "status": "ready" if ready else "not_ready",
        "cassandra": cassandra_ok,
        "redis": get_redis() is not None,
        "environment": settings.environment,
        "debug": settings.debug,
    }


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
