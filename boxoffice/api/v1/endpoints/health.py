"""
Health check endpoints
"""

from typing import Any
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import text

from boxoffice.core.database import get_session
from boxoffice.core.exceptions import TransientNetworkError
from boxoffice.core.metrics import metrics_collector
from boxoffice.core.redis import RedisManager, redis_manager
from boxoffice.config import settings
from boxoffice.schemas.response import HealthResponse

logger = logging.getLogger(__name__)
router = APIRouter()


def get_redis_manager() -> RedisManager:
    return redis_manager


@router.get("/live", response_model=HealthResponse)
async def liveness() -> Any:
    """
    Kubernetes liveness probe
    """
    return {"status": "alive", "version": settings.APP_VERSION}


@router.get("/ready", response_model=HealthResponse)
async def readiness(
    db: AsyncSession = Depends(get_session),
    redis: RedisManager = Depends(get_redis_manager)
) -> Any:
    """
    Kubernetes readiness probe - checks the store and the seat feed
    """
    checks = {
        "database": False,
        "redis": False,
    }

    try:
        result = await db.execute(text("SELECT 1"))
        checks["database"] = result.scalar() == 1
    except SQLAlchemyError as e:
        logger.warning(f"Readiness: database check failed: {e}")

    try:
        checks["redis"] = bool(await redis.ping())
    except TransientNetworkError as e:
        logger.warning(f"Readiness: redis check failed: {e.message}")

    return {
        "status": "ready" if all(checks.values()) else "not ready",
        "checks": checks,
        "version": settings.APP_VERSION
    }


@router.get("/metrics")
async def reservation_metrics() -> Any:
    """
    Commit and scheduling counters since startup
    """
    return await metrics_collector.get_metrics()
