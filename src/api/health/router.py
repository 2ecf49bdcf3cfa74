"""Health check endpoints for monitoring."""

import redis.asyncio as redis
from fastapi import Depends, APIRouter

from src.api.core.dependencies import AsyncSessionDep
from src.modules.health.service import HealthService, OverallHealthStatus
from src.redis.client import get_redis_client
from src.utils.settings.app import AppSettings

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check(
    db: AsyncSessionDep,
    redis: redis.Redis = Depends(get_redis_client),
) -> OverallHealthStatus:
    """Database, Redis and upstream key pool health."""
    health_service = HealthService(db, redis)
    return await health_service.run_all_checks()


@router.get("/liveness")
async def liveness_check():
    """Simple liveness check - indicates if service is running."""
    return {"status": "alive", "service": AppSettings().SERVICE_NAME}
