import asyncio
from dataclasses import dataclass
from typing import Literal

import redis.asyncio as redis
from sqlalchemy import case, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.models import Provider, ProviderKeyStatus, ProviderStatus
from src.utils.dates import utcnow
from src.utils.logger import get_logger

logger = get_logger(__name__)

Status = Literal["healthy", "degraded", "unhealthy"]


@dataclass
class HealthCheckResult:
    """Result of a health check."""

    service: str
    status: Status
    connected: bool
    details: dict
    error: str | None = None


@dataclass
class OverallHealthStatus:
    """Overall health status with individual service results."""

    status: Status
    services: dict[str, HealthCheckResult]
    timestamp: str


class HealthService:
    """Database, Redis and upstream key pool checks.

    Only the database is fatal. Redis backs the package cache and an empty
    key pool only affects the AI endpoints, so both degrade the service.
    """

    def __init__(self, db: AsyncSession, redis: redis.Redis):
        self.db = db
        self.redis = redis

    async def check_database_health(self) -> HealthCheckResult:
        try:
            result = await self.db.execute(text("SELECT 1"))
            return HealthCheckResult(
                service="database",
                status="healthy",
                connected=True,
                details={"test_query_result": result.scalar()},
            )
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return HealthCheckResult(
                service="database",
                status="unhealthy",
                connected=False,
                details={},
                error=str(e),
            )

    async def check_redis_health(self) -> HealthCheckResult:
        try:
            test_key = "health_check_test"
            await self.redis.ping()
            await self.redis.setex(test_key, 10, "test_data")
            cached_value = await self.redis.get(test_key)
            await self.redis.delete(test_key)
            return HealthCheckResult(
                service="redis",
                status="healthy",
                connected=True,
                details={"cache_test_passed": cached_value is not None},
            )
        except Exception as e:
            logger.warning("Redis health check failed", error=str(e))
            return HealthCheckResult(
                service="redis",
                status="degraded",
                connected=False,
                details={},
                error=str(e),
            )

    async def check_upstream_keys(self) -> HealthCheckResult:
        """Count usable upstream keys across active providers."""
        try:
            result = await self.db.execute(
                select(
                    func.count(ProviderKeyStatus.id),
                    func.count(
                        case(
                            (
                                ProviderKeyStatus.is_active.is_(True)
                                & ProviderKeyStatus.quota_exceeded.is_(False),
                                1,
                            )
                        )
                    ),
                )
                .join(Provider, Provider.id == ProviderKeyStatus.provider_id)
                .where(Provider.status == ProviderStatus.ACTIVE)
            )
            total, usable = result.one()
        except Exception as e:
            logger.error("Upstream key health check failed", error=str(e))
            return HealthCheckResult(
                service="upstream_keys",
                status="degraded",
                connected=False,
                details={},
                error=str(e),
            )
        return HealthCheckResult(
            service="upstream_keys",
            status="healthy" if usable else "degraded",
            connected=True,
            details={"total_keys": total, "usable_keys": usable},
        )

    async def run_all_checks(self) -> OverallHealthStatus:
        # The session is not safe for concurrent use; only Redis runs alongside
        redis_task = asyncio.create_task(self.check_redis_health())
        database = await self.check_database_health()
        results = [database]
        if database.status == "healthy":
            results.append(await self.check_upstream_keys())
        results.append(await redis_task)

        overall: Status = "healthy"
        for result in results:
            if result.status == "unhealthy":
                overall = "unhealthy"
            elif result.status == "degraded" and overall == "healthy":
                overall = "degraded"

        return OverallHealthStatus(
            status=overall,
            services={result.service: result for result in results},
            timestamp=utcnow().isoformat(),
        )
