"""Periodic connectivity checks for active proxies."""

import asyncio
import time
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.base import BaseService
from src.database.models import Proxy
from src.modules.proxies.cache import ProxySnapshot
from src.modules.proxies.pool import ProxyPoolService
from src.modules.proxies.transport import build_transport
from src.utils.dates import utcnow
from src.utils.settings.proxy import ProxySettings


@dataclass
class ConnectivityResult:
    proxy_id: UUID
    success: bool
    response_time_ms: float | None = None
    error: str | None = None


@dataclass
class BatchTestItem:
    proxy_id: UUID
    name: str
    host: str
    port: int
    success: bool
    response_time_ms: float | None = None
    error: str | None = None


@dataclass
class BatchTestReport:
    results: list[BatchTestItem] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def success(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return self.total - self.success

    @property
    def success_rate(self) -> float:
        if not self.results:
            return 0.0
        return round(self.success / self.total * 100, 2)


@dataclass
class HealthCheckSummary:
    checked: int = 0
    healthy: int = 0
    failed: int = 0
    deactivated: list[UUID] = field(default_factory=list)


class ProxyHealthChecker(BaseService):
    def __init__(self, db: AsyncSession, pool: ProxyPoolService | None = None):
        super().__init__(db)
        self.pool = pool or ProxyPoolService(db)
        self.settings = ProxySettings()

    async def check_connectivity(self, proxy: ProxySnapshot) -> ConnectivityResult:
        """One request to the check URL through ``proxy``. Never raises."""
        started = time.perf_counter()
        try:
            transport = build_transport(proxy)
            response = await self.pool.dispatch(
                "GET",
                self.settings.PROXY_HEALTH_CHECK_URL,
                None,
                None,
                self.settings.PROXY_HEALTH_CHECK_TIMEOUT,
                transport,
            )
        except Exception as e:
            return ConnectivityResult(proxy.id, False, error=f"{type(e).__name__}: {e}")

        elapsed_ms = (time.perf_counter() - started) * 1000
        if response.status >= 400:
            return ConnectivityResult(proxy.id, False, elapsed_ms, f"HTTP {response.status}")
        return ConnectivityResult(proxy.id, True, elapsed_ms)

    async def _check_and_record(
        self, snapshots: list[ProxySnapshot]
    ) -> list[ConnectivityResult]:
        semaphore = asyncio.Semaphore(self.settings.PROXY_HEALTH_CHECK_CONCURRENCY)

        async def bounded(snapshot: ProxySnapshot) -> ConnectivityResult:
            async with semaphore:
                return await self.check_connectivity(snapshot)

        # Checks run concurrently; the session is only touched sequentially
        results = await asyncio.gather(*(bounded(s) for s in snapshots))
        for outcome in results:
            await self.pool.record_proxy_result(
                outcome.proxy_id, outcome.success, outcome.response_time_ms
            )
        return list(results)

    async def batch_test(self, proxy_ids: list[UUID] | None = None) -> BatchTestReport:
        """Check the given proxies, or every active one when none are named.

        Results are recorded but nothing is disabled; unknown ids are skipped.
        """
        query = select(Proxy).order_by(Proxy.created_at)
        if proxy_ids is None:
            query = query.where(Proxy.is_active.is_(True))
        else:
            query = query.where(Proxy.id.in_(proxy_ids))
        result = await self.db.execute(query)
        snapshots = [ProxySnapshot.from_model(p) for p in result.scalars().all()]

        results = await self._check_and_record(snapshots)
        report = BatchTestReport(
            results=[
                BatchTestItem(
                    proxy_id=snapshot.id,
                    name=snapshot.name,
                    host=snapshot.host,
                    port=snapshot.port,
                    success=outcome.success,
                    response_time_ms=outcome.response_time_ms,
                    error=outcome.error,
                )
                for snapshot, outcome in zip(snapshots, results)
            ]
        )
        self.logger.info(
            "Proxy batch test finished",
            total=report.total,
            success=report.success,
            failed=report.failed,
        )
        return report

    async def perform_health_check(self) -> HealthCheckSummary:
        """Check every active proxy, record results, disable chronic failures."""
        result = await self.db.execute(select(Proxy).where(Proxy.is_active.is_(True)))
        snapshots = [ProxySnapshot.from_model(p) for p in result.scalars().all()]
        summary = HealthCheckSummary(checked=len(snapshots))
        if not snapshots:
            return summary

        for outcome in await self._check_and_record(snapshots):
            if outcome.success:
                summary.healthy += 1
            else:
                summary.failed += 1
                self.logger.info(
                    "Proxy check failed", proxy_id=str(outcome.proxy_id), error=outcome.error
                )

        summary.deactivated = await self.deactivate_failing_proxies()
        self.logger.info(
            "Proxy health check finished",
            checked=summary.checked,
            healthy=summary.healthy,
            failed=summary.failed,
            deactivated=len(summary.deactivated),
        )
        return summary

    async def deactivate_failing_proxies(self) -> list[UUID]:
        threshold = self.settings.PROXY_FAILURE_THRESHOLD
        result = await self.db.execute(
            select(Proxy.id, Proxy.assigned_api_key).where(
                Proxy.is_active.is_(True), Proxy.failure_count > threshold
            )
        )
        rows = result.all()
        deactivated = []
        for proxy_id, assigned_key in rows:
            note = f"Auto-disabled due to consecutive failures at {utcnow().isoformat()}"
            update_result = await self.db.execute(
                update(Proxy)
                .where(Proxy.id == proxy_id, Proxy.is_active.is_(True))
                .values(is_active=False, notes=note, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if update_result.rowcount:
                deactivated.append(proxy_id)
                self.pool.cache.invalidate(assigned_key)
                self.pool.cache.invalidate_proxy(proxy_id)
                self.logger.warning(
                    "Proxy auto-disabled", proxy_id=str(proxy_id), threshold=threshold
                )
        await self._commit()
        return deactivated

    async def test_proxy(self, proxy_id: UUID) -> ConnectivityResult:
        """Admin-triggered single check, recorded like a scheduled one."""
        proxy = await self.pool.get_proxy(proxy_id)
        outcome = await self.check_connectivity(ProxySnapshot.from_model(proxy))
        await self.pool.record_proxy_result(
            outcome.proxy_id, outcome.success, outcome.response_time_ms
        )
        return outcome
