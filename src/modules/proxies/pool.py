"""Outbound proxy pool: lookup, dispatch with direct fallback, assignment."""

import json as jsonlib
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any
from uuid import UUID

import aiohttp
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.core.constants import TOP_PROXY_PERFORMERS
from src.api.core.messages import MessageCode
from src.core.base import BaseService
from src.core.errors import ConflictError, NotFoundError, ProxyAssignedError
from src.database.models import Proxy
from src.modules.providers.registry import ProviderRegistryService
from src.modules.proxies.cache import ProxyLookupCache, ProxySnapshot, proxy_lookup_cache
from src.modules.proxies.transport import (
    ProxyTransport,
    build_transport,
    is_retryable_error,
)
from src.utils.dates import utcnow
from src.utils.masking import mask_secret
from src.utils.settings.proxy import ProxySettings

MAX_CLAIM_ROUNDS = 10


@dataclass
class UpstreamResponse:
    status: int
    body: bytes
    headers: dict[str, str] = field(default_factory=dict)
    proxy_id: UUID | None = None
    retried_direct: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return jsonlib.loads(self.body or b"null")


@dataclass
class KeyAssignment:
    provider: str
    api_key: str
    status: str
    proxy_id: UUID | None = None
    proxy_name: str | None = None
    error: str | None = None


@dataclass
class AutoAssignReport:
    results: list[KeyAssignment] = field(default_factory=list)

    @property
    def total_assigned(self) -> int:
        return sum(1 for r in self.results if r.status == "assigned")

    @property
    def total_keys(self) -> int:
        return len(self.results)


class ProxyPoolService(BaseService):
    def __init__(self, db: AsyncSession, cache: ProxyLookupCache | None = None):
        super().__init__(db)
        self.cache = cache if cache is not None else proxy_lookup_cache
        self.settings = ProxySettings()

    # Lookup and dispatch

    async def get_proxy_for_api_key(self, api_key: str) -> ProxySnapshot | None:
        """Active proxy bound to ``api_key``, through the lookup cache.

        Lookup errors degrade to ``None`` so the caller goes direct.
        """
        if not api_key:
            return None
        cached = self.cache.get(api_key)
        if cached is not None:
            return cached

        try:
            result = await self.db.execute(
                select(Proxy).where(
                    Proxy.assigned_api_key == api_key, Proxy.is_active.is_(True)
                )
            )
            proxy = result.scalar_one_or_none()
        except Exception as e:
            self.logger.warning(
                "Proxy lookup failed", key=mask_secret(api_key), error=str(e)
            )
            return None

        if proxy is None:
            return None
        snapshot = ProxySnapshot.from_model(proxy)
        self.cache.set(api_key, snapshot)
        return snapshot

    async def request_through(
        self,
        method: str,
        url: str,
        api_key: str | None,
        *,
        headers: dict | None = None,
        json: Any = None,
        timeout: float = 30,
    ) -> UpstreamResponse:
        """Send a request via the key's proxy, or directly when it has none.

        A retryable network failure through the proxy is retried once
        without it. Anything else propagates.
        """
        proxy = await self.get_proxy_for_api_key(api_key) if api_key else None

        transport = None
        if proxy is not None:
            try:
                transport = build_transport(proxy)
            except Exception as e:
                self.logger.warning(
                    "Proxy transport build failed, going direct",
                    proxy_id=str(proxy.id),
                    error=str(e),
                )

        if transport is None:
            return await self.dispatch(method, url, headers, json, timeout)

        started = time.perf_counter()
        try:
            response = await self.dispatch(
                method, url, headers, json, timeout, transport
            )
        except Exception as e:
            await self.record_proxy_result(proxy.id, success=False)
            if not is_retryable_error(e):
                raise
            self.logger.warning(
                "Proxy request failed, retrying direct",
                proxy_id=str(proxy.id),
                error_type=type(e).__name__,
            )
            response = await self.dispatch(method, url, headers, json, timeout)
            response.retried_direct = True
            return response

        elapsed_ms = (time.perf_counter() - started) * 1000
        await self.record_proxy_result(proxy.id, success=True, response_time_ms=elapsed_ms)
        response.proxy_id = proxy.id
        return response

    async def dispatch(
        self,
        method: str,
        url: str,
        headers: dict | None,
        json: Any,
        timeout: float,
        transport: ProxyTransport | None = None,
    ) -> UpstreamResponse:
        """One HTTP call, through ``transport`` when given."""
        connector = transport.connector if transport else None
        extra = transport.request_kwargs() if transport else {}
        async with aiohttp.ClientSession(
            connector=connector, timeout=aiohttp.ClientTimeout(total=timeout)
        ) as session:
            async with session.request(
                method, url, headers=headers, json=json, **extra
            ) as response:
                body = await response.read()
                return UpstreamResponse(
                    status=response.status,
                    body=body,
                    headers=dict(response.headers),
                )

    async def record_proxy_result(
        self,
        proxy_id: UUID,
        success: bool,
        response_time_ms: float | None = None,
    ) -> None:
        """Update counters in one statement. Best effort."""
        if success:
            values: dict = {
                "success_count": Proxy.success_count + 1,
                "last_used": utcnow(),
            }
            if response_time_ms is not None:
                values["avg_response_time"] = case(
                    (
                        func.coalesce(Proxy.avg_response_time, 0) == 0,
                        response_time_ms,
                    ),
                    else_=(Proxy.avg_response_time + response_time_ms) / 2,
                )
        else:
            values = {"failure_count": Proxy.failure_count + 1}

        try:
            await self.db.execute(
                update(Proxy)
                .where(Proxy.id == proxy_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            self.logger.warning(
                "Failed to record proxy result", proxy_id=str(proxy_id), error=str(e)
            )

    # Assignment

    async def suggest_unassigned_proxies(self, limit: int | None = None) -> list[Proxy]:
        result = await self.db.execute(
            select(Proxy)
            .where(Proxy.is_active.is_(True), Proxy.assigned_api_key.is_(None))
            .order_by(Proxy.success_count.desc(), Proxy.avg_response_time.asc())
            .limit(limit or self.settings.PROXY_SUGGESTION_LIMIT)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _assigned_proxy_id(self, api_key: str) -> UUID | None:
        result = await self.db.execute(
            select(Proxy.id).where(Proxy.assigned_api_key == api_key)
        )
        return result.scalar_one_or_none()

    async def _compare_and_set(self, proxy_id: UUID, api_key: str) -> bool:
        """Bind only if the proxy is still free and active at write time."""
        try:
            result = await self.db.execute(
                update(Proxy)
                .where(
                    Proxy.id == proxy_id,
                    Proxy.assigned_api_key.is_(None),
                    Proxy.is_active.is_(True),
                )
                .values(assigned_api_key=api_key, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except IntegrityError:
            # The key was bound to another proxy concurrently
            await self.db.rollback()
            raise
        if result.rowcount == 1:
            self.cache.invalidate(api_key)
            return True
        return False

    async def _claim_free_proxy(self, api_key: str) -> Proxy | None:
        for _ in range(MAX_CLAIM_ROUNDS):
            candidates = await self.suggest_unassigned_proxies(limit=5)
            if not candidates:
                return None
            for candidate in candidates:
                if await self._compare_and_set(candidate.id, api_key):
                    return candidate
        return None

    async def _release_key(self, api_key: str) -> None:
        await self.db.execute(
            update(Proxy)
            .where(Proxy.assigned_api_key == api_key)
            .values(assigned_api_key=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self._commit()
        self.cache.invalidate(api_key)

    async def auto_assign(
        self, provider_filter: str = "all", force_reassign: bool = False
    ) -> AutoAssignReport:
        """Bind a free proxy to every upstream key that lacks one."""
        registry = ProviderRegistryService(self.db)
        key_refs = await registry.list_upstream_keys(provider_filter)
        report = AutoAssignReport()

        for ref in key_refs:
            entry = KeyAssignment(
                provider=ref.provider_name,
                api_key=mask_secret(ref.api_key),
                status="error",
            )
            report.results.append(entry)
            try:
                current = await self._assigned_proxy_id(ref.api_key)
                if current is not None and not force_reassign:
                    entry.status = "already_assigned"
                    entry.proxy_id = current
                    continue
                if current is not None:
                    await self._release_key(ref.api_key)

                try:
                    proxy = await self._claim_free_proxy(ref.api_key)
                except IntegrityError:
                    entry.status = "already_assigned"
                    entry.proxy_id = await self._assigned_proxy_id(ref.api_key)
                    continue

                if proxy is None:
                    entry.status = "no_proxy_available"
                else:
                    entry.status = "assigned"
                    entry.proxy_id = proxy.id
                    entry.proxy_name = proxy.name
            except Exception as e:
                await self.db.rollback()
                entry.error = str(e)
                self.logger.error(
                    "Auto-assign failed for key",
                    provider=ref.provider_name,
                    key=mask_secret(ref.api_key),
                    error=str(e),
                )

        self.logger.info(
            "Auto-assign finished",
            provider_filter=provider_filter,
            force_reassign=force_reassign,
            total_keys=report.total_keys,
            total_assigned=report.total_assigned,
        )
        return report

    async def assign_proxy(self, proxy_id: UUID, api_key: str) -> Proxy:
        proxy = await self.get_proxy(proxy_id)
        if proxy.assigned_api_key == api_key:
            return proxy
        if proxy.assigned_api_key is not None:
            raise ConflictError(
                "Proxy is already assigned to another key",
                message_code=MessageCode.PROXY_ASSIGNED,
            )
        try:
            claimed = await self._compare_and_set(proxy_id, api_key)
        except IntegrityError:
            raise ConflictError("API key already has a proxy")
        if not claimed:
            raise ConflictError(
                "Proxy was assigned or deactivated concurrently",
                message_code=MessageCode.PROXY_ASSIGNED,
            )
        self.logger.info(
            "Proxy assigned", proxy_id=str(proxy_id), key=mask_secret(api_key)
        )
        return await self.get_proxy(proxy_id)

    async def unassign_proxy(self, proxy_id: UUID) -> Proxy:
        proxy = await self.get_proxy(proxy_id)
        previous = proxy.assigned_api_key
        await self.db.execute(
            update(Proxy)
            .where(Proxy.id == proxy_id)
            .values(assigned_api_key=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self._commit()
        self.cache.invalidate(previous)
        self.cache.invalidate_proxy(proxy_id)
        return await self.get_proxy(proxy_id)

    # Admin CRUD

    async def get_proxy(self, proxy_id: UUID) -> Proxy:
        result = await self.db.execute(
            select(Proxy)
            .where(Proxy.id == proxy_id)
            .execution_options(populate_existing=True)
        )
        proxy = result.scalar_one_or_none()
        if proxy is None:
            raise NotFoundError(message_code=MessageCode.PROXY_NOT_FOUND)
        return proxy

    async def list_proxies(
        self, is_active: bool | None = None, assigned: bool | None = None
    ) -> list[Proxy]:
        stmt = select(Proxy).order_by(Proxy.created_at.desc())
        if is_active is not None:
            stmt = stmt.where(Proxy.is_active.is_(is_active))
        if assigned is True:
            stmt = stmt.where(Proxy.assigned_api_key.is_not(None))
        elif assigned is False:
            stmt = stmt.where(Proxy.assigned_api_key.is_(None))
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def create_proxy(self, **fields) -> Proxy:
        proxy = Proxy(**fields)
        self.db.add(proxy)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(message_code=MessageCode.PROXY_ALREADY_EXISTS)
        self.logger.info(
            "Proxy created", proxy_id=str(proxy.id), host=proxy.host, port=proxy.port
        )
        return proxy

    async def update_proxy(self, proxy_id: UUID, **fields) -> Proxy:
        proxy = await self.get_proxy(proxy_id)
        for name, value in fields.items():
            setattr(proxy, name, value)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(message_code=MessageCode.PROXY_ALREADY_EXISTS)
        self.cache.invalidate_proxy(proxy_id)
        self.cache.invalidate(proxy.assigned_api_key)
        return proxy

    async def delete_proxy(self, proxy_id: UUID) -> None:
        """Delete an unassigned proxy. Assigned proxies must be released first."""
        result = await self.db.execute(
            delete(Proxy)
            .where(Proxy.id == proxy_id, Proxy.assigned_api_key.is_(None))
            .execution_options(synchronize_session=False)
        )
        await self._commit()
        if result.rowcount == 1:
            self.cache.invalidate_proxy(proxy_id)
            self.logger.info("Proxy deleted", proxy_id=str(proxy_id))
            return

        proxy = await self.get_proxy(proxy_id)
        raise ProxyAssignedError(
            "Cannot delete a proxy that is assigned to an API key",
            details={"assigned_api_key": mask_secret(proxy.assigned_api_key)},
        )

    async def get_statistics(self) -> dict:
        now = utcnow()
        totals = (
            await self.db.execute(
                select(
                    func.count(Proxy.id),
                    func.count(case((Proxy.is_active.is_(True), 1))),
                    func.count(Proxy.assigned_api_key),
                    func.count(
                        case(
                            (
                                Proxy.is_active.is_(True)
                                & Proxy.assigned_api_key.is_(None),
                                1,
                            )
                        )
                    ),
                    func.count(case((Proxy.last_used >= now - timedelta(hours=24), 1))),
                    func.coalesce(func.sum(Proxy.success_count), 0),
                    func.coalesce(func.sum(Proxy.failure_count), 0),
                )
            )
        ).one()
        total, active, assigned, available, recent, successes, failures = totals

        result = await self.db.execute(
            select(Proxy)
            .where(Proxy.is_active.is_(True))
            .order_by(Proxy.success_count.desc(), Proxy.avg_response_time.asc())
            .limit(TOP_PROXY_PERFORMERS)
            .execution_options(populate_existing=True)
        )
        requests = successes + failures
        return {
            "overview": {
                "total": total,
                "active": active,
                "inactive": total - active,
                "assigned": assigned,
                "available": available,
                "recently_used": recent,
                "total_requests": requests,
                "success_rate": round(successes / requests * 100, 2) if requests else 0.0,
            },
            "top_performers": [
                {
                    "id": p.id,
                    "name": p.name,
                    "success_count": p.success_count,
                    "failure_count": p.failure_count,
                    "avg_response_time": p.avg_response_time,
                    "success_rate": p.success_rate,
                }
                for p in result.scalars().all()
            ],
        }
