"""Upstream API key pools per AI provider."""

import uuid
from dataclasses import dataclass

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite

from src.core.base import BaseService
from src.core.errors import NoUpstreamKeyError, NotFoundError
from src.api.core.messages import MessageCode
from src.database.models import Provider, ProviderKeyStatus, ProviderStatus, Proxy
from src.modules.proxies.cache import proxy_lookup_cache
from src.utils.dates import utcnow
from src.utils.masking import mask_secret

# Message text is only consulted when there is no HTTP status; with one, the
# body may echo caller input such as a model name
QUOTA_SIGNALS = ("quota", "rate limit", "resource_exhausted")
INVALID_SIGNALS = (
    "invalid api key",
    "incorrect api key",
    "api key not valid",
    "api_key_invalid",
)


@dataclass(frozen=True)
class UpstreamKeyRef:
    provider_name: str
    api_key: str


def classify_upstream_error(
    error_kind: str | None, message: str | None, status_code: int | None = None
) -> tuple[bool, bool]:
    """Return ``(quota_exceeded, invalid_credential)``; both may be true."""
    text = (message or "").lower() if status_code is None else ""
    quota = (
        error_kind == "quota_exceeded"
        or status_code == 429
        or any(signal in text for signal in QUOTA_SIGNALS)
    )
    invalid = (
        error_kind == "invalid_key"
        or status_code == 401
        or any(signal in text for signal in INVALID_SIGNALS)
    )
    return quota, invalid


def _provider_id_by_name(provider_name: str):
    return (
        select(Provider.id)
        .where(func.lower(Provider.name) == provider_name.lower())
        .scalar_subquery()
    )


class ProviderRegistryService(BaseService):
    """Selection and health bookkeeping for upstream API keys.

    Provider names are matched case-insensitively. Status rows are
    reconciled against ``Provider.api_keys`` before every read.
    """

    async def get_provider(self, provider_name: str) -> Provider | None:
        result = await self.db.execute(
            select(Provider)
            .where(func.lower(Provider.name) == provider_name.lower())
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _require_provider(self, provider_name: str) -> Provider:
        provider = await self.get_provider(provider_name)
        if provider is None:
            raise NotFoundError(
                f"Provider {provider_name} not found",
                message_code=MessageCode.PROVIDER_NOT_FOUND,
            )
        return provider

    async def sync_key_status(self, provider: Provider) -> None:
        """Reconcile status rows with the configured key list.

        Inserts ignore rows that already exist and deletes only rows whose
        key is gone, so concurrent or repeated syncs converge on the same
        set.
        """
        provider_id = provider.id
        keys = list(dict.fromkeys(k for k in (provider.api_keys or []) if k))

        try:
            if keys:
                dialect = self.db.get_bind().dialect.name
                insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
                stmt = insert(ProviderKeyStatus).values(
                    [
                        {
                            "id": uuid.uuid4(),
                            "provider_id": provider_id,
                            "key": key,
                            "is_active": True,
                            "quota_exceeded": False,
                            "request_count": 0,
                        }
                        for key in keys
                    ]
                )
                await self.db.execute(
                    stmt.on_conflict_do_nothing(index_elements=["provider_id", "key"])
                )

            orphaned = delete(ProviderKeyStatus).where(
                ProviderKeyStatus.provider_id == provider_id
            )
            if keys:
                orphaned = orphaned.where(ProviderKeyStatus.key.not_in(keys))
            await self.db.execute(orphaned)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            self.logger.warning(
                "Key status sync failed", provider_id=str(provider_id), error=str(e)
            )

    async def get_best_api_key(self, provider_name: str) -> str:
        """Least recently used healthy key, degrading to any active key."""
        provider = await self.get_provider(provider_name)
        if provider is None or provider.status != ProviderStatus.ACTIVE:
            raise NoUpstreamKeyError(
                f"Provider {provider_name} is not available",
                details={"provider": provider_name},
            )
        provider_id = provider.id
        configured = list(provider.api_keys or [])
        await self.sync_key_status(provider)
        if not configured:
            raise NoUpstreamKeyError(details={"provider": provider_name})

        base = select(ProviderKeyStatus.key).where(
            ProviderKeyStatus.provider_id == provider_id,
            ProviderKeyStatus.key.in_(configured),
            ProviderKeyStatus.is_active.is_(True),
        )
        result = await self.db.execute(
            base.where(ProviderKeyStatus.quota_exceeded.is_(False))
            .order_by(ProviderKeyStatus.last_used.asc().nulls_first())
            .limit(1)
        )
        key = result.scalar_one_or_none()
        if key is not None:
            return key

        result = await self.db.execute(
            base.order_by(ProviderKeyStatus.last_error_time.asc().nulls_first()).limit(1)
        )
        key = result.scalar_one_or_none()
        if key is None:
            raise NoUpstreamKeyError(details={"provider": provider_name})

        self.logger.warning(
            "All keys over quota, using degraded selection",
            provider=provider_name,
            key=mask_secret(key),
        )
        return key

    async def mark_key_used(self, provider_name: str, api_key: str) -> None:
        try:
            await self.db.execute(
                update(ProviderKeyStatus)
                .where(
                    ProviderKeyStatus.provider_id == _provider_id_by_name(provider_name),
                    ProviderKeyStatus.key == api_key,
                )
                .values(
                    last_used=utcnow(),
                    last_error=None,
                    last_error_time=None,
                    request_count=ProviderKeyStatus.request_count + 1,
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            self.logger.warning(
                "Failed to record key usage",
                provider=provider_name,
                key=mask_secret(api_key),
                error=str(e),
            )

    async def mark_key_error(
        self,
        provider_name: str,
        api_key: str,
        error_kind: str | None,
        message: str | None,
        status_code: int | None = None,
    ) -> None:
        quota, invalid = classify_upstream_error(error_kind, message, status_code)
        values: dict = {
            "last_error": (message or error_kind or "")[:1000],
            "last_error_time": utcnow(),
        }
        if quota:
            values["quota_exceeded"] = True
        if invalid:
            values["is_active"] = False

        try:
            await self.db.execute(
                update(ProviderKeyStatus)
                .where(
                    ProviderKeyStatus.provider_id == _provider_id_by_name(provider_name),
                    ProviderKeyStatus.key == api_key,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            self.logger.warning(
                "Failed to record key error",
                provider=provider_name,
                key=mask_secret(api_key),
                error=str(e),
            )
            return

        self.logger.warning(
            "Upstream key error recorded",
            provider=provider_name,
            key=mask_secret(api_key),
            quota_exceeded=quota,
            deactivated=invalid,
        )

    async def reset_daily_quotas(self, provider_name: str) -> int:
        provider = await self._require_provider(provider_name)
        result = await self.db.execute(
            update(ProviderKeyStatus)
            .where(ProviderKeyStatus.provider_id == provider.id)
            .values(quota_exceeded=False, last_error=None, last_error_time=None)
            .execution_options(synchronize_session=False)
        )
        await self._commit()
        self.logger.info("Daily quotas reset", provider=provider_name, keys=result.rowcount)
        return result.rowcount

    async def reset_all_daily_quotas(self) -> int:
        result = await self.db.execute(
            update(ProviderKeyStatus)
            .values(quota_exceeded=False, last_error=None, last_error_time=None)
            .execution_options(synchronize_session=False)
        )
        await self._commit()
        self.logger.info("Daily quotas reset for all providers", keys=result.rowcount)
        return result.rowcount

    async def ensure_providers(self, names: list[str]) -> list[str]:
        """Register any missing providers. Returns the names that were created."""
        created = []
        for name in names:
            if await self.get_provider(name) is None:
                self.db.add(Provider(name=name, api_keys=[], status=ProviderStatus.ACTIVE))
                created.append(name)
        if created:
            await self._commit()
            self.logger.info("Providers registered", providers=created)
        return created

    async def add_api_key(self, provider_name: str, api_key: str) -> Provider:
        provider = await self._require_provider(provider_name)
        if api_key not in (provider.api_keys or []):
            provider.api_keys = [*(provider.api_keys or []), api_key]
            await self._commit()
        await self.sync_key_status(provider)
        self.logger.info(
            "Upstream key added", provider=provider.name, key=mask_secret(api_key)
        )
        return provider

    async def remove_api_key(self, provider_name: str, api_key: str) -> Provider:
        provider = await self._require_provider(provider_name)
        if api_key not in (provider.api_keys or []):
            raise NotFoundError("API key not configured for provider")

        provider.api_keys = [k for k in provider.api_keys if k != api_key]
        # A removed key must not keep a proxy
        await self.db.execute(
            update(Proxy)
            .where(Proxy.assigned_api_key == api_key)
            .values(assigned_api_key=None)
            .execution_options(synchronize_session=False)
        )
        await self._commit()
        proxy_lookup_cache.invalidate(api_key)
        await self.sync_key_status(provider)
        self.logger.info(
            "Upstream key removed", provider=provider.name, key=mask_secret(api_key)
        )
        return provider

    async def list_upstream_keys(self, provider_filter: str = "all") -> list[UpstreamKeyRef]:
        stmt = select(Provider).where(Provider.status == ProviderStatus.ACTIVE)
        if provider_filter and provider_filter.lower() != "all":
            stmt = stmt.where(func.lower(Provider.name) == provider_filter.lower())
        result = await self.db.execute(stmt.order_by(Provider.name))
        return [
            UpstreamKeyRef(provider.name, key)
            for provider in result.scalars().all()
            for key in (provider.api_keys or [])
        ]

    async def list_available_providers(self) -> list[str]:
        """Active providers with at least one usable key."""
        result = await self.db.execute(
            select(Provider.name)
            .join(ProviderKeyStatus, ProviderKeyStatus.provider_id == Provider.id)
            .where(
                Provider.status == ProviderStatus.ACTIVE,
                ProviderKeyStatus.is_active.is_(True),
            )
            .distinct()
            .order_by(Provider.name)
        )
        return list(result.scalars().all())

    async def get_key_statistics(self, provider_name: str) -> dict:
        provider = await self._require_provider(provider_name)
        name = provider.name
        provider_id = provider.id
        await self.sync_key_status(provider)

        result = await self.db.execute(
            select(ProviderKeyStatus)
            .where(ProviderKeyStatus.provider_id == provider_id)
            .order_by(ProviderKeyStatus.key)
            .execution_options(populate_existing=True)
        )
        statuses = result.scalars().all()
        return {
            "provider": name,
            "total_keys": len(statuses),
            "active_keys": sum(1 for s in statuses if s.is_active),
            "quota_exceeded_keys": sum(1 for s in statuses if s.quota_exceeded),
            "inactive_keys": sum(1 for s in statuses if not s.is_active),
            "total_requests": sum(s.request_count or 0 for s in statuses),
            "keys": [
                {
                    "key": mask_secret(s.key),
                    "is_active": s.is_active,
                    "quota_exceeded": s.quota_exceeded,
                    "last_error": s.last_error,
                    "last_error_time": s.last_error_time,
                    "request_count": s.request_count or 0,
                    "last_used": s.last_used,
                }
                for s in statuses
            ],
        }
