"""In-process TTL cache for upstream-key to proxy lookups.

The store stays authoritative: a miss or an expired entry always falls
back to a query, and every write that changes a binding invalidates it.
"""

import time
from dataclasses import dataclass
from typing import Callable
from uuid import UUID

from cachetools import TTLCache

from src.utils.settings.proxy import ProxySettings


@dataclass(frozen=True)
class ProxySnapshot:
    """Detached copy of the proxy fields needed to open a connection."""

    id: UUID
    name: str
    host: str
    port: int
    protocol: str
    username: str | None = None
    password: str | None = None

    @classmethod
    def from_model(cls, proxy) -> "ProxySnapshot":
        return cls(
            id=proxy.id,
            name=proxy.name,
            host=proxy.host,
            port=proxy.port,
            protocol=proxy.protocol,
            username=proxy.username,
            password=proxy.password,
        )


class ProxyLookupCache:
    """Positive lookups only; a key without a proxy is never stored."""

    def __init__(
        self,
        ttl_seconds: float,
        max_size: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._entries: TTLCache[str, ProxySnapshot] = TTLCache(
            maxsize=max_size, ttl=ttl_seconds, timer=clock
        )

    def get(self, api_key: str) -> ProxySnapshot | None:
        return self._entries.get(api_key)

    def set(self, api_key: str, snapshot: ProxySnapshot) -> None:
        self._entries[api_key] = snapshot

    def invalidate(self, api_key: str | None) -> None:
        if api_key:
            self._entries.pop(api_key, None)

    def invalidate_proxy(self, proxy_id: UUID) -> None:
        stale = [key for key, snap in list(self._entries.items()) if snap.id == proxy_id]
        for key in stale:
            self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


_settings = ProxySettings()
proxy_lookup_cache = ProxyLookupCache(
    ttl_seconds=_settings.PROXY_CACHE_TTL_SECONDS,
    max_size=_settings.PROXY_CACHE_MAX_SIZE,
)
