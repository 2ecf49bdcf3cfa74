"""Tests for the Redis cache decorator."""

import pytest
from uuid import uuid4

from src.cache import cached, invalidate_packages_cache
from src.cache.decorator import _generate_cache_key


class FakeService:
    """Stands in for a service instance holding a session."""

    def __init__(self):
        self.db = object()


@pytest.fixture
def memory_cache(monkeypatch):
    """Enable caching and back it with a dict instead of Redis."""
    store: dict = {}

    async def _get(key):
        return store.get(key)

    async def _set(key, value, ttl, tags=None):
        store[key] = value
        return True

    monkeypatch.setattr("src.cache.decorator._cache_enabled", lambda: True)
    monkeypatch.setattr("src.cache.decorator._get_cache", _get)
    monkeypatch.setattr("src.cache.decorator._set_cache", _set)
    return store


@pytest.mark.asyncio
async def test_disabled_cache_calls_through():
    """Caching is off in tests, so every call executes."""
    call_count = 0

    @cached(ttl=60)
    async def get_value(param: str) -> str:
        nonlocal call_count
        call_count += 1
        return f"result-{param}"

    assert await get_value("test") == "result-test"
    assert await get_value("test") == "result-test"
    assert call_count == 2


@pytest.mark.asyncio
async def test_enabled_cache_serves_second_call(memory_cache):
    call_count = 0

    @cached(ttl=60, tags=["packages"])
    async def list_things(param: str) -> list[str]:
        nonlocal call_count
        call_count += 1
        return [param]

    assert await list_things("a") == ["a"]
    assert await list_things("a") == ["a"]
    assert await list_things("b") == ["b"]
    assert call_count == 2
    assert len(memory_cache) == 2


def test_cache_key_skips_instance_and_sessions():
    async def list_active_packages(self, limit: int = 10):
        return []

    key = _generate_cache_key(list_active_packages, (FakeService(),), {"limit": 5})
    assert key.endswith(":list_active_packages:limit=5")


def test_cache_key_includes_uuid_args():
    user_id = uuid4()

    async def lookup(user_id):
        return None

    key = _generate_cache_key(lookup, (user_id,), {})
    assert key.endswith(f":lookup:{user_id}")


@pytest.mark.asyncio
async def test_invalidation_is_noop_when_disabled():
    assert await invalidate_packages_cache() == 0


def test_cache_keys_are_namespaced(monkeypatch):
    monkeypatch.setenv("REDIS_KEY_PREFIX", "cg-test")

    async def list_active_packages(self):
        return []

    key = _generate_cache_key(list_active_packages, (FakeService(),), {})
    assert key.startswith("cg-test:cache:")
