"""Shared Redis connection pools.

Two pools are kept: a text pool for health checks and a binary pool for the
pickled package cache.
"""

import redis.asyncio as redis

from src.utils.settings.redis import RedisSettings

_pools: dict[bool, redis.ConnectionPool] = {}


def _pool(decode_responses: bool) -> redis.ConnectionPool:
    pool = _pools.get(decode_responses)
    if pool is None:
        settings = RedisSettings()
        pool = redis.ConnectionPool.from_url(
            settings.REDIS_URL,
            decode_responses=decode_responses,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
        )
        _pools[decode_responses] = pool
    return pool


async def get_redis_client() -> redis.Redis:
    """Text client, used as a FastAPI dependency by the health endpoint."""
    return redis.Redis(connection_pool=_pool(decode_responses=True))


def get_cache_client() -> redis.Redis:
    """Binary client for cached payloads."""
    return redis.Redis(connection_pool=_pool(decode_responses=False))


async def close_redis_pool() -> None:
    """Close every pool; called during app shutdown."""
    for pool in list(_pools.values()):
        await pool.disconnect()
    _pools.clear()
