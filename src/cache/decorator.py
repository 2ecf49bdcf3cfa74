"""Redis-backed result cache for read-mostly catalogue queries.

Entries are pickled and tracked in tag sets so a write can drop every cached
view at once. Any Redis failure degrades to calling the wrapped function.
"""

import pickle
from functools import wraps
from uuid import UUID

from src.redis.client import get_cache_client
from src.utils.logger import get_logger
from src.utils.settings.redis import RedisSettings

logger = get_logger(__name__)

SIMPLE_TYPES = (str, int, float, bool, UUID)

PACKAGES_TAG = "packages"


def _cache_enabled() -> bool:
    return RedisSettings().REDIS_CACHE_ENABLED


def _namespace() -> str:
    return f"{RedisSettings().REDIS_KEY_PREFIX}:cache"


def _tag_key(tag: str) -> str:
    return f"{_namespace()}:tag:{tag}"


def _safe(value) -> str:
    return str(value).replace(":", "_").replace("*", "_")


def _generate_cache_key(func, args: tuple, kwargs: dict) -> str:
    """Cache key from the function path and its simple-typed arguments.

    The bound service instance and sessions never take part in the key.
    """
    key_parts = [func.__module__.replace(".", ":"), func.__qualname__.replace(".", ":")]

    start_idx = 1 if args and not isinstance(args[0], SIMPLE_TYPES) else 0
    key_parts.extend(
        _safe(arg) for arg in args[start_idx:] if isinstance(arg, SIMPLE_TYPES)
    )
    key_parts.extend(
        f"{k}={_safe(v)}"
        for k, v in sorted(kwargs.items())
        if isinstance(v, SIMPLE_TYPES)
    )

    return f"{_namespace()}:" + ":".join(key_parts)


async def _get_cache(key: str):
    try:
        value = await get_cache_client().get(key)
    except Exception as e:
        logger.warning("Cache read failed", cache_key=key, error=str(e))
        return None
    return pickle.loads(value) if value is not None else None


async def _set_cache(key: str, value, ttl: int, tags: list[str] | None = None) -> bool:
    try:
        async with get_cache_client().pipeline(transaction=False) as pipe:
            pipe.setex(key, ttl, pickle.dumps(value))
            for tag in tags or []:
                pipe.sadd(_tag_key(tag), key)
                pipe.expire(_tag_key(tag), ttl)
            await pipe.execute()
        return True
    except Exception as e:
        logger.warning("Cache write failed", cache_key=key, error=str(e))
        return False


def cached(ttl: int = 900, tags: list[str] | None = None):
    """Cache an async function's result in Redis.

    Results must be picklable; return plain data, never ORM instances.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            if not _cache_enabled():
                return await func(*args, **kwargs)

            cache_key = _generate_cache_key(func, args, kwargs)
            cached_value = await _get_cache(cache_key)
            if cached_value is not None:
                logger.debug("Cache hit", cache_key=cache_key)
                return cached_value

            result = await func(*args, **kwargs)
            await _set_cache(cache_key, result, ttl, tags)
            return result

        return wrapper

    return decorator


async def invalidate_tag(tag: str) -> int:
    """Delete every entry recorded under ``tag``. Returns deleted keys."""
    if not _cache_enabled():
        return 0
    client = get_cache_client()
    try:
        cache_keys = await client.smembers(_tag_key(tag))
        if not cache_keys:
            return 0
        deleted = await client.delete(*cache_keys, _tag_key(tag))
    except Exception as e:
        logger.error("Cache invalidation failed", tag=tag, error=str(e))
        return 0

    logger.info("Cache invalidated", tag=tag, entries=len(cache_keys))
    return deleted


async def invalidate_packages_cache() -> int:
    """Drop every cached view of the credit package catalogue."""
    return await invalidate_tag(PACKAGES_TAG)
