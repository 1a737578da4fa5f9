"""Redis caching utilities.

Provides a decorator and helpers for caching small, frequently read query
results (the approval policy snapshot) across backend instances.  Every
Redis failure falls back to the uncached call.
"""

import functools
import hashlib
import json
import logging
from datetime import date, datetime
from typing import Callable, Optional

import redis.asyncio as redis
from app.config import settings

logger = logging.getLogger(__name__)

# Global Redis connection pool
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create Redis client connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
            socket_connect_timeout=1,
        )
    return _redis_client


async def close_redis():
    """Close Redis connection (call on app shutdown)."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def cache_key(*args, **kwargs) -> str:
    """Generate a cache key from function arguments.

    Creates a deterministic hash from function name and arguments.
    """
    # Handle empty args/kwargs
    if not args and not kwargs:
        return "default"

    key_data = json.dumps({"args": args, "kwargs": kwargs}, sort_keys=True)
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return key_hash


def cached(
    ttl: int = 300,
    prefix: str = "cache",
    enabled: Callable[[], bool] = lambda: True,
):
    """Decorator to cache JSON-serializable function results in Redis.

    Args:
        ttl: Time-to-live in seconds (default: 300 = 5 minutes)
        prefix: Cache key prefix for namespacing
        enabled: Checked on every call; when False the function runs uncached

    Example:
        @cached(ttl=30, prefix="policy")
        async def load_policy_rows(db: AsyncSession) -> list[dict]:
            ...

    Cache keys: {prefix}:{function_name}:{kwargs_hash}
    Positional args are treated as injected dependencies and never hashed.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            if not enabled():
                return await func(*args, **kwargs)

            cache_kwargs = {}
            for k, v in kwargs.items():
                if k.startswith("_"):
                    continue
                if isinstance(v, (int, str, bool, float, type(None))):
                    cache_kwargs[k] = v
                elif isinstance(v, (date, datetime)):
                    cache_kwargs[k] = v.isoformat()
            key = f"{prefix}:{func.__name__}:{cache_key(**cache_kwargs)}"

            try:
                redis_client = await get_redis()
                cached_value = await redis_client.get(key)
                if cached_value:
                    logger.debug("Cache hit: %s", key)
                    return json.loads(cached_value)
                logger.debug("Cache miss: %s", key)
            except redis.RedisError as e:
                logger.warning("Redis unavailable, reading through: %s", e)
                return await func(*args, **kwargs)

            result = await func(*args, **kwargs)

            try:
                await redis_client.setex(key, ttl, json.dumps(result))
            except redis.RedisError as e:
                logger.warning("Could not store %s in Redis: %s", key, e)

            return result

        return wrapper

    return decorator


async def invalidate_cache(pattern: str):
    """Invalidate cache keys matching a pattern.

    Args:
        pattern: Redis key pattern (e.g., "policy:*")
    """
    try:
        redis_client = await get_redis()
        keys = []
        async for key in redis_client.scan_iter(match=pattern):
            keys.append(key)

        if keys:
            await redis_client.delete(*keys)
            logger.info("Invalidated %d key(s) matching %s", len(keys), pattern)
    except redis.RedisError as e:
        logger.warning("Cache invalidation for %s failed: %s", pattern, e)
