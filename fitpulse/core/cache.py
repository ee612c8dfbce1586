"""
Redis Caching Layer

Memoizes expensive per-user aggregates (consistency windows, weekly/monthly
buckets, progress summaries). Degrades gracefully if Redis is unavailable.

The engine itself never calls into this module; the orchestrating services
invalidate explicitly after every mutating call.
"""
import inspect
import json
import logging
from functools import wraps
from typing import Optional, Callable, Any, Sequence
import redis
from redis.exceptions import ConnectionError, TimeoutError, RedisError
from fitpulse.core.config import settings

logger = logging.getLogger(__name__)

# Redis connection pool (singleton)
_redis_client: Optional[redis.Redis] = None

# Every per-user key family; invalidation walks this list.
USER_CACHE_PREFIXES = (
    "progress_summary",
    "engagement_stats",
    "achievement_progress",
)


def get_redis_client() -> Optional[redis.Redis]:
    """Get Redis client with connection pooling. Returns None if Redis unavailable."""
    global _redis_client

    if not settings.CACHE_ENABLED:
        return None

    if _redis_client is not None:
        return _redis_client

    try:
        _redis_client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
            retry_on_timeout=True,
            health_check_interval=30
        )
        # Test connection
        _redis_client.ping()
        logger.info("Redis connection established")
        return _redis_client
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Redis unavailable: {e}. Caching disabled.")
        _redis_client = None
        return None


def cache_key(prefix: str, *args, **kwargs) -> str:
    """Generate cache key from prefix and arguments."""
    key_parts = [prefix]

    # Add args (skip None values)
    for arg in args:
        if arg is not None:
            key_parts.append(str(arg))

    # Add kwargs (sorted for consistency, skip None values)
    for k, v in sorted(kwargs.items()):
        if v is not None:
            key_parts.append(f"{k}:{v}")

    return ":".join(key_parts)


def get_cache(key: str) -> Optional[Any]:
    """Get value from cache. Returns None if not found or Redis unavailable."""
    client = get_redis_client()
    if not client:
        return None

    try:
        value = client.get(key)
        if value:
            return json.loads(value)
        return None
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Cache get error for key {key}: {e}")
        return None


def set_cache(key: str, value: Any, ttl: int = None) -> bool:
    """Set value in cache. Returns True if successful, False otherwise."""
    client = get_redis_client()
    if not client:
        return False

    try:
        if ttl is None:
            ttl = settings.CACHE_TTL_DEFAULT

        client.setex(
            key,
            ttl,
            json.dumps(value, default=str)  # default=str handles date, UUID, etc.
        )
        return True
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Cache set error for key {key}: {e}")
        return False


def delete_cache(key: str) -> bool:
    """Delete key from cache. Returns True if successful, False otherwise."""
    client = get_redis_client()
    if not client:
        return False

    try:
        client.delete(key)
        return True
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Cache delete error for key {key}: {e}")
        return False


def invalidate_pattern(pattern: str) -> int:
    """Invalidate all keys matching pattern. Returns count of deleted keys."""
    client = get_redis_client()
    if not client:
        return 0

    try:
        keys = list(client.scan_iter(match=pattern))
        if keys:
            return client.delete(*keys)
        return 0
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Cache invalidation error for pattern {pattern}: {e}")
        return 0


def cached(prefix: str, ttl: int = None, key_params: Optional[Sequence[str]] = None):
    """
    Decorator to cache function results.

    Args:
        prefix: Cache key prefix
        ttl: Time to live in seconds (defaults to CACHE_TTL_DEFAULT)
        key_params: Parameter names that make up the key. Defaults to every
            argument; name them when the function also takes sessions or
            providers that must not end up in the key.

    Usage:
        @cached("engagement_stats", ttl=600, key_params=("user_id",))
        def get_engagement_stats(user_id: UUID, provider, today=None):
            ...
    """
    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @wraps(func)
        def wrapper(*args, **kwargs):
            if key_params is None:
                key = cache_key(prefix, *args, **kwargs)
            else:
                bound = signature.bind(*args, **kwargs)
                bound.apply_defaults()
                key = cache_key(prefix, *(bound.arguments[name] for name in key_params))

            cached_value = get_cache(key)
            if cached_value is not None:
                logger.debug(f"Cache hit: {key}")
                return cached_value

            logger.debug(f"Cache miss: {key}")
            result = func(*args, **kwargs)

            set_cache(key, result, ttl)

            return result

        return wrapper
    return decorator


def invalidate_user_progress_cache(user_id) -> int:
    """
    Invalidate all cached progress aggregates for a user.

    Hosts call this after goal completion, workout completion, goal
    creation and achievement unlocks.
    """
    total_deleted = 0
    for prefix in USER_CACHE_PREFIXES:
        total_deleted += invalidate_pattern(f"{prefix}:{user_id}")
        total_deleted += invalidate_pattern(f"{prefix}:{user_id}:*")

    logger.info(f"Invalidated {total_deleted} cache entries for user {user_id}")
    return total_deleted
