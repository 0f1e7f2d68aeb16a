"""
Caching system for CareNav provider calls
Provides TTL caches for expensive operations like routing and geocoding queries.

Caches are injectable: anything with `get(key)` and `set(key, value, ttl)`
works. Staleness is decided lazily on read; there is no background sweep.
"""

import time
import hashlib
import os
import json
import threading
from typing import Any, Callable, Optional, Dict, Tuple
from functools import wraps
from logging_config import get_logger

logger = get_logger(__name__)


# Cache TTL settings (in seconds)
CACHE_TTL = {
    'geocoding': 24 * 3600,            # Nominatim search results (stable)
}


class TTLCache:
    """Cache interface. Values must be treated as immutable once stored."""

    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl: float) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def clear(self, prefix: Optional[str] = None) -> int:
        raise NotImplementedError

    def stats(self) -> Dict[str, Any]:
        return {}


class InMemoryTTLCache(TTLCache):
    """
    Process-local cache with lazy TTL-on-read.

    Each entry remembers its insertion time and TTL. A read of an entry
    older than its TTL is a miss and drops the entry; a later `set` simply
    overwrites. Concurrent writers to the same key race harmlessly (last
    write wins).
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float, float]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            value, inserted_at, ttl = entry
            if now - inserted_at >= ttl:
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock(), float(ttl))

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self, prefix: Optional[str] = None) -> int:
        with self._lock:
            if prefix is None:
                removed = len(self._entries)
                self._entries.clear()
                return removed
            keys = [k for k in self._entries if k.startswith(prefix)]
            for k in keys:
                del self._entries[k]
            return len(keys)

    def stats(self) -> Dict[str, Any]:
        now = self._clock()
        with self._lock:
            total = len(self._entries)
            expired = sum(1 for _, at, ttl in self._entries.values() if now - at >= ttl)
            return {
                "backend": "memory",
                "total_entries": total,
                "expired_entries": expired,
                "active_entries": total - expired,
                "hits": self._hits,
                "misses": self._misses,
            }


class RedisTTLCache(TTLCache):
    """
    Redis-backed cache for sharing entries between processes.

    Values are stored as JSON alongside their insertion timestamp; the age is
    checked on read as well, so semantics match InMemoryTTLCache. Redis errors
    are logged and behave as cache misses.
    """

    def __init__(self, client, clock: Callable[[], float] = time.time):
        self._client = client
        self._clock = clock

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self._client.get(key)
        except Exception as e:
            logger.warning(f"Redis read error, treating as miss: {e}", extra={"cache_key": key})
            return None
        if not raw:
            return None
        try:
            data = json.loads(raw)
            value, inserted_at, ttl = data['value'], data['timestamp'], data['ttl']
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding malformed Redis cache entry", extra={"cache_key": key})
            return None
        if self._clock() - inserted_at >= ttl:
            return None
        return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        payload = json.dumps({'value': value, 'timestamp': self._clock(), 'ttl': ttl})
        try:
            self._client.setex(key, max(1, int(ttl + 0.999)), payload)
        except Exception as e:
            logger.warning(f"Redis write error: {e}", extra={"cache_key": key})

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except Exception as e:
            logger.warning(f"Redis delete error: {e}", extra={"cache_key": key})

    def clear(self, prefix: Optional[str] = None) -> int:
        pattern = f"{prefix}*" if prefix else "*"
        try:
            keys = list(self._client.scan_iter(match=pattern))
            if keys:
                self._client.delete(*keys)
            return len(keys)
        except Exception as e:
            logger.warning(f"Error clearing Redis cache: {e}")
            return 0

    def stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {"backend": "redis"}
        try:
            stats["redis_keys"] = self._client.dbsize()
            info = self._client.info("memory")
            stats["redis_memory_mb"] = info.get("used_memory", 0) / (1024 * 1024)
        except Exception as e:
            stats["redis_error"] = str(e)
        return stats


def _connect_redis(redis_url: str):
    """Return a connected Redis client, or None if Redis is unreachable."""
    import redis
    try:
        client = redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=1,
            socket_timeout=1
        )
        client.ping()
        logger.info("Redis connected for distributed caching")
        return client
    except Exception as e:
        logger.warning(f"Redis not available, using in-memory cache: {e}")
        return None


_default_cache: Optional[TTLCache] = None
_default_cache_lock = threading.Lock()


def get_default_cache() -> TTLCache:
    """
    Process-wide cache shared by all requests.

    Uses Redis when REDIS_URL is set and reachable, otherwise an in-process
    InMemoryTTLCache.
    """
    global _default_cache
    if _default_cache is None:
        with _default_cache_lock:
            if _default_cache is None:
                redis_url = os.getenv("REDIS_URL")
                client = _connect_redis(redis_url) if redis_url else None
                _default_cache = RedisTTLCache(client) if client is not None else InMemoryTTLCache()
    return _default_cache


def set_default_cache(cache: Optional[TTLCache]) -> None:
    """Replace the process-wide cache (None re-selects on next use)."""
    global _default_cache
    with _default_cache_lock:
        _default_cache = cache


def _generate_cache_key(cache_type: str, *args, **kwargs) -> str:
    """Generate a cache key from cache type and arguments."""
    args_str = str(args) + str(sorted(kwargs.items()))
    key_hash = hashlib.md5(args_str.encode()).hexdigest()
    return f"{cache_type}:{key_hash}"


def cached(ttl_seconds: float = 3600, cache_type: Optional[str] = None):
    """
    Decorator to cache function results in the default cache.

    Results of None are not cached, so failed lookups are retried on the
    next call. Results must be JSON-serializable when Redis is in use.

    Args:
        ttl_seconds: Time to live for cached results in seconds
        cache_type: Key prefix (defaults to the function name)
    """
    def decorator(func):
        prefix = cache_type or func.__name__

        @wraps(func)
        def wrapper(*args, **kwargs):
            cache = get_default_cache()
            cache_key = _generate_cache_key(prefix, *args, **kwargs)
            hit = cache.get(cache_key)
            if hit is not None:
                logger.debug(f"Cache hit for {func.__name__}", extra={"cache_key": cache_key})
                return hit

            logger.debug(f"Cache miss for {func.__name__} - executing", extra={"cache_key": cache_key})
            result = func(*args, **kwargs)
            if result is not None:
                cache.set(cache_key, result, ttl_seconds)
            return result

        return wrapper
    return decorator


def clear_cache(cache_type: Optional[str] = None) -> int:
    """
    Clear cache entries from the default cache.

    Args:
        cache_type: If provided, only clear entries with this key prefix
    """
    removed = get_default_cache().clear(f"{cache_type}:" if cache_type else None)
    logger.info(f"Cleared {removed} {cache_type or 'cache'} entries")
    return removed


def get_cache_stats() -> Dict[str, Any]:
    """Get cache statistics from the default cache."""
    return get_default_cache().stats()
