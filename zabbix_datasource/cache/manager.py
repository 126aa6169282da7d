"""In-process TTL cache with single-flight fetches.

This module provides the caching layer in front of the Zabbix API so
that metadata (groups, hosts, applications, items) is not re-queried
for every panel refresh.

Features:
- TTL per cache instance, configured as a duration string (``1h``)
- get_or_fetch pattern for transparent caching
- Single-flight: concurrent misses for one key share one upstream fetch
- Cache metrics tracking (hits, misses, coalesced waits, errors)
"""

import asyncio
import json
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar, cast

import structlog

from zabbix_datasource.config import parse_interval

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_TTL = "1h"


def monotonic_ms() -> float:
    """Monotonic clock in milliseconds."""
    return time.monotonic() * 1000


@dataclass
class CacheEntry:
    """A cached value.

    Attributes:
        key: Cache key.
        value: Cached value.
        expires_at: Clock reading (ms) after which the entry is stale.
    """

    key: str
    value: Any
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        """Whether the entry may still be served."""
        return now < self.expires_at


@dataclass
class CacheMetrics:
    """Metrics for cache performance.

    Attributes:
        hits: Lookups served from a fresh entry.
        misses: Lookups that started an upstream fetch.
        coalesced: Lookups that joined a fetch already in flight.
        errors: Upstream fetches that failed.
    """

    hits: int = 0
    misses: int = 0
    coalesced: int = 0
    errors: int = 0

    @property
    def total_requests(self) -> int:
        """Total number of cache requests."""
        return self.hits + self.misses + self.coalesced

    @property
    def hit_rate(self) -> float:
        """Cache hit rate as a percentage."""
        if self.total_requests == 0:
            return 0.0
        return (self.hits / self.total_requests) * 100

    def to_dict(self) -> dict[str, Any]:
        """Convert metrics to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "coalesced": self.coalesced,
            "errors": self.errors,
            "total_requests": self.total_requests,
            "hit_rate": round(self.hit_rate, 2),
        }

    def reset(self) -> None:
        """Reset all metrics."""
        self.hits = 0
        self.misses = 0
        self.coalesced = 0
        self.errors = 0


class CacheKeyBuilder:
    """Builder for consistent cache key generation."""

    @staticmethod
    def api_call(method: str, params: Any) -> str:
        """Build cache key for an API call.

        The key is the method name plus its exact parameter set, so
        ``host.get`` scoped to groups ``[1, 2]`` and to ``[3]`` are
        distinct entries.

        Args:
            method: API method name.
            params: Method parameters.

        Returns:
            Cache key string.
        """
        return f"{method}:{json.dumps(params, sort_keys=True, default=str)}"


class CacheManager:
    """TTL cache keyed by logical query.

    Example:
        cache = CacheManager(ttl="1h")

        hosts = await cache.get_or_fetch(
            key=CacheKeyBuilder.api_call("host.get", params),
            fetch_fn=lambda: session.call("host.get", params),
        )

        print(cache.metrics.hit_rate)
    """

    def __init__(
        self,
        ttl: str | int = DEFAULT_TTL,
        clock: Callable[[], float] = monotonic_ms,
        enabled: bool = True,
    ) -> None:
        """Initialize cache manager.

        Args:
            ttl: Time-to-live as a duration string or milliseconds.
            clock: Millisecond clock, injectable for tests.
            enabled: Whether caching is enabled.
        """
        self.ttl_ms = parse_interval(ttl) if isinstance(ttl, str) else int(ttl)
        self.enabled = enabled
        self.metrics = CacheMetrics()
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._pending: dict[str, asyncio.Future[Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Any | None:
        """Get a fresh value from cache.

        Args:
            key: Cache key.

        Returns:
            Cached value or None if missing or expired.
        """
        if not self.enabled:
            return None

        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_fresh(self._clock()):
            del self._entries[key]
            logger.debug("cache_expired", key=key)
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl_ms: int | None = None) -> None:
        """Store a value.

        Args:
            key: Cache key.
            value: Value to cache.
            ttl_ms: TTL override in milliseconds.
        """
        if not self.enabled:
            return
        ttl = self.ttl_ms if ttl_ms is None else ttl_ms
        self._entries[key] = CacheEntry(key=key, value=value, expires_at=self._clock() + ttl)
        logger.debug("cache_set", key=key, ttl_ms=ttl)

    def delete(self, key: str) -> bool:
        """Delete a value from cache.

        Returns:
            True if key was deleted, False otherwise.
        """
        return self._entries.pop(key, None) is not None

    def invalidate(self, prefix: str = "") -> int:
        """Delete all entries whose key starts with ``prefix``.

        Args:
            prefix: Key prefix, e.g. ``"host.get:"``. Empty clears everything.

        Returns:
            Number of entries removed.
        """
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        logger.info("cache_invalidated", prefix=prefix, deleted_count=len(keys))
        return len(keys)

    async def get_or_fetch(self, key: str, fetch_fn: Callable[[], Awaitable[T]]) -> T:
        """Get value from cache or fetch and cache it.

        Concurrent callers missing on the same key await the same
        in-flight fetch instead of issuing their own. A failed fetch is
        not cached; every waiter receives the exception.

        Args:
            key: Cache key.
            fetch_fn: Async function fetching the value on a miss.

        Returns:
            Cached or fetched value.
        """
        if not self.enabled:
            return await fetch_fn()

        entry = self._entries.get(key)
        if entry is not None and entry.is_fresh(self._clock()):
            self.metrics.hits += 1
            logger.debug("cache_hit", key=key)
            return cast(T, entry.value)

        pending = self._pending.get(key)
        if pending is not None:
            self.metrics.coalesced += 1
            logger.debug("cache_coalesced", key=key)
            return cast(T, await asyncio.shield(pending))

        self.metrics.misses += 1
        logger.debug("cache_miss", key=key)

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[key] = future
        start = self._clock()
        try:
            value = await fetch_fn()
        except Exception as e:
            self.metrics.errors += 1
            logger.warning("cache_fetch_error", key=key, error=str(e))
            future.set_exception(e)
            # Mark retrieved so a lone failing caller does not leave a warning behind.
            future.exception()
            raise
        except asyncio.CancelledError:
            future.cancel()
            raise
        finally:
            self._pending.pop(key, None)

        self.set(key, value)
        future.set_result(value)
        logger.debug("cache_fetched", key=key, fetch_time_ms=round(self._clock() - start, 2))
        return value

    def get_metrics(self) -> dict[str, Any]:
        """Get cache metrics."""
        return self.metrics.to_dict()

    def reset_metrics(self) -> None:
        """Reset cache metrics."""
        self.metrics.reset()
