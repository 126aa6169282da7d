"""Metadata caching layer.

This module contains:
- CacheManager: in-process TTL cache with single-flight fetches
- CacheKeyBuilder for consistent key generation
- Cache metrics tracking

The cached metadata lookups live in ``zabbix_datasource.cache.metadata``.
"""

from zabbix_datasource.cache.manager import (
    CacheEntry,
    CacheKeyBuilder,
    CacheManager,
    CacheMetrics,
)

__all__ = [
    "CacheEntry",
    "CacheKeyBuilder",
    "CacheManager",
    "CacheMetrics",
]
