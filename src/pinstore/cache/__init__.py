"""Local caching of pin versions.

This module mirrors remote pin versions on local disk with atomic
materialization and least-recently-used eviction.

Key components:
- CacheManager: Main cache interface
- CacheConfig: Configuration management
- CacheIndex: Recency and statistics tracking
"""

from pinstore.cache.config import CacheConfig
from pinstore.cache.index import CacheIndex
from pinstore.cache.manager import CacheHit, CacheManager, CacheMiss

__all__ = [
    "CacheManager",
    "CacheConfig",
    "CacheIndex",
    "CacheHit",
    "CacheMiss",
]
