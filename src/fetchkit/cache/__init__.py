"""Two-tier response caching for fetchkit.

This package provides :class:`ResponseCache`, which stores raw response
payloads keyed by request fingerprint in a bounded in-memory LRU
(:class:`MemoryTier`) backed by one JSON file per record on disk
(:class:`DiskTier`).

The cache is consumed by :class:`~fetchkit.client.orchestrator.ApiClient`
and configured by :class:`~fetchkit.models.CacheConfig`.
"""

from fetchkit.cache.cache import ResponseCache
from fetchkit.cache.disk import DiskTier, WorkQueue, sanitize_key
from fetchkit.cache.memory import MemoryTier

__all__ = ["ResponseCache", "MemoryTier", "DiskTier", "WorkQueue", "sanitize_key"]
