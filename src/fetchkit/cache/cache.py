"""Two-tier response cache keyed by request fingerprint.

Combines a :class:`~fetchkit.cache.memory.MemoryTier` and a
:class:`~fetchkit.cache.disk.DiskTier` behind one store/fetch/evict API.
Only raw payload dicts are cached, never mapped models, so a change to the
model classes never invalidates the storage format of existing records. A
record that no longer maps is evicted by the orchestrator on first use.

Tier failures (unreadable record, disk I/O error) fail the fetch future with
a :class:`~fetchkit.exceptions.CacheError`; a clean miss resolves to ``None``.

See Also:
    :class:`~fetchkit.models.CacheConfig` -- capacity, directory name,
    disk-hit promotion and the ``enabled`` switch.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Optional

from fetchkit.cache.disk import DiskTier
from fetchkit.cache.memory import MemoryTier
from fetchkit.models import CacheConfig

logger = logging.getLogger(__name__)


def _completed(value: Any) -> Future:
    future: Future = Future()
    future.set_result(value)
    return future


class ResponseCache:
    """Memory + disk cache for raw response payloads.

    Args:
        cache_dir: Root cache directory. Records live in
            ``cache_dir / config.directory_name``.
        config: Cache configuration.

    Example::

        cache = ResponseCache("/tmp/api-cache", CacheConfig())
        cache.store(request.fingerprint, {"id": 1})
        cache.fetch(request.fingerprint).result()  # {"id": 1}
    """

    def __init__(self, cache_dir: str | Path, config: Optional[CacheConfig] = None) -> None:
        self._config = config or CacheConfig()
        self._directory = Path(cache_dir) / self._config.directory_name
        self._memory = MemoryTier(self._config.memory_capacity)
        self._disk: Optional[DiskTier] = None
        if self._config.enabled:
            self._disk = DiskTier(self._directory, max_workers=self._config.disk_workers)

    @property
    def enabled(self) -> bool:
        return self._disk is not None

    @property
    def directory(self) -> Path:
        return self._directory

    def store(self, fingerprint: str, payload: dict[str, Any]) -> Optional[Future]:
        """Cache *payload*: memory synchronously, disk in the background.

        Returns:
            The disk write future, or ``None`` when caching is disabled.
            Callers normally ignore it.
        """
        if self._disk is None:
            return None
        self._memory.set(fingerprint, payload)
        return self._disk.write(fingerprint, payload)

    def fetch(
        self,
        fingerprint: str,
        callback: Optional[Callable[[Future], None]] = None,
    ) -> Future:
        """Look up the payload for *fingerprint*.

        A memory hit returns an already-completed future and runs *callback*
        on the calling thread. Otherwise the disk tier is queried and
        *callback* runs on a disk worker thread. Disk hits are copied back
        into memory only when ``promote_disk_hits`` is enabled.

        Returns:
            A future resolving to the payload dict or ``None`` on a miss.
        """
        if self._disk is None:
            future = _completed(None)
        else:
            cached = self._memory.get(fingerprint)
            if cached is not None:
                future = _completed(cached)
            else:
                # Taken before the read so a concurrent store, evict or clear wins.
                generation = self._memory.generation(fingerprint)
                future = self._disk.read(fingerprint)
                if self._config.promote_disk_hits:
                    future.add_done_callback(
                        lambda f: self._promote(fingerprint, generation, f)
                    )
        if callback is not None:
            future.add_done_callback(callback)
        return future

    def evict(self, fingerprint: str) -> Optional[Future]:
        """Remove *fingerprint* from both tiers. Evicting twice is harmless."""
        self._memory.remove(fingerprint)
        if self._disk is None:
            return None
        return self._disk.remove(fingerprint)

    def clear(self) -> Optional[Future]:
        """Remove every record from both tiers."""
        self._memory.clear()
        if self._disk is None:
            return None
        return self._disk.clear()

    def drain(self) -> None:
        """Block until pending disk operations have finished."""
        if self._disk is not None:
            self._disk.drain()

    def stats(self) -> dict[str, Any]:
        """Return cache statistics.

        Returns:
            ``{"enabled": False}`` when disabled, otherwise ``enabled``,
            ``memory_entries``, ``memory_capacity``, ``disk_entries`` and
            ``directory``.
        """
        if self._disk is None:
            return {"enabled": False}
        self._disk.drain()
        return {
            "enabled": True,
            "memory_entries": len(self._memory),
            "memory_capacity": self._memory.capacity,
            "disk_entries": self._disk.size(),
            "directory": str(self._directory),
        }

    def close(self) -> None:
        """Finish pending disk work and stop the disk queue. Safe to call twice."""
        if self._disk is not None:
            self._disk.drain()
            self._disk.close()
            self._disk = None

    def __enter__(self) -> ResponseCache:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _promote(self, fingerprint: str, generation: tuple[int, int], future: Future) -> None:
        if future.cancelled() or future.exception() is not None:
            return
        payload = future.result()
        if payload is None:
            return
        if self._memory.set_if_unchanged(fingerprint, payload, generation):
            logger.debug("Promoted disk hit %s into memory", fingerprint)
        else:
            logger.debug("Skipped stale disk hit %s", fingerprint)
