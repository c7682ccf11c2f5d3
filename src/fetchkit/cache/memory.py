"""In-process memory tier of the response cache.

A bounded least-recently-used map from request fingerprint to raw payload.
It is an accelerator only: entries can disappear at any time through
eviction, and the disk tier remains the durable copy.
"""

from __future__ import annotations

import copy
import threading
from collections import OrderedDict
from typing import Any, Optional


class MemoryTier:
    """Thread-safe LRU store of payload dicts.

    Payloads are deep-copied on the way in and on the way out so that a
    caller mutating a delivered payload cannot change what the next caller
    reads.

    Args:
        capacity: Maximum number of entries. The least recently used entry
            is dropped when a new key would exceed it. ``0`` disables the
            tier: ``set`` stores nothing and every ``get`` misses.

    Example::

        tier = MemoryTier(capacity=2)
        tier.set("a", {"id": 1})
        tier.get("a")  # {"id": 1}
    """

    def __init__(self, capacity: int = 256) -> None:
        self._capacity = max(0, capacity)
        self._entries: OrderedDict[str, dict[str, Any]] = OrderedDict()
        self._lock = threading.RLock()
        # Bumped by every write to a key; clear() bumps the epoch.
        self._generations: dict[str, int] = {}
        self._epoch = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def set(self, key: str, payload: dict[str, Any]) -> None:
        stored = copy.deepcopy(payload)
        with self._lock:
            self._bump(key)
            self._insert(key, stored)

    def generation(self, key: str) -> tuple[int, int]:
        """Return an opaque token that changes whenever *key* is written or removed."""
        with self._lock:
            return self._epoch, self._generations.get(key, 0)

    def set_if_unchanged(
        self, key: str, payload: dict[str, Any], generation: tuple[int, int]
    ) -> bool:
        """Store *payload* only if *key* has not changed since *generation* was taken.

        Returns:
            ``True`` when the payload was stored.
        """
        stored = copy.deepcopy(payload)
        with self._lock:
            if (self._epoch, self._generations.get(key, 0)) != generation:
                return False
            self._bump(key)
            self._insert(key, stored)
            return True

    def get(self, key: str) -> Optional[dict[str, Any]]:
        with self._lock:
            payload = self._entries.get(key)
            if payload is None:
                return None
            self._entries.move_to_end(key)
        return copy.deepcopy(payload)

    def remove(self, key: str) -> None:
        """Drop *key*; a missing key is not an error."""
        with self._lock:
            self._bump(key)
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._epoch += 1
            self._generations.clear()
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __repr__(self) -> str:
        return f"MemoryTier(entries={len(self)}, capacity={self._capacity})"

    def _bump(self, key: str) -> None:
        self._generations[key] = self._generations.get(key, 0) + 1

    def _insert(self, key: str, stored: dict[str, Any]) -> None:
        if self._capacity == 0:
            return
        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = stored
        while len(self._entries) > self._capacity:
            self._entries.popitem(last=False)
