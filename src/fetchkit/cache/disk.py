"""Durable disk tier of the response cache.

Each cache instance owns one directory. Every record is a single JSON file
named after its key (sanitised to a legal file name), written atomically via
temp file + rename.

All file operations run on the instance's :class:`WorkQueue`. Reads may run
concurrently with each other; writes, removals and :meth:`DiskTier.clear` are
*barriers*: a barrier starts only after everything submitted before it has
finished, and everything submitted after it waits until it is done. Results
come back as :class:`concurrent.futures.Future` objects, so callers never
block on disk I/O unless they choose to.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Any, Callable, Optional

from fetchkit.config import atomic_write
from fetchkit.exceptions import CacheCorrupt, CacheError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")
RECORD_SUFFIX = ".json"


def sanitize_key(key: str) -> str:
    """Map *key* to a legal, non-hidden file name stem.

    Characters outside ``[A-Za-z0-9._-]`` become ``_``. Fingerprints are hex
    digests and pass through unchanged.
    """
    name = _UNSAFE_CHARS.sub("_", key)
    if not name or name.startswith("."):
        name = "_" + name
    return name


class WorkQueue:
    """Thread pool with reader/barrier ordering, scoped to one cache instance.

    Args:
        name: Thread name prefix.
        max_workers: Threads available for concurrent reads.
    """

    def __init__(self, name: str = "fetchkit-disk", max_workers: int = 4) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers), thread_name_prefix=name
        )
        self._lock = threading.Lock()
        self._barrier: Optional[Future] = None
        self._since_barrier: set[Future] = set()

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        """Run *fn* concurrently with other plain operations, after the last barrier."""
        with self._lock:
            deps = [self._barrier] if self._barrier is not None else []
            future = self._executor.submit(self._run_after, deps, fn, args)
            self._since_barrier.add(future)
        future.add_done_callback(self._forget)
        return future

    def submit_barrier(self, fn: Callable[..., Any], *args: Any) -> Future:
        """Run *fn* alone: after all earlier work and before any later work."""
        with self._lock:
            deps = list(self._since_barrier)
            if self._barrier is not None:
                deps.append(self._barrier)
            future = self._executor.submit(self._run_after, deps, fn, args)
            self._barrier = future
            self._since_barrier = set()
        return future

    def drain(self) -> None:
        """Block until every operation submitted so far has finished."""
        with self._lock:
            pending = list(self._since_barrier)
            if self._barrier is not None:
                pending.append(self._barrier)
        wait(pending)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    @staticmethod
    def _run_after(deps: list[Future], fn: Callable[..., Any], args: tuple[Any, ...]) -> Any:
        # The pool hands out work in submission order, so every dependency is
        # already running or finished by the time this waits on it.
        if deps:
            wait(deps)
        return fn(*args)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._since_barrier.discard(future)


class DiskTier:
    """One-file-per-record JSON store under a dedicated directory.

    Args:
        directory: Directory holding this instance's records. Created on the
            first write and removed entirely by :meth:`clear`.
        max_workers: Threads available for concurrent reads.

    Example::

        tier = DiskTier("/tmp/fetchkit/responses")
        tier.write("abc", {"id": 1})
        tier.read("abc").result()  # {"id": 1}
    """

    def __init__(self, directory: str | Path, max_workers: int = 4) -> None:
        self._directory = Path(directory)
        self._queue = WorkQueue(max_workers=max_workers)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, key: str) -> Path:
        """Return the record file path for *key*."""
        return self._directory / f"{sanitize_key(key)}{RECORD_SUFFIX}"

    # ------------------------------------------------------------------ #
    # Queued operations
    # ------------------------------------------------------------------ #

    def write(self, key: str, payload: dict[str, Any]) -> Future:
        """Enqueue a barrier that stores *payload* under *key*.

        The payload is serialised immediately so later mutation by the
        caller cannot leak into the record. A payload that is not
        JSON-serialisable yields a future failed with :class:`CacheError`.
        """
        try:
            text = json.dumps(payload)
        except (TypeError, ValueError) as exc:
            failed: Future = Future()
            failed.set_exception(CacheError(f"Payload for {key} is not serialisable: {exc}"))
            return failed
        return self._queue.submit_barrier(self._write, key, text)

    def read(
        self,
        key: str,
        callback: Optional[Callable[[Future], None]] = None,
    ) -> Future:
        """Enqueue a read of *key*.

        The future resolves to the payload dict, or ``None`` when no record
        exists. An unreadable or undecodable record fails the future with
        :class:`CacheCorrupt`; other I/O errors with :class:`CacheError`.

        Args:
            key: Record key.
            callback: Optional done-callback receiving the finished future.
        """
        future = self._queue.submit(self._read, key)
        if callback is not None:
            future.add_done_callback(callback)
        return future

    def remove(self, key: str) -> Future:
        """Enqueue a barrier deleting one record; a missing record is fine."""
        return self._queue.submit_barrier(self._remove, key)

    def clear(self) -> Future:
        """Enqueue a barrier deleting the whole cache directory."""
        return self._queue.submit_barrier(self._clear)

    # ------------------------------------------------------------------ #
    # Synchronous helpers
    # ------------------------------------------------------------------ #

    def keys(self) -> list[str]:
        """Return the sanitised keys of all records currently on disk."""
        if not self._directory.is_dir():
            return []
        return sorted(
            p.name[: -len(RECORD_SUFFIX)]
            for p in self._directory.glob(f"*{RECORD_SUFFIX}")
            if p.is_file() and not p.name.startswith(".")
        )

    def size(self) -> int:
        return len(self.keys())

    def drain(self) -> None:
        """Block until all queued operations have finished."""
        self._queue.drain()

    def close(self, wait: bool = True) -> None:
        self._queue.shutdown(wait=wait)

    # ------------------------------------------------------------------ #
    # Worker-thread bodies
    # ------------------------------------------------------------------ #

    def _write(self, key: str, text: str) -> None:
        path = self.path_for(key)
        try:
            atomic_write(path, text)
        except OSError as exc:
            logger.warning("Could not store cache record %s: %s", path, exc)
            raise CacheError(f"Could not store cache record {path}: {exc}") from exc

    def _read(self, key: str) -> Optional[dict[str, Any]]:
        path = self.path_for(key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as exc:
            raise CacheCorrupt(f"Cache record {path} is not valid UTF-8: {exc}") from exc
        except OSError as exc:
            raise CacheError(f"Could not read cache record {path}: {exc}") from exc

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning("Corrupt cache record %s: %s", path, exc)
            raise CacheCorrupt(f"Cache record {path} could not be decoded: {exc}") from exc
        if not isinstance(payload, dict):
            raise CacheCorrupt(f"Cache record {path} does not hold a JSON object")
        return payload

    def _remove(self, key: str) -> None:
        path = self.path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove cache record %s: %s", path, exc)
            raise CacheError(f"Could not remove cache record {path}: {exc}") from exc

    def _clear(self) -> None:
        try:
            shutil.rmtree(self._directory)
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.warning("Could not clear cache directory %s: %s", self._directory, exc)
            raise CacheError(f"Could not clear cache directory {self._directory}: {exc}") from exc
