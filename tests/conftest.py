"""Shared test fixtures for fetchkit.

Provides isolated config environments, output and bus resets, and the
test doubles the orchestrator tests are built on: a scriptable transport,
a cache whose lookups can be held back, a synchronous executor, a
recording retry scheduler and a thread-safe result collector.
"""

from __future__ import annotations

import threading
from concurrent.futures import Executor, Future
from pathlib import Path
from typing import Any, Callable, Optional

import pytest
from pydantic import BaseModel

from fetchkit.cache import ResponseCache
from fetchkit.client.transport import TaskHandle
from fetchkit.events import reset_bus
from fetchkit.exceptions import TransportCancelled
from fetchkit.models import CacheConfig
from fetchkit.output import OutputFormat, OutputManager, reset_output, set_output


class User(BaseModel):
    id: int
    name: str = ""


# ---------------------------------------------------------------------------
# Auto-reset global state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_globals_between_tests() -> None:
    """Reset the global OutputManager and NotificationBus after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time, which go stale once Typer's CliRunner restores the
    streams. The bus would otherwise keep handlers from earlier tests.
    """
    yield
    reset_output()
    reset_bus()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points the XDG directories at subdirectories of tmp_path, clears the
    FETCHKIT_* environment variables and changes into tmp_path so that a
    stray ``fetchkit.json`` cannot leak in.
    """
    monkeypatch.setattr("fetchkit.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in ["FETCHKIT_BASE_URL", "FETCHKIT_CACHE_DIR"]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True, no_color=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()


# ---------------------------------------------------------------------------
# Orchestrator test doubles
# ---------------------------------------------------------------------------


class ImmediateExecutor(Executor):
    """Runs submitted work on the calling thread."""

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


class FakeTransport:
    """Scriptable transport.

    Each dispatch consumes the next outcome; the last outcome repeats. An
    outcome that is an exception is reported through ``on_failure``,
    anything else through ``on_success``. With ``auto=False`` calls stay
    pending until :meth:`complete_next` is called.
    """

    def __init__(self, outcomes: Optional[list[Any]] = None, auto: bool = True) -> None:
        self.outcomes = list(outcomes if outcomes is not None else [{}])
        self.auto = auto
        self.return_handle = True
        self.calls: list[tuple[str, str, dict[str, str]]] = []
        self.handles: list[TaskHandle] = []
        self.pending: list[tuple[TaskHandle, Callable, Callable]] = []
        self.closed = False

    def dispatch(self, method, path, parameters, on_success, on_failure):  # noqa: ANN001, ANN201
        self.calls.append((method.value, path, dict(parameters)))
        if not self.return_handle:
            return None
        handle = TaskHandle()
        self.handles.append(handle)
        call = (handle, on_success, on_failure)
        if self.auto:
            self._resolve(call)
        else:
            self.pending.append(call)
        return handle

    def complete_next(self) -> None:
        self._resolve(self.pending.pop(0))

    def close(self) -> None:
        self.closed = True

    def _resolve(self, call: tuple[TaskHandle, Callable, Callable]) -> None:
        handle, on_success, on_failure = call
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if handle.cancelled:
            on_failure(handle, TransportCancelled("cancelled"))
        elif isinstance(outcome, Exception):
            on_failure(handle, outcome)
        else:
            on_success(handle, outcome)


class HeldCache:
    """In-memory stand-in for ResponseCache whose lookups can be held back.

    With ``hold=True`` every fetch returns a pending future; the test
    resolves it with :meth:`release`.
    """

    def __init__(self, records: Optional[dict[str, dict]] = None, hold: bool = False) -> None:
        self.records = dict(records or {})
        self.hold = hold
        self.fetches: list[str] = []
        self.stores: list[tuple[str, dict]] = []
        self.evictions: list[str] = []
        self.held: list[tuple[str, Future]] = []
        self.closed = False

    def fetch(self, fingerprint: str, callback: Optional[Callable[[Future], None]] = None) -> Future:
        self.fetches.append(fingerprint)
        future: Future = Future()
        if callback is not None:
            future.add_done_callback(callback)
        if self.hold:
            self.held.append((fingerprint, future))
        else:
            future.set_result(self.records.get(fingerprint))
        return future

    def release(self) -> None:
        fingerprint, future = self.held.pop(0)
        future.set_result(self.records.get(fingerprint))

    def store(self, fingerprint: str, payload: dict) -> None:
        self.stores.append((fingerprint, payload))
        self.records[fingerprint] = payload

    def evict(self, fingerprint: str) -> None:
        self.evictions.append(fingerprint)
        self.records.pop(fingerprint, None)

    def close(self) -> None:
        self.closed = True


class _PendingRetry:
    def __init__(self, fn: Callable[[], None]) -> None:
        self.fn = fn
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class RecordingScheduler:
    """Retry scheduler that records delays.

    With ``run=True`` the retry runs immediately on the calling thread;
    otherwise it waits for :meth:`fire`.
    """

    def __init__(self, run: bool = True) -> None:
        self.run = run
        self.delays: list[float] = []
        self.pending: list[_PendingRetry] = []

    def __call__(self, delay: float, fn: Callable[[], None]) -> _PendingRetry:
        self.delays.append(delay)
        retry = _PendingRetry(fn)
        if self.run:
            fn()
        else:
            self.pending.append(retry)
        return retry

    def fire(self) -> None:
        retry = self.pending.pop(0)
        if not retry.cancelled:
            retry.fn()


class Collector:
    """Thread-safe completion callback that records every Result."""

    def __init__(self) -> None:
        self.results: list[Any] = []
        self._cond = threading.Condition()

    def __call__(self, result: Any) -> None:
        with self._cond:
            self.results.append(result)
            self._cond.notify_all()

    def wait_for(self, count: int, timeout: float = 5.0) -> list[Any]:
        with self._cond:
            self._cond.wait_for(lambda: len(self.results) >= count, timeout)
            return list(self.results)


@pytest.fixture
def immediate_executor() -> ImmediateExecutor:
    return ImmediateExecutor()


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def collector() -> Collector:
    return Collector()


@pytest.fixture
def response_cache(tmp_path: Path) -> ResponseCache:
    """A real two-tier cache rooted in tmp_path."""
    cache = ResponseCache(tmp_path / "cache", CacheConfig())
    yield cache
    cache.close()
