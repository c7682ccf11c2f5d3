"""Request orchestrator: fetch policies, retry, fallback and delivery.

:class:`ApiClient` is the entry point. For each submitted
:class:`~fetchkit.models.Request` it decides, from the request's
:class:`~fetchkit.models.CacheFetchPolicy`, whether to consult the
:class:`~fetchkit.cache.ResponseCache`, the :class:`~fetchkit.client.transport.Transport`,
or both, and hands the raw payload to a
:class:`~fetchkit.client.mapper.ModelMapper`.

Policies:

- **cache-only** -- cache lookup only. A miss fails with
  :class:`~fetchkit.exceptions.CacheMiss`. ``submit`` returns ``None``
  because there is no network leg to cancel.
- **network-only** -- network only; the cache is never read.
- **cache-then-network** -- cache lookup and network dispatch start
  together. A cache hit that lands before the network leg completes is
  delivered as an intermediate (``is_final_response=False``) response. Once
  the network leg completes, whatever the cache leg produces is dropped.
- **try-network-then-cache** -- network first. When it fails and no retry
  budget is left, the same logical request is re-run as cache-only.

Failures go through one pipeline: cancellation stops silently;
:class:`~fetchkit.exceptions.ServiceUnavailable` and
:class:`~fetchkit.exceptions.InvalidCredential` are published on the
:class:`~fetchkit.events.NotificationBus`; a retry is scheduled while the
:class:`~fetchkit.models.RetryPolicy` allows one (the delay doubles each
time); otherwise the cache fallback runs or the failure is delivered.

Every delivery runs on an :class:`concurrent.futures.Executor`: the one
passed to :meth:`ApiClient.submit`, or the client's own single-thread
delivery executor. Per logical submission the caller sees exactly one final
result, preceded at most by one intermediate cache hit. A cancelled
submission delivers nothing.

Example::

    with ApiClient(HttpxTransport(config), cache=ResponseCache(get_cache_dir())) as client:
        request = Request.get(
            "/me", model=User, model_key_path="data",
            cache_fetch_policy=CacheFetchPolicy.CACHE_THEN_NETWORK,
            should_cache_response=True,
        )
        client.submit(request, lambda result: print(result.unwrap().model))
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Optional, Protocol

from fetchkit.cache import ResponseCache
from fetchkit.client.mapper import ModelMapper, PydanticMapper
from fetchkit.client.response import Response, Result
from fetchkit.client.transport import TaskHandle, Transport
from fetchkit.events import EventKind, NotificationBus, get_bus
from fetchkit.exceptions import (
    CacheMiss,
    FetchkitError,
    InvalidCredential,
    RequestMalformed,
    ResponseShapeInvalid,
    ServiceUnavailable,
    TransportCancelled,
    TransportFailure,
)
from fetchkit.models import CacheFetchPolicy, EmptyResult, Request
from fetchkit.output import get_output

logger = logging.getLogger(__name__)

Completion = Callable[[Result], None]


class Cancellable(Protocol):
    def cancel(self) -> None:
        ...


Scheduler = Callable[[float, Callable[[], None]], Cancellable]


def timer_scheduler(delay: float, fn: Callable[[], None]) -> Cancellable:
    """Run *fn* after *delay* seconds on a daemon :class:`threading.Timer`."""
    timer = threading.Timer(delay, fn)
    timer.daemon = True
    timer.start()
    return timer


class RequestToken:
    """Cancellation handle for one logical submission.

    The token follows the submission across retries and the cache
    fallback: it always points at the current transport task and the
    pending retry timer, if any.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._task: Optional[TaskHandle] = None
        self._timer: Optional[Cancellable] = None

    @property
    def cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    def cancel(self) -> None:
        """Cancel the transport task and any pending retry. Idempotent.

        Nothing is delivered for the submission afterwards.
        """
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            task, timer = self._task, self._timer
            self._task = self._timer = None
        if task is not None:
            task.cancel()
        if timer is not None:
            timer.cancel()

    def _attach_task(self, task: TaskHandle) -> None:
        with self._lock:
            if not self._cancelled:
                self._task = task
                return
        task.cancel()

    def _attach_timer(self, timer: Cancellable) -> None:
        with self._lock:
            if not self._cancelled:
                self._timer = timer
                return
        timer.cancel()


class _Context:
    """State shared by every attempt of one logical submission."""

    def __init__(self, completion: Completion, executor: Executor) -> None:
        self.completion = completion
        self.executor = executor
        self.token = RequestToken()
        self.lock = threading.Lock()
        self.intermediate_delivered = False


class _Submission:
    """One attempt. ``network_completed`` is guarded by the context lock."""

    def __init__(self, context: _Context) -> None:
        self.context = context
        self.network_completed = False


class ApiClient:
    """Orchestrates cache and network access for typed API requests.

    Args:
        transport: Network collaborator. Closed by :meth:`close`.
        cache: Response cache, or ``None`` to run without one (every lookup
            misses and nothing is stored). Closed by :meth:`close`.
        mapper: Payload mapper. Defaults to :class:`PydanticMapper`.
        bus: Notification bus. Defaults to the process-wide bus.
        executor: Default delivery executor. When omitted the client creates
            and owns a single-thread executor.
        scheduler: Callable ``(delay, fn) -> cancellable`` used for retry
            delays. Defaults to :func:`timer_scheduler`.
    """

    def __init__(
        self,
        transport: Transport,
        cache: Optional[ResponseCache] = None,
        mapper: Optional[ModelMapper] = None,
        bus: Optional[NotificationBus] = None,
        executor: Optional[Executor] = None,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self._transport = transport
        self._cache = cache
        self._mapper = mapper or PydanticMapper()
        self._bus = bus
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="fetchkit-delivery"
        )
        self._scheduler = scheduler or timer_scheduler
        self._closed = False

    @property
    def cache(self) -> Optional[ResponseCache]:
        return self._cache

    @property
    def bus(self) -> NotificationBus:
        return self._bus if self._bus is not None else get_bus()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def submit(
        self,
        request: Request,
        completion: Completion,
        executor: Optional[Executor] = None,
    ) -> Optional[RequestToken]:
        """Start *request* and deliver its results to *completion*.

        Args:
            request: The request descriptor.
            completion: Called with a :class:`Result` for every delivery.
            executor: Executor the completion runs on. Defaults to the
                client's delivery executor.

        Returns:
            A :class:`RequestToken`, or ``None`` for cache-only requests.
        """
        if self._closed:
            raise RequestMalformed("ApiClient is closed")
        context = _Context(completion, executor or self._executor)
        self._start(context, request)
        if request.cache_fetch_policy is CacheFetchPolicy.CACHE_ONLY:
            return None
        return context.token

    request = submit

    def fetch_sync(
        self,
        request: Request,
        timeout: Optional[float] = None,
        on_result: Optional[Completion] = None,
    ) -> Result:
        """Submit *request* and block until its final result arrives.

        Args:
            request: The request descriptor.
            timeout: Seconds to wait; ``None`` waits indefinitely.
            on_result: Optional callback receiving every result, including
                an intermediate cache hit, before the final one is returned.

        Raises:
            TransportFailure: If no final result arrived within *timeout*.
                The submission is cancelled first.
        """
        done = threading.Event()
        final: list[Result] = []

        def completion(result: Result) -> None:
            if on_result is not None:
                on_result(result)
            if result.is_final:
                final.append(result)
                done.set()

        token = self.submit(request, completion)
        if not done.wait(timeout):
            if token is not None:
                token.cancel()
            raise TransportFailure(
                f"No final response for {request.method.value} {request.path} within {timeout}s"
            )
        return final[0]

    def close(self) -> None:
        """Close the transport and cache, then drain pending deliveries."""
        if self._closed:
            return
        self._closed = True
        self._transport.close()
        if self._cache is not None:
            self._cache.close()
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def __enter__(self) -> ApiClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #

    def _start(self, context: _Context, request: Request) -> None:
        if context.token.cancelled:
            return
        policy = request.cache_fetch_policy
        if policy is CacheFetchPolicy.CACHE_ONLY:
            self._fetch_cached(request, lambda f: self._on_cache_only(context, request, f))
            return

        submission = _Submission(context)
        if policy is CacheFetchPolicy.CACHE_THEN_NETWORK:
            self._fetch_cached(
                request, lambda f: self._on_cache_ahead(submission, request, f)
            )
        self._dispatch(submission, request)

    def _dispatch(self, submission: _Submission, request: Request) -> None:
        context = submission.context

        def on_success(handle: TaskHandle, body: Any) -> None:
            self._network_finished(submission)
            self._handle_success(context, request, body)

        def on_failure(handle: Optional[TaskHandle], error: Exception) -> None:
            self._network_finished(submission)
            self._handle_failure(context, request, error)

        handle = self._transport.dispatch(
            request.method, request.path, dict(request.parameters), on_success, on_failure,
        )
        if handle is None:
            self._network_finished(submission)
            self._handle_failure(
                context, request, RequestMalformed("Transport did not return a task handle"),
            )
            return
        # A transport may finish before dispatch returns; a later attempt
        # then owns the token.
        with context.lock:
            finished = submission.network_completed
        if not finished:
            context.token._attach_task(handle)

    def _network_finished(self, submission: _Submission) -> None:
        with submission.context.lock:
            submission.network_completed = True

    # ------------------------------------------------------------------ #
    # Cache leg
    # ------------------------------------------------------------------ #

    def _fetch_cached(self, request: Request, callback: Callable[[Future], None]) -> None:
        if self._cache is None:
            future: Future = Future()
            future.set_result(None)
            callback(future)
            return
        self._cache.fetch(request.fingerprint, callback)

    def _map_cached(self, request: Request, future: Future) -> Result:
        """Turn a finished cache lookup into a result for *request*.

        A record that no longer maps is evicted so it is never served again.
        """
        error = future.exception()
        if error is not None:
            if not isinstance(error, FetchkitError):
                error = FetchkitError(f"Cache lookup failed: {error}")
            return Result.failure(error)

        payload = future.result()
        if payload is None:
            return Result.failure(CacheMiss())
        try:
            model = self._map(request, payload)
        except ResponseShapeInvalid as exc:
            get_output().debug(f"Evicting unmappable cache record for {request.path}")
            if self._cache is not None:
                self._cache.evict(request.fingerprint)
            return Result.failure(exc)
        return Result.success(Response(model=model, json=payload, is_cached_response=True))

    def _on_cache_only(self, context: _Context, request: Request, future: Future) -> None:
        if context.token.cancelled:
            return
        result = self._map_cached(request, future)
        if result.error is not None:
            self._publish(result.error)
        else:
            get_output().debug(f"Cache hit for {request.method.value} {request.path}")
        self._deliver(context, result)

    def _on_cache_ahead(self, submission: _Submission, request: Request, future: Future) -> None:
        context = submission.context
        if context.token.cancelled:
            return
        result = self._map_cached(request, future)
        if result.error is not None:
            self._publish(result.error)
            if not isinstance(result.error, CacheMiss):
                get_output().debug(f"Ignoring cache failure for {request.path}: {result.error}")
            return

        intermediate = Result.success(Response(
            model=result.unwrap().model,
            json=result.unwrap().json,
            is_cached_response=True,
            is_final_response=False,
        ))
        # Scheduled under the lock so it is queued ahead of the network result.
        with context.lock:
            if submission.network_completed or context.intermediate_delivered:
                return
            context.intermediate_delivered = True
            get_output().debug(f"Cache hit for {request.method.value} {request.path}")
            self._deliver(context, intermediate)

    # ------------------------------------------------------------------ #
    # Network outcome
    # ------------------------------------------------------------------ #

    def _handle_success(self, context: _Context, request: Request, body: Any) -> None:
        if context.token.cancelled:
            return

        if isinstance(request.result, EmptyResult):
            payload = body if isinstance(body, dict) else {}
            if request.should_cache_response and payload and self._cache is not None:
                self._cache.store(request.fingerprint, payload)
            self._deliver(context, Result.success(Response(model=None, json=payload)))
            return

        if not isinstance(body, dict):
            self._handle_failure(
                context, request,
                ResponseShapeInvalid("Response body is missing or not a JSON object"),
            )
            return
        try:
            model = self._map(request, body)
        except ResponseShapeInvalid as exc:
            self._handle_failure(context, request, exc)
            return

        # Only payloads that mapped cleanly reach the cache.
        if request.should_cache_response and self._cache is not None:
            self._cache.store(request.fingerprint, body)
        self._deliver(context, Result.success(Response(model=model, json=body)))

    def _handle_failure(self, context: _Context, request: Request, error: Exception) -> None:
        if isinstance(error, TransportCancelled) or context.token.cancelled:
            return
        if not isinstance(error, FetchkitError):
            error = TransportFailure(str(error) or type(error).__name__)

        self._publish(error)

        policy = request.retry_policy
        if policy.allows_retry:
            get_output().debug(
                f"{request.method.value} {request.path} failed ({error}); retrying in "
                f"{policy.initial_delay:g}s, {policy.attempt_count - 1} attempt(s) left"
            )
            retry = request.next_attempt()
            timer = self._scheduler(policy.initial_delay, lambda: self._start(context, retry))
            context.token._attach_timer(timer)
            return

        if request.cache_fetch_policy is CacheFetchPolicy.TRY_NETWORK_THEN_CACHE:
            get_output().debug(f"{request.method.value} {request.path} failed; falling back to cache")
            self._start(context, request.with_fetch_policy(CacheFetchPolicy.CACHE_ONLY))
            return

        self._deliver(context, Result.failure(error))

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _map(self, request: Request, payload: dict[str, Any]) -> Any:
        """Map *payload*, reporting every mapper failure as ResponseShapeInvalid."""
        if isinstance(request.result, EmptyResult):
            return None
        try:
            return self._mapper.map(payload, request.model_key_path, request.result)
        except ResponseShapeInvalid:
            raise
        except Exception as exc:
            raise ResponseShapeInvalid(f"Mapper failed for {request.path}: {exc!r}") from exc

    def _publish(self, error: FetchkitError) -> None:
        if isinstance(error, ServiceUnavailable):
            self.bus.publish(EventKind.SERVICE_UNAVAILABLE, error)
        elif isinstance(error, InvalidCredential):
            self.bus.publish(EventKind.INVALID_CREDENTIAL, error)

    def _deliver(self, context: _Context, result: Result) -> None:
        if context.token.cancelled:
            return
        try:
            context.executor.submit(self._invoke, context, result)
        except RuntimeError:
            logger.warning("Delivery executor is shut down; dropping result")

    @staticmethod
    def _invoke(context: _Context, result: Result) -> None:
        if context.token.cancelled:
            return
        try:
            context.completion(result)
        except Exception:
            logger.exception("Completion callback raised")
