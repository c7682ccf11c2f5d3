"""Network transport used by the orchestrator.

The orchestrator talks to the network only through the callback-style
:class:`Transport` interface: ``dispatch`` starts a call and returns a
cancellable :class:`TaskHandle`, and exactly one of the two callbacks fires
when the call ends.

:class:`HttpxTransport` is the default implementation. It runs blocking
:class:`httpx.Client` requests on a small thread pool and maps their outcome:

- 2xx -> ``on_success(handle, body)`` where *body* is the decoded JSON, or
  ``None`` for an empty or non-JSON body.
- HTTP >= 400 -> ``on_failure(handle, TransportFailure.from_status(...))``,
  so 401 arrives as :class:`~fetchkit.exceptions.InvalidCredential` and 503
  as :class:`~fetchkit.exceptions.ServiceUnavailable`.
- connection / timeout errors -> :class:`~fetchkit.exceptions.TransportFailure`.
- cancellation -> :class:`~fetchkit.exceptions.TransportCancelled`.

Parameters travel as the query string for GET and DELETE and as a JSON body
for POST, PUT and PATCH.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional, Protocol

import httpx

from fetchkit.exceptions import (
    RequestMalformed,
    TransportCancelled,
    TransportFailure,
)
from fetchkit.models import ClientConfig, HTTPMethod

logger = logging.getLogger(__name__)

SuccessCallback = Callable[["TaskHandle", Any], None]
FailureCallback = Callable[[Optional["TaskHandle"], Exception], None]
TokenProvider = Callable[[], Optional[str]]

_QUERY_METHODS = frozenset({HTTPMethod.GET, HTTPMethod.DELETE})


class TaskHandle:
    """Cancellable handle for one in-flight transport call."""

    def __init__(self) -> None:
        self._cancelled = threading.Event()
        self._future: Optional[Future] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Request cancellation. Idempotent.

        A call that has not started yet never runs. A call already on the
        wire finishes, but is reported as :class:`TransportCancelled`.
        """
        self._cancelled.set()
        if self._future is not None:
            self._future.cancel()

    def attach(self, future: Future) -> None:
        self._future = future
        if self.cancelled:
            future.cancel()


class Transport(Protocol):
    """Interface the orchestrator uses to reach the network."""

    def dispatch(
        self,
        method: HTTPMethod,
        path: str,
        parameters: dict[str, str],
        on_success: SuccessCallback,
        on_failure: FailureCallback,
    ) -> Optional[TaskHandle]:
        ...

    def close(self) -> None:
        ...


class HttpxTransport:
    """Thread-pool transport backed by :class:`httpx.Client`.

    Args:
        config: Base URL, timeout, SSL verification and pool size.
        token_provider: Optional callable returning the current access
            token; when it returns a value an ``Authorization: Bearer``
            header is sent.
        headers: Extra headers sent with every request.
        client: Pre-built :class:`httpx.Client` (tests pass one with an
            :class:`httpx.MockTransport`). Closed by :meth:`close`.

    Example::

        transport = HttpxTransport(ClientConfig(base_url="https://api.example.com"))
        handle = transport.dispatch(HTTPMethod.GET, "/me", {}, on_ok, on_err)
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        token_provider: Optional[TokenProvider] = None,
        headers: Optional[dict[str, str]] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        config = config or ClientConfig()
        self._token_provider = token_provider
        self._headers: dict[str, str] = {"Accept": "application/json"}
        self._headers.update(headers or {})
        self._client = client or httpx.Client(
            base_url=config.base_url or "",
            timeout=config.timeout,
            verify=config.verify_ssl,
            follow_redirects=True,
        )
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, config.max_workers), thread_name_prefix="fetchkit-net"
        )

    def dispatch(
        self,
        method: HTTPMethod,
        path: str,
        parameters: dict[str, str],
        on_success: SuccessCallback,
        on_failure: FailureCallback,
    ) -> Optional[TaskHandle]:
        handle = TaskHandle()
        future = self._executor.submit(
            self._perform, handle, method, path, dict(parameters), on_success, on_failure,
        )
        future.add_done_callback(lambda f: self._report_if_cancelled(f, handle, on_failure))
        handle.attach(future)
        return handle

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        self._client.close()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _perform(
        self,
        handle: TaskHandle,
        method: HTTPMethod,
        path: str,
        parameters: dict[str, str],
        on_success: SuccessCallback,
        on_failure: FailureCallback,
    ) -> None:
        kwargs: dict[str, Any] = {"headers": self._build_headers()}
        if method in _QUERY_METHODS:
            kwargs["params"] = parameters
        elif parameters:
            kwargs["json"] = parameters

        try:
            response = self._client.request(method.value, path, **kwargs)
        except httpx.InvalidURL as exc:
            on_failure(handle, RequestMalformed(f"Invalid URL for {method.value} {path}: {exc}"))
            return
        except httpx.HTTPError as exc:
            if handle.cancelled:
                on_failure(handle, TransportCancelled(f"{method.value} {path} cancelled"))
            else:
                on_failure(handle, TransportFailure(f"Connection failed: {exc}"))
            return

        if handle.cancelled:
            on_failure(handle, TransportCancelled(f"{method.value} {path} cancelled"))
        elif response.status_code >= 400:
            on_failure(handle, TransportFailure.from_status(
                response.status_code, _error_detail(response),
            ))
        else:
            on_success(handle, decode_body(response))

    def _build_headers(self) -> dict[str, str]:
        headers = dict(self._headers)
        if self._token_provider is not None:
            token = self._token_provider()
            if token:
                headers["Authorization"] = f"Bearer {token}"
        return headers

    @staticmethod
    def _report_if_cancelled(
        future: Future, handle: TaskHandle, on_failure: FailureCallback,
    ) -> None:
        # A future cancelled before it started never ran _perform.
        if future.cancelled():
            on_failure(handle, TransportCancelled("Request cancelled before dispatch"))
        elif future.exception() is not None:
            logger.error("Transport callback raised", exc_info=future.exception())


def decode_body(response: httpx.Response) -> Any:
    """Return the JSON-decoded body, or ``None`` for an empty or non-JSON body."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def _error_detail(response: httpx.Response) -> str:
    """Extract a short error message from an error response body."""
    try:
        detail = response.json()
    except ValueError:
        return response.text[:200] if response.text else ""
    if isinstance(detail, dict):
        return str(detail.get("message") or detail.get("error") or detail.get("detail") or "")
    return str(detail)
