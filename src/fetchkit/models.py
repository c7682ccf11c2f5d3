"""Canonical Pydantic models shared across all fetchkit modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`CacheConfig`, :class:`RetryConfig`, :class:`OutputConfig` and
    :class:`ClientConfig`.

**Request models** -- immutable descriptors consumed by the orchestrator:
    :class:`HTTPMethod`, :class:`CacheFetchPolicy` (shared with the config
    models), :class:`RetryPolicy`,
    :class:`TypedResult`, :class:`EmptyResult` and :class:`Request`.

Request models are frozen. Anything that changes between attempts (retry
budget, fetch policy for a cache fallback) is expressed by deriving a new
descriptor with ``model_copy(update=...)``.
"""

from __future__ import annotations

import enum
import hashlib
import json
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# --- Enumerations ---


class HTTPMethod(str, enum.Enum):
    """HTTP methods the orchestrator can dispatch."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class CacheFetchPolicy(str, enum.Enum):
    """How a request combines the response cache and the network.

    * ``CACHE_ONLY`` -- answer from cache; a miss is a failure.
    * ``NETWORK_ONLY`` -- never read the cache.
    * ``CACHE_THEN_NETWORK`` -- deliver an early cache hit (non-final),
      then the network result (final).
    * ``TRY_NETWORK_THEN_CACHE`` -- network first, cache if it fails.
    """

    CACHE_ONLY = "cache-only"
    NETWORK_ONLY = "network-only"
    CACHE_THEN_NETWORK = "cache-then-network"
    TRY_NETWORK_THEN_CACHE = "try-network-then-cache"


# --- Configuration models ---


class CacheConfig(BaseModel):
    """Response cache settings stored in :class:`ClientConfig`."""

    enabled: bool = Field(default=True, description="Enable response caching")
    memory_capacity: int = Field(
        default=256, description="Maximum number of payloads kept in memory"
    )
    directory_name: str = Field(
        default="responses", description="Sub-directory of the cache dir holding records"
    )
    promote_disk_hits: bool = Field(
        default=False, description="Copy disk hits back into the memory tier"
    )
    disk_workers: int = Field(default=4, description="Threads serving disk reads")


class RetryConfig(BaseModel):
    """Default retry policy applied to requests built by the CLI."""

    attempt_count: int = Field(default=1, ge=1, description="Total attempts, including the first")
    initial_delay: float = Field(
        default=1.0, ge=0, description="Delay in seconds before the first retry"
    )


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`ClientConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class ClientConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/fetchkit/config.json``.

    Loaded and saved by :func:`~fetchkit.config.load_global_config` and
    :func:`~fetchkit.config.save_global_config`. Fields here have the
    lowest precedence and can be overridden by project config, environment
    variables, or CLI flags. See :func:`~fetchkit.config.resolve_config`.
    """

    base_url: Optional[str] = Field(default=None, description="API base URL")
    timeout: float = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_workers: int = Field(default=4, description="Concurrent network calls")
    default_fetch_policy: CacheFetchPolicy = CacheFetchPolicy.NETWORK_ONLY
    retry: RetryConfig = Field(default_factory=RetryConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)


# --- Request models ---


class RetryPolicy(BaseModel):
    """Retry budget for one logical request.

    ``attempt_count`` counts every attempt including the first, so the
    default single-attempt policy never retries. Each retry waits
    ``initial_delay`` seconds and hands the next attempt a policy with one
    fewer attempt and twice the delay.
    """

    model_config = ConfigDict(frozen=True)

    attempt_count: int = Field(default=1, ge=1)
    initial_delay: float = Field(default=0.0, ge=0)

    @classmethod
    def single_attempt(cls) -> RetryPolicy:
        return cls()

    @classmethod
    def multiple_attempts(cls, attempt_count: int, initial_delay: float) -> RetryPolicy:
        return cls(attempt_count=attempt_count, initial_delay=initial_delay)

    @property
    def allows_retry(self) -> bool:
        """Whether at least one more attempt remains after the current one."""
        return self.attempt_count > 1

    def next(self) -> RetryPolicy:
        """Return the policy for the following attempt."""
        return RetryPolicy(
            attempt_count=max(1, self.attempt_count - 1),
            initial_delay=self.initial_delay * 2,
        )


class TypedResult(BaseModel):
    """The caller expects a body that maps onto ``model_type``.

    With ``many=True`` the payload located by the key path must be a list,
    and each item is mapped separately.
    """

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    kind: Literal["typed"] = "typed"
    model_type: type[BaseModel]
    many: bool = False

    @property
    def identity(self) -> str:
        name = f"typed:{self.model_type.__module__}.{self.model_type.__qualname__}"
        return f"{name}:many" if self.many else name


class EmptyResult(BaseModel):
    """The caller expects no body; success yields an empty response."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["empty"] = "empty"

    @property
    def identity(self) -> str:
        return "empty"


ResultKind = Annotated[Union[TypedResult, EmptyResult], Field(discriminator="kind")]


class Request(BaseModel):
    """Immutable description of one logical API call.

    The :attr:`fingerprint` keys the response cache. Two requests with the
    same method, path, parameters and declared result share cache records.

    Example::

        request = Request.get(
            "/me/videos",
            model=Video,
            many=True,
            model_key_path="data",
            cache_fetch_policy=CacheFetchPolicy.CACHE_THEN_NETWORK,
            should_cache_response=True,
        )
    """

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    method: HTTPMethod = HTTPMethod.GET
    path: str
    parameters: dict[str, str] = Field(default_factory=dict)
    cache_fetch_policy: CacheFetchPolicy = CacheFetchPolicy.NETWORK_ONLY
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    should_cache_response: bool = False
    model_key_path: Optional[str] = None
    result: ResultKind = Field(default_factory=EmptyResult)

    @property
    def fingerprint(self) -> str:
        """SHA-256 of the JSON array ``[method, path, params, result identity]``.

        Parameter order is irrelevant.
        """
        raw = json.dumps(
            [self.method.value, self.path, self.parameters, self.result.identity],
            sort_keys=True,
        )
        return hashlib.sha256(raw.encode()).hexdigest()

    def with_retry_policy(self, policy: RetryPolicy) -> Request:
        return self.model_copy(update={"retry_policy": policy})

    def with_fetch_policy(self, policy: CacheFetchPolicy) -> Request:
        return self.model_copy(update={"cache_fetch_policy": policy})

    def next_attempt(self) -> Request:
        """Derive the descriptor for the next retry attempt."""
        return self.with_retry_policy(self.retry_policy.next())

    # ------------------------------------------------------------------ #
    # Constructors
    # ------------------------------------------------------------------ #

    @classmethod
    def build(
        cls,
        method: HTTPMethod | str,
        path: str,
        model: Optional[type[BaseModel]] = None,
        many: bool = False,
        **kwargs: object,
    ) -> Request:
        """Build a request, choosing :class:`TypedResult` when *model* is given."""
        result: Union[TypedResult, EmptyResult]
        if model is not None:
            result = TypedResult(model_type=model, many=many)
        else:
            result = EmptyResult()
        return cls(method=HTTPMethod(method.upper()), path=path, result=result, **kwargs)

    @classmethod
    def get(cls, path: str, **kwargs: object) -> Request:
        return cls.build(HTTPMethod.GET, path, **kwargs)  # type: ignore[arg-type]

    @classmethod
    def post(cls, path: str, **kwargs: object) -> Request:
        return cls.build(HTTPMethod.POST, path, **kwargs)  # type: ignore[arg-type]

    @classmethod
    def put(cls, path: str, **kwargs: object) -> Request:
        return cls.build(HTTPMethod.PUT, path, **kwargs)  # type: ignore[arg-type]

    @classmethod
    def patch(cls, path: str, **kwargs: object) -> Request:
        return cls.build(HTTPMethod.PATCH, path, **kwargs)  # type: ignore[arg-type]

    @classmethod
    def delete(cls, path: str, **kwargs: object) -> Request:
        return cls.build(HTTPMethod.DELETE, path, **kwargs)  # type: ignore[arg-type]
