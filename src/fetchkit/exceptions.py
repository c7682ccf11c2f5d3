"""Exception hierarchy for fetchkit.

All exceptions inherit from :class:`FetchkitError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`fetchkit.exit_codes`
and a numeric ``code`` identifying locally generated errors. The CLI entry
point in :func:`fetchkit.app.main` catches ``FetchkitError`` and exits with
the appropriate code.

Errors are not always raised: the orchestrator delivers most of them to
completion callbacks inside a :class:`~fetchkit.client.response.Result`.

Subclass hierarchy::

    FetchkitError (exit 1)
    +-- CacheError
    |   +-- CacheMiss               (exit 4, code 9003)
    |   +-- CacheCorrupt
    +-- ResponseShapeInvalid        (exit 7, code 9001)
    +-- TransportError              (exit 6)
    |   +-- TransportCancelled
    |   +-- TransportFailure        (exit 6, or 5 for 5xx)
    |       +-- ServiceUnavailable  (exit 5)
    |       +-- InvalidCredential   (exit 3)
    +-- RequestMalformed            (exit 2, code 9002)
    +-- ConfigError                 (exit 1)
"""

from __future__ import annotations

from typing import Optional

from fetchkit.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_RESPONSE_INVALID,
    EXIT_SERVER_ERROR,
)

# Local error codes for failures produced by fetchkit itself rather than the API.
CODE_UNDEFINED = 9000
CODE_INVALID_RESPONSE_DICTIONARY = 9001
CODE_REQUEST_MALFORMED = 9002
CODE_CACHED_RESPONSE_NOT_FOUND = 9003

HTTP_UNAUTHORIZED = 401
HTTP_SERVICE_UNAVAILABLE = 503


class FetchkitError(Exception):
    """Base exception for all fetchkit errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE
    code: int = CODE_UNDEFINED

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class CacheError(FetchkitError):
    """Raised when a cache tier fails (disk I/O error, unreadable record)."""


class CacheMiss(CacheError):
    """No cached response exists for the request fingerprint.

    A miss is a normal outcome inside the cache; it only becomes a
    caller-visible failure for ``CACHE_ONLY`` requests.
    """

    exit_code = EXIT_NOT_FOUND
    code = CODE_CACHED_RESPONSE_NOT_FOUND

    def __init__(self, message: str = "Cached response not found", exit_code: int | None = None):
        super().__init__(message, exit_code)


class CacheCorrupt(CacheError):
    """A disk record exists but cannot be decoded into a payload dict."""


class ResponseShapeInvalid(FetchkitError):
    """A payload is present but does not map onto the expected model."""

    exit_code = EXIT_RESPONSE_INVALID
    code = CODE_INVALID_RESPONSE_DICTIONARY


class TransportError(FetchkitError):
    """Base class for errors reported by the transport collaborator."""

    exit_code = EXIT_CONNECTION_ERROR


class TransportCancelled(TransportError):
    """The transport task was cancelled. Never surfaced to callers."""


class TransportFailure(TransportError):
    """Generic network or HTTP failure.

    Args:
        message: Human-readable error description.
        status: HTTP status code, when the server answered.
    """

    def __init__(self, message: str, status: Optional[int] = None, exit_code: int | None = None):
        super().__init__(message, exit_code)
        self.status = status
        if exit_code is None and status is not None and status >= 500:
            self.exit_code = EXIT_SERVER_ERROR

    @classmethod
    def from_status(cls, status: int, detail: str = "") -> TransportFailure:
        """Build the most specific failure for an HTTP error *status*."""
        message = f"HTTP {status}: {detail}" if detail else f"HTTP {status}"
        if status == HTTP_SERVICE_UNAVAILABLE:
            return ServiceUnavailable(message, status=status)
        if status == HTTP_UNAUTHORIZED:
            return InvalidCredential(message, status=status)
        return cls(message, status=status)


class ServiceUnavailable(TransportFailure):
    """The API reported itself unavailable (HTTP 503)."""

    exit_code = EXIT_SERVER_ERROR


class InvalidCredential(TransportFailure):
    """The API rejected the access token as invalid or expired (HTTP 401)."""

    exit_code = EXIT_AUTH_FAILURE


class RequestMalformed(FetchkitError):
    """Internal contract violation, e.g. the transport returned no task handle."""

    exit_code = EXIT_INVALID_USAGE
    code = CODE_REQUEST_MALFORMED


class ConfigError(FetchkitError):
    """Raised for configuration problems (invalid JSON, failed validation)."""

    exit_code = EXIT_GENERIC_FAILURE
