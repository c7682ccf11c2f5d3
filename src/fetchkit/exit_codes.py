"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~fetchkit.exceptions.FetchkitError` subclass.
Shell wrappers can inspect the exit code of ``fetchkit request`` to tell a
cache miss from a rejected credential without parsing stderr.

Example::

    $ fetchkit request GET /me --policy cache-only
    $ echo $?
    4   # EXIT_NOT_FOUND -- nothing cached for this request
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments, or a request could not be built."""

EXIT_AUTH_FAILURE = 3
"""The API rejected the credential (HTTP 401)."""

EXIT_NOT_FOUND = 4
"""No cached response was found for a cache-only request."""

EXIT_SERVER_ERROR = 5
"""The remote API returned an HTTP 5xx error or reported itself unavailable."""

EXIT_CONNECTION_ERROR = 6
"""A network-level or non-5xx HTTP error occurred."""

EXIT_RESPONSE_INVALID = 7
"""The response payload did not match the expected model shape."""
