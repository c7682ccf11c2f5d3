"""fetchkit -- cache-aware request orchestration for JSON HTTP APIs.

fetchkit dispatches API calls, serves or blends results from a two-tier
response cache (memory + disk), retries transient failures with exponential
backoff, and maps raw JSON payloads onto Pydantic models.

Typical usage::

    from fetchkit.client import ApiClient, HttpxTransport
    from fetchkit.models import CacheFetchPolicy, Request

    with ApiClient(HttpxTransport(config), cache=cache) as client:
        result = client.fetch_sync(Request.get("/me", model=User))

The ``fetchkit`` command exposes the same engine from the shell::

    fetchkit request GET /me --policy cache-then-network --cache

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration management.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    events: Process-wide notification bus.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
