"""Credential storage for fetchkit.

- :class:`SecretStore` -- per-service bytes store with ``0o600`` files.
- :func:`token_provider` -- adapts a stored access token for
  :class:`~fetchkit.client.transport.HttpxTransport`.
"""

from fetchkit.auth.secret_store import (
    ACCESS_TOKEN_KEY,
    SecretStore,
    service_for_base_url,
    token_provider,
)

__all__ = ["SecretStore", "token_provider", "service_for_base_url", "ACCESS_TOKEN_KEY"]
