"""Persistent secret store for credentials and other small blobs.

Secrets live in ``~/.local/share/fetchkit/credentials/<service>/<key>.secret``
(XDG) or the platform-equivalent directory. Every value is raw bytes in its
own file, written atomically with ``0o600`` permissions so that secrets are
never world-readable, even momentarily.

The orchestrator never reads this store itself. The CLI wires a stored
access token into :class:`~fetchkit.client.transport.HttpxTransport` through
:func:`token_provider`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlsplit

from fetchkit.cache.disk import sanitize_key
from fetchkit.config import atomic_write, get_credentials_dir

DEFAULT_SERVICE = "default"
ACCESS_TOKEN_KEY = "access_token"
_SECRET_SUFFIX = ".secret"


class SecretStore:
    """Set/get/delete secret bytes by string key, scoped to one service.

    Args:
        service: Namespace for the keys, e.g. one per API host.

    Example::

        store = SecretStore("api.example.com")
        store.set("access_token", b"tok123")
        assert store.get("access_token") == b"tok123"
    """

    def __init__(self, service: str = DEFAULT_SERVICE) -> None:
        self._service = service
        self._directory = get_credentials_dir() / sanitize_key(service)

    @property
    def service(self) -> str:
        return self._service

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, key: str) -> Path:
        return self._directory / f"{sanitize_key(key)}{_SECRET_SUFFIX}"

    def set(self, key: str, data: bytes) -> None:
        """Store *data* under *key*, replacing any previous value.

        Raises:
            OSError: If the file cannot be written.
        """
        atomic_write(self.path_for(key), data, mode=0o600)

    def get(self, key: str) -> Optional[bytes]:
        """Return the bytes stored under *key*, or ``None`` if there are none."""
        try:
            return self.path_for(key).read_bytes()
        except FileNotFoundError:
            return None

    def delete(self, key: str) -> None:
        """Remove *key*. Deleting a missing key is a no-op."""
        self.path_for(key).unlink(missing_ok=True)

    def keys(self) -> list[str]:
        if not self._directory.is_dir():
            return []
        return sorted(
            p.name[: -len(_SECRET_SUFFIX)]
            for p in self._directory.glob(f"*{_SECRET_SUFFIX}")
            if not p.name.startswith(".")
        )


def service_for_base_url(base_url: Optional[str]) -> str:
    """Return the store service name for an API base URL (its host and port)."""
    if not base_url:
        return DEFAULT_SERVICE
    return urlsplit(base_url).netloc or DEFAULT_SERVICE


def token_provider(store: SecretStore, key: str = ACCESS_TOKEN_KEY) -> Callable[[], Optional[str]]:
    """Build a transport token provider that reads *key* on every request.

    Reading per request means a token replaced with ``fetchkit auth set-token``
    is picked up without rebuilding the transport.
    """

    def provide() -> Optional[str]:
        data = store.get(key)
        if not data:
            return None
        return data.decode("utf-8").strip() or None

    return provide
