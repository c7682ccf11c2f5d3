"""Process-wide notification bus for service-health and credential signals.

The orchestrator publishes an event whenever a failure is classified as
:class:`~fetchkit.exceptions.ServiceUnavailable` or
:class:`~fetchkit.exceptions.InvalidCredential`, independently of whether the
request is then retried, falls back to the cache, or fails. Observers use
these signals for app-wide reactions such as starting a re-authentication
flow or showing an outage banner.

Delivery is best effort and synchronous on the publishing thread. Handler
exceptions are logged and swallowed so one observer cannot break another, or
the request pipeline that published the event.
"""

from __future__ import annotations

import enum
import logging
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

Handler = Callable[["EventKind", Any], None]


class EventKind(str, enum.Enum):
    """Kinds of process-wide notifications."""

    SERVICE_UNAVAILABLE = "service_unavailable"
    INVALID_CREDENTIAL = "invalid_credential"
    CREDENTIAL_CHANGED = "credential_changed"


class NotificationBus:
    """Thread-safe publish/subscribe registry keyed by :class:`EventKind`.

    Example::

        bus = NotificationBus()
        bus.subscribe(EventKind.INVALID_CREDENTIAL, lambda kind, payload: relogin())
        bus.publish(EventKind.INVALID_CREDENTIAL)
    """

    def __init__(self) -> None:
        self._handlers: dict[EventKind, list[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, kind: EventKind, handler: Handler) -> None:
        with self._lock:
            self._handlers.setdefault(kind, []).append(handler)

    def unsubscribe(self, kind: EventKind, handler: Handler) -> None:
        """Remove *handler*; unknown handlers are ignored."""
        with self._lock:
            handlers = self._handlers.get(kind, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, kind: EventKind, payload: Any = None) -> None:
        """Call every handler subscribed to *kind* with ``(kind, payload)``.

        Handlers run against a snapshot of the subscriber list, so a handler
        may subscribe or unsubscribe without affecting the current publish.
        """
        with self._lock:
            handlers = list(self._handlers.get(kind, []))
        for handler in handlers:
            try:
                handler(kind, payload)
            except Exception:
                logger.exception("Notification handler for %s failed", kind.value)


# ------------------------------------------------------------------ #
# Global bus instance
# ------------------------------------------------------------------ #

_bus: Optional[NotificationBus] = None


def get_bus() -> NotificationBus:
    """Return the process-wide :class:`NotificationBus`, creating it lazily."""
    global _bus
    if _bus is None:
        _bus = NotificationBus()
    return _bus


def set_bus(bus: NotificationBus) -> None:
    global _bus
    _bus = bus


def reset_bus() -> None:
    """Drop the process-wide bus and all its subscribers (used by tests)."""
    global _bus
    _bus = None
