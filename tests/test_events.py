"""Tests for the process-wide notification bus."""

from __future__ import annotations

import logging

from fetchkit.events import EventKind, NotificationBus, get_bus, reset_bus, set_bus


class TestNotificationBus:
    def test_publish_reaches_subscribers_of_kind(self) -> None:
        bus = NotificationBus()
        seen: list[tuple[EventKind, object]] = []
        bus.subscribe(EventKind.INVALID_CREDENTIAL, lambda kind, payload: seen.append((kind, payload)))

        bus.publish(EventKind.INVALID_CREDENTIAL, "expired")
        bus.publish(EventKind.SERVICE_UNAVAILABLE, "down")

        assert seen == [(EventKind.INVALID_CREDENTIAL, "expired")]

    def test_unsubscribe(self) -> None:
        bus = NotificationBus()
        seen: list[object] = []

        def handler(kind: EventKind, payload: object) -> None:
            seen.append(payload)

        bus.subscribe(EventKind.CREDENTIAL_CHANGED, handler)
        bus.unsubscribe(EventKind.CREDENTIAL_CHANGED, handler)
        bus.unsubscribe(EventKind.CREDENTIAL_CHANGED, handler)
        bus.publish(EventKind.CREDENTIAL_CHANGED)

        assert seen == []

    def test_failing_handler_does_not_stop_others(self, caplog) -> None:
        bus = NotificationBus()
        seen: list[object] = []

        def broken(kind: EventKind, payload: object) -> None:
            raise RuntimeError("boom")

        bus.subscribe(EventKind.SERVICE_UNAVAILABLE, broken)
        bus.subscribe(EventKind.SERVICE_UNAVAILABLE, lambda kind, payload: seen.append(payload))

        with caplog.at_level(logging.ERROR, logger="fetchkit.events"):
            bus.publish(EventKind.SERVICE_UNAVAILABLE, 1)

        assert seen == [1]
        assert "service_unavailable" in caplog.text

    def test_handler_may_unsubscribe_during_publish(self) -> None:
        bus = NotificationBus()
        calls: list[str] = []

        def once(kind: EventKind, payload: object) -> None:
            calls.append("once")
            bus.unsubscribe(kind, once)

        bus.subscribe(EventKind.CREDENTIAL_CHANGED, once)
        bus.publish(EventKind.CREDENTIAL_CHANGED)
        bus.publish(EventKind.CREDENTIAL_CHANGED)

        assert calls == ["once"]


class TestGlobalBus:
    def test_get_bus_is_shared(self) -> None:
        assert get_bus() is get_bus()

    def test_set_and_reset(self) -> None:
        bus = NotificationBus()
        set_bus(bus)
        assert get_bus() is bus
        reset_bus()
        assert get_bus() is not bus
