"""Tests for the in-memory LRU tier."""

from __future__ import annotations

import threading

import pytest

from fetchkit.cache import MemoryTier


class TestSetGet:
    def test_round_trip_nested_payload(self) -> None:
        tier = MemoryTier()
        payload = {"id": 1, "tags": ["a", "b"], "owner": {"name": "x", "active": True, "score": None}}
        tier.set("k", payload)
        assert tier.get("k") == payload

    def test_missing_key_returns_none(self) -> None:
        assert MemoryTier().get("nope") is None

    def test_overwrite_replaces_value(self) -> None:
        tier = MemoryTier()
        tier.set("k", {"v": 1})
        tier.set("k", {"v": 2})
        assert tier.get("k") == {"v": 2}
        assert len(tier) == 1

    def test_returned_payload_is_a_copy(self) -> None:
        tier = MemoryTier()
        original = {"items": [1, 2]}
        tier.set("k", original)
        original["items"].append(3)

        fetched = tier.get("k")
        fetched["items"].append(4)

        assert tier.get("k") == {"items": [1, 2]}


class TestEviction:
    def test_least_recently_used_is_dropped(self) -> None:
        tier = MemoryTier(capacity=2)
        tier.set("a", {"v": 1})
        tier.set("b", {"v": 2})
        tier.get("a")
        tier.set("c", {"v": 3})

        assert "a" in tier
        assert "b" not in tier
        assert "c" in tier

    def test_zero_capacity_stores_nothing(self) -> None:
        tier = MemoryTier(capacity=0)
        tier.set("a", {"v": 1})
        assert tier.get("a") is None
        assert len(tier) == 0


class TestRemoveClear:
    def test_remove_twice_is_harmless(self) -> None:
        tier = MemoryTier()
        tier.set("a", {"v": 1})
        tier.remove("a")
        tier.remove("a")
        assert tier.get("a") is None

    def test_clear_twice_is_harmless(self) -> None:
        tier = MemoryTier()
        tier.set("a", {"v": 1})
        tier.clear()
        tier.clear()
        assert len(tier) == 0


class TestConditionalSet:
    def test_unchanged_key_is_stored(self) -> None:
        tier = MemoryTier()
        token = tier.generation("k")
        assert tier.set_if_unchanged("k", {"id": 1}, token)
        assert tier.get("k") == {"id": 1}

    @pytest.mark.parametrize("change", [
        lambda tier: tier.remove("k"),
        lambda tier: tier.set("k", {"id": 2}),
        lambda tier: tier.clear(),
    ])
    def test_any_change_since_token_wins(self, change) -> None:
        tier = MemoryTier()
        token = tier.generation("k")
        change(tier)
        assert not tier.set_if_unchanged("k", {"id": 1}, token)
        assert tier.get("k") in (None, {"id": 2})

    def test_other_keys_do_not_invalidate(self) -> None:
        tier = MemoryTier()
        token = tier.generation("k")
        tier.set("other", {"id": 9})
        tier.remove("other")
        assert tier.set_if_unchanged("k", {"id": 1}, token)


def test_concurrent_writers_respect_capacity() -> None:
    tier = MemoryTier(capacity=50)

    def writer(offset: int) -> None:
        for i in range(200):
            tier.set(f"{offset}-{i}", {"i": i})

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(tier) == 50
