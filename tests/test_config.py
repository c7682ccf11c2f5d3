"""Tests for config paths, atomic writes and precedence resolution."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from fetchkit.config import (
    atomic_write,
    get_cache_dir,
    get_config_dir,
    load_global_config,
    resolve_config,
    save_global_config,
)
from fetchkit.exceptions import ConfigError
from fetchkit.models import CacheFetchPolicy, ClientConfig


class TestDirectories:
    def test_xdg_dirs(self, isolated_config: Path) -> None:
        assert get_config_dir() == isolated_config / "config" / "fetchkit"
        assert get_cache_dir() == isolated_config / "cache" / "fetchkit"
        assert get_config_dir().is_dir()

    def test_cache_dir_override(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FETCHKIT_CACHE_DIR", str(isolated_config / "elsewhere"))
        assert get_cache_dir() == isolated_config / "elsewhere"

    def test_fallback_on_non_xdg_platform(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr("fetchkit.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", lambda: tmp_path)
        monkeypatch.delenv("FETCHKIT_CACHE_DIR", raising=False)
        assert get_config_dir() == tmp_path / ".fetchkit"
        assert get_cache_dir() == tmp_path / ".fetchkit" / "cache"


class TestAtomicWrite:
    def test_writes_text(self, tmp_path: Path) -> None:
        target = tmp_path / "nested" / "file.json"
        atomic_write(target, '{"a": 1}')
        assert json.loads(target.read_text()) == {"a": 1}

    def test_applies_mode(self, tmp_path: Path) -> None:
        target = tmp_path / "secret"
        atomic_write(target, b"x", mode=0o600)
        assert (target.stat().st_mode & 0o777) == 0o600

    def test_failed_write_leaves_no_temp_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def fail_replace(src: str, dst: object) -> None:
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", fail_replace)
        with pytest.raises(OSError, match="disk full"):
            atomic_write(tmp_path / "file", "data")
        assert list(tmp_path.iterdir()) == []


class TestGlobalConfig:
    def test_defaults_when_missing(self, isolated_config: Path) -> None:
        assert load_global_config() == ClientConfig()

    def test_save_and_load(self, isolated_config: Path) -> None:
        config = ClientConfig(base_url="https://api.example.com", timeout=5)
        config.retry.attempt_count = 3
        save_global_config(config)

        loaded = load_global_config()
        assert loaded.base_url == "https://api.example.com"
        assert loaded.retry.attempt_count == 3

    def test_invalid_json(self, isolated_config: Path) -> None:
        (get_config_dir() / "config.json").write_text("{nope")
        with pytest.raises(ConfigError, match="Invalid global config"):
            load_global_config()


class TestResolveConfig:
    def test_precedence(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        save_global_config(ClientConfig(base_url="https://global.example.com", timeout=10))
        (isolated_config / "fetchkit.json").write_text(json.dumps({
            "base_url": "https://project.example.com",
            "default_fetch_policy": "cache-then-network",
            "cache": {"memory_capacity": 8},
        }))

        config = resolve_config()
        assert config.base_url == "https://project.example.com"
        assert config.timeout == 10
        assert config.default_fetch_policy is CacheFetchPolicy.CACHE_THEN_NETWORK
        assert config.cache.memory_capacity == 8
        assert config.cache.enabled is True

        monkeypatch.setenv("FETCHKIT_BASE_URL", "https://env.example.com")
        assert resolve_config().base_url == "https://env.example.com"
        assert resolve_config(cli_base_url="https://cli.example.com").base_url == (
            "https://cli.example.com"
        )

    def test_cli_format(self, isolated_config: Path) -> None:
        assert resolve_config(cli_format="json").output.format == "json"

    def test_project_config_must_be_object(self, isolated_config: Path) -> None:
        (isolated_config / "fetchkit.json").write_text("[1, 2]")
        with pytest.raises(ConfigError, match="expected a JSON object"):
            resolve_config()

    def test_invalid_project_value(self, isolated_config: Path) -> None:
        (isolated_config / "fetchkit.json").write_text(json.dumps({"retry": {"attempt_count": 0}}))
        with pytest.raises(ConfigError, match="Invalid project config"):
            resolve_config()
