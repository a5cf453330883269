"""Tests for the configuration module."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from cursorbridge.config import (
    Config,
    get_config,
    load_config,
    reset_config,
)
from cursorbridge.config.loader import dict_to_config, env_overrides, load_yaml_file
from cursorbridge.config.merge import deep_merge, merge_configs
from cursorbridge.config.paths import get_config_paths, get_project_config_path
from cursorbridge.config.schema import LoggingConfig
from cursorbridge.logging import TRACE, VERBOSE, get_logger, resolve_level

ENV_VARS = (
    "CURSOR_AGENT_EXECUTABLE",
    "CURSOR_AGENT_MODEL",
    "CURSOR_BRIDGE_SESSION_DIR",
    "CURSOR_BRIDGE_LOG",
)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Keep real user/system config and env vars out of these tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setattr("cursorbridge.config.paths.get_system_config_path", lambda: None)
    reset_config()
    yield
    reset_config()


class TestDeepMerge:
    """Test the deep merge algorithm."""

    def test_simple_override(self) -> None:
        result = deep_merge({"a": 1, "b": 2}, {"b": 3, "c": 4})
        assert result == {"a": 1, "b": 3, "c": 4}

    def test_nested_merge(self) -> None:
        base = {"agent": {"executable": "cursor-agent", "model": "auto"}}
        result = deep_merge(base, {"agent": {"model": "gpt-5"}})
        assert result["agent"] == {"executable": "cursor-agent", "model": "gpt-5"}

    def test_none_does_not_override(self) -> None:
        assert deep_merge({"a": 1}, {"a": None})["a"] == 1

    def test_list_replaced_not_merged(self) -> None:
        result = deep_merge({"agent": {"extra_args": ["--a"]}}, {"agent": {"extra_args": ["--b"]}})
        assert result["agent"]["extra_args"] == ["--b"]

    def test_merge_configs_multiple(self) -> None:
        assert merge_configs({"a": 1, "b": 2}, {"b": 3}, {"c": 4}) == {"a": 1, "b": 3, "c": 4}


class TestDictToConfig:
    """Tests for converting merged dicts to typed config."""

    def test_defaults(self) -> None:
        config = dict_to_config({})
        assert config.agent.executable == "cursor-agent"
        assert config.agent.model == "auto"
        assert config.agent.kill_grace == 1.0
        assert config.retry.max_retries == 3
        assert config.retry.base_delay_ms == 1000
        assert config.retry.max_delay_ms == 30000
        assert config.session.retention_days == 30
        assert config.metrics.window_hours == 24

    def test_values(self) -> None:
        config = dict_to_config(
            {
                "agent": {"executable": "/opt/cursor-agent", "extra_args": ["--foo", 3]},
                "retry": {"max_retries": "5"},
                "session": {
                    "retention_days": 7,
                    "modes": [{"id": "plan", "name": "Plan"}, {"name": "no id"}],
                    "default_mode": "plan",
                },
                "logging": {"verbose": 3},
                "custom": {"x": 1},
            }
        )
        assert config.agent.executable == "/opt/cursor-agent"
        assert config.agent.extra_args == ["--foo"]
        assert config.retry.max_retries == 5
        assert config.session.retention_days == 7
        assert [m.id for m in config.session.modes] == ["plan"]
        assert config.session.default_mode == "plan"
        assert config.logging.verbose == 3
        assert config.extra == {"custom": {"x": 1}}


class TestLoadConfig:
    """Tests for file discovery, env overrides and caching."""

    def test_yaml_file_missing_or_invalid(self, tmp_path: Path) -> None:
        assert load_yaml_file(tmp_path / "nope.yaml") == {}
        bad = tmp_path / "bad.yaml"
        bad.write_text("agent: [oops\n", encoding="utf-8")
        assert load_yaml_file(bad) == {}

    def test_project_config_overrides_user(self, tmp_path: Path) -> None:
        user = tmp_path / "xdg" / "cursor-bridge" / "config.yaml"
        user.parent.mkdir(parents=True)
        user.write_text("agent:\n  model: user-model\n  executable: user-agent\n", encoding="utf-8")

        project = tmp_path / "project"
        project_file = get_project_config_path(str(project))
        project_file.parent.mkdir(parents=True)
        project_file.write_text("agent:\n  model: project-model\n", encoding="utf-8")

        config = load_config(session_root=str(project))
        assert config.agent.model == "project-model"
        assert config.agent.executable == "user-agent"

    def test_env_overrides_files(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        project = tmp_path / "project"
        project_file = get_project_config_path(str(project))
        project_file.parent.mkdir(parents=True)
        project_file.write_text("agent:\n  executable: from-file\n", encoding="utf-8")
        monkeypatch.setenv("CURSOR_AGENT_EXECUTABLE", "from-env")
        monkeypatch.setenv("CURSOR_BRIDGE_SESSION_DIR", "/tmp/sessions")

        config = load_config(session_root=str(project))
        assert config.agent.executable == "from-env"
        assert config.session.storage_dir == "/tmp/sessions"

    def test_env_overrides_dict(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CURSOR_AGENT_MODEL", "sonnet")
        monkeypatch.setenv("CURSOR_BRIDGE_LOG", "/tmp/bridge.log")
        assert env_overrides() == {"agent": {"model": "sonnet"}, "logging": {"file": "/tmp/bridge.log"}}

    def test_global_config_is_cached(self) -> None:
        first = get_config()
        assert isinstance(first, Config)
        assert get_config() is first
        assert load_config(reload=True) is not first

    def test_config_paths_order(self, tmp_path: Path) -> None:
        paths = get_config_paths(str(tmp_path))
        assert paths[-1] == get_project_config_path(str(tmp_path))


class TestLogging:
    """Tests for log level resolution."""

    def test_default_level(self) -> None:
        assert resolve_level(None) == logging.INFO
        assert resolve_level(LoggingConfig()) == logging.INFO

    def test_named_level(self) -> None:
        assert resolve_level(LoggingConfig(level="debug")) == logging.DEBUG

    def test_verbose_wins(self) -> None:
        assert resolve_level(LoggingConfig(level="error", verbose=3)) == VERBOSE
        assert resolve_level(LoggingConfig(verbose=4)) == TRACE
        assert resolve_level(LoggingConfig(verbose=0)) == logging.ERROR

    def test_child_logger(self) -> None:
        assert get_logger("stream").name == "cursorbridge.stream"
        assert get_logger().name == "cursorbridge"
