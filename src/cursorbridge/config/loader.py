"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Environment variable overrides
- Config caching with reload support
- Conversion from dict to typed Config dataclass
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from cursorbridge.config.merge import merge_configs
from cursorbridge.config.paths import get_config_paths
from cursorbridge.config.schema import (
    AgentConfig,
    Config,
    LoggingConfig,
    MetricsConfig,
    RetryConfig,
    SessionConfig,
    SessionModeConfig,
)

# Module logger (may not be configured yet at import time)
_log = logging.getLogger("cursorbridge.config")

_cached_config: Config | None = None

KNOWN_SECTIONS = {"agent", "retry", "session", "logging", "metrics"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning empty dict if not found or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def env_overrides() -> dict[str, Any]:
    """Build config dict from environment variables.

    Returns:
        Config dict with values from environment.
    """
    overrides: dict[str, Any] = {}

    executable = os.environ.get("CURSOR_AGENT_EXECUTABLE")
    if executable:
        overrides.setdefault("agent", {})["executable"] = executable

    model = os.environ.get("CURSOR_AGENT_MODEL")
    if model:
        overrides.setdefault("agent", {})["model"] = model

    storage_dir = os.environ.get("CURSOR_BRIDGE_SESSION_DIR")
    if storage_dir:
        overrides.setdefault("session", {})["storage_dir"] = storage_dir

    log_path = os.environ.get("CURSOR_BRIDGE_LOG")
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    return overrides


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert merged dict to typed Config dataclass.

    Args:
        data: Merged configuration dictionary.

    Returns:
        Typed Config object.
    """
    agent_defaults = AgentConfig()
    agent_data = data.get("agent", {})
    agent = AgentConfig(
        executable=agent_data.get("executable", agent_defaults.executable),
        model=agent_data.get("model", agent_defaults.model),
        extra_args=[a for a in agent_data.get("extra_args", []) if isinstance(a, str)],
        kill_grace=float(agent_data.get("kill_grace", agent_defaults.kill_grace)),
        stream_close_grace=float(
            agent_data.get("stream_close_grace", agent_defaults.stream_close_grace)
        ),
        result_grace=float(agent_data.get("result_grace", agent_defaults.result_grace)),
    )

    retry_defaults = RetryConfig()
    retry_data = data.get("retry", {})
    retry = RetryConfig(
        max_retries=int(retry_data.get("max_retries", retry_defaults.max_retries)),
        base_delay_ms=int(retry_data.get("base_delay_ms", retry_defaults.base_delay_ms)),
        max_delay_ms=int(retry_data.get("max_delay_ms", retry_defaults.max_delay_ms)),
    )

    session_data = data.get("session", {})
    modes = [
        SessionModeConfig(
            id=m.get("id", ""),
            name=m.get("name", ""),
            description=m.get("description", ""),
        )
        for m in session_data.get("modes", [])
        if isinstance(m, dict) and m.get("id")
    ]
    session = SessionConfig(
        retention_days=int(session_data.get("retention_days", SessionConfig.retention_days)),
        storage_dir=session_data.get("storage_dir"),
        modes=modes,
        default_mode=session_data.get("default_mode"),
    )

    log_data = data.get("logging", {})
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=log_data.get("verbose"),
        file=log_data.get("file"),
    )

    metrics_data = data.get("metrics", {})
    metrics = MetricsConfig(
        window_hours=int(metrics_data.get("window_hours", MetricsConfig.window_hours)),
    )

    extra = {k: v for k, v in data.items() if k not in KNOWN_SECTIONS}

    return Config(
        agent=agent,
        retry=retry,
        session=session,
        logging=logging_config,
        metrics=metrics,
        extra=extra,
    )


def load_config(session_root: str | None = None, reload: bool = False) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables
    2. Project config ($session_root/.cursor-bridge/config.yaml)
    3. User config
    4. System config

    Args:
        session_root: Project directory for project-level config.
        reload: Force reload even if cached.

    Returns:
        Merged Config object.
    """
    global _cached_config

    if _cached_config is not None and not reload and session_root is None:
        return _cached_config

    configs: list[dict[str, Any]] = []

    for path in get_config_paths(session_root):
        config_data = load_yaml_file(path)
        if config_data:
            _log.debug("Loaded config from %s", path)
            configs.append(config_data)

    env_config = env_overrides()
    if env_config:
        configs.append(env_config)

    config = dict_to_config(merge_configs(*configs))

    # Cache only global config (no session_root)
    if session_root is None:
        _cached_config = config

    return config


def get_config() -> Config:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Reset cached config.

    Useful for testing or forcing a reload.
    """
    global _cached_config
    _cached_config = None
