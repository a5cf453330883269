"""Configuration management for the Cursor ACP bridge.

Provides hierarchical YAML-based configuration with:
- System-level config (/etc/cursor-bridge/ or %PROGRAMDATA%)
- User-level config (~/.config/cursor-bridge/ or %APPDATA%)
- Project-level config ($session_root/.cursor-bridge/)
- Environment variable overrides (highest priority)

Example usage:
    from cursorbridge.config import load_config

    config = load_config(session_root="/path/to/project")
    print(config.agent.executable)
    print(config.retry.max_retries)
"""

from cursorbridge.config.loader import (
    dict_to_config,
    get_config,
    load_config,
    reset_config,
)
from cursorbridge.config.merge import deep_merge, merge_configs
from cursorbridge.config.paths import (
    get_config_paths,
    get_default_storage_dir,
    get_project_config_path,
    get_system_config_path,
    get_user_config_path,
)
from cursorbridge.config.schema import (
    AgentConfig,
    Config,
    LoggingConfig,
    MetricsConfig,
    RetryConfig,
    SessionConfig,
    SessionModeConfig,
)

__all__ = [
    "Config",
    "load_config",
    "get_config",
    "reset_config",
    "dict_to_config",
    "deep_merge",
    "merge_configs",
    "AgentConfig",
    "RetryConfig",
    "SessionConfig",
    "SessionModeConfig",
    "LoggingConfig",
    "MetricsConfig",
    "get_config_paths",
    "get_default_storage_dir",
    "get_system_config_path",
    "get_user_config_path",
    "get_project_config_path",
]
