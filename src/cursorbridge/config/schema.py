"""Configuration schema dataclasses for the Cursor ACP bridge.

Defines the structure of configuration at all levels (system, user, project).
All fields have defaults so partial configs merge together cleanly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class AgentConfig:
    """Settings for the cursor-agent subprocess."""

    executable: str = "cursor-agent"
    model: str = "auto"
    extra_args: list[str] = field(default_factory=list)
    kill_grace: float = 1.0  # Seconds between SIGTERM and SIGKILL on cancel
    stream_close_grace: float = 0.25  # Seconds to wait for exit after stdout EOF
    result_grace: float = 2.0  # Seconds to keep draining after a result event


@dataclass
class RetryConfig:
    """Bounds for RetryEngine."""

    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000


@dataclass
class SessionModeConfig:
    """A session mode definition."""

    id: str
    name: str
    description: str = ""


@dataclass
class SessionConfig:
    """Session defaults configuration."""

    retention_days: int = 30
    storage_dir: str | None = None  # Default: ~/.cursor-bridge/sessions
    modes: list[SessionModeConfig] = field(default_factory=list)
    default_mode: str | None = None  # Default: "default"


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0..4, overrides level
    file: str | None = None  # Log file path


@dataclass
class MetricsConfig:
    """Metrics rollup configuration."""

    window_hours: int = 24


@dataclass
class Config:
    """Root configuration object.

    Aggregates all configuration sections. All fields use default factories
    to ensure partial configs work correctly with deep merging.
    """

    agent: AgentConfig = field(default_factory=AgentConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)

    # Unknown top-level sections are preserved here
    extra: dict[str, Any] = field(default_factory=dict)
