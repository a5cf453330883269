"""Cursor ACP bridge: cursor-agent stream-json to ACP and OpenAI streaming."""

__version__ = "0.1.0"

# Public API
from cursorbridge.config import Config, get_config, load_config
from cursorbridge.core import (
    AgentProcessError,
    BridgeError,
    MetricsTracker,
    RetryEngine,
    RetryExhaustedError,
    SessionNotFoundError,
)
from cursorbridge.process import TurnRunner, TurnState
from cursorbridge.session import (
    FileSessionStorage,
    MemorySessionStorage,
    Session,
    SessionManager,
    SessionMode,
    StopReason,
    TextDelta,
    ThinkingDelta,
    TurnResult,
)
from cursorbridge.streaming import DeltaTracker, LineBuffer, classify_line
from cursorbridge.tools import ToolMapper, ToolUpdate

__all__ = [
    # Config
    "Config",
    "load_config",
    "get_config",
    # Errors
    "AgentProcessError",
    "BridgeError",
    "RetryExhaustedError",
    "SessionNotFoundError",
    # Orchestration
    "MetricsTracker",
    "RetryEngine",
    "TurnRunner",
    "TurnState",
    # Session
    "FileSessionStorage",
    "MemorySessionStorage",
    "Session",
    "SessionManager",
    "SessionMode",
    "StopReason",
    "TextDelta",
    "ThinkingDelta",
    "TurnResult",
    # Stream
    "DeltaTracker",
    "LineBuffer",
    "ToolMapper",
    "ToolUpdate",
    "classify_line",
]
