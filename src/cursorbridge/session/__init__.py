"""Session state, persistence and shared turn types."""

from cursorbridge.session.protocols import (
    SessionMode,
    StopReason,
    TextDelta,
    ThinkingDelta,
    TurnResult,
    TurnUpdate,
)
from cursorbridge.session.session_manager import Session, SessionManager
from cursorbridge.session.storage import (
    FileSessionStorage,
    MemorySessionStorage,
    SessionStorage,
    sanitize_session_id,
)

__all__ = [
    "SessionMode",
    "StopReason",
    "TextDelta",
    "ThinkingDelta",
    "TurnResult",
    "TurnUpdate",
    "Session",
    "SessionManager",
    "FileSessionStorage",
    "MemorySessionStorage",
    "SessionStorage",
    "sanitize_session_id",
]
