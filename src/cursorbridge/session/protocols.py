"""Session-layer types shared by the turn runner and the transports."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from cursorbridge.tools.models import ToolUpdate


class SessionMode(Enum):
    """How the agent is allowed to act in a session."""

    DEFAULT = "default"
    PLAN = "plan"


class StopReason(Enum):
    """Why a turn ended."""

    END_TURN = "end_turn"
    CANCELLED = "cancelled"
    REFUSAL = "refusal"
    ERROR = "error"

    @property
    def succeeded(self) -> bool:
        return self is StopReason.END_TURN


# Result-event disposition -> stop reason
DISPOSITION_STOP_REASONS: dict[str, StopReason] = {
    "success": StopReason.END_TURN,
    "cancelled": StopReason.CANCELLED,
    "error": StopReason.ERROR,
    "failure": StopReason.ERROR,
    "refused": StopReason.REFUSAL,
}


@dataclass(frozen=True, slots=True)
class TextDelta:
    """New assistant text for the client."""

    session_id: str
    text: str


@dataclass(frozen=True, slots=True)
class ThinkingDelta:
    """New thinking-trace text for the client."""

    session_id: str
    text: str


TurnUpdate = Union[TextDelta, ThinkingDelta, "ToolUpdate"]


@dataclass
class TurnResult:
    """Outcome of one prompt turn."""

    session_id: str
    stop_reason: StopReason
    text: str = ""
    resume_id: str | None = None
    error: str | None = None
    exit_code: int | None = None
    duration_ms: int = 0
    usage: dict[str, Any] | None = None
    tool_calls: int = 0
    extra: dict[str, Any] = field(default_factory=dict)
