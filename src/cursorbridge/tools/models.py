"""Tool-call lifecycle records produced by ToolMapper."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Union

ToolKind = Literal["read", "edit", "search", "execute", "other"]
ToolStatus = Literal["pending", "in_progress", "completed", "failed"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


@dataclass(frozen=True, slots=True)
class ToolLocation:
    """A file touched by a tool, optionally narrowed to one line."""

    path: str
    line: int | None = None


@dataclass(frozen=True, slots=True)
class DiffContent:
    """File change payload. ``old_text`` is None for newly created files."""

    path: str
    new_text: str
    old_text: str | None = None
    kind: Literal["diff"] = "diff"


@dataclass(frozen=True, slots=True)
class TextContent:
    text: str
    kind: Literal["text"] = "text"


ToolContent = Union[DiffContent, TextContent]


@dataclass(slots=True)
class ToolUpdate:
    """One lifecycle observation of a tool invocation.

    Updates sharing a ``tool_call_id`` arrive as pending, in_progress, then
    exactly one of completed/failed. ``locations`` and ``content`` are None
    when there is nothing to report, never an empty list.
    """

    session_id: str
    tool_call_id: str
    tool_name: str
    title: str
    kind: ToolKind
    status: ToolStatus
    locations: list[ToolLocation] | None = None
    content: list[ToolContent] | None = None
    raw_input: dict[str, Any] | None = None
    raw_output: Any = None
    start_time: int | None = None  # epoch ms
    end_time: int | None = None  # epoch ms
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def duration_ms(self) -> int | None:
        if self.start_time is None or self.end_time is None:
            return None
        return max(0, self.end_time - self.start_time)
