"""Stream-json parsing and outward formatting."""

from cursorbridge.streaming.buffer import LineBuffer
from cursorbridge.streaming.delta import DeltaTracker
from cursorbridge.streaming.events import (
    AssistantTextEvent,
    ResultEvent,
    StreamEvent,
    ThinkingEvent,
    ToolCallEvent,
    UnknownEvent,
    classify,
    classify_line,
    extract_resume_id,
    extract_text,
    extract_thinking,
    infer_tool_name,
    is_assistant_text,
    is_result,
    is_thinking,
    is_tool_call,
    iter_events,
)

__all__ = [
    "LineBuffer",
    "DeltaTracker",
    "AssistantTextEvent",
    "ResultEvent",
    "StreamEvent",
    "ThinkingEvent",
    "ToolCallEvent",
    "UnknownEvent",
    "classify",
    "classify_line",
    "extract_resume_id",
    "extract_text",
    "extract_thinking",
    "infer_tool_name",
    "is_assistant_text",
    "is_result",
    "is_thinking",
    "is_tool_call",
    "iter_events",
]
