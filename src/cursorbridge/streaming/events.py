"""Typed events parsed from cursor-agent stream-json records.

Each stdout line is one JSON object. ``classify_line`` turns it into exactly
one variant of ``StreamEvent`` or ``None`` when the line is not usable JSON.
Fields are probed in a fixed order:

1. ``type == "thinking"``                       -> ThinkingEvent (incremental)
2. ``type == "assistant"`` with text parts      -> AssistantTextEvent
3. ``type == "assistant"`` with thinking parts  -> ThinkingEvent (cumulative)
4. ``type == "tool_call"``                      -> ToolCallEvent
5. ``type == "result"`` with known subtype      -> ResultEvent
6. anything else                                -> UnknownEvent

Example records::

    {"type":"assistant","message":{"role":"assistant",
        "content":[{"type":"text","text":"Hello"}]},"session_id":"abc"}
    {"type":"thinking","subtype":"delta","text":"Let me look"}
    {"type":"tool_call","subtype":"started","call_id":"c1",
        "tool_call":{"readToolCall":{"args":{"path":"src/app.py"}}}}
    {"type":"result","subtype":"success","result":"Done","session_id":"abc"}
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any, Literal, Union

from cursorbridge.logging import get_logger

log = get_logger("stream")

TOOL_CALL_SUFFIX = "ToolCall"

ResultDisposition = Literal["success", "cancelled", "error", "failure", "refused"]
RESULT_DISPOSITIONS: frozenset[str] = frozenset(
    {"success", "cancelled", "error", "failure", "refused"}
)

_PREVIEW_LIMIT = 120


@dataclass(frozen=True, slots=True)
class AssistantTextEvent:
    """Assistant message text; cumulative within a turn."""

    text: str
    session_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass(frozen=True, slots=True)
class ThinkingEvent:
    """Thinking trace.

    ``is_delta`` is True for standalone ``thinking``/``delta`` records, whose
    text is only the new fragment. Thinking parts inside assistant messages
    carry the full trace so far. A ``completed`` record has empty text.
    """

    text: str
    subtype: str | None = None
    is_delta: bool = False
    session_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def completed(self) -> bool:
        return self.subtype == "completed"


@dataclass(frozen=True, slots=True)
class ToolCallEvent:
    """A tool invocation reported by the agent (``started`` or ``completed``)."""

    subtype: str
    tool_name: str
    tool_key: str
    call_id: str | None = None
    args: dict[str, Any] = field(default_factory=dict)
    result: Any = None
    session_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def started(self) -> bool:
        return self.subtype == "started"

    @property
    def completed(self) -> bool:
        return self.subtype == "completed"


@dataclass(frozen=True, slots=True)
class ResultEvent:
    """Terminal record for a turn."""

    disposition: ResultDisposition
    is_error: bool = False
    text: str | None = None
    duration_ms: int | None = None
    usage: dict[str, Any] | None = None
    session_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def succeeded(self) -> bool:
        return self.disposition == "success" and not self.is_error


@dataclass(frozen=True, slots=True)
class UnknownEvent:
    """Any record that is valid JSON but matches no known shape."""

    type: str | None = None
    subtype: str | None = None
    session_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


StreamEvent = Union[AssistantTextEvent, ThinkingEvent, ToolCallEvent, ResultEvent, UnknownEvent]


# -----------------------------------------------------------------------------
# Field extraction
# -----------------------------------------------------------------------------


def _content_parts(event: dict[str, Any]) -> list[dict[str, Any]]:
    message = event.get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    if not isinstance(content, list):
        return []
    return [part for part in content if isinstance(part, dict)]


def extract_text(event: dict[str, Any]) -> str:
    """Concatenate every text part of an assistant message, in order."""
    return "".join(
        part.get("text") or ""
        for part in _content_parts(event)
        if part.get("type") == "text"
    )


def extract_thinking(event: dict[str, Any]) -> str:
    """Thinking text from a ``thinking`` record or assistant thinking parts."""
    if event.get("type") == "thinking":
        if event.get("subtype") == "completed":
            return ""
        text = event.get("text")
        return text if isinstance(text, str) else ""
    return "".join(
        part.get("thinking") or part.get("text") or ""
        for part in _content_parts(event)
        if part.get("type") == "thinking"
    )


def infer_tool_name(event: dict[str, Any]) -> str | None:
    """Tool name from the single key under ``tool_call``.

    ``readToolCall`` becomes ``read``; keys without the suffix are kept.
    """
    key = _tool_key(event)
    if key is None:
        return None
    if key.endswith(TOOL_CALL_SUFFIX) and len(key) > len(TOOL_CALL_SUFFIX):
        return key[: -len(TOOL_CALL_SUFFIX)]
    return key


def _tool_key(event: dict[str, Any]) -> str | None:
    payload = event.get("tool_call")
    if not isinstance(payload, dict) or not payload:
        return None
    return next(iter(payload))


def extract_resume_id(event: dict[str, Any]) -> str | None:
    """The agent's conversation id, if the record carries one."""
    for key in ("session_id", "sessionId"):
        value = event.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def is_assistant_text(event: dict[str, Any]) -> bool:
    return event.get("type") == "assistant" and any(
        part.get("type") == "text" for part in _content_parts(event)
    )


def is_thinking(event: dict[str, Any]) -> bool:
    if event.get("type") == "thinking":
        return event.get("subtype") in (None, "delta", "completed")
    if event.get("type") != "assistant" or is_assistant_text(event):
        return False
    return any(part.get("type") == "thinking" for part in _content_parts(event))


def is_tool_call(event: dict[str, Any]) -> bool:
    return event.get("type") == "tool_call" and _tool_key(event) is not None


def is_result(event: dict[str, Any]) -> bool:
    return event.get("type") == "result" and event.get("subtype") in RESULT_DISPOSITIONS


# -----------------------------------------------------------------------------
# Classification
# -----------------------------------------------------------------------------


def classify(event: dict[str, Any]) -> StreamEvent:
    """Build the typed event for an already-decoded record."""
    session_id = extract_resume_id(event)
    event_type = event.get("type")
    subtype = event.get("subtype")

    if event_type == "thinking" and is_thinking(event):
        return ThinkingEvent(
            text=extract_thinking(event),
            subtype=subtype,
            is_delta=subtype != "completed",
            session_id=session_id,
            raw=event,
        )

    if is_assistant_text(event):
        return AssistantTextEvent(text=extract_text(event), session_id=session_id, raw=event)

    if is_thinking(event):
        return ThinkingEvent(
            text=extract_thinking(event),
            subtype=subtype,
            is_delta=False,
            session_id=session_id,
            raw=event,
        )

    if is_tool_call(event):
        key = _tool_key(event) or ""
        body = event["tool_call"].get(key)
        body = body if isinstance(body, dict) else {}
        args = body.get("args")
        call_id = event.get("call_id") or event.get("tool_call_id") or event.get("id")
        return ToolCallEvent(
            subtype=subtype or "started",
            tool_name=infer_tool_name(event) or key,
            tool_key=key,
            call_id=str(call_id) if call_id is not None else None,
            args=args if isinstance(args, dict) else {},
            result=body.get("result"),
            session_id=session_id,
            raw=event,
        )

    if is_result(event):
        duration = event.get("duration_ms")
        usage = event.get("usage")
        text = event.get("result")
        return ResultEvent(
            disposition=subtype,
            is_error=bool(event.get("is_error", False)),
            text=text if isinstance(text, str) else None,
            duration_ms=duration if isinstance(duration, int) else None,
            usage=usage if isinstance(usage, dict) else None,
            session_id=session_id,
            raw=event,
        )

    return UnknownEvent(
        type=event_type if isinstance(event_type, str) else None,
        subtype=subtype if isinstance(subtype, str) else None,
        session_id=session_id,
        raw=event,
    )


def classify_line(line: str) -> StreamEvent | None:
    """Parse and classify one stdout line.

    Never raises. Blank lines, invalid JSON and non-object JSON return None;
    the latter two are logged at debug level.
    """
    stripped = line.strip()
    if not stripped:
        return None

    try:
        data = json.loads(stripped)
    except json.JSONDecodeError as e:
        log.debug("Dropping unparseable line (%s): %s", e, _preview(stripped))
        return None

    if not isinstance(data, dict):
        log.debug("Dropping non-object record: %s", _preview(stripped))
        return None

    return classify(data)


def iter_events(lines: Iterable[str]) -> Iterator[StreamEvent]:
    """Classify lines, skipping the ones that cannot be parsed."""
    for line in lines:
        event = classify_line(line)
        if event is not None:
            yield event


def _preview(text: str) -> str:
    if len(text) <= _PREVIEW_LIMIT:
        return text
    return text[:_PREVIEW_LIMIT] + "..."
