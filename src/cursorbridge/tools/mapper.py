"""Map tool-call stream events onto the tool lifecycle.

A ``started`` event becomes two updates (pending, then in_progress) and a
``completed`` event becomes one terminal update (completed, or failed when the
embedded result reports an error). The mapper remembers each call's arguments
and start time so the terminal update can be described even when the
completion record omits them.
"""

from __future__ import annotations

import json
import time
import uuid
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from cursorbridge.logging import get_logger
from cursorbridge.streaming.events import ToolCallEvent
from cursorbridge.tools.models import (
    DiffContent,
    TextContent,
    ToolContent,
    ToolLocation,
    ToolStatus,
    ToolUpdate,
)
from cursorbridge.tools.titles import PATH_KEYS, describe_tool, first_str, lookup_spec

log = get_logger("tools")

# Keys whose presence in a result means the tool did not succeed
ERROR_KEYS = ("error", "failure", "rejected", "permissionDenied")

NEW_TEXT_KEYS = ("newText", "new_text", "fileText", "file_text", "contents", "content", "newString", "new_string")
OLD_TEXT_KEYS = ("oldText", "old_text", "oldString", "old_string")
LINE_KEYS = ("line", "lineNumber", "line_number", "startLine")

NO_OUTPUT = "(no output)"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True)
class _CallState:
    tool_name: str
    args: dict[str, Any]
    start_time: int
    status: ToolStatus


# -----------------------------------------------------------------------------
# Result inspection
# -----------------------------------------------------------------------------


def unwrap_result(result: Any) -> tuple[Any, bool]:
    """Split a tool result into its payload and an error flag.

    cursor-agent wraps results as ``{"success": {...}}`` or
    ``{"error": {...}}``; bare payloads are accepted as-is.
    """
    if not isinstance(result, dict):
        return result, False

    for key in ERROR_KEYS:
        if key in result and result[key] not in (None, False):
            return result[key], True

    if result.get("is_error") is True or result.get("isError") is True:
        return result, True

    if "success" in result:
        success = result["success"]
        if success is False:
            return result, True
        if isinstance(success, dict):
            return success, False

    return result, False


def _error_message(payload: Any) -> str | None:
    if isinstance(payload, str):
        return payload or None
    if isinstance(payload, dict):
        for key in ("message", "error", "errorMessage", "reason", "stderr"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def _coerce_line(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def _location_from(item: Any) -> ToolLocation | None:
    if isinstance(item, str):
        return ToolLocation(path=item) if item else None
    if not isinstance(item, dict):
        return None
    path = first_str(item, PATH_KEYS)
    if path is None:
        return None
    line = next((_coerce_line(item.get(k)) for k in LINE_KEYS if item.get(k) is not None), None)
    return ToolLocation(path=path, line=line)


def _iter_locations(source: dict[str, Any], keys: Iterable[str]) -> Iterable[ToolLocation]:
    for key in keys:
        value = source.get(key)
        if value is None:
            continue
        items = value if isinstance(value, list) else [value]
        for item in items:
            location = _location_from(item)
            if location is not None:
                yield location


def extract_locations(
    args: dict[str, Any] | None,
    result: Any = None,
) -> list[ToolLocation] | None:
    """Collect file locations from invocation args and result payload.

    Args contribute ``path``-like keys and ``paths``; the result contributes
    ``matches``, ``files`` and ``path``. Duplicates are dropped keeping the
    first occurrence. Returns None when nothing was found.
    """
    found: list[ToolLocation] = []
    seen: set[tuple[str, int | None]] = set()

    def add(locations: Iterable[ToolLocation]) -> None:
        for location in locations:
            key = (location.path, location.line)
            if key not in seen:
                seen.add(key)
                found.append(location)

    if args:
        path = first_str(args, PATH_KEYS)
        if path:
            add([ToolLocation(path=path)])
        add(_iter_locations(args, ("paths",)))

    if isinstance(result, dict):
        add(_iter_locations(result, ("matches", "files", "path")))

    return found or None


def _diff_content(
    args: dict[str, Any],
    payload: Any,
    prior_old_text: str | None,
) -> DiffContent | None:
    result = payload if isinstance(payload, dict) else {}
    path = first_str(result, PATH_KEYS) or first_str(args, PATH_KEYS) or ""

    new_text = first_str(result, NEW_TEXT_KEYS)
    if new_text is None:
        new_text = _first_text(args, NEW_TEXT_KEYS)
    if new_text is None:
        return None

    old_text = _first_text(result, OLD_TEXT_KEYS)
    if old_text is None:
        old_text = prior_old_text
    return DiffContent(path=path, new_text=new_text, old_text=old_text)


def _first_text(source: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    # Unlike first_str, an empty string is a valid file body here
    for key in keys:
        value = source.get(key)
        if isinstance(value, str):
            return value
    return None


def _execute_content(payload: Any) -> TextContent:
    if isinstance(payload, str):
        return TextContent(text=payload or NO_OUTPUT)

    result = payload if isinstance(payload, dict) else {}
    exit_code = result.get("exitCode", result.get("exit_code"))

    parts = []
    for key in ("stdout", "output", "stderr"):
        value = result.get(key)
        if isinstance(value, str) and value.strip():
            parts.append(value.rstrip("\n"))
    output = "\n".join(parts) or NO_OUTPUT

    if exit_code is None:
        return TextContent(text=output)
    return TextContent(text=f"Exit code: {exit_code}\n{output}")


def serialize_input(args: dict[str, Any]) -> str:
    """JSON text of the invocation arguments (used by OpenAI tool_calls)."""
    return json.dumps(args, ensure_ascii=False, default=str)


# -----------------------------------------------------------------------------
# Mapper
# -----------------------------------------------------------------------------


class ToolMapper:
    """Turns ToolCallEvents into ordered ToolUpdates for one turn.

    Not thread-safe; a turn processes its lines one at a time.
    """

    def __init__(self, clock: Callable[[], int] = _now_ms) -> None:
        self._clock = clock
        self._calls: dict[str, _CallState] = {}
        # Calls that arrived without an id, oldest first, per tool name
        self._anonymous: dict[str, deque[str]] = {}

    def map(self, event: ToolCallEvent, session_id: str) -> list[ToolUpdate]:
        """Translate one tool-call event; returns [] for events to ignore."""
        if event.started:
            return self._on_started(event, session_id)
        if event.completed:
            return self._on_completed(event, session_id)
        log.debug("Ignoring tool_call subtype %r for %s", event.subtype, event.tool_name)
        return []

    def open_calls(self) -> list[str]:
        """Ids of calls that have not reached a terminal status."""
        return [
            call_id
            for call_id, state in self._calls.items()
            if state.status not in ("completed", "failed")
        ]

    def close_open_calls(self, session_id: str, reason: str) -> list[ToolUpdate]:
        """Fail every unfinished call, e.g. when the turn is cancelled."""
        updates = []
        now = self._clock()
        for call_id in self.open_calls():
            state = self._calls[call_id]
            state.status = "failed"
            title, kind = describe_tool(state.tool_name, state.args)
            updates.append(
                ToolUpdate(
                    session_id=session_id,
                    tool_call_id=call_id,
                    tool_name=state.tool_name,
                    title=title,
                    kind=kind,
                    status="failed",
                    content=[TextContent(text=reason)],
                    start_time=state.start_time,
                    end_time=now,
                )
            )
        self._anonymous.clear()
        return updates

    def _resolve_started_id(self, event: ToolCallEvent) -> str:
        if event.call_id:
            return event.call_id
        call_id = f"{event.tool_name}-{uuid.uuid4().hex[:8]}"
        self._anonymous.setdefault(event.tool_name, deque()).append(call_id)
        return call_id

    def _resolve_completed_id(self, event: ToolCallEvent) -> str:
        if event.call_id:
            return event.call_id
        pending = self._anonymous.get(event.tool_name)
        if pending:
            return pending.popleft()
        return f"{event.tool_name}-{uuid.uuid4().hex[:8]}"

    def _on_started(self, event: ToolCallEvent, session_id: str) -> list[ToolUpdate]:
        call_id = self._resolve_started_id(event)
        if call_id in self._calls:
            log.debug("Duplicate start for tool call %s ignored", call_id)
            return []

        start_time = self._clock()
        args = dict(event.args)
        title, kind = describe_tool(event.tool_name, args)
        locations = extract_locations(args)
        self._calls[call_id] = _CallState(
            tool_name=event.tool_name,
            args=args,
            start_time=start_time,
            status="in_progress",
        )

        def build(status: ToolStatus) -> ToolUpdate:
            return ToolUpdate(
                session_id=session_id,
                tool_call_id=call_id,
                tool_name=event.tool_name,
                title=title,
                kind=kind,
                status=status,
                locations=list(locations) if locations else None,
                raw_input=args,
                start_time=start_time,
                extra={"arguments": serialize_input(args)},
            )

        log.debug("Tool call %s started: %s", call_id, title)
        return [build("pending"), build("in_progress")]

    def _on_completed(self, event: ToolCallEvent, session_id: str) -> list[ToolUpdate]:
        call_id = self._resolve_completed_id(event)
        state = self._calls.get(call_id)
        if state is not None and state.status in ("completed", "failed"):
            log.debug("Tool call %s already finished; dropping completion", call_id)
            return []

        end_time = self._clock()
        if state is None:
            state = _CallState(
                tool_name=event.tool_name,
                args=dict(event.args),
                start_time=end_time,
                status="in_progress",
            )
            self._calls[call_id] = state

        args = dict(event.args) or state.args
        payload, errored = unwrap_result(event.result)
        status: ToolStatus = "failed" if errored else "completed"
        state.status = status

        title, kind = describe_tool(event.tool_name, args)
        spec = lookup_spec(event.tool_name)

        content: list[ToolContent] | None = None
        if errored:
            message = _error_message(payload)
            if kind == "execute":
                content = [_execute_content(payload)]
            elif message:
                content = [TextContent(text=message)]
        elif spec is not None and spec.writes_files:
            diff = _diff_content(args, payload, _first_text(state.args, OLD_TEXT_KEYS))
            if diff is not None:
                content = [diff]
        elif kind == "execute":
            content = [_execute_content(payload)]

        locations = extract_locations(args, payload)

        log.debug("Tool call %s %s: %s", call_id, status, title)
        return [
            ToolUpdate(
                session_id=session_id,
                tool_call_id=call_id,
                tool_name=event.tool_name,
                title=title,
                kind=kind,
                status=status,
                locations=locations,
                content=content,
                raw_input=args,
                raw_output=event.result,
                start_time=state.start_time,
                end_time=end_time,
            )
        ]
