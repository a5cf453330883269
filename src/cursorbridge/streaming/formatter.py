"""OpenAI-compatible chat completion formatting.

Turn updates become ``chat.completion.chunk`` objects, serialised as
server-sent events:

    data: {"id": "chatcmpl-...", "object": "chat.completion.chunk", ...}\\n\\n
    ...
    data: [DONE]\\n\\n

Tool calls are reported for display only; the agent subprocess already ran
them. The first chunk for a call carries its id and function name, the
in-progress chunk carries the JSON arguments, and terminal updates emit
nothing.
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from cursorbridge.session.protocols import StopReason, TextDelta, ThinkingDelta, TurnUpdate
from cursorbridge.tools.mapper import serialize_input
from cursorbridge.tools.models import ToolUpdate

DONE = "data: [DONE]\n\n"

FINISH_REASONS: dict[StopReason, str] = {
    StopReason.END_TURN: "stop",
    StopReason.CANCELLED: "stop",
    StopReason.REFUSAL: "content_filter",
    StopReason.ERROR: "stop",
}


def new_completion_id() -> str:
    return f"chatcmpl-{uuid.uuid4().hex[:24]}"


def to_sse(chunk: dict[str, Any]) -> str:
    """Serialise one chunk as an SSE ``data:`` frame."""
    return f"data: {json.dumps(chunk, ensure_ascii=False)}\n\n"


def finish_reason_for(stop_reason: StopReason) -> str:
    return FINISH_REASONS.get(stop_reason, "stop")


class OpenAIStreamFormatter:
    """Builds streaming chunks for one completion.

    Keeps the ``tool_calls`` index assigned to each tool-call id so later
    chunks for the same call line up on the client.
    """

    def __init__(
        self,
        model: str,
        completion_id: str | None = None,
        created: int | None = None,
    ) -> None:
        self.model = model
        self.completion_id = completion_id or new_completion_id()
        self.created = created or int(time.time())
        self._tool_indexes: dict[str, int] = {}
        self._role_sent = False

    def _chunk(self, delta: dict[str, Any], finish_reason: str | None = None) -> dict[str, Any]:
        if not self._role_sent:
            delta = {"role": "assistant", **delta}
            self._role_sent = True
        return {
            "id": self.completion_id,
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": self.model,
            "choices": [
                {
                    "index": 0,
                    "delta": delta,
                    "finish_reason": finish_reason,
                }
            ],
        }

    def text_chunk(self, text: str) -> dict[str, Any]:
        return self._chunk({"content": text})

    def thinking_chunk(self, text: str) -> dict[str, Any]:
        return self._chunk({"reasoning_content": text})

    def tool_call_chunk(self, update: ToolUpdate) -> dict[str, Any] | None:
        """Chunk for a tool lifecycle update, or None when there is nothing to add."""
        index = self._tool_indexes.get(update.tool_call_id)

        if index is None:
            if update.is_terminal:
                return None
            index = len(self._tool_indexes)
            self._tool_indexes[update.tool_call_id] = index
            return self._chunk(
                {
                    "tool_calls": [
                        {
                            "index": index,
                            "id": update.tool_call_id,
                            "type": "function",
                            "function": {"name": update.tool_name, "arguments": ""},
                        }
                    ]
                }
            )

        if update.status == "in_progress":
            arguments = update.extra.get("arguments")
            if arguments is None:
                arguments = serialize_input(update.raw_input or {})
            return self._chunk(
                {"tool_calls": [{"index": index, "function": {"arguments": arguments}}]}
            )

        return None

    def finish_chunk(
        self,
        stop_reason: StopReason,
        usage: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        chunk = self._chunk({}, finish_reason=finish_reason_for(stop_reason))
        if usage:
            chunk["usage"] = usage
        return chunk

    @staticmethod
    def error_chunk(message: str, error_type: str = "api_error", code: int = 500) -> dict[str, Any]:
        return {"error": {"message": message, "type": error_type, "code": code}}

    def format(self, update: TurnUpdate) -> dict[str, Any] | None:
        """Dispatch a turn update to the matching chunk builder."""
        if isinstance(update, TextDelta):
            return self.text_chunk(update.text) if update.text else None
        if isinstance(update, ThinkingDelta):
            return self.thinking_chunk(update.text) if update.text else None
        if isinstance(update, ToolUpdate):
            return self.tool_call_chunk(update)
        return None


def create_chat_completion_response(
    text: str,
    model: str,
    stop_reason: StopReason = StopReason.END_TURN,
    completion_id: str | None = None,
    usage: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Non-streaming ``chat.completion`` body."""
    response: dict[str, Any] = {
        "id": completion_id or new_completion_id(),
        "object": "chat.completion",
        "created": int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": text},
                "finish_reason": finish_reason_for(stop_reason),
            }
        ],
    }
    if usage:
        response["usage"] = usage
    return response


# -----------------------------------------------------------------------------
# Request parsing
# -----------------------------------------------------------------------------


@dataclass
class ParsedRequest:
    """The parts of a chat completion request the bridge uses."""

    model: str
    prompt: str
    stream: bool = False
    messages: list[dict[str, Any]] = field(default_factory=list)


def _message_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    return ""


def parse_openai_request(body: dict[str, Any], default_model: str = "auto") -> ParsedRequest:
    """Flatten chat messages into a single prompt.

    Messages are already fully assembled by the client; they are joined as
    ``ROLE: content`` blocks separated by blank lines.

    Raises:
        ValueError: If ``messages`` is missing or not a list.
    """
    messages = body.get("messages")
    if not isinstance(messages, list):
        raise ValueError("Request body must contain a 'messages' list")

    segments = []
    for message in messages:
        if not isinstance(message, dict):
            continue
        text = _message_text(message.get("content"))
        if not text:
            continue
        role = str(message.get("role", "user")).upper()
        segments.append(f"{role}: {text}")

    model = body.get("model")
    return ParsedRequest(
        model=model if isinstance(model, str) and model else default_model,
        prompt="\n\n".join(segments),
        stream=bool(body.get("stream", False)),
        messages=[m for m in messages if isinstance(m, dict)],
    )
