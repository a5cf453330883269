"""Conversion of turn updates into ACP session/update payloads."""

from __future__ import annotations

from typing import Any

import acp
from acp import helpers
from acp.schema import ToolCallLocation

from cursorbridge.session.protocols import TextDelta, ThinkingDelta, TurnUpdate
from cursorbridge.tools.models import DiffContent, ToolContent, ToolLocation, ToolUpdate


def _locations(locations: list[ToolLocation] | None) -> list[ToolCallLocation] | None:
    if not locations:
        return None
    return [ToolCallLocation(path=loc.path, line=loc.line) for loc in locations]


def _content(content: list[ToolContent] | None) -> list[Any] | None:
    if not content:
        return None
    blocks: list[Any] = []
    for item in content:
        if isinstance(item, DiffContent):
            blocks.append(acp.tool_diff_content(item.path, item.new_text, item.old_text))
        else:
            blocks.append(helpers.tool_content(helpers.text_block(item.text)))
    return blocks


def tool_update_to_acp(update: ToolUpdate) -> Any:
    """The first (pending) update starts the call; later ones update it."""
    if update.status == "pending":
        return acp.start_tool_call(
            update.tool_call_id,
            update.title,
            kind=update.kind,
            status="pending",
            content=_content(update.content),
            locations=_locations(update.locations),
            raw_input=update.raw_input,
        )

    return acp.update_tool_call(
        update.tool_call_id,
        title=update.title,
        kind=update.kind,
        status=update.status,
        content=_content(update.content),
        locations=_locations(update.locations),
        raw_output=update.raw_output if update.is_terminal else None,
    )


def to_acp_update(update: TurnUpdate) -> Any:
    """Map a runner update to an ACP session update."""
    if isinstance(update, TextDelta):
        return acp.update_agent_message_text(update.text)
    if isinstance(update, ThinkingDelta):
        return acp.update_agent_thought_text(update.text)
    if isinstance(update, ToolUpdate):
        return tool_update_to_acp(update)
    raise TypeError(f"Unsupported update: {type(update).__name__}")
