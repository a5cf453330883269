"""Tool-call lifecycle mapping."""

from cursorbridge.tools.mapper import ToolMapper, extract_locations, unwrap_result
from cursorbridge.tools.models import (
    DiffContent,
    TextContent,
    ToolContent,
    ToolKind,
    ToolLocation,
    ToolStatus,
    ToolUpdate,
)
from cursorbridge.tools.titles import describe_tool, lookup_spec

__all__ = [
    "ToolMapper",
    "extract_locations",
    "unwrap_result",
    "DiffContent",
    "TextContent",
    "ToolContent",
    "ToolKind",
    "ToolLocation",
    "ToolStatus",
    "ToolUpdate",
    "describe_tool",
    "lookup_spec",
]
