"""Table-driven tool kinds and human-readable titles.

cursor-agent names tools by the key under ``tool_call`` (``readToolCall`` ->
``read``). Other agents use names such as ``read_file`` or ``Bash``, so
lookups go through an alias table first and a substring match second.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from cursorbridge.tools.models import ToolKind

PATH_KEYS = ("path", "file_path", "filePath", "target_file", "targetFile", "file")
PATTERN_KEYS = ("pattern", "query", "regex", "globPattern", "glob_pattern")
COMMAND_KEYS = ("command", "cmd", "commandLine")
DIRECTORY_KEYS = ("directory", "dir", "targetDirectory", "target_directory", "cwd")


def first_str(args: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    """First non-empty string value among ``keys``."""
    for key in keys:
        value = args.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def command_text(args: dict[str, Any]) -> str | None:
    for key in COMMAND_KEYS:
        value = args.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, list) and value:
            return " ".join(str(part) for part in value)
    return None


def _read_title(args: dict[str, Any]) -> str:
    path = first_str(args, PATH_KEYS)
    return f"Read {path}" if path else "Read File"


def _write_title(args: dict[str, Any]) -> str:
    path = first_str(args, PATH_KEYS)
    return f"Write {path}" if path else "Write File"


def _edit_title(args: dict[str, Any]) -> str:
    path = first_str(args, PATH_KEYS)
    return f"Edit {path}" if path else "Edit File"


def _delete_title(args: dict[str, Any]) -> str:
    path = first_str(args, PATH_KEYS)
    return f"Delete {path}" if path else "Delete File"


def _grep_title(args: dict[str, Any]) -> str:
    pattern = first_str(args, PATTERN_KEYS)
    path = first_str(args, PATH_KEYS) or first_str(args, DIRECTORY_KEYS)
    if pattern and path:
        return f"Search {path} for {pattern}"
    if pattern:
        return f"Search for {pattern}"
    return "Search"


def _glob_title(args: dict[str, Any]) -> str:
    pattern = first_str(args, PATTERN_KEYS)
    directory = first_str(args, DIRECTORY_KEYS) or first_str(args, PATH_KEYS)
    if pattern and directory:
        return f"Find {pattern} in {directory}"
    if pattern:
        return f"Find {pattern}"
    return "Find Files"


def _ls_title(args: dict[str, Any]) -> str:
    path = first_str(args, PATH_KEYS) or first_str(args, DIRECTORY_KEYS)
    return f"List {path}" if path else "List Directory"


def _shell_title(args: dict[str, Any]) -> str:
    command = command_text(args)
    return f"`{command}`" if command else "Terminal"


def _todo_title(args: dict[str, Any]) -> str:
    return "Update TODOs"


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """How one family of tools is presented."""

    family: str
    kind: ToolKind
    title: Callable[[dict[str, Any]], str]
    writes_files: bool = False


TOOL_SPECS: dict[str, ToolSpec] = {
    "read": ToolSpec("read", "read", _read_title),
    "write": ToolSpec("write", "edit", _write_title, writes_files=True),
    "edit": ToolSpec("edit", "edit", _edit_title, writes_files=True),
    "delete": ToolSpec("delete", "edit", _delete_title),
    "grep": ToolSpec("grep", "search", _grep_title),
    "glob": ToolSpec("glob", "search", _glob_title),
    "ls": ToolSpec("ls", "search", _ls_title),
    "shell": ToolSpec("shell", "execute", _shell_title),
    "todo": ToolSpec("todo", "other", _todo_title),
}

ALIASES: dict[str, str] = {
    "read": "read",
    "readfile": "read",
    "read_file": "read",
    "view": "read",
    "write": "write",
    "writefile": "write",
    "write_file": "write",
    "create": "write",
    "edit": "edit",
    "editfile": "edit",
    "edit_file": "edit",
    "multiedit": "edit",
    "strreplace": "edit",
    "str_replace": "edit",
    "search_replace": "edit",
    "delete": "delete",
    "deletefile": "delete",
    "delete_file": "delete",
    "grep": "grep",
    "search": "grep",
    "codebase_search": "grep",
    "glob": "glob",
    "globfiles": "glob",
    "file_search": "glob",
    "find": "glob",
    "ls": "ls",
    "list": "ls",
    "listdir": "ls",
    "list_dir": "ls",
    "shell": "shell",
    "bash": "shell",
    "terminal": "shell",
    "command": "shell",
    "run_terminal_cmd": "shell",
    "todo": "todo",
    "updatetodos": "todo",
    "todo_write": "todo",
}

# Checked in order when no alias matches
_SUBSTRINGS: tuple[tuple[str, str], ...] = (
    ("shell", "shell"),
    ("bash", "shell"),
    ("terminal", "shell"),
    ("grep", "grep"),
    ("search", "grep"),
    ("glob", "glob"),
    ("read", "read"),
    ("write", "write"),
    ("edit", "edit"),
    ("replace", "edit"),
    ("delete", "delete"),
    ("todo", "todo"),
)


def lookup_spec(tool_name: str) -> ToolSpec | None:
    """Find the presentation spec for a tool name, or None for unknown tools."""
    name = tool_name.strip().lower()
    family = ALIASES.get(name)
    if family is None:
        family = next((fam for needle, fam in _SUBSTRINGS if needle in name), None)
    return TOOL_SPECS.get(family) if family else None


def describe_tool(tool_name: str, args: dict[str, Any]) -> tuple[str, ToolKind]:
    """Title and kind for a tool invocation."""
    spec = lookup_spec(tool_name)
    if spec is None:
        return tool_name or "Tool", "other"
    return spec.title(args), spec.kind
