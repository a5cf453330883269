"""Tests for tool-call lifecycle mapping."""

from __future__ import annotations

import pytest

from cursorbridge.streaming.events import ToolCallEvent, classify
from cursorbridge.tools.mapper import ToolMapper, extract_locations, unwrap_result
from cursorbridge.tools.models import DiffContent, TextContent, ToolLocation
from cursorbridge.tools.titles import describe_tool, lookup_spec

from conftest import tool_call


def _event(*args, **kwargs) -> ToolCallEvent:
    event = classify(tool_call(*args, **kwargs))
    assert isinstance(event, ToolCallEvent)
    return event


class Clock:
    def __init__(self, start: int = 1000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def mapper(clock: Clock) -> ToolMapper:
    return ToolMapper(clock=clock)


class TestTitles:
    """Tests for table-driven titles and kinds."""

    @pytest.mark.parametrize(
        "name, args, title, kind",
        [
            ("read", {"path": "src/a.py"}, "Read src/a.py", "read"),
            ("read", {}, "Read File", "read"),
            ("write", {"path": "b.txt"}, "Write b.txt", "edit"),
            ("edit", {"file_path": "c.py"}, "Edit c.py", "edit"),
            ("grep", {"pattern": "TODO", "path": "src"}, "Search src for TODO", "search"),
            ("grep", {"pattern": "TODO"}, "Search for TODO", "search"),
            ("grep", {}, "Search", "search"),
            ("glob", {"globPattern": "*.py", "targetDirectory": "src"}, "Find *.py in src", "search"),
            ("ls", {"path": "src"}, "List src", "search"),
            ("shell", {"command": "ls -la"}, "`ls -la`", "execute"),
            ("shell", {}, "Terminal", "execute"),
            ("Bash", {"command": "pwd"}, "`pwd`", "execute"),
            ("read_file", {"path": "x"}, "Read x", "read"),
            ("mystery", {}, "mystery", "other"),
        ],
    )
    def test_describe_tool(self, name: str, args: dict, title: str, kind: str) -> None:
        assert describe_tool(name, args) == (title, kind)

    def test_lookup_by_substring(self) -> None:
        spec = lookup_spec("runShellCommand")
        assert spec is not None
        assert spec.kind == "execute"

    def test_lookup_unknown(self) -> None:
        assert lookup_spec("frobnicate") is None


class TestResultHelpers:
    """Tests for result unwrapping and location extraction."""

    def test_unwrap_success(self) -> None:
        assert unwrap_result({"success": {"content": "x"}}) == ({"content": "x"}, False)

    def test_unwrap_error(self) -> None:
        assert unwrap_result({"error": {"message": "nope"}}) == ({"message": "nope"}, True)

    def test_unwrap_is_error_flag(self) -> None:
        payload, errored = unwrap_result({"is_error": True, "message": "bad"})
        assert errored

    def test_unwrap_non_dict(self) -> None:
        assert unwrap_result("text") == ("text", False)

    def test_locations_from_args_and_result(self) -> None:
        locations = extract_locations(
            {"path": "a.py", "paths": ["b.py", "a.py"]},
            {"matches": [{"path": "c.py", "lineNumber": 4}, {"file": "a.py"}], "files": ["d.py"]},
        )
        assert locations == [
            ToolLocation("a.py"),
            ToolLocation("b.py"),
            ToolLocation("c.py", 4),
            ToolLocation("d.py"),
        ]

    def test_no_locations_is_none(self) -> None:
        assert extract_locations({}, {"other": 1}) is None


class TestToolMapper:
    """Tests for ToolMapper.map."""

    def test_read_lifecycle_three_updates(self, mapper: ToolMapper, clock: Clock) -> None:
        """started then completed yields pending, in_progress, completed."""
        started = mapper.map(_event("started", "readToolCall", args={"path": "src/app.py"}), "s1")
        clock.now = 1250
        completed = mapper.map(
            _event("completed", "readToolCall", args={"path": "src/app.py"}, result={"success": {"content": "x"}}),
            "s1",
        )
        updates = started + completed

        assert [u.status for u in updates] == ["pending", "in_progress", "completed"]
        assert {u.tool_call_id for u in updates} == {"call-1"}
        assert all(u.kind == "read" and u.title == "Read src/app.py" for u in updates)
        assert updates[0].locations == [ToolLocation("src/app.py")]
        assert updates[0].raw_input == {"path": "src/app.py"}
        assert updates[0].extra["arguments"] == '{"path": "src/app.py"}'
        assert updates[-1].raw_output == {"success": {"content": "x"}}
        assert updates[-1].duration_ms == 250

    def test_error_result_fails(self, mapper: ToolMapper) -> None:
        mapper.map(_event("started", "readToolCall", args={"path": "gone.py"}), "s1")
        (update,) = mapper.map(
            _event("completed", "readToolCall", args={"path": "gone.py"}, result={"error": {"message": "File not found"}}),
            "s1",
        )
        assert update.status == "failed"
        assert update.content == [TextContent("File not found")]

    def test_write_diff_without_old_text(self, mapper: ToolMapper) -> None:
        """A write completion with newText and no prior text yields a diff."""
        (update,) = mapper.map(
            _event("completed", "writeToolCall", args={"path": "new.txt"}, result={"newText": "abc"}),
            "s1",
        )
        assert update.status == "completed"
        assert update.content == [DiffContent(path="new.txt", new_text="abc", old_text=None)]
        assert update.content[0].kind == "diff"

    def test_write_diff_from_file_text_argument(self, mapper: ToolMapper) -> None:
        args = {"path": "f.txt", "fileText": "hello", "oldText": "bye"}
        mapper.map(_event("started", "writeToolCall", args=args), "s1")
        (update,) = mapper.map(_event("completed", "writeToolCall", args=args, result={"success": {}}), "s1")
        assert update.content == [DiffContent(path="f.txt", new_text="hello", old_text="bye")]

    def test_shell_output(self, mapper: ToolMapper) -> None:
        (update,) = mapper.map(
            _event(
                "completed",
                "shellToolCall",
                args={"command": "echo hi"},
                result={"success": {"exitCode": 0, "stdout": "hi\n"}},
            ),
            "s1",
        )
        assert update.kind == "execute"
        assert update.title == "`echo hi`"
        assert update.content == [TextContent("Exit code: 0\nhi")]

    def test_shell_no_output(self, mapper: ToolMapper) -> None:
        (update,) = mapper.map(
            _event("completed", "shellToolCall", args={"command": "true"}, result={"success": {"exitCode": 0}}),
            "s1",
        )
        assert update.content == [TextContent("Exit code: 0\n(no output)")]

    def test_terminal_is_final(self, mapper: ToolMapper) -> None:
        """Nothing is emitted for a call after its terminal update."""
        mapper.map(_event("started", "readToolCall"), "s1")
        mapper.map(_event("completed", "readToolCall", result={"success": {}}), "s1")
        assert mapper.map(_event("completed", "readToolCall", result={"success": {}}), "s1") == []
        assert mapper.map(_event("started", "readToolCall"), "s1") == []

    def test_duplicate_start_ignored(self, mapper: ToolMapper) -> None:
        mapper.map(_event("started", "readToolCall"), "s1")
        assert mapper.map(_event("started", "readToolCall"), "s1") == []

    def test_anonymous_calls_pair_in_order(self, mapper: ToolMapper) -> None:
        """Calls without ids are matched first-in, first-out per tool."""
        first = mapper.map(_event("started", "readToolCall", call_id=None, args={"path": "1"}), "s1")
        second = mapper.map(_event("started", "readToolCall", call_id=None, args={"path": "2"}), "s1")
        (done,) = mapper.map(_event("completed", "readToolCall", call_id=None, result={"success": {}}), "s1")

        assert first[0].tool_call_id != second[0].tool_call_id
        assert done.tool_call_id == first[0].tool_call_id
        assert done.title == "Read 1"

    def test_close_open_calls(self, mapper: ToolMapper) -> None:
        mapper.map(_event("started", "shellToolCall", call_id="a", args={"command": "sleep 9"}), "s1")
        mapper.map(_event("started", "readToolCall", call_id="b"), "s1")
        mapper.map(_event("completed", "readToolCall", call_id="b", result={"success": {}}), "s1")

        assert mapper.open_calls() == ["a"]
        (update,) = mapper.close_open_calls("s1", "Cancelled")
        assert update.tool_call_id == "a"
        assert update.status == "failed"
        assert update.content == [TextContent("Cancelled")]
        assert mapper.open_calls() == []

    def test_unknown_subtype_ignored(self, mapper: ToolMapper) -> None:
        assert mapper.map(_event("progress", "readToolCall"), "s1") == []
