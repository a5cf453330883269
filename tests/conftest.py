"""Root pytest configuration for all tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import pytest

from cursorbridge.config.schema import AgentConfig
from cursorbridge.session.session_manager import SessionManager
from cursorbridge.session.storage import MemorySessionStorage

# Configure pytest-asyncio to use auto mode
# This is redundant with pyproject.toml but ensures it's set
pytest_plugins = ("pytest_asyncio",)


def jsonl(*records: dict[str, Any]) -> bytes:
    """Encode records the way cursor-agent writes them: one JSON object per line."""
    return "".join(json.dumps(record) + "\n" for record in records).encode("utf-8")


def assistant(text: str, session_id: str | None = None) -> dict[str, Any]:
    record: dict[str, Any] = {
        "type": "assistant",
        "message": {"role": "assistant", "content": [{"type": "text", "text": text}]},
    }
    if session_id:
        record["session_id"] = session_id
    return record


def result(subtype: str = "success", **fields: Any) -> dict[str, Any]:
    return {"type": "result", "subtype": subtype, **fields}


def tool_call(
    subtype: str,
    key: str,
    call_id: str | None = "call-1",
    args: dict[str, Any] | None = None,
    result: Any = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {"args": args or {}}
    if result is not None:
        body["result"] = result
    record: dict[str, Any] = {"type": "tool_call", "subtype": subtype, "tool_call": {key: body}}
    if call_id is not None:
        record["call_id"] = call_id
    return record


class FakeProcess:
    """Stands in for ``asyncio.subprocess.Process``.

    With ``hang=False`` the whole stdout is available at once and the process
    has already exited. With ``hang=True`` stdout stays open until the test
    feeds EOF or the process is signalled.
    """

    def __init__(
        self,
        chunks: list[bytes] | None = None,
        returncode: int = 0,
        stderr: bytes = b"",
        hang: bool = False,
        ignore_terminate: bool = False,
    ) -> None:
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.returncode: int | None = None
        self.signals: list[str] = []
        self._ignore_terminate = ignore_terminate
        self._exited = asyncio.Event()

        for chunk in chunks or []:
            self.stdout.feed_data(chunk)
        self.stderr.feed_data(stderr)
        self.stderr.feed_eof()

        if not hang:
            self.exit(returncode)

    def feed(self, data: bytes) -> None:
        self.stdout.feed_data(data)

    def exit(self, code: int) -> None:
        if self.returncode is None:
            self.returncode = code
        self.stdout.feed_eof()
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode

    def terminate(self) -> None:
        self.signals.append("terminate")
        if not self._ignore_terminate:
            self.exit(-15)

    def kill(self) -> None:
        self.signals.append("kill")
        self.exit(-9)


class FakeSpawner:
    """Records spawn calls and hands out queued processes in order.

    Queue factories rather than processes: StreamReaders must be created on
    the running loop.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[list[str], str | None]] = []
        self.processes: list[FakeProcess] = []
        self._queue: list[Callable[[], FakeProcess] | BaseException] = []

    def queue(self, item: Callable[[], FakeProcess] | BaseException) -> FakeSpawner:
        self._queue.append(item)
        return self

    async def __call__(self, argv: list[str], cwd: str | None) -> FakeProcess:
        self.calls.append((argv, cwd))
        item = self._queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        process = item()
        self.processes.append(process)
        return process


@pytest.fixture(scope="session")
def anyio_backend():
    """Set anyio backend to asyncio."""
    return "asyncio"


@pytest.fixture
def storage() -> MemorySessionStorage:
    return MemorySessionStorage()


@pytest.fixture
def sessions(storage: MemorySessionStorage) -> SessionManager:
    return SessionManager(storage)


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def agent_config() -> AgentConfig:
    """Short grace periods so timing paths finish quickly."""
    return AgentConfig(
        executable="cursor-agent",
        model="auto",
        kill_grace=0.05,
        stream_close_grace=0.05,
        result_grace=0.05,
    )


@pytest.fixture
def recorded_sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(recorded_sleeps: list[float]):
    """Sleep replacement that records the requested delay and returns at once."""

    async def sleep(seconds: float) -> None:
        recorded_sleeps.append(seconds)

    return sleep
