"""Per-prompt orchestration of the cursor-agent subprocess.

One TurnRunner serves every session. Each prompt attempt spawns one
subprocess and runs a private pipeline over its stdout:

    bytes -> UTF-8 decoder -> LineBuffer -> classify_line
          -> DeltaTracker (text, thinking) | ToolMapper (tool calls)
          -> on_update callback

Lines are handled one at a time, so updates reach the callback in the order
the agent wrote them.

A turn moves through ``running -> draining -> terminated``. It starts
draining when a result event arrives, when stdout closes, or when it is
cancelled; it terminates once the process has exited. Cancellation is
recorded on the session and always wins when the stop reason is decided.
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from cursorbridge.config.schema import AgentConfig
from cursorbridge.core.errors import (
    AgentProcessError,
    BridgeError,
    SessionNotFoundError,
    TurnInProgressError,
)
from cursorbridge.core.metrics import MetricsTracker
from cursorbridge.core.retry import RetryContext, RetryEngine
from cursorbridge.logging import TRACE, get_logger
from cursorbridge.process.args import build_agent_args, estimate_tokens
from cursorbridge.session.protocols import (
    DISPOSITION_STOP_REASONS,
    StopReason,
    TextDelta,
    ThinkingDelta,
    TurnResult,
    TurnUpdate,
)
from cursorbridge.session.session_manager import Session, SessionManager
from cursorbridge.streaming.buffer import LineBuffer
from cursorbridge.streaming.delta import DeltaTracker
from cursorbridge.streaming.events import (
    AssistantTextEvent,
    ResultEvent,
    StreamEvent,
    ThinkingEvent,
    ToolCallEvent,
    classify_line,
)
from cursorbridge.tools.mapper import ToolMapper

log = get_logger("process")

READ_CHUNK_SIZE = 64 * 1024
STDERR_TAIL_CHARS = 2000


class AgentProcess(Protocol):
    """The parts of ``asyncio.subprocess.Process`` the runner uses."""

    stdout: asyncio.StreamReader | None
    stderr: asyncio.StreamReader | None
    returncode: int | None

    async def wait(self) -> int: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


SpawnFn = Callable[[list[str], "str | None"], Awaitable[AgentProcess]]
ArgsBuilder = Callable[[AgentConfig, Session, str], list[str]]
UpdateCallback = Callable[[TurnUpdate], Awaitable[None]]


async def spawn_agent(argv: list[str], cwd: str | None) -> AgentProcess:
    """Start the agent with piped stdout/stderr and no stdin."""
    try:
        return await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            start_new_session=True,
        )
    except FileNotFoundError as e:
        raise AgentProcessError(
            f"Invalid configuration: agent executable not found: {argv[0]}"
        ) from e
    except PermissionError as e:
        raise AgentProcessError(
            f"Invalid configuration: agent executable not runnable: {argv[0]}"
        ) from e


class TurnState(Enum):
    RUNNING = "running"
    DRAINING = "draining"
    TERMINATED = "terminated"


_STATE_ORDER = {TurnState.RUNNING: 0, TurnState.DRAINING: 1, TurnState.TERMINATED: 2}


@dataclass
class _ActiveTurn:
    session_id: str
    process: AgentProcess
    started: float
    state: TurnState = TurnState.RUNNING
    deltas: DeltaTracker = field(default_factory=DeltaTracker)
    mapper: ToolMapper = field(default_factory=ToolMapper)
    text_parts: list[str] = field(default_factory=list)
    result: ResultEvent | None = None
    tool_calls: int = 0
    kill_task: asyncio.Task[None] | None = None

    def advance(self, state: TurnState) -> None:
        """Move forward in the state machine; backwards moves are ignored."""
        if _STATE_ORDER[state] > _STATE_ORDER[self.state]:
            log.debug("Turn %s: %s -> %s", self.session_id, self.state.value, state.value)
            self.state = state


class TurnRunner:
    """Runs prompt turns against the agent subprocess.

    Args:
        sessions: Session table consulted for mode, resume token and
            cancellation, and updated with resume tokens from the stream.
        config: Agent executable and grace periods.
        retry: Retry policy for whole attempts.
        metrics: Optional tracker fed with prompt and tool-call counters.
        spawn: Starts the subprocess; replaced in tests.
        build_args: Builds the argument vector for an attempt.
    """

    def __init__(
        self,
        sessions: SessionManager,
        config: AgentConfig | None = None,
        retry: RetryEngine | None = None,
        metrics: MetricsTracker | None = None,
        spawn: SpawnFn = spawn_agent,
        build_args: ArgsBuilder = build_agent_args,
    ) -> None:
        self._sessions = sessions
        self._config = config or AgentConfig()
        self._retry = retry or RetryEngine()
        self._metrics = metrics
        self._spawn = spawn
        self._build_args = build_args
        self._active: dict[str, _ActiveTurn] = {}
        self._cancel_events: dict[str, asyncio.Event] = {}
        # Sessions with a turn anywhere between _begin and _end, including
        # while the agent is spawning and during retry backoff
        self._in_flight: set[str] = set()

    def is_running(self, session_id: str) -> bool:
        return session_id in self._in_flight

    def turn_state(self, session_id: str) -> TurnState | None:
        turn = self._active.get(session_id)
        return turn.state if turn else None

    # --- Public entry points ---

    async def run(self, session_id: str, prompt: str, on_update: UpdateCallback) -> TurnResult:
        """Run a single attempt (no retries)."""
        cancel_event = self._begin(session_id, prompt)
        try:
            return await self._run_attempt(session_id, prompt, on_update)
        finally:
            await self._end(session_id, cancel_event)

    async def run_with_retry(
        self,
        session_id: str,
        prompt: str,
        on_update: UpdateCallback,
    ) -> TurnResult:
        """Run a turn, retrying recoverable failures with backoff.

        Raises:
            SessionNotFoundError: Unknown session id.
            TurnInProgressError: The session is already running a turn.
            RetryExhaustedError: Every attempt failed recoverably.
            AgentProcessError: A fatal subprocess failure.
        """
        cancel_event = self._begin(session_id, prompt)

        async def attempt() -> TurnResult:
            if self._sessions.is_cancelled(session_id):
                return TurnResult(session_id=session_id, stop_reason=StopReason.CANCELLED)
            return await self._run_attempt(session_id, prompt, on_update)

        async def interruptible_sleep(seconds: float) -> None:
            # Wakes early when the turn is cancelled during a backoff delay
            sleeper = asyncio.ensure_future(self._retry.sleep(seconds))
            waiter = asyncio.ensure_future(cancel_event.wait())
            try:
                await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                sleeper.cancel()
                waiter.cancel()

        engine = self._retry.with_sleep(interruptible_sleep)
        try:
            return await engine.execute_with_retry(
                attempt, RetryContext(kind="prompt", session_id=session_id)
            )
        finally:
            await self._end(session_id, cancel_event)

    async def cancel(self, session_id: str) -> bool:
        """Cancel the session's current turn.

        Flags the session, sends SIGTERM, and schedules SIGKILL after
        ``kill_grace`` seconds if the process is still alive. A turn whose
        agent is still being spawned is stopped as soon as the spawn returns.

        Returns:
            True if a running subprocess was signalled.

        Raises:
            SessionNotFoundError: Unknown session id.
        """
        self._sessions.mark_cancelled(session_id)
        event = self._cancel_events.get(session_id)
        if event is not None:
            event.set()

        turn = self._active.get(session_id)
        if turn is None:
            return False

        log.info("Cancelling turn for session %s", session_id)
        self._stop(turn)
        return True

    # --- Attempt lifecycle ---

    def _begin(self, session_id: str, prompt: str) -> asyncio.Event:
        session = self._sessions.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if session_id in self._in_flight:
            raise TurnInProgressError(session_id)

        self._in_flight.add(session_id)
        self._sessions.clear_cancelled(session_id)
        cancel_event = self._cancel_events[session_id] = asyncio.Event()
        if self._metrics is not None:
            self._metrics.record_prompt(
                session_id,
                session.model or self._config.model,
                estimate_tokens(prompt),
            )
        return cancel_event

    async def _end(self, session_id: str, cancel_event: asyncio.Event) -> None:
        if self._cancel_events.get(session_id) is cancel_event:
            del self._cancel_events[session_id]
        self._in_flight.discard(session_id)
        await self._finish(session_id)

    async def _finish(self, session_id: str) -> None:
        # Persists the resume token and last activity, whatever the outcome
        if self._sessions.get_session(session_id) is None:
            return
        try:
            await self._sessions.touch(session_id)
        except BridgeError as e:
            log.warning("Could not persist session %s after turn: %s", session_id, e)

    async def _run_attempt(
        self,
        session_id: str,
        prompt: str,
        on_update: UpdateCallback,
    ) -> TurnResult:
        session = self._sessions.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)

        argv = self._build_args(self._config, session, prompt)
        log.debug("Spawning %s for session %s", argv[0], session_id)
        process = await self._spawn(argv, session.cwd)

        turn = _ActiveTurn(session_id=session_id, process=process, started=time.monotonic())
        self._active[session_id] = turn
        stderr_task = asyncio.create_task(self._read_stderr(process))

        try:
            if self._sessions.is_cancelled(session_id):
                log.info("Session %s was cancelled while the agent was starting", session_id)
                self._stop(turn)
            await self._pump_stdout(turn, on_update)
            turn.advance(TurnState.DRAINING)
            exit_code = await self._wait_for_exit(turn)
            turn.advance(TurnState.TERMINATED)
            stderr_text = await stderr_task
            return await self._resolve(turn, exit_code, stderr_text, on_update)
        finally:
            if self._active.get(session_id) is turn:
                del self._active[session_id]
            if not stderr_task.done():
                stderr_task.cancel()
            if turn.kill_task is not None and process.returncode is not None:
                turn.kill_task.cancel()
            if process.returncode is None:
                # Exceptions (including task cancellation) must not orphan the agent
                self._signal(process, "kill")

    async def _pump_stdout(self, turn: _ActiveTurn, on_update: UpdateCallback) -> None:
        stdout = turn.process.stdout
        if stdout is None:
            return

        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = LineBuffer()

        while True:
            try:
                if turn.result is not None:
                    chunk = await asyncio.wait_for(
                        stdout.read(READ_CHUNK_SIZE), timeout=self._config.result_grace
                    )
                else:
                    chunk = await stdout.read(READ_CHUNK_SIZE)
            except asyncio.TimeoutError:
                log.debug("Stdout still open %.1fs after result; stopping agent", self._config.result_grace)
                self._signal(turn.process, "terminate")
                break

            if not chunk:
                break

            for line in buffer.push(decoder.decode(chunk)):
                await self._handle_line(turn, line, on_update)

        for line in buffer.push(decoder.decode(b"", final=True)):
            await self._handle_line(turn, line, on_update)
        remainder = buffer.flush()
        if remainder.strip():
            await self._handle_line(turn, remainder, on_update)

    async def _wait_for_exit(self, turn: _ActiveTurn) -> int | None:
        process = turn.process
        try:
            return await asyncio.wait_for(process.wait(), timeout=self._config.stream_close_grace)
        except asyncio.TimeoutError:
            pass

        log.debug("Agent for session %s still running after stdout closed", turn.session_id)
        self._signal(process, "terminate")
        try:
            return await asyncio.wait_for(process.wait(), timeout=self._config.kill_grace)
        except asyncio.TimeoutError:
            self._signal(process, "kill")
            return await process.wait()

    def _stop(self, turn: _ActiveTurn) -> None:
        """SIGTERM now, SIGKILL after ``kill_grace`` if the agent is still alive."""
        turn.advance(TurnState.DRAINING)
        self._signal(turn.process, "terminate")
        if turn.kill_task is None:
            turn.kill_task = asyncio.create_task(self._kill_after(turn.process))

    async def _kill_after(self, process: AgentProcess) -> None:
        await asyncio.sleep(self._config.kill_grace)
        if process.returncode is None:
            log.info("Agent did not exit after SIGTERM; sending SIGKILL")
            self._signal(process, "kill")

    @staticmethod
    def _signal(process: AgentProcess, action: str) -> None:
        if process.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            if action == "kill":
                process.kill()
            else:
                process.terminate()

    @staticmethod
    async def _read_stderr(process: AgentProcess) -> str:
        if process.stderr is None:
            return ""
        data = await process.stderr.read()
        return data.decode("utf-8", errors="replace")

    # --- Line handling ---

    async def _handle_line(self, turn: _ActiveTurn, line: str, on_update: UpdateCallback) -> None:
        event = classify_line(line)
        if event is None:
            return

        session_id = turn.session_id
        if event.session_id and self._sessions.get_session(session_id) is not None:
            self._sessions.set_resume_id(session_id, event.session_id)

        for update in self._route(turn, event):
            await on_update(update)

    def _route(self, turn: _ActiveTurn, event: StreamEvent) -> list[TurnUpdate]:
        session_id = turn.session_id

        if isinstance(event, AssistantTextEvent):
            delta = turn.deltas.update(event.text, "text")
            if not delta:
                return []
            turn.text_parts.append(delta)
            return [TextDelta(session_id=session_id, text=delta)]

        if isinstance(event, ThinkingEvent):
            if event.completed:
                return []
            if event.is_delta:
                delta = turn.deltas.append(event.text, "thinking")
            else:
                delta = turn.deltas.update(event.text, "thinking")
            return [ThinkingDelta(session_id=session_id, text=delta)] if delta else []

        if isinstance(event, ToolCallEvent):
            updates = turn.mapper.map(event, session_id)
            for update in updates:
                if update.is_terminal:
                    self._count_tool_call(turn, update.tool_name, update.duration_ms or 0)
            return list(updates)

        if isinstance(event, ResultEvent):
            if turn.result is None:
                turn.result = event
                turn.advance(TurnState.DRAINING)
            return []

        log.log(TRACE, "Ignoring %s event", getattr(event, "type", None))
        return []

    def _count_tool_call(self, turn: _ActiveTurn, tool_name: str, duration_ms: int) -> None:
        turn.tool_calls += 1
        if self._metrics is not None:
            self._metrics.record_tool_call(turn.session_id, tool_name, duration_ms)

    # --- Outcome ---

    async def _resolve(
        self,
        turn: _ActiveTurn,
        exit_code: int | None,
        stderr_text: str,
        on_update: UpdateCallback,
    ) -> TurnResult:
        session_id = turn.session_id
        duration_ms = int((time.monotonic() - turn.started) * 1000)
        result = turn.result
        text = "".join(turn.text_parts)
        if not text and result is not None and result.text:
            text = result.text

        error: str | None = None
        if self._sessions.is_cancelled(session_id):
            stop_reason = StopReason.CANCELLED
        elif result is not None:
            stop_reason = DISPOSITION_STOP_REASONS.get(result.disposition, StopReason.ERROR)
            if result.is_error and stop_reason is StopReason.END_TURN:
                stop_reason = StopReason.ERROR
            if not stop_reason.succeeded and stop_reason is not StopReason.CANCELLED:
                error = result.text or _tail(stderr_text) or f"Agent reported {result.disposition}"
        elif exit_code == 0:
            stop_reason = StopReason.END_TURN
        else:
            message = _tail(stderr_text) or f"Agent exited with code {exit_code}"
            await self._close_tools(turn, message, on_update)
            raise AgentProcessError(message, exit_code=exit_code)

        if stop_reason is not StopReason.END_TURN:
            reason = "Cancelled" if stop_reason is StopReason.CANCELLED else (error or "Failed")
            await self._close_tools(turn, reason, on_update)

        log.info(
            "Turn for session %s ended: %s (exit=%s, %dms, %d tool call(s))",
            session_id,
            stop_reason.value,
            exit_code,
            duration_ms,
            turn.tool_calls,
        )
        return TurnResult(
            session_id=session_id,
            stop_reason=stop_reason,
            text=text,
            resume_id=self._sessions.get_resume_id(session_id),
            error=error,
            exit_code=exit_code,
            duration_ms=duration_ms,
            usage=result.usage if result is not None else None,
            tool_calls=turn.tool_calls,
        )

    async def _close_tools(self, turn: _ActiveTurn, reason: str, on_update: UpdateCallback) -> None:
        for update in turn.mapper.close_open_calls(turn.session_id, reason):
            self._count_tool_call(turn, update.tool_name, update.duration_ms or 0)
            await on_update(update)


def _tail(text: str) -> str:
    text = text.strip()
    if len(text) <= STDERR_TAIL_CHARS:
        return text
    return text[-STDERR_TAIL_CHARS:]


def collect_updates() -> tuple[list[Any], UpdateCallback]:
    """A list and a callback that appends to it; handy for non-streaming callers."""
    updates: list[Any] = []

    async def on_update(update: TurnUpdate) -> None:
        updates.append(update)

    return updates, on_update
