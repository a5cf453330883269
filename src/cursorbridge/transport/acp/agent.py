"""ACP agent backed by cursor-agent.

Editors speaking the Agent Client Protocol (Zed, Rider...) drive this
agent. Each ``session/prompt`` runs one cursor-agent turn; text, thinking
and tool-call progress stream back as ``session/update`` notifications.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import acp
from acp.schema import (
    AgentCapabilities,
    ClientCapabilities,
    Implementation,
    PromptCapabilities,
    SessionCapabilities,
    SessionMode,
    SessionModeState,
    SetSessionModeResponse,
    TextContentBlock,
)

from cursorbridge import __version__
from cursorbridge.config import Config, get_config, get_default_storage_dir
from cursorbridge.core.errors import BridgeError, SessionNotFoundError, TurnInProgressError
from cursorbridge.core.metrics import MetricsTracker
from cursorbridge.core.retry import RetryEngine
from cursorbridge.logging import get_logger
from cursorbridge.process.runner import TurnRunner
from cursorbridge.session.protocols import SessionMode as BridgeMode
from cursorbridge.session.protocols import StopReason, TurnUpdate
from cursorbridge.session.session_manager import SessionManager
from cursorbridge.session.storage import FileSessionStorage
from cursorbridge.transport.acp.updates import to_acp_update

log = get_logger("acp")

if TYPE_CHECKING:
    from acp.interfaces import Client

PROVIDER_ID = "cursor-acp"

DEFAULT_SESSION_MODES = [
    SessionMode(id="default", name="Default", description="Apply edits and run commands"),
    SessionMode(id="plan", name="Plan", description="Plan without applying changes"),
]
DEFAULT_MODE_ID = BridgeMode.DEFAULT.value

# ACP has no error stop reason; failed turns become request errors instead
ACP_STOP_REASONS: dict[StopReason, str] = {
    StopReason.END_TURN: "end_turn",
    StopReason.CANCELLED: "cancelled",
    StopReason.REFUSAL: "refusal",
}

INVALID_REQUEST = -32600
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


def _session_not_found(session_id: str) -> acp.RequestError:
    return acp.RequestError(
        code=INVALID_REQUEST,
        message=f"Session not found: {session_id}",
    )


def _prompt_text(prompt: list[Any]) -> str:
    parts = []
    for block in prompt:
        if isinstance(block, TextContentBlock) or hasattr(block, "text"):
            parts.append(block.text)
    return "".join(parts)


class CursorBridgeAgent:
    """ACP Agent adapter for cursor-agent.

    Session bookkeeping lives in SessionManager; prompt execution in
    TurnRunner. This class only translates between ACP and those two.
    """

    def __init__(
        self,
        sessions: SessionManager,
        runner: TurnRunner,
        config: Config | None = None,
        metrics: MetricsTracker | None = None,
    ) -> None:
        self._config = config or Config()
        self._sessions = sessions
        self._runner = runner
        self._metrics = metrics
        self._conn: Client | None = None

        self._session_modes = DEFAULT_SESSION_MODES
        self._default_mode_id = DEFAULT_MODE_ID
        self._load_modes_from_config()

    def _load_modes_from_config(self) -> None:
        """Restrict or rename the advertised modes from config."""
        session_config = self._config.session
        known = {mode.value for mode in BridgeMode}
        modes = []
        for m in session_config.modes:
            if m.id not in known:
                log.warning("Ignoring unknown session mode %r in config", m.id)
                continue
            modes.append(SessionMode(id=m.id, name=m.name, description=m.description))
        if modes:
            self._session_modes = modes
            self._default_mode_id = modes[0].id
        if session_config.default_mode:
            if session_config.default_mode in {m.id for m in self._session_modes}:
                self._default_mode_id = session_config.default_mode
            else:
                log.warning("Default mode %r is not an available mode", session_config.default_mode)

    def _modes_state(self, current_mode_id: str) -> SessionModeState:
        return SessionModeState(
            available_modes=self._session_modes,
            current_mode_id=current_mode_id,
        )

    async def start(self) -> None:
        """Load persisted sessions and evict stale ones."""
        await self._sessions.initialize()
        await self._sessions.cleanup_stale(self._config.session.retention_days)

    def on_connect(self, conn: Client) -> None:
        """Called when a client connects."""
        self._conn = conn

    async def _send(self, session_id: str, update: Any) -> None:
        if self._conn:
            await self._conn.session_update(session_id=session_id, update=update)

    async def initialize(
        self,
        protocol_version: int,
        client_capabilities: ClientCapabilities | None = None,
        client_info: Implementation | None = None,
        **kwargs: Any,
    ) -> acp.InitializeResponse:
        """Handle initialization request from client."""
        return acp.InitializeResponse(
            protocol_version=acp.PROTOCOL_VERSION,
            agent_info=Implementation(
                name=PROVIDER_ID,
                version=__version__,
            ),
            agent_capabilities=AgentCapabilities(
                load_session=True,
                prompt_capabilities=PromptCapabilities(
                    image=False,
                    audio=False,
                ),
                session_capabilities=SessionCapabilities(),
            ),
        )

    async def new_session(
        self,
        cwd: str,
        mcp_servers: list[Any] | None = None,
        **kwargs: Any,
    ) -> acp.NewSessionResponse:
        """Create a new session."""
        try:
            session = await self._sessions.create_session(
                cwd=cwd,
                mode=self._default_mode_id,
                model=self._config.agent.model,
            )
        except BridgeError as e:
            log.exception("Failed to create session")
            raise acp.RequestError(
                code=INTERNAL_ERROR,
                message="Failed to create session",
                data={"details": str(e)},
            ) from e

        log.info("Created session %s in %s", session.session_id, cwd)
        return acp.NewSessionResponse(
            session_id=session.session_id,
            modes=self._modes_state(session.mode.value),
        )

    async def load_session(
        self,
        cwd: str,
        mcp_servers: list[Any] | None = None,
        session_id: str = "",
        **kwargs: Any,
    ) -> acp.LoadSessionResponse | None:
        """Reattach to a persisted session."""
        session = self._sessions.get_session(session_id)
        if session is None:
            raise _session_not_found(session_id)

        if cwd and cwd != session.cwd:
            session = await self._sessions.update_session(session_id, cwd=cwd)
        else:
            session = await self._sessions.touch(session_id)

        log.info(
            "Loaded session %s (resumable=%s)",
            session_id,
            self._sessions.can_resume(session_id),
        )
        return acp.LoadSessionResponse(
            session_id=session_id,
            modes=self._modes_state(session.mode.value),
        )

    async def list_sessions(
        self,
        cursor: str | None = None,
        cwd: str | None = None,
        **kwargs: Any,
    ) -> acp.schema.ListSessionsResponse:
        """List known sessions, newest first, optionally filtered by cwd."""
        sessions = [
            acp.schema.SessionInfo(session_id=s.session_id, cwd=s.cwd or "")
            for s in self._sessions.list_sessions()
            if cwd is None or s.cwd == cwd
        ]
        return acp.schema.ListSessionsResponse(sessions=sessions)

    async def set_session_mode(
        self,
        mode_id: str,
        session_id: str,
        **kwargs: Any,
    ) -> SetSessionModeResponse | None:
        """Set session mode."""
        valid_modes = {m.id for m in self._session_modes}
        if mode_id not in valid_modes:
            raise acp.RequestError(
                code=INVALID_PARAMS,
                message=f"Invalid mode: {mode_id}. Valid modes: {sorted(valid_modes)}",
            )

        try:
            await self._sessions.update_session(session_id, mode=mode_id)
        except SessionNotFoundError as e:
            raise _session_not_found(session_id) from e
        return SetSessionModeResponse()

    async def authenticate(
        self,
        method_id: str,
        **kwargs: Any,
    ) -> acp.AuthenticateResponse | None:
        """cursor-agent handles its own login; nothing to do here."""
        return None

    async def prompt(
        self,
        prompt: list[Any],
        session_id: str,
        **kwargs: Any,
    ) -> acp.PromptResponse:
        """Run one cursor-agent turn, streaming its progress as session updates."""
        if self._sessions.get_session(session_id) is None:
            raise _session_not_found(session_id)

        content = _prompt_text(prompt)
        if not content.strip():
            await self._send(session_id, acp.update_agent_message_text("Error: Empty prompt"))
            return acp.PromptResponse(stop_reason="end_turn")

        async def on_update(update: TurnUpdate) -> None:
            await self._send(session_id, to_acp_update(update))

        try:
            result = await self._runner.run_with_retry(session_id, content, on_update)
        except SessionNotFoundError as e:
            raise _session_not_found(session_id) from e
        except TurnInProgressError as e:
            raise acp.RequestError(code=INVALID_REQUEST, message=str(e)) from e
        except BridgeError as e:
            log.error("Prompt failed for session %s: %s", session_id, e)
            raise acp.RequestError(
                code=INTERNAL_ERROR,
                message="Agent turn failed",
                data={"details": str(e)},
            ) from e

        stop_reason = ACP_STOP_REASONS.get(result.stop_reason)
        if stop_reason is None:
            log.error("Agent reported failure for session %s: %s", session_id, result.error)
            raise acp.RequestError(
                code=INTERNAL_ERROR,
                message="Agent turn failed",
                data={"details": result.error or "unknown error"},
            )
        return acp.PromptResponse(stop_reason=stop_reason)

    async def cancel(self, session_id: str, **kwargs: Any) -> None:
        """Cancel the current turn in a session."""
        try:
            signalled = await self._runner.cancel(session_id)
        except SessionNotFoundError:
            log.warning("Cancel for unknown session %s", session_id)
            return
        log.debug("Cancel for session %s (running=%s)", session_id, signalled)

    async def ext_method(
        self,
        method: str,
        params: dict[str, Any],
    ) -> dict[str, Any]:
        """Handle extension methods."""
        if method == "cursor/metrics" and self._metrics is not None:
            hours = params.get("hours", self._config.metrics.window_hours)
            session_id = params.get("sessionId")
            if session_id:
                metrics = self._metrics.get_session_metrics(session_id)
                if metrics is None:
                    return {}
                return {
                    "sessionId": metrics.session_id,
                    "model": metrics.model,
                    "promptTokens": metrics.prompt_tokens,
                    "toolCalls": metrics.tool_calls,
                    "duration": metrics.duration,
                    "timestamp": metrics.timestamp,
                }
            aggregate = self._metrics.get_aggregate_metrics(hours)
            return {
                "totalPrompts": aggregate.total_prompts,
                "totalToolCalls": aggregate.total_tool_calls,
                "totalDuration": aggregate.total_duration,
                "avgDuration": aggregate.avg_duration,
            }
        return {}

    async def ext_notification(
        self,
        method: str,
        params: dict[str, Any],
    ) -> None:
        """Handle extension notifications."""
        pass


def create_agent(config: Config | None = None) -> CursorBridgeAgent:
    """Wire up an agent with file-backed sessions from configuration."""
    config = config or get_config()
    storage_dir = config.session.storage_dir or get_default_storage_dir()
    sessions = SessionManager(FileSessionStorage(storage_dir))
    metrics = MetricsTracker()
    runner = TurnRunner(
        sessions,
        config=config.agent,
        retry=RetryEngine.from_config(config.retry),
        metrics=metrics,
    )
    return CursorBridgeAgent(sessions, runner, config=config, metrics=metrics)
