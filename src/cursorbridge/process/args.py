"""Default cursor-agent command line.

Callers with different agents pass their own ``build_args`` to TurnRunner.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from cursorbridge.session.protocols import SessionMode

if TYPE_CHECKING:
    from cursorbridge.config.schema import AgentConfig
    from cursorbridge.session.session_manager import Session


def build_agent_args(config: AgentConfig, session: Session, prompt: str) -> list[str]:
    """Argument vector for one print-mode, stream-json invocation."""
    argv = [
        config.executable,
        "--print",
        "--output-format",
        "stream-json",
        "--stream-partial-output",
    ]

    model = session.model or config.model
    if model:
        argv.extend(["--model", model])

    if session.resume_id:
        argv.extend(["--resume", session.resume_id])

    # Plan mode leaves file writes and commands to the user's approval
    if session.mode is SessionMode.DEFAULT:
        argv.append("--force")

    argv.extend(config.extra_args)
    argv.append(prompt)
    return argv


def estimate_tokens(text: str) -> int:
    """Rough token count (4 characters per token)."""
    return max(1, len(text) // 4) if text else 0
