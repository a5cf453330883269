"""Agent subprocess orchestration."""

from cursorbridge.process.args import build_agent_args, estimate_tokens
from cursorbridge.process.runner import (
    AgentProcess,
    TurnRunner,
    TurnState,
    collect_updates,
    spawn_agent,
)

__all__ = [
    "AgentProcess",
    "TurnRunner",
    "TurnState",
    "build_agent_args",
    "collect_updates",
    "estimate_tokens",
    "spawn_agent",
]
