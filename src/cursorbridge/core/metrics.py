"""Per-session prompt metrics with time-windowed rollups.

Metrics live in memory only; nothing here is persisted.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from cursorbridge.logging import get_logger

log = get_logger("metrics")


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class PromptMetrics:
    """Counters for the most recent prompt in one session.

    ``duration`` is the summed tool-call time in milliseconds and
    ``timestamp`` is epoch milliseconds of the prompt.
    """

    session_id: str
    model: str
    prompt_tokens: int
    tool_calls: int = 0
    duration: int = 0
    timestamp: int = 0


@dataclass(frozen=True)
class AggregateMetrics:
    total_prompts: int
    total_tool_calls: int
    total_duration: int
    avg_duration: float


class MetricsTracker:
    """Accumulates prompt and tool-call counters keyed by session id."""

    def __init__(self, clock: Callable[[], int] = _now_ms) -> None:
        self._metrics: dict[str, PromptMetrics] = {}
        self._clock = clock

    def record_prompt(self, session_id: str, model: str, prompt_tokens: int) -> PromptMetrics:
        """Start a fresh record for ``session_id``, replacing any previous one."""
        metrics = PromptMetrics(
            session_id=session_id,
            model=model,
            prompt_tokens=prompt_tokens,
            timestamp=self._clock(),
        )
        self._metrics[session_id] = metrics
        return metrics

    def record_tool_call(self, session_id: str, tool_name: str, duration: int) -> None:
        metrics = self._metrics.get(session_id)
        if metrics is None:
            log.debug("Ignoring tool call %s for untracked session %s", tool_name, session_id)
            return
        metrics.tool_calls += 1
        metrics.duration += max(0, int(duration))

    def get_session_metrics(self, session_id: str) -> PromptMetrics | None:
        return self._metrics.get(session_id)

    def get_aggregate_metrics(self, hours: float = 24) -> AggregateMetrics:
        """Roll up every session whose prompt falls inside the last ``hours``."""
        cutoff = self._clock() - int(hours * 3600 * 1000)
        recent = [m for m in self._metrics.values() if m.timestamp >= cutoff]

        total_prompts = len(recent)
        total_tool_calls = sum(m.tool_calls for m in recent)
        total_duration = sum(m.duration for m in recent)
        avg_duration = total_duration / total_prompts if total_prompts else 0.0

        return AggregateMetrics(
            total_prompts=total_prompts,
            total_tool_calls=total_tool_calls,
            total_duration=total_duration,
            avg_duration=avg_duration,
        )

    def clear_metrics(self, session_id: str) -> None:
        self._metrics.pop(session_id, None)

    def clear_all(self) -> None:
        self._metrics.clear()
