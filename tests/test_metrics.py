"""Tests for MetricsTracker."""

from __future__ import annotations

import pytest

from cursorbridge.core.metrics import MetricsTracker

HOUR_MS = 3600 * 1000


class Clock:
    def __init__(self) -> None:
        self.now = 100 * HOUR_MS

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def tracker(clock: Clock) -> MetricsTracker:
    return MetricsTracker(clock=clock)


class TestMetricsTracker:
    """Tests for per-session counters and rollups."""

    def test_record_prompt(self, tracker: MetricsTracker, clock: Clock) -> None:
        tracker.record_prompt("s1", "auto", 100)
        metrics = tracker.get_session_metrics("s1")

        assert metrics is not None
        assert metrics.model == "auto"
        assert metrics.prompt_tokens == 100
        assert metrics.tool_calls == 0
        assert metrics.duration == 0
        assert metrics.timestamp == clock.now

    def test_record_tool_call_accumulates(self, tracker: MetricsTracker) -> None:
        tracker.record_prompt("s1", "auto", 10)
        tracker.record_tool_call("s1", "read", 100)
        tracker.record_tool_call("s1", "shell", 250)

        metrics = tracker.get_session_metrics("s1")
        assert metrics.tool_calls == 2
        assert metrics.duration == 350

    def test_tool_call_for_unknown_session_ignored(self, tracker: MetricsTracker) -> None:
        tracker.record_tool_call("missing", "read", 100)
        assert tracker.get_session_metrics("missing") is None

    def test_new_prompt_replaces_record(self, tracker: MetricsTracker) -> None:
        tracker.record_prompt("s1", "auto", 10)
        tracker.record_tool_call("s1", "read", 5)
        tracker.record_prompt("s1", "gpt-5", 20)

        metrics = tracker.get_session_metrics("s1")
        assert metrics.model == "gpt-5"
        assert metrics.tool_calls == 0

    def test_aggregate(self, tracker: MetricsTracker) -> None:
        tracker.record_prompt("s1", "auto", 10)
        tracker.record_tool_call("s1", "read", 100)
        tracker.record_prompt("s2", "auto", 10)
        tracker.record_tool_call("s2", "read", 200)
        tracker.record_tool_call("s2", "grep", 300)

        aggregate = tracker.get_aggregate_metrics()
        assert aggregate.total_prompts == 2
        assert aggregate.total_tool_calls == 3
        assert aggregate.total_duration == 600
        assert aggregate.avg_duration == 300.0

    def test_aggregate_window(self, tracker: MetricsTracker, clock: Clock) -> None:
        tracker.record_prompt("old", "auto", 10)
        clock.now += 25 * HOUR_MS
        tracker.record_prompt("new", "auto", 10)

        assert tracker.get_aggregate_metrics(24).total_prompts == 1
        assert tracker.get_aggregate_metrics(48).total_prompts == 2

    def test_aggregate_empty(self, tracker: MetricsTracker) -> None:
        aggregate = tracker.get_aggregate_metrics()
        assert aggregate.total_prompts == 0
        assert aggregate.avg_duration == 0.0

    def test_clear(self, tracker: MetricsTracker) -> None:
        tracker.record_prompt("s1", "auto", 10)
        tracker.record_prompt("s2", "auto", 10)
        tracker.clear_metrics("s1")
        assert tracker.get_session_metrics("s1") is None
        assert tracker.get_session_metrics("s2") is not None
        tracker.clear_all()
        assert tracker.get_session_metrics("s2") is None
