"""Tests for DeltaTracker."""

from __future__ import annotations

from cursorbridge.streaming.delta import DeltaTracker


class TestDeltaTracker:
    """Tests for suffix extraction on cumulative snapshots."""

    def test_first_snapshot_is_emitted_whole(self) -> None:
        tracker = DeltaTracker()
        assert tracker.update("Hello") == "Hello"

    def test_extending_snapshot_emits_suffix(self) -> None:
        tracker = DeltaTracker()
        tracker.update("Hel")
        assert tracker.update("Hello") == "lo"
        assert tracker.current() == "Hello"

    def test_unchanged_snapshot_emits_nothing(self) -> None:
        tracker = DeltaTracker()
        tracker.update("same")
        assert tracker.update("same") == ""

    def test_concatenated_deltas_rebuild_final_text(self) -> None:
        """Joining every delta reproduces the last snapshot."""
        tracker = DeltaTracker()
        snapshots = ["I", "I will", "I will read", "I will read", "I will read the file."]
        deltas = [tracker.update(s) for s in snapshots]

        assert "".join(deltas) == snapshots[-1]
        assert "" in deltas

    def test_non_extending_snapshot_resets(self) -> None:
        """A snapshot that is not a continuation is emitted in full."""
        tracker = DeltaTracker()
        tracker.update("First message")
        assert tracker.update("Second") == "Second"
        assert tracker.current() == "Second"
        assert tracker.update("Second one") == " one"

    def test_shorter_resend_resets(self) -> None:
        tracker = DeltaTracker()
        tracker.update("abcdef")
        assert tracker.update("abc") == "abc"

    def test_streams_are_independent(self) -> None:
        """Text and thinking are tracked separately."""
        tracker = DeltaTracker()
        tracker.update("answer", "text")
        assert tracker.update("hmm", "thinking") == "hmm"
        assert tracker.update("answer!", "text") == "!"

    def test_append_fragments(self) -> None:
        """Incremental fragments extend the stream and come back as deltas."""
        tracker = DeltaTracker()
        assert tracker.append("Let ", "thinking") == "Let "
        assert tracker.append("me", "thinking") == "me"
        assert tracker.append("", "thinking") == ""
        assert tracker.current("thinking") == "Let me"

    def test_reset(self) -> None:
        tracker = DeltaTracker()
        tracker.update("a", "text")
        tracker.update("b", "thinking")
        tracker.reset("text")
        assert tracker.current("text") == ""
        assert tracker.current("thinking") == "b"
        tracker.reset()
        assert tracker.current("thinking") == ""
