"""Suffix tracking for cumulative text streams.

The agent re-sends the whole assistant text (or thinking trace) on every
update. Outward protocols want only what is new. ``DeltaTracker`` remembers
the last snapshot per stream and returns the unseen suffix.

If a snapshot does not extend the previous one (a new message, or an
out-of-order resend), the whole snapshot is emitted and becomes the new
baseline. Concatenating every non-empty delta therefore always reproduces
the latest snapshot for extending sequences.
"""

from __future__ import annotations

DEFAULT_STREAM = "text"


class DeltaTracker:
    """Last-seen text per logical stream (e.g. "text", "thinking").

    One tracker is owned by one turn, so streams never leak across sessions.
    """

    def __init__(self) -> None:
        self._seen: dict[str, str] = {}

    def update(self, full_text: str, stream: str = DEFAULT_STREAM) -> str:
        """Return the part of ``full_text`` not yet reported on ``stream``.

        Returns "" when nothing changed, which callers may skip.
        """
        previous = self._seen.get(stream, "")
        if full_text == previous:
            return ""

        self._seen[stream] = full_text
        if previous and full_text.startswith(previous):
            return full_text[len(previous) :]
        return full_text

    def append(self, fragment: str, stream: str = DEFAULT_STREAM) -> str:
        """Extend ``stream`` by an incremental fragment and return it as the delta."""
        if not fragment:
            return ""
        return self.update(self._seen.get(stream, "") + fragment, stream)

    def current(self, stream: str = DEFAULT_STREAM) -> str:
        """The last snapshot seen on ``stream``."""
        return self._seen.get(stream, "")

    def reset(self, stream: str | None = None) -> None:
        """Forget one stream, or all of them."""
        if stream is None:
            self._seen.clear()
        else:
            self._seen.pop(stream, None)
