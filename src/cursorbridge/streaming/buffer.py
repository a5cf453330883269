"""Newline framing for the agent's stream-json output.

Chunks arrive from the subprocess pipe at arbitrary boundaries. LineBuffer
holds the partial tail between calls and only hands out complete records.

Only ``\\n`` terminates a record. A preceding ``\\r`` stays on the line; JSON
parsing ignores it.
"""

from __future__ import annotations

LINE_TERMINATOR = "\n"


class LineBuffer:
    """Accumulates text chunks and yields complete newline-terminated lines.

    Every character pushed comes back out exactly once: each yielded line
    plus its ``\\n`` terminator, followed by whatever ``flush()`` returns,
    reproduces the input.

    Example:
        >>> buf = LineBuffer()
        >>> buf.push('{"a":')
        []
        >>> buf.push('1}\\n{"b"')
        ['{"a":1}']
        >>> buf.flush()
        '{"b"'
    """

    def __init__(self) -> None:
        self._pending = ""

    @property
    def pending(self) -> str:
        """Partial content not yet terminated by a newline."""
        return self._pending

    def push(self, chunk: str) -> list[str]:
        """Add a chunk and return the lines it completed, without terminators."""
        if not chunk:
            return []

        data = self._pending + chunk
        *lines, self._pending = data.split(LINE_TERMINATOR)
        return lines

    def flush(self) -> str:
        """Return and clear any unterminated remainder ("" if none)."""
        remainder = self._pending
        self._pending = ""
        return remainder
