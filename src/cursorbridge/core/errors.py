"""Exception hierarchy and failure classification.

``classify_error`` is the only place that decides whether a failure is worth
retrying. It inspects exception types first and then falls back to message
substrings, which is a heuristic: anything it does not recognise is fatal.
"""

from __future__ import annotations

import asyncio
from enum import Enum


class BridgeError(Exception):
    """Base class for errors raised by the bridge."""


class SessionNotFoundError(BridgeError):
    """An operation referenced a session id that is not in the session table."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class StorageError(BridgeError):
    """A session record could not be written or removed."""


class TurnInProgressError(BridgeError):
    """A prompt arrived for a session that is already running a turn."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} already has a turn in progress")
        self.session_id = session_id


class TurnFailedError(BridgeError):
    """The agent finished the turn but reported failure in its result event."""


class AgentProcessError(BridgeError):
    """The agent subprocess failed without reporting a terminal result.

    The message carries the tail of stderr, which is what the retry
    classifier inspects.
    """

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class RetryExhaustedError(BridgeError):
    """Every retry attempt failed with a recoverable error.

    Always raised ``from`` the last underlying failure, so ``__cause__``
    is the same object as ``last_error``.
    """

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"Retries exhausted after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class ErrorCategory(Enum):
    """Whether a failure should be retried."""

    RECOVERABLE = "recoverable"
    FATAL = "fatal"


FATAL_PATTERNS = (
    "not logged in",
    "login required",
    "authentication",
    "unauthorized",
    "unauthenticated",
    "invalid api key",
    "api key",
    "forbidden",
    "invalid configuration",
    "invalid config",
    "configuration error",
)

RECOVERABLE_PATTERNS = (
    "timeout",
    "timed out",
    "etimedout",
    "econnrefused",
    "connection refused",
    "econnreset",
    "connection reset",
    "rate limit",
    "rate_limit",
    "ratelimit",
    "too many requests",
    "429",
)

_RECOVERABLE_TYPES: tuple[type[BaseException], ...] = (
    TimeoutError,
    asyncio.TimeoutError,
    ConnectionRefusedError,
    ConnectionResetError,
)


def classify_error(error: BaseException) -> ErrorCategory:
    """Classify a failure as recoverable or fatal.

    Fatal message patterns win over recoverable ones, so "authentication
    timed out" is not retried.
    """
    message = str(error).lower()

    if any(pattern in message for pattern in FATAL_PATTERNS):
        return ErrorCategory.FATAL

    if isinstance(error, _RECOVERABLE_TYPES):
        return ErrorCategory.RECOVERABLE

    if any(pattern in message for pattern in RECOVERABLE_PATTERNS):
        return ErrorCategory.RECOVERABLE

    return ErrorCategory.FATAL


def is_recoverable(error: BaseException) -> bool:
    return classify_error(error) is ErrorCategory.RECOVERABLE
