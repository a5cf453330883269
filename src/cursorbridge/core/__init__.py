"""Retry, error classification and metrics shared by the turn pipeline."""

from cursorbridge.core.errors import (
    AgentProcessError,
    BridgeError,
    ErrorCategory,
    RetryExhaustedError,
    SessionNotFoundError,
    StorageError,
    TurnFailedError,
    TurnInProgressError,
    classify_error,
    is_recoverable,
)
from cursorbridge.core.metrics import AggregateMetrics, MetricsTracker, PromptMetrics
from cursorbridge.core.retry import RetryContext, RetryEngine

__all__ = [
    "AgentProcessError",
    "BridgeError",
    "ErrorCategory",
    "RetryExhaustedError",
    "SessionNotFoundError",
    "StorageError",
    "TurnFailedError",
    "TurnInProgressError",
    "classify_error",
    "is_recoverable",
    "AggregateMetrics",
    "MetricsTracker",
    "PromptMetrics",
    "RetryContext",
    "RetryEngine",
]
