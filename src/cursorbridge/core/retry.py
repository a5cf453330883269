"""Retry wrapper for fallible asynchronous operations.

Recoverable failures are retried with exponential backoff:

    delay(attempt) = min(base_delay_ms * 2 ** (attempt - 1), max_delay_ms)

Fatal failures propagate unchanged on the attempt that raised them. When
every retry is used up, ``RetryExhaustedError`` is raised from the last
failure.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, TypeVar

from cursorbridge.core.errors import (
    ErrorCategory,
    RetryExhaustedError,
    classify_error,
)
from cursorbridge.logging import get_logger

if TYPE_CHECKING:
    from cursorbridge.config.schema import RetryConfig

log = get_logger("retry")

T = TypeVar("T")

OperationKind = Literal["prompt", "tool", "auth"]
SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class RetryContext:
    """What is being retried. Only used for classification and log lines."""

    kind: OperationKind = "prompt"
    session_id: str | None = None

    def describe(self) -> str:
        if self.session_id:
            return f"{self.kind} (session {self.session_id})"
        return self.kind


class RetryEngine:
    """Execute an operation with bounded exponential-backoff retries.

    Args:
        max_retries: Retries allowed after the first attempt.
        base_delay_ms: Delay before the first retry.
        max_delay_ms: Upper bound for any single delay.
        sleep: Awaitable sleep taking seconds. Injected in tests so no real
            time passes; defaults to ``asyncio.sleep``, which is cancellable.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 30000,
        sleep: SleepFn | None = None,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self._sleep = sleep or asyncio.sleep

    @classmethod
    def from_config(cls, config: RetryConfig | None, sleep: SleepFn | None = None) -> RetryEngine:
        if config is None:
            return cls(sleep=sleep)
        return cls(
            max_retries=config.max_retries,
            base_delay_ms=config.base_delay_ms,
            max_delay_ms=config.max_delay_ms,
            sleep=sleep,
        )

    @property
    def sleep(self) -> SleepFn:
        return self._sleep

    def with_sleep(self, sleep: SleepFn) -> RetryEngine:
        """Same policy, different sleep."""
        return RetryEngine(
            max_retries=self.max_retries,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
            sleep=sleep,
        )

    def compute_delay(self, attempt: int) -> int:
        """Backoff in milliseconds before retry number ``attempt`` (1-based)."""
        if attempt < 1:
            return 0
        return min(self.base_delay_ms * 2 ** (attempt - 1), self.max_delay_ms)

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        context: RetryContext | None = None,
    ) -> T:
        """Run ``operation`` until it succeeds, fails fatally, or retries run out.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt.
            context: Describes the operation for log lines.

        Returns:
            Whatever the first successful attempt returned.

        Raises:
            RetryExhaustedError: After ``max_retries`` recoverable failures
                following the first attempt.
            Exception: Any fatal failure, unchanged.
        """
        context = context or RetryContext()
        attempt = 0

        while True:
            try:
                return await operation()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                category = classify_error(e)
                if category is ErrorCategory.FATAL:
                    log.warning("Fatal error in %s: %s", context.describe(), e)
                    raise

                attempt += 1
                if attempt > self.max_retries:
                    log.error(
                        "Retries exhausted for %s after %d attempts: %s",
                        context.describe(),
                        attempt,
                        e,
                    )
                    raise RetryExhaustedError(attempt, e) from e

                delay_ms = self.compute_delay(attempt)
                log.info(
                    "Recoverable error in %s (attempt %d/%d), retrying in %dms: %s",
                    context.describe(),
                    attempt,
                    self.max_retries,
                    delay_ms,
                    e,
                )
                await self._sleep(delay_ms / 1000)
