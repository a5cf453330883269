"""Tests for failure classification and the retry engine."""

from __future__ import annotations

import asyncio

import pytest

from cursorbridge.config.schema import RetryConfig
from cursorbridge.core.errors import (
    AgentProcessError,
    ErrorCategory,
    RetryExhaustedError,
    classify_error,
    is_recoverable,
)
from cursorbridge.core.retry import RetryContext, RetryEngine


class Flaky:
    """Fails with the given errors in turn, then returns ``value``."""

    def __init__(self, errors: list[BaseException], value: str = "ok") -> None:
        self.errors = list(errors)
        self.value = value
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.value


class TestClassifyError:
    """Tests for classify_error."""

    @pytest.mark.parametrize(
        "message",
        [
            "Request timed out",
            "connect ECONNREFUSED 127.0.0.1:443",
            "Rate limit exceeded",
            "HTTP 429 Too Many Requests",
            "socket hang up: ECONNRESET",
        ],
    )
    def test_recoverable_messages(self, message: str) -> None:
        assert classify_error(RuntimeError(message)) is ErrorCategory.RECOVERABLE

    @pytest.mark.parametrize(
        "message",
        [
            "Error: Not logged in. Run cursor-agent login",
            "Authentication failed",
            "Invalid API key",
            "Invalid configuration: agent executable not found: cursor-agent",
        ],
    )
    def test_fatal_messages(self, message: str) -> None:
        assert classify_error(RuntimeError(message)) is ErrorCategory.FATAL

    def test_unknown_is_fatal(self) -> None:
        assert classify_error(RuntimeError("something odd")) is ErrorCategory.FATAL

    def test_fatal_pattern_beats_recoverable(self) -> None:
        assert classify_error(RuntimeError("authentication timed out")) is ErrorCategory.FATAL

    def test_exception_types(self) -> None:
        assert is_recoverable(asyncio.TimeoutError())
        assert is_recoverable(ConnectionRefusedError())
        assert not is_recoverable(ValueError())

    def test_agent_process_error_uses_message(self) -> None:
        assert is_recoverable(AgentProcessError("connection reset by peer", exit_code=1))


class TestRetryEngine:
    """Tests for RetryEngine.execute_with_retry."""

    def test_compute_delay(self) -> None:
        engine = RetryEngine(base_delay_ms=1000, max_delay_ms=5000)
        assert [engine.compute_delay(n) for n in range(1, 6)] == [1000, 2000, 4000, 5000, 5000]
        assert engine.compute_delay(0) == 0

    async def test_success_first_try(self, fake_sleep, recorded_sleeps) -> None:
        engine = RetryEngine(sleep=fake_sleep)
        op = Flaky([])
        assert await engine.execute_with_retry(op) == "ok"
        assert op.calls == 1
        assert recorded_sleeps == []

    async def test_two_recoverable_failures_then_success(self, fake_sleep, recorded_sleeps) -> None:
        """Two transient failures wait 1000 then 2000 before succeeding."""
        engine = RetryEngine(base_delay_ms=1000, sleep=fake_sleep)
        op = Flaky([RuntimeError("timeout"), RuntimeError("ECONNREFUSED")], value="done")

        result = await engine.execute_with_retry(op, RetryContext(kind="prompt", session_id="s1"))

        assert result == "done"
        assert op.calls == 3
        assert recorded_sleeps == [1.0, 2.0]

    async def test_fatal_fails_immediately(self, fake_sleep, recorded_sleeps) -> None:
        """A fatal failure propagates unchanged with no delay."""
        engine = RetryEngine(sleep=fake_sleep)
        error = RuntimeError("Not logged in")
        op = Flaky([error])

        with pytest.raises(RuntimeError) as exc_info:
            await engine.execute_with_retry(op)

        assert exc_info.value is error
        assert op.calls == 1
        assert recorded_sleeps == []

    async def test_exhaustion_wraps_last_error(self, fake_sleep, recorded_sleeps) -> None:
        engine = RetryEngine(max_retries=2, base_delay_ms=10, sleep=fake_sleep)
        errors = [RuntimeError(f"timeout {n}") for n in range(3)]
        op = Flaky(errors)

        with pytest.raises(RetryExhaustedError) as exc_info:
            await engine.execute_with_retry(op)

        assert op.calls == 3
        assert exc_info.value.attempts == 3
        assert str(exc_info.value.last_error) == "timeout 2"
        assert exc_info.value.__cause__ is exc_info.value.last_error
        assert recorded_sleeps == [0.01, 0.02]

    async def test_zero_retries(self, fake_sleep) -> None:
        engine = RetryEngine(max_retries=0, sleep=fake_sleep)
        with pytest.raises(RetryExhaustedError):
            await engine.execute_with_retry(Flaky([RuntimeError("timeout")]))

    async def test_cancellation_propagates(self, fake_sleep) -> None:
        engine = RetryEngine(sleep=fake_sleep)
        op = Flaky([asyncio.CancelledError()])
        with pytest.raises(asyncio.CancelledError):
            await engine.execute_with_retry(op)
        assert op.calls == 1

    async def test_with_sleep_keeps_policy(self, fake_sleep, recorded_sleeps) -> None:
        engine = RetryEngine(max_retries=5, base_delay_ms=100).with_sleep(fake_sleep)
        assert engine.max_retries == 5
        await engine.execute_with_retry(Flaky([RuntimeError("429")]))
        assert recorded_sleeps == [0.1]

    def test_from_config(self) -> None:
        engine = RetryEngine.from_config(RetryConfig(max_retries=1, base_delay_ms=50, max_delay_ms=60))
        assert (engine.max_retries, engine.base_delay_ms, engine.max_delay_ms) == (1, 50, 60)

    def test_negative_retries_rejected(self) -> None:
        with pytest.raises(ValueError):
            RetryEngine(max_retries=-1)

    def test_context_describe(self) -> None:
        assert RetryContext(kind="auth").describe() == "auth"
        assert RetryContext(kind="prompt", session_id="s1").describe() == "prompt (session s1)"
