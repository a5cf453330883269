"""OpenAI-compatible chat completion front-end.

Runs a turn through TurnRunner and yields the result either as
server-sent-event strings (``stream=True``) or as one completion body.
Serving these over HTTP is left to the embedding application.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from typing import Any

from cursorbridge.core.errors import BridgeError, TurnFailedError
from cursorbridge.logging import get_logger
from cursorbridge.process.runner import TurnRunner
from cursorbridge.session.protocols import StopReason, TurnResult, TurnUpdate
from cursorbridge.streaming.formatter import (
    DONE,
    OpenAIStreamFormatter,
    create_chat_completion_response,
    new_completion_id,
    to_sse,
)

log = get_logger("openai")

_END = object()


async def stream_chat_completion(
    runner: TurnRunner,
    session_id: str,
    prompt: str,
    model: str,
) -> AsyncIterator[str]:
    """Yield SSE lines for one turn, ending with ``data: [DONE]``.

    Failures, including a failed result event, are reported in-band as an
    error chunk in place of the finish chunk. Closing the iterator
    early cancels the turn.
    """
    formatter = OpenAIStreamFormatter(model)
    queue: asyncio.Queue[Any] = asyncio.Queue()

    async def on_update(update: TurnUpdate) -> None:
        chunk = formatter.format(update)
        if chunk is not None:
            await queue.put(to_sse(chunk))

    async def drive() -> TurnResult:
        try:
            return await runner.run_with_retry(session_id, prompt, on_update)
        finally:
            await queue.put(_END)

    task = asyncio.create_task(drive())
    try:
        while True:
            item = await queue.get()
            if item is _END:
                break
            yield item

        try:
            result = await task
        except BridgeError as e:
            log.error("Streaming turn failed for session %s: %s", session_id, e)
            yield to_sse(formatter.error_chunk(str(e)))
        else:
            if result.stop_reason is StopReason.ERROR:
                message = result.error or "Agent turn failed"
                log.error("Agent reported failure for session %s: %s", session_id, message)
                yield to_sse(formatter.error_chunk(message))
            else:
                yield to_sse(formatter.finish_chunk(result.stop_reason, result.usage))
        yield DONE
    finally:
        if not task.done():
            with contextlib.suppress(BridgeError):
                await runner.cancel(session_id)
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, BridgeError):
                await task


async def complete_chat(
    runner: TurnRunner,
    session_id: str,
    prompt: str,
    model: str,
) -> dict[str, Any]:
    """Run a turn and return a non-streaming ``chat.completion`` body.

    Raises:
        TurnFailedError: The agent reported failure in its result event.
        BridgeError: The turn could not be completed.
    """
    async def ignore(update: TurnUpdate) -> None:
        pass

    result = await runner.run_with_retry(session_id, prompt, ignore)
    if result.stop_reason is StopReason.ERROR:
        raise TurnFailedError(result.error or "Agent turn failed")
    return create_chat_completion_response(
        result.text,
        model,
        stop_reason=result.stop_reason,
        completion_id=new_completion_id(),
        usage=result.usage,
    )
