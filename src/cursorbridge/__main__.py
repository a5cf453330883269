"""Entry point for running the Cursor bridge as an ACP agent.

Usage:
    python -m cursorbridge

This starts the ACP agent listening on stdin/stdout for JSON-RPC
messages from an ACP client (Rider, Zed, etc.). Each prompt is run by
spawning cursor-agent, which must be installed and logged in.
"""

from __future__ import annotations

import asyncio
import json
import os

from cursorbridge.config import Config
from cursorbridge.logging import get_logger, setup_logging

log = get_logger()


async def _main(config: Config) -> None:
    """Async entry point with proper cleanup."""
    from acp.agent.connection import AgentSideConnection
    from acp.connection import StreamDirection, StreamEvent
    from acp.stdio import stdio_streams

    from cursorbridge.transport.acp.agent import create_agent

    agent = create_agent(config)
    await agent.start()
    log.info("Agent ready (executable=%s, model=%s)", config.agent.executable, config.agent.model)

    def log_message(event: StreamEvent) -> None:
        """Log ACP traffic at debug level."""
        direction = "<<" if event.direction == StreamDirection.INCOMING else ">>"
        method = event.message.get("method", "response")
        msg_id = event.message.get("id", "-")

        if method == "session/update":
            update = event.message.get("params", {}).get("update", {})
            log.debug("%s %s type=%s", direction, method, update.get("sessionUpdate", "unknown"))
        elif method == "response":
            error = event.message.get("error")
            if error:
                log.debug("%s response (id=%s) ERROR: %s", direction, msg_id, error)
            else:
                log.debug("%s response (id=%s)", direction, msg_id)
        else:
            msg_str = json.dumps(event.message, default=str)
            preview = msg_str[:200] + "..." if len(msg_str) > 200 else msg_str
            log.debug("%s %s (id=%s) %s", direction, method, msg_id, preview)

    output_stream, input_stream = await stdio_streams()
    conn = AgentSideConnection(
        agent,
        input_stream,
        output_stream,
        listening=False,
        use_unstable_protocol=True,
    )
    conn._conn.add_observer(log_message)

    log.info("Ready to accept ACP requests")

    try:
        await conn.listen()
    except (BrokenPipeError, ConnectionResetError):
        log.info("Pipe closed, shutting down...")
    finally:
        log.info("Connection closed, cleaning up...")
        try:
            await asyncio.wait_for(conn.close(), timeout=2.0)
        except asyncio.TimeoutError:
            log.warning("Connection close timed out, forcing exit")
        except Exception as e:
            log.warning("Error during cleanup: %s", e)


def main() -> None:
    """Run the Cursor bridge ACP agent."""
    from cursorbridge.config import load_config

    # Load config before logging so we can use config.logging settings
    config = load_config(session_root=os.getcwd())
    setup_logging(config.logging)

    log.info(
        "Starting Cursor ACP bridge (retries=%d, retention=%dd)",
        config.retry.max_retries,
        config.session.retention_days,
    )

    try:
        asyncio.run(_main(config))
    finally:
        # Lingering subprocess pipes must not keep the interpreter alive
        log.info("Exiting...")
        os._exit(0)


if __name__ == "__main__":
    main()
