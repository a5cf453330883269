"""Agent Client Protocol front-end."""

from cursorbridge.transport.acp.agent import CursorBridgeAgent, create_agent

__all__ = ["CursorBridgeAgent", "create_agent"]
