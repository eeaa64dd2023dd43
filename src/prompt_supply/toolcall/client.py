"""Tool-call façade with a process-local cache of connected servers."""

from __future__ import annotations

import logging

from prompt_supply.errors import BridgeError
from prompt_supply.models import ServerConfig, ToolCall, ToolCallResult, ToolInfo
from prompt_supply.toolcall.base import ToolBridgePort

logger = logging.getLogger(__name__)


class ToolCallClient:
    """Boolean-friendly wrapper around a ToolBridgePort.

    The connected-server cache is not a source of truth; the bridge is.
    ``connect_server`` never raises and ``execute_tool_call`` folds transport
    failures into the same ``ToolCallResult`` shape as remote failures.
    ``list_tools`` raises BridgeError.
    """

    def __init__(self, bridge: ToolBridgePort) -> None:
        self._bridge = bridge
        self._connected: dict[str, ServerConfig] = {}
        self._last_errors: dict[str, str] = {}

    async def connect_server(self, config: ServerConfig) -> bool:
        try:
            await self._bridge.connect(config)
        except BridgeError as exc:
            self._last_errors[config.server_id] = str(exc)
            logger.error("Failed to connect to MCP server '%s': %s", config.name, exc)
            return False
        self._last_errors.pop(config.server_id, None)
        self._connected[config.server_id] = config
        logger.info("Connected to MCP server '%s'", config.name)
        return True

    async def disconnect_server(self, server_id: str) -> bool:
        """Disconnect and drop the cache entry. Returns whether the bridge confirmed it."""
        self._connected.pop(server_id, None)
        try:
            await self._bridge.disconnect(server_id)
        except BridgeError as exc:
            logger.error("Failed to disconnect from MCP server '%s': %s", server_id, exc)
            return False
        logger.info("Disconnected from MCP server '%s'", server_id)
        return True

    async def list_tools(self, server_id: str) -> list[ToolInfo]:
        return await self._bridge.list_tools(server_id)

    async def execute_tool_call(self, call: ToolCall) -> ToolCallResult:
        try:
            return await self._bridge.call_tool(call)
        except BridgeError as exc:
            logger.error("Tool call failed for '%s': %s", call.tool_name, exc)
            return ToolCallResult(success=False, content=None, error=str(exc))

    def connected_servers(self) -> list[ServerConfig]:
        return list(self._connected.values())

    def is_server_connected(self, server_id: str) -> bool:
        return server_id in self._connected

    def get_server_config(self, server_id: str) -> ServerConfig | None:
        return self._connected.get(server_id)

    def last_error(self, server_id: str) -> str | None:
        """Message of the most recent failed connect for ``server_id``."""
        return self._last_errors.get(server_id)

    async def disconnect_all(self) -> None:
        for server_id in list(self._connected):
            await self.disconnect_server(server_id)
