"""Port: the process registry that actually runs MCP servers."""

from __future__ import annotations

from typing import Protocol

from prompt_supply.models import ServerConfig, ToolCall, ToolCallResult, ToolInfo


class ToolBridgePort(Protocol):
    """Connects to, lists tools from and invokes tools on running MCP servers.

    Transport and spawn failures raise BridgeError. Failures the server itself
    reports come back as an unsuccessful ToolCallResult.
    """

    async def connect(self, config: ServerConfig) -> None: ...

    async def disconnect(self, server_id: str) -> None: ...

    async def list_tools(self, server_id: str) -> list[ToolInfo]: ...

    async def call_tool(self, call: ToolCall) -> ToolCallResult: ...
