"""Tool bridge that forwards to a server-side process manager over HTTP."""

from __future__ import annotations

import logging

import httpx

from prompt_supply.errors import BridgeError
from prompt_supply.models import ServerConfig, ToolCall, ToolCallResult, ToolInfo

logger = logging.getLogger(__name__)


class HttpToolBridge:
    """Adapter for ToolBridgePort. Holds the httpx client.

    Routes: POST /api/mcp/connect, POST /api/mcp/disconnect,
    GET /api/mcp/tools?serverId=, POST /api/mcp/execute.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        *,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, object] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict:
        try:
            resp = await self._http.request(
                method,
                f"{self._base_url}{path}",
                json=json,
                params=params,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise BridgeError(f"Tool bridge timed out after {self._timeout:.0f}s.") from exc
        except httpx.HTTPError as exc:
            raise BridgeError(f"Failed to fetch {path}: {exc}") from exc

        if resp.status_code != 200:
            raise BridgeError(f"HTTP error! status: {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise BridgeError(f"Tool bridge returned invalid JSON for {path}.") from exc
        if not isinstance(data, dict):
            raise BridgeError(f"Tool bridge returned an unexpected response for {path}.")
        return data

    async def connect(self, config: ServerConfig) -> None:
        result = await self._request("POST", "/api/mcp/connect", json=config.to_dict())
        if not result.get("success"):
            raise BridgeError(str(result.get("error") or "Connection failed"))

    async def disconnect(self, server_id: str) -> None:
        await self._request("POST", "/api/mcp/disconnect", json={"serverId": server_id})

    async def list_tools(self, server_id: str) -> list[ToolInfo]:
        result = await self._request("GET", "/api/mcp/tools", params={"serverId": server_id})
        tools = result.get("tools") or []
        return [ToolInfo.from_dict(t) for t in tools if isinstance(t, dict)]

    async def call_tool(self, call: ToolCall) -> ToolCallResult:
        result = await self._request(
            "POST",
            "/api/mcp/execute",
            json={
                "serverId": call.server_id,
                "toolName": call.tool_name,
                "arguments": call.arguments,
            },
        )
        return ToolCallResult(
            success=bool(result.get("success")),
            content=result.get("content"),
            error=str(result.get("error") or ""),
        )
