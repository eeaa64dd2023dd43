"""Tool bridge that spawns MCP servers itself and talks to them over stdio.

Each server runs inside a dedicated task that owns the ``stdio_client`` and
``ClientSession`` context managers for the lifetime of the connection. Other
tasks reach the server only through the session; disconnecting sets the
task's stop event so the contexts unwind in the task that entered them.
"""

from __future__ import annotations

import asyncio
import contextlib
import errno
import logging
from dataclasses import dataclass

from mcp.client.session import ClientSession
from mcp.client.stdio import StdioServerParameters, stdio_client

from prompt_supply.errors import BridgeError
from prompt_supply.models import ServerConfig, ToolCall, ToolCallResult, ToolInfo

logger = logging.getLogger(__name__)


def _first_leaf(exc: BaseException) -> BaseException:
    """Unwrap the task-group ExceptionGroups raised by the stdio transport."""
    while isinstance(exc, BaseExceptionGroup) and exc.exceptions:
        exc = exc.exceptions[0]
    return exc


def describe_spawn_error(exc: BaseException) -> str:
    """Turn a spawn or handshake failure into a message a user can act on."""
    exc = _first_leaf(exc)
    if isinstance(exc, FileNotFoundError):
        return f"Command not found: {exc.filename}. Is the package installed?"
    if isinstance(exc, PermissionError):
        code = errno.errorcode.get(exc.errno or errno.EACCES, "EACCES")
        return f"{code}: permission denied, spawn {exc.filename}"
    return f"{type(exc).__name__}: {exc}"


def _content_to_json(content: object) -> object:
    dump = getattr(content, "model_dump", None)
    return dump(mode="json") if callable(dump) else content


def _error_text(content: list) -> str:
    for item in content:
        text = getattr(item, "text", None)
        if text:
            return str(text)
    return "Tool reported an error"


@dataclass(slots=True)
class _RunningServer:
    config: ServerConfig
    task: asyncio.Task
    stop: asyncio.Event
    session: ClientSession


class StdioToolBridge:
    """Adapter for ToolBridgePort that is its own process registry."""

    def __init__(
        self,
        *,
        start_timeout_seconds: float = 30.0,
        call_timeout_seconds: float = 30.0,
        stop_timeout_seconds: float = 5.0,
    ) -> None:
        self._start_timeout = start_timeout_seconds
        self._call_timeout = call_timeout_seconds
        self._stop_timeout = stop_timeout_seconds
        self._servers: dict[str, _RunningServer] = {}

    @property
    def running(self) -> list[str]:
        return list(self._servers)

    async def connect(self, config: ServerConfig) -> None:
        if config.server_id in self._servers:
            return

        loop = asyncio.get_running_loop()
        ready: asyncio.Future[ClientSession] = loop.create_future()
        stop = asyncio.Event()
        task = asyncio.create_task(
            self._serve(config, ready, stop), name=f"mcp-server-{config.server_id}"
        )

        try:
            session = await asyncio.wait_for(asyncio.shield(ready), timeout=self._start_timeout)
        except TimeoutError:
            stop.set()
            ready.cancel()
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
            logger.warning(
                "MCP server '%s' did not start within %.0fs", config.server_id, self._start_timeout
            )
            raise BridgeError(
                f"Server did not respond within {self._start_timeout:.0f}s "
                "(process cleanup was attempted). "
                "Check that the command exists, required env vars are set, "
                "and the server supports stdio transport."
            ) from None
        except BridgeError:
            await task
            raise

        self._servers[config.server_id] = _RunningServer(config, task, stop, session)
        logger.info("Started MCP server '%s'", config.server_id)

    async def _serve(
        self,
        config: ServerConfig,
        ready: asyncio.Future[ClientSession],
        stop: asyncio.Event,
    ) -> None:
        params = StdioServerParameters(
            command=config.command,
            args=list(config.args),
            env=dict(config.env) or None,
        )
        try:
            async with (
                stdio_client(params) as (read_stream, write_stream),
                ClientSession(read_stream, write_stream) as session,
            ):
                await session.initialize()
                if ready.done():
                    return
                ready.set_result(session)
                await stop.wait()
        except Exception as exc:
            if not ready.done():
                ready.set_exception(BridgeError(describe_spawn_error(exc)))
            else:
                logger.warning("MCP server '%s' exited: %s", config.server_id, exc)
        finally:
            running = self._servers.get(config.server_id)
            if running is not None and running.stop is stop:
                del self._servers[config.server_id]

    async def disconnect(self, server_id: str) -> None:
        running = self._servers.pop(server_id, None)
        if running is None:
            return
        running.stop.set()
        try:
            await asyncio.wait_for(running.task, timeout=self._stop_timeout)
        except TimeoutError:
            logger.warning("MCP server '%s' did not stop cleanly; cancelled", server_id)
        logger.info("Stopped MCP server '%s'", server_id)

    def _session(self, server_id: str) -> ClientSession:
        running = self._servers.get(server_id)
        if running is None:
            raise BridgeError(f"Server '{server_id}' is not connected.")
        return running.session

    async def list_tools(self, server_id: str) -> list[ToolInfo]:
        session = self._session(server_id)
        try:
            result = await asyncio.wait_for(session.list_tools(), timeout=self._call_timeout)
        except TimeoutError as exc:
            raise BridgeError(f"Listing tools on '{server_id}' timed out.") from exc
        except Exception as exc:
            raise BridgeError(f"Failed to list tools on '{server_id}': {exc}") from exc
        return [
            ToolInfo(
                name=tool.name,
                description=tool.description or "",
                input_schema=dict(tool.inputSchema or {}),
            )
            for tool in result.tools
        ]

    async def call_tool(self, call: ToolCall) -> ToolCallResult:
        try:
            session = self._session(call.server_id)
        except BridgeError as exc:
            return ToolCallResult(success=False, error=str(exc))

        try:
            result = await asyncio.wait_for(
                session.call_tool(call.tool_name, call.arguments),
                timeout=self._call_timeout,
            )
        except TimeoutError as exc:
            raise BridgeError(
                f"Tool '{call.tool_name}' timed out after {self._call_timeout:.0f}s."
            ) from exc
        except Exception as exc:
            raise BridgeError(f"Tool '{call.tool_name}' failed: {exc}") from exc

        content = [_content_to_json(c) for c in result.content]
        if result.isError:
            return ToolCallResult(success=False, content=content, error=_error_text(result.content))
        return ToolCallResult(success=True, content=content)

    async def close(self) -> None:
        for server_id in list(self._servers):
            await self.disconnect(server_id)
