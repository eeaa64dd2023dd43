"""Connect, disconnect and remove servers, keeping stored status in step."""

from __future__ import annotations

import logging

from prompt_supply.connections.manager import ConnectionManager
from prompt_supply.errors import ConnectionFailedError
from prompt_supply.models import ConnectionStatus, MCPConnection, ServerConfig
from prompt_supply.toolcall.client import ToolCallClient

logger = logging.getLogger(__name__)


class ConnectionLifecycle:
    """Composes ConnectionManager and ToolCallClient.

    The manager never calls the tool-call client itself; this is the one
    place that drives both.
    """

    def __init__(self, connections: ConnectionManager, tool_client: ToolCallClient) -> None:
        self.connections = connections
        self.tool_client = tool_client

    async def connect(self, user_id: str, config: ServerConfig) -> MCPConnection:
        """Reuse or create the user's row for this server, then start it.

        A reused row takes the launch command, args and env of ``config`` so
        later relaunches use the same credentials as this one.

        Raises:
            ConnectionConfigError: The config has no server id or command.
            ConnectionFailedError: The row could not be saved or the server
                failed to start. The message is the bridge's own error text.
        """
        connection = await self.connections.find_by_server(user_id, config.server_id)
        if connection is None:
            connection = await self.connections.save_connection(user_id, config)
            if connection is None:
                raise ConnectionFailedError(f"Could not save the connection for {config.name}.")
        elif not await self.connections.update_launch_config(user_id, connection.id, config):
            raise ConnectionFailedError(f"Could not update the connection for {config.name}.")

        if not await self.tool_client.connect_server(config):
            message = (
                self.tool_client.last_error(config.server_id)
                or f"Failed to connect to {config.name}."
            )
            await self.connections.update_connection_status(
                user_id, connection.id, ConnectionStatus.ERROR, message
            )
            raise ConnectionFailedError(message)

        await self.connections.update_connection_status(
            user_id, connection.id, ConnectionStatus.CONNECTED
        )
        refreshed = await self.connections.get_connection(user_id, connection.id)
        return refreshed or connection

    async def disconnect(self, user_id: str, connection_id: str) -> bool:
        connection = await self.connections.get_connection(user_id, connection_id)
        if connection is None:
            return False
        await self.tool_client.disconnect_server(connection.server_id)
        return await self.connections.update_connection_status(
            user_id, connection_id, ConnectionStatus.DISCONNECTED
        )

    async def remove(self, user_id: str, connection_id: str) -> bool:
        """Disconnect the server, then delete its row."""
        connection = await self.connections.get_connection(user_id, connection_id)
        if connection is None:
            return False
        await self.tool_client.disconnect_server(connection.server_id)
        removed = await self.connections.delete_connection(user_id, connection_id)
        if removed:
            logger.info("Removed connection '%s' for user %s", connection.server_id, user_id)
        return removed
