"""Per-user CRUD over persisted MCP server connections.

Everything except ``save_connection``'s configuration check is fail-soft:
storage errors are logged and surface as None / False / [].
"""

from __future__ import annotations

import logging

from prompt_supply.errors import ConnectionConfigError, StorageError
from prompt_supply.models import ConnectionStatus, MCPConnection, ServerConfig
from prompt_supply.storage.base import RecordStorePort
from prompt_supply.storage.memory import utc_now
from prompt_supply.storage.schema import MCP_CONNECTIONS

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self, store: RecordStorePort) -> None:
        self._store = store

    async def save_connection(self, user_id: str, config: ServerConfig) -> MCPConnection | None:
        """Insert a new connection with status ``disconnected``.

        Raises ConnectionConfigError when the server id or command is missing.
        """
        if not config.server_id or not config.command:
            raise ConnectionConfigError(
                "A server connection needs both a server id and a launch command."
            )
        try:
            row = await self._store.insert(
                MCP_CONNECTIONS,
                {
                    "user_id": user_id,
                    "server_id": config.server_id,
                    "server_name": config.name or config.server_id,
                    "server_command": config.command,
                    "server_args": list(config.args),
                    "server_env": dict(config.env),
                    "status": ConnectionStatus.DISCONNECTED.value,
                    "last_connected": None,
                    "error_message": None,
                },
            )
        except StorageError as exc:
            logger.error("Failed to save connection '%s': %s", config.server_id, exc)
            return None
        return MCPConnection.from_row(row)

    async def get_user_connections(self, user_id: str) -> list[MCPConnection]:
        """All of a user's connections, newest first."""
        try:
            rows = await self._store.select(
                MCP_CONNECTIONS, order_by="created_at", descending=True, user_id=user_id
            )
        except StorageError as exc:
            logger.error("Failed to list connections: %s", exc)
            return []
        return [MCPConnection.from_row(r) for r in rows]

    async def get_connection(self, user_id: str, connection_id: str) -> MCPConnection | None:
        try:
            row = await self._store.select_one(MCP_CONNECTIONS, id=connection_id, user_id=user_id)
        except StorageError as exc:
            logger.error("Failed to load connection %s: %s", connection_id, exc)
            return None
        return MCPConnection.from_row(row) if row else None

    async def find_by_server(self, user_id: str, server_id: str) -> MCPConnection | None:
        try:
            row = await self._store.select_one(
                MCP_CONNECTIONS, server_id=server_id, user_id=user_id
            )
        except StorageError as exc:
            logger.error("Failed to look up server '%s': %s", server_id, exc)
            return None
        return MCPConnection.from_row(row) if row else None

    async def update_connection_status(
        self,
        user_id: str,
        connection_id: str,
        status: ConnectionStatus,
        error_message: str | None = None,
    ) -> bool:
        """Move a connection to ``status``.

        ``connected`` stamps last_connected and clears the error message;
        ``error`` requires a non-empty message (ValueError otherwise).
        """
        changes: dict[str, object] = {"status": status.value}
        if status == ConnectionStatus.CONNECTED:
            changes["last_connected"] = utc_now()
            changes["error_message"] = None
        elif status == ConnectionStatus.ERROR:
            if not error_message or not error_message.strip():
                raise ValueError("An error status requires a non-empty error message.")
            changes["error_message"] = error_message

        try:
            updated = await self._store.update(
                MCP_CONNECTIONS, changes, id=connection_id, user_id=user_id
            )
        except StorageError as exc:
            logger.error("Failed to update connection %s: %s", connection_id, exc)
            return False
        return bool(updated)

    async def update_launch_config(
        self, user_id: str, connection_id: str, config: ServerConfig
    ) -> bool:
        """Overwrite the stored command, args and env with ``config``'s."""
        try:
            updated = await self._store.update(
                MCP_CONNECTIONS,
                {
                    "server_name": config.name or config.server_id,
                    "server_command": config.command,
                    "server_args": list(config.args),
                    "server_env": dict(config.env),
                },
                id=connection_id,
                user_id=user_id,
            )
        except StorageError as exc:
            logger.error("Failed to update launch config of %s: %s", connection_id, exc)
            return False
        return bool(updated)

    async def delete_connection(self, user_id: str, connection_id: str) -> bool:
        """Remove a connection row. Callers disconnect the server first."""
        try:
            removed = await self._store.delete(MCP_CONNECTIONS, id=connection_id, user_id=user_id)
        except StorageError as exc:
            logger.error("Failed to delete connection %s: %s", connection_id, exc)
            return False
        return removed > 0


def connection_to_server_config(connection: MCPConnection) -> ServerConfig:
    return ServerConfig(
        server_id=connection.server_id,
        name=connection.server_name,
        command=connection.command,
        args=list(connection.args),
        env=dict(connection.env),
    )
