"""Tests for the connection manager and the connect/disconnect lifecycle."""

from __future__ import annotations

from dataclasses import replace
from unittest.mock import AsyncMock

import pytest

from prompt_supply.connections.lifecycle import ConnectionLifecycle
from prompt_supply.connections.manager import ConnectionManager, connection_to_server_config
from prompt_supply.errors import (
    BridgeError,
    ConnectionConfigError,
    ConnectionFailedError,
    StorageError,
)
from prompt_supply.models import ConnectionStatus, ServerConfig
from prompt_supply.storage.memory import MemoryStore
from prompt_supply.toolcall.client import ToolCallClient

# ─── Helpers ─────────────────────────────────────────────────


def _config(server_id: str = "weather", command: str = "npx") -> ServerConfig:
    return ServerConfig(
        server_id=server_id,
        name=f"{server_id} server",
        command=command,
        args=["-y", f"mcp-{server_id}"],
        env={"UNITS": "metric"},
    )


def _broken_store() -> AsyncMock:
    store = AsyncMock(spec=MemoryStore)
    for method in ("insert", "select", "select_one", "update", "delete"):
        getattr(store, method).side_effect = StorageError("database unavailable")
    return store


def _bridge(connect_error: str | None = None) -> AsyncMock:
    bridge = AsyncMock()
    if connect_error:
        bridge.connect = AsyncMock(side_effect=BridgeError(connect_error))
    return bridge


# ─── Connection manager ──────────────────────────────────────


class TestSaveConnection:
    async def test_saves_disconnected(self, store: MemoryStore) -> None:
        manager = ConnectionManager(store)

        connection = await manager.save_connection("u1", _config())

        assert connection is not None
        assert connection.status == ConnectionStatus.DISCONNECTED
        assert connection.command == "npx"
        assert connection.args == ["-y", "mcp-weather"]
        assert connection.env == {"UNITS": "metric"}
        assert connection.last_connected is None

    async def test_missing_command_raises(self, store: MemoryStore) -> None:
        with pytest.raises(ConnectionConfigError):
            await ConnectionManager(store).save_connection("u1", _config(command=""))

    async def test_missing_id_raises(self, store: MemoryStore) -> None:
        with pytest.raises(ConnectionConfigError):
            await ConnectionManager(store).save_connection("u1", _config(server_id=""))

    async def test_duplicate_server_returns_none(self, store: MemoryStore) -> None:
        manager = ConnectionManager(store)
        await manager.save_connection("u1", _config())
        assert await manager.save_connection("u1", _config()) is None

    async def test_storage_failure_returns_none(self) -> None:
        assert await ConnectionManager(_broken_store()).save_connection("u1", _config()) is None


class TestQueries:
    async def test_newest_first(self, store: MemoryStore) -> None:
        manager = ConnectionManager(store)
        for name in ("a", "b", "c"):
            await manager.save_connection("u1", _config(name))

        connections = await manager.get_user_connections("u1")

        assert [c.server_id for c in connections] == ["c", "b", "a"]

    async def test_scoped_to_user(self, store: MemoryStore) -> None:
        manager = ConnectionManager(store)
        theirs = await manager.save_connection("u2", _config())

        assert await manager.get_user_connections("u1") == []
        assert await manager.get_connection("u1", theirs.id) is None
        assert await manager.find_by_server("u1", "weather") is None
        assert await manager.delete_connection("u1", theirs.id) is False
        assert (
            await manager.update_connection_status("u1", theirs.id, ConnectionStatus.CONNECTED)
            is False
        )

    async def test_fail_soft_reads(self) -> None:
        manager = ConnectionManager(_broken_store())
        assert await manager.get_user_connections("u1") == []
        assert await manager.get_connection("u1", "x") is None
        assert await manager.find_by_server("u1", "weather") is None
        assert await manager.delete_connection("u1", "x") is False
        assert (
            await manager.update_connection_status("u1", "x", ConnectionStatus.DISCONNECTED)
            is False
        )

    async def test_to_server_config(self, store: MemoryStore) -> None:
        connection = await ConnectionManager(store).save_connection("u1", _config())
        config = connection_to_server_config(connection)
        assert config.server_id == "weather"
        assert config.command == "npx"
        assert config.env == {"UNITS": "metric"}


class TestStatusTransitions:
    async def test_connected_clears_error_and_stamps(self, store: MemoryStore) -> None:
        manager = ConnectionManager(store)
        saved = await manager.save_connection("u1", _config())
        await manager.update_connection_status("u1", saved.id, ConnectionStatus.ERROR, "crashed")

        assert await manager.update_connection_status("u1", saved.id, ConnectionStatus.CONNECTED)

        connection = await manager.get_connection("u1", saved.id)
        assert connection.status == ConnectionStatus.CONNECTED
        assert connection.error_message is None
        assert connection.last_connected is not None

    @pytest.mark.parametrize("message", [None, "", "   "])
    async def test_error_requires_message(self, store: MemoryStore, message: str | None) -> None:
        manager = ConnectionManager(store)
        saved = await manager.save_connection("u1", _config())
        with pytest.raises(ValueError, match="non-empty"):
            await manager.update_connection_status("u1", saved.id, ConnectionStatus.ERROR, message)

    async def test_error_stores_message(self, store: MemoryStore) -> None:
        manager = ConnectionManager(store)
        saved = await manager.save_connection("u1", _config())
        await manager.update_connection_status(
            "u1", saved.id, ConnectionStatus.ERROR, "spawn failed"
        )
        connection = await manager.get_connection("u1", saved.id)
        assert connection.status == ConnectionStatus.ERROR
        assert connection.error_message == "spawn failed"

    async def test_other_transitions_only_change_status(self, store: MemoryStore) -> None:
        manager = ConnectionManager(store)
        saved = await manager.save_connection("u1", _config())
        await manager.update_connection_status("u1", saved.id, ConnectionStatus.ERROR, "boom")
        await manager.update_connection_status("u1", saved.id, ConnectionStatus.DISCONNECTED)
        connection = await manager.get_connection("u1", saved.id)
        assert connection.status == ConnectionStatus.DISCONNECTED
        assert connection.error_message == "boom"


# ─── Lifecycle ───────────────────────────────────────────────


class TestConnectionLifecycle:
    async def test_connect_success(self, store: MemoryStore) -> None:
        bridge = _bridge()
        lifecycle = ConnectionLifecycle(ConnectionManager(store), ToolCallClient(bridge))

        connection = await lifecycle.connect("u1", _config())

        assert connection.status == ConnectionStatus.CONNECTED
        assert lifecycle.tool_client.is_server_connected("weather")
        bridge.connect.assert_awaited_once()

    async def test_connect_reuses_existing_row(self, store: MemoryStore) -> None:
        manager = ConnectionManager(store)
        lifecycle = ConnectionLifecycle(manager, ToolCallClient(_bridge()))

        first = await lifecycle.connect("u1", _config())
        second = await lifecycle.connect("u1", _config())

        assert first.id == second.id
        assert len(await manager.get_user_connections("u1")) == 1

    async def test_reconnect_refreshes_stored_launch_config(self, store: MemoryStore) -> None:
        manager = ConnectionManager(store)
        lifecycle = ConnectionLifecycle(manager, ToolCallClient(_bridge()))
        stale = replace(_config(), env={"GITHUB_TOKEN": "old"})
        fresh = replace(_config(), args=["-y", "mcp-weather@2"], env={"GITHUB_TOKEN": "new"})

        first = await lifecycle.connect("u1", stale)
        await lifecycle.disconnect("u1", first.id)
        second = await lifecycle.connect("u1", fresh)

        assert second.id == first.id
        assert second.env == {"GITHUB_TOKEN": "new"}
        assert second.args == ["-y", "mcp-weather@2"]
        assert connection_to_server_config(second) == fresh

    async def test_update_launch_config_storage_failure(self) -> None:
        manager = ConnectionManager(_broken_store())
        assert await manager.update_launch_config("u1", "c1", _config()) is False

    async def test_connect_failure_records_bridge_error(self, store: MemoryStore) -> None:
        manager = ConnectionManager(store)
        lifecycle = ConnectionLifecycle(
            manager, ToolCallClient(_bridge("EACCES: permission denied, spawn npx"))
        )

        with pytest.raises(ConnectionFailedError, match="EACCES: permission denied"):
            await lifecycle.connect("u1", _config())

        [connection] = await manager.get_user_connections("u1")
        assert connection.status == ConnectionStatus.ERROR
        assert connection.error_message == "EACCES: permission denied, spawn npx"

    async def test_connect_fails_when_row_cannot_be_saved(self) -> None:
        manager = ConnectionManager(_broken_store())
        lifecycle = ConnectionLifecycle(manager, ToolCallClient(_bridge()))
        with pytest.raises(ConnectionFailedError, match="Could not save"):
            await lifecycle.connect("u1", _config())

    async def test_disconnect(self, store: MemoryStore) -> None:
        bridge = _bridge()
        manager = ConnectionManager(store)
        lifecycle = ConnectionLifecycle(manager, ToolCallClient(bridge))
        connection = await lifecycle.connect("u1", _config())

        assert await lifecycle.disconnect("u1", connection.id) is True

        bridge.disconnect.assert_awaited_once_with("weather")
        assert not lifecycle.tool_client.is_server_connected("weather")
        refreshed = await manager.get_connection("u1", connection.id)
        assert refreshed.status == ConnectionStatus.DISCONNECTED

    async def test_remove_disconnects_first(self, store: MemoryStore) -> None:
        bridge = _bridge()
        manager = ConnectionManager(store)
        lifecycle = ConnectionLifecycle(manager, ToolCallClient(bridge))
        connection = await lifecycle.connect("u1", _config())

        assert await lifecycle.remove("u1", connection.id) is True

        bridge.disconnect.assert_awaited_once_with("weather")
        assert await manager.get_user_connections("u1") == []

    async def test_remove_unknown_connection(self, store: MemoryStore) -> None:
        bridge = _bridge()
        lifecycle = ConnectionLifecycle(ConnectionManager(store), ToolCallClient(bridge))
        assert await lifecycle.remove("u1", "missing") is False
        bridge.disconnect.assert_not_awaited()
