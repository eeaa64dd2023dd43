"""Tests for the record stores (storage/memory.py, storage/json_file.py)."""

from __future__ import annotations

import json

import pytest

from prompt_supply.errors import DuplicateRecordError, StorageError
from prompt_supply.storage.json_file import JsonFileStore
from prompt_supply.storage.memory import MemoryStore
from prompt_supply.storage.schema import (
    CLOUD_BRIDGE_INSTANCES,
    MCP_CONNECTIONS,
    OAUTH_CONNECTIONS,
)


class TestMemoryStore:
    async def test_insert_stamps_row(self, store):
        row = await store.insert(MCP_CONNECTIONS, {"user_id": "u1", "server_id": "a"})
        assert row["id"]
        assert row["created_at"]
        assert row["updated_at"]

    async def test_unique_key_enforced(self, store):
        await store.insert(MCP_CONNECTIONS, {"user_id": "u1", "server_id": "a"})
        with pytest.raises(DuplicateRecordError):
            await store.insert(MCP_CONNECTIONS, {"user_id": "u1", "server_id": "a"})
        # Same server for another user is fine.
        await store.insert(MCP_CONNECTIONS, {"user_id": "u2", "server_id": "a"})

    async def test_upsert_updates_in_place(self, store):
        first = await store.upsert(
            OAUTH_CONNECTIONS, {"user_id": "u1", "provider_id": "github", "access_token": "a"}
        )
        second = await store.upsert(
            OAUTH_CONNECTIONS, {"user_id": "u1", "provider_id": "github", "access_token": "b"}
        )
        assert first["id"] == second["id"]
        assert second["access_token"] == "b"
        assert len(await store.select(OAUTH_CONNECTIONS)) == 1

    async def test_select_filters_and_orders(self, store):
        for name in ("a", "b", "c"):
            await store.insert(MCP_CONNECTIONS, {"user_id": "u1", "server_id": name})
        await store.insert(MCP_CONNECTIONS, {"user_id": "u2", "server_id": "z"})

        rows = await store.select(
            MCP_CONNECTIONS, order_by="created_at", descending=True, user_id="u1"
        )

        assert [r["server_id"] for r in rows] == ["c", "b", "a"]

    async def test_rows_are_copies(self, store):
        row = await store.insert(CLOUD_BRIDGE_INSTANCES, {"id": "i1", "server_config": {"a": 1}})
        row["server_config"]["a"] = 2
        stored = await store.select_one(CLOUD_BRIDGE_INSTANCES, id="i1")
        assert stored["server_config"] == {"a": 1}

    async def test_update_and_delete(self, store):
        await store.insert(MCP_CONNECTIONS, {"user_id": "u1", "server_id": "a", "status": "x"})

        updated = await store.update(MCP_CONNECTIONS, {"status": "y"}, user_id="u1")
        assert [r["status"] for r in updated] == ["y"]
        assert await store.update(MCP_CONNECTIONS, {"status": "z"}, user_id="nobody") == []

        assert await store.delete(MCP_CONNECTIONS, user_id="u1") == 1
        assert await store.select(MCP_CONNECTIONS) == []

    async def test_increment(self, store):
        await store.insert(CLOUD_BRIDGE_INSTANCES, {"id": "i1", "requests_count": 0})

        assert await store.increment(CLOUD_BRIDGE_INSTANCES, "i1", "requests_count") == 1
        assert (
            await store.increment(
                CLOUD_BRIDGE_INSTANCES, "i1", "requests_count", stamp="last_request"
            )
            == 2
        )

        row = await store.select_one(CLOUD_BRIDGE_INSTANCES, id="i1")
        assert row["last_request"]

    async def test_increment_unknown_row(self, store):
        with pytest.raises(StorageError):
            await store.increment(CLOUD_BRIDGE_INSTANCES, "missing", "requests_count")


class TestJsonFileStore:
    async def test_missing_file_is_empty(self, tmp_path):
        store = JsonFileStore(tmp_path / "store.json")
        assert await store.select(MCP_CONNECTIONS) == []
        assert not (tmp_path / "store.json").exists()

    async def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "store.json"
        await JsonFileStore(path).insert(MCP_CONNECTIONS, {"user_id": "u1", "server_id": "a"})

        reopened = JsonFileStore(path)

        [row] = await reopened.select(MCP_CONNECTIONS)
        assert row["server_id"] == "a"
        assert json.loads(path.read_text())[MCP_CONNECTIONS][0]["user_id"] == "u1"

    async def test_no_temp_files_left_behind(self, tmp_path):
        path = tmp_path / "store.json"
        store = JsonFileStore(path)
        await store.insert(MCP_CONNECTIONS, {"user_id": "u1", "server_id": "a"})
        await store.delete(MCP_CONNECTIONS, user_id="u1")

        assert [p for p in tmp_path.iterdir() if p.suffix == ".tmp"] == []
        assert json.loads(path.read_text()) == {MCP_CONNECTIONS: []}

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")
        with pytest.raises(StorageError, match="Could not read"):
            JsonFileStore(path)

    def test_non_object_file_raises(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("[]")
        with pytest.raises(StorageError, match="not a JSON object"):
            JsonFileStore(path)


class TestJsonFileStoreFailedWrites:
    async def _store(self, tmp_path, monkeypatch):
        store = JsonFileStore(tmp_path / "store.json")
        await store.insert(
            CLOUD_BRIDGE_INSTANCES,
            {"id": "i-0", "user_id": "u", "status": "running", "requests_count": 0},
        )

        def fail(path, data):
            raise StorageError(f"Failed to write {path}: disk full")

        monkeypatch.setattr("prompt_supply.storage.json_file._atomic_write", fail)
        return store

    async def test_insert_is_discarded(self, tmp_path, monkeypatch):
        store = await self._store(tmp_path, monkeypatch)

        with pytest.raises(StorageError, match="disk full"):
            await store.insert(CLOUD_BRIDGE_INSTANCES, {"id": "i-1", "user_id": "u"})

        assert await store.select(CLOUD_BRIDGE_INSTANCES, id="i-1") == []
        assert len(await store.select(CLOUD_BRIDGE_INSTANCES)) == 1

    async def test_update_is_discarded(self, tmp_path, monkeypatch):
        store = await self._store(tmp_path, monkeypatch)

        with pytest.raises(StorageError):
            await store.update(CLOUD_BRIDGE_INSTANCES, {"status": "stopping"}, id="i-0")

        row = await store.select_one(CLOUD_BRIDGE_INSTANCES, id="i-0")
        assert row["status"] == "running"

    async def test_upsert_is_discarded(self, tmp_path, monkeypatch):
        store = await self._store(tmp_path, monkeypatch)

        with pytest.raises(StorageError):
            await store.upsert(
                CLOUD_BRIDGE_INSTANCES, {"id": "i-0", "status": "error"}, conflict_keys=("id",)
            )

        row = await store.select_one(CLOUD_BRIDGE_INSTANCES, id="i-0")
        assert row["status"] == "running"

    async def test_delete_is_discarded(self, tmp_path, monkeypatch):
        store = await self._store(tmp_path, monkeypatch)

        with pytest.raises(StorageError):
            await store.delete(CLOUD_BRIDGE_INSTANCES, id="i-0")

        assert len(await store.select(CLOUD_BRIDGE_INSTANCES)) == 1

    async def test_increment_is_discarded(self, tmp_path, monkeypatch):
        store = await self._store(tmp_path, monkeypatch)

        with pytest.raises(StorageError):
            await store.increment(
                CLOUD_BRIDGE_INSTANCES, "i-0", "requests_count", stamp="last_request"
            )

        row = await store.select_one(CLOUD_BRIDGE_INSTANCES, id="i-0")
        assert row["requests_count"] == 0
        assert "last_request" not in row

    async def test_store_recovers_after_failed_write(self, tmp_path, monkeypatch):
        store = await self._store(tmp_path, monkeypatch)
        with pytest.raises(StorageError):
            await store.insert(CLOUD_BRIDGE_INSTANCES, {"id": "i-1", "user_id": "u"})

        monkeypatch.undo()
        await store.insert(CLOUD_BRIDGE_INSTANCES, {"id": "i-2", "user_id": "u"})

        on_disk = json.loads(store.path.read_text())[CLOUD_BRIDGE_INSTANCES]
        assert [r["id"] for r in on_disk] == ["i-0", "i-2"]
