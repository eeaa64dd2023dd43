"""In-process record store: one dict of rows per table."""

from __future__ import annotations

import contextlib
import copy
import uuid
from collections.abc import Iterator
from datetime import UTC, datetime

from prompt_supply.errors import DuplicateRecordError, StorageError
from prompt_supply.storage.schema import UNIQUE_KEYS


def utc_now() -> str:
    return datetime.now(UTC).isoformat()


def _matches(row: dict[str, object], filters: dict[str, object]) -> bool:
    return all(row.get(key) == value for key, value in filters.items())


class MemoryStore:
    """Record store backed by plain dicts.

    Unique keys from ``storage.schema`` are enforced on insert and used as the
    default conflict target for upsert. Rows are deep-copied on the way in and
    on the way out so callers never share mutable state with the store.
    """

    def __init__(self, tables: dict[str, list[dict[str, object]]] | None = None) -> None:
        self._tables: dict[str, list[dict[str, object]]] = tables or {}

    def _table(self, name: str) -> list[dict[str, object]]:
        return self._tables.setdefault(name, [])

    def _commit(self) -> None:
        """Persist pending changes. No-op for the in-memory store."""

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[None]:
        """Wrap one change to the tables; commits when the block exits cleanly."""
        yield
        self._commit()

    def _find_conflict(
        self, table: str, row: dict[str, object], keys: tuple[str, ...]
    ) -> dict[str, object] | None:
        if not keys:
            return None
        target = {k: row.get(k) for k in keys}
        for existing in self._table(table):
            if _matches(existing, target):
                return existing
        return None

    # ─── Port implementation ─────────────────────────────────

    async def insert(self, table: str, row: dict[str, object]) -> dict[str, object]:
        keys = UNIQUE_KEYS.get(table, ())
        if self._find_conflict(table, row, keys) is not None:
            joined = ", ".join(f"{k}={row.get(k)!r}" for k in keys)
            raise DuplicateRecordError(f"A {table} row with {joined} already exists.")

        now = utc_now()
        stored = copy.deepcopy(row)
        stored.setdefault("id", str(uuid.uuid4()))
        stored.setdefault("created_at", now)
        stored["updated_at"] = now
        with self._transaction():
            self._table(table).append(stored)
        return copy.deepcopy(stored)

    async def upsert(
        self,
        table: str,
        row: dict[str, object],
        *,
        conflict_keys: tuple[str, ...] | None = None,
    ) -> dict[str, object]:
        keys = conflict_keys if conflict_keys is not None else UNIQUE_KEYS.get(table, ())
        existing = self._find_conflict(table, row, keys)
        if existing is None:
            return await self.insert(table, row)

        changes = {k: v for k, v in copy.deepcopy(row).items() if k not in ("id", "created_at")}
        with self._transaction():
            existing.update(changes)
            existing["updated_at"] = utc_now()
            merged = copy.deepcopy(existing)
        return merged

    async def select(
        self,
        table: str,
        *,
        order_by: str | None = None,
        descending: bool = False,
        **filters: object,
    ) -> list[dict[str, object]]:
        matched = [(i, r) for i, r in enumerate(self._table(table)) if _matches(r, filters)]
        if order_by:
            # Insertion order breaks ties between equal timestamps.
            matched.sort(
                key=lambda pair: (str(pair[1].get(order_by) or ""), pair[0]),
                reverse=descending,
            )
        return [copy.deepcopy(r) for _, r in matched]

    async def select_one(self, table: str, **filters: object) -> dict[str, object] | None:
        rows = await self.select(table, **filters)
        return rows[0] if rows else None

    async def update(
        self,
        table: str,
        changes: dict[str, object],
        **filters: object,
    ) -> list[dict[str, object]]:
        targets = [row for row in self._table(table) if _matches(row, filters)]
        if not targets:
            return []

        now = utc_now()
        updated: list[dict[str, object]] = []
        with self._transaction():
            for row in targets:
                row.update(copy.deepcopy(changes))
                row["updated_at"] = now
                updated.append(copy.deepcopy(row))
        return updated

    async def delete(self, table: str, **filters: object) -> int:
        rows = self._table(table)
        kept = [r for r in rows if not _matches(r, filters)]
        removed = len(rows) - len(kept)
        if removed:
            with self._transaction():
                self._tables[table] = kept
        return removed

    async def increment(
        self,
        table: str,
        record_id: str,
        field: str,
        *,
        stamp: str | None = None,
    ) -> int:
        for row in self._table(table):
            if row.get("id") == record_id:
                value = int(row.get(field) or 0) + 1
                now = utc_now()
                with self._transaction():
                    row[field] = value
                    if stamp:
                        row[stamp] = now
                    row["updated_at"] = now
                return value
        raise StorageError(f"No {table} row with id {record_id!r}.")
