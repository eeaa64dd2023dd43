"""Port: relational record store with per-user row ownership."""

from __future__ import annotations

from typing import Protocol


class RecordStorePort(Protocol):
    """Row-level CRUD over named tables.

    Rows are plain dicts. Every row carries an ``id`` plus ``created_at`` and
    ``updated_at`` ISO timestamps stamped by the store.
    """

    async def insert(self, table: str, row: dict[str, object]) -> dict[str, object]:
        """Insert a row and return it as stored. Raises DuplicateRecordError."""
        ...

    async def upsert(
        self,
        table: str,
        row: dict[str, object],
        *,
        conflict_keys: tuple[str, ...] | None = None,
    ) -> dict[str, object]:
        """Insert, or update the row matching ``conflict_keys`` in place.

        Without ``conflict_keys`` the table's unique key is the target.
        """
        ...

    async def select(
        self,
        table: str,
        *,
        order_by: str | None = None,
        descending: bool = False,
        **filters: object,
    ) -> list[dict[str, object]]:
        """Return rows whose columns equal every filter value."""
        ...

    async def select_one(self, table: str, **filters: object) -> dict[str, object] | None: ...

    async def update(
        self,
        table: str,
        changes: dict[str, object],
        **filters: object,
    ) -> list[dict[str, object]]:
        """Apply ``changes`` to matching rows and return them."""
        ...

    async def delete(self, table: str, **filters: object) -> int:
        """Delete matching rows and return how many were removed."""
        ...

    async def increment(
        self,
        table: str,
        record_id: str,
        field: str,
        *,
        stamp: str | None = None,
    ) -> int:
        """Add one to a counter column, optionally stamping ``stamp`` with now.

        Returns the new counter value. Raises StorageError for an unknown row.
        """
        ...
