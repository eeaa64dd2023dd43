"""Record store persisted to a single JSON file.

Invariants:
  1. Writes are atomic: write to unique temp file, then os.replace().
  2. Concurrent writes are safe via threading.Lock (in-process) + fcntl.flock (cross-process).
  3. A missing file is an empty store; an unreadable file is a StorageError.
  4. A failed write leaves the in-memory tables exactly as they were before the change.
"""

from __future__ import annotations

import contextlib
import copy
import fcntl
import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterator
from pathlib import Path

from prompt_supply.errors import StorageError
from prompt_supply.storage.memory import MemoryStore

logger = logging.getLogger(__name__)

_path_locks: dict[str, threading.Lock] = {}
_path_locks_guard = threading.Lock()


def _get_path_lock(path: Path) -> threading.Lock:
    """Get or create an in-process threading.Lock for *path*."""
    key = str(path.resolve())
    with _path_locks_guard:
        if key not in _path_locks:
            _path_locks[key] = threading.Lock()
        return _path_locks[key]


def _load_tables(path: Path) -> dict[str, list[dict[str, object]]]:
    if not path.exists():
        return {}
    try:
        raw = json.loads(path.read_text(encoding="utf-8") or "{}")
    except (OSError, json.JSONDecodeError) as exc:
        raise StorageError(f"Could not read record store {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise StorageError(f"Record store {path} is not a JSON object.")
    return {
        table: [row for row in rows if isinstance(row, dict)]
        for table, rows in raw.items()
        if isinstance(rows, list)
    }


class JsonFileStore(MemoryStore):
    """MemoryStore that rewrites its JSON file after every change."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        super().__init__(_load_tables(self.path))
        logger.debug("Loaded record store from %s", self.path)

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[None]:
        snapshot = copy.deepcopy(self._tables)
        yield
        try:
            self._commit()
        except StorageError:
            self._tables = snapshot
            logger.warning("Write to %s failed; discarded the pending change", self.path)
            raise

    def _commit(self) -> None:
        lock = _get_path_lock(self.path)
        with lock:
            try:
                self._locked_write()
            except OSError as exc:
                raise StorageError(f"Could not lock record store {self.path}: {exc}") from exc

    def _locked_write(self) -> None:
        lock_path = self.path.with_suffix(".lock")
        lock_path.parent.mkdir(parents=True, exist_ok=True)

        with open(lock_path, "w") as lock_fd:
            fcntl.flock(lock_fd, fcntl.LOCK_EX)
            try:
                _atomic_write(self.path, self._tables)
            finally:
                fcntl.flock(lock_fd, fcntl.LOCK_UN)


def _atomic_write(path: Path, data: dict[str, list[dict[str, object]]]) -> None:
    """Write JSON atomically: write to unique temp file then rename."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: str | None = None
    try:
        fd, tmp_path = tempfile.mkstemp(
            dir=str(path.parent),
            suffix=".tmp",
            prefix=f".{path.stem}_",
        )
        content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
        os.write(fd, content.encode("utf-8"))
        os.close(fd)
        fd = None
        os.replace(tmp_path, str(path))
        tmp_path = None
    except OSError as exc:
        raise StorageError(f"Failed to write {path}: {exc}") from exc
    finally:
        if fd is not None:
            os.close(fd)
        if tmp_path is not None:
            with contextlib.suppress(OSError):
                os.unlink(tmp_path)
