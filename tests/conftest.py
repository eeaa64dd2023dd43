"""Shared test fixtures."""

from __future__ import annotations

import pytest

from prompt_supply.storage.memory import MemoryStore


@pytest.fixture
def store() -> MemoryStore:
    """A fresh in-memory record store per test."""
    return MemoryStore()
