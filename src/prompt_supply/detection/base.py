"""Port: MCP server detection from a URL."""

from __future__ import annotations

from typing import Protocol

from prompt_supply.models import ServerInfo


class ServerDetectorPort(Protocol):
    """Port for turning a GitHub or npm URL into a ServerInfo."""

    async def detect_from_url(self, url: str) -> ServerInfo | None:
        """Return a candidate descriptor, or None if nothing was detected."""
        ...
