"""Table names and unique keys for the record store."""

from __future__ import annotations

OAUTH_CONNECTIONS = "oauth_connections"
MCP_CONNECTIONS = "mcp_connections"
CLOUD_BRIDGE_INSTANCES = "cloud_bridge_instances"

UNIQUE_KEYS: dict[str, tuple[str, ...]] = {
    OAUTH_CONNECTIONS: ("user_id", "provider_id"),
    MCP_CONNECTIONS: ("user_id", "server_id"),
}
