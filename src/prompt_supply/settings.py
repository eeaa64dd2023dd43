"""Runtime configuration read from environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

DEFAULT_REDIRECT_URI = "http://localhost:3000/auth/oauth-callback"
DEFAULT_CLOUD_BRIDGE_URL = "https://bridge.prompt.supply"

# Providers whose OAuth client credentials are read from the environment.
OAUTH_PROVIDER_IDS = ("github", "notion", "linear")


@dataclass(frozen=True, slots=True)
class ClientCredentials:
    """OAuth client registration for one provider."""

    client_id: str
    client_secret: str = ""


@dataclass(frozen=True, slots=True)
class Settings:
    redirect_uri: str = DEFAULT_REDIRECT_URI
    oauth_clients: dict[str, ClientCredentials] = field(default_factory=dict)
    cloud_bridge_url: str = DEFAULT_CLOUD_BRIDGE_URL
    cloud_bridge_token: str = ""
    tool_bridge_url: str = ""
    data_path: str = ""

    def client_id(self, provider_id: str) -> str:
        creds = self.oauth_clients.get(provider_id)
        return creds.client_id if creds else ""

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``environ`` (defaults to ``os.environ``).

        Providers with no ``<PROVIDER>_CLIENT_ID`` are left out of
        ``oauth_clients`` so that initiating their flow fails with a clear
        configuration error instead of a half-built authorize URL.
        """
        env = os.environ if environ is None else environ

        clients: dict[str, ClientCredentials] = {}
        for provider_id in OAUTH_PROVIDER_IDS:
            prefix = provider_id.upper()
            client_id = env.get(f"{prefix}_CLIENT_ID", "").strip()
            if not client_id:
                continue
            clients[provider_id] = ClientCredentials(
                client_id=client_id,
                client_secret=env.get(f"{prefix}_CLIENT_SECRET", "").strip(),
            )

        return cls(
            redirect_uri=env.get("PROMPT_SUPPLY_OAUTH_REDIRECT_URI", "").strip()
            or DEFAULT_REDIRECT_URI,
            oauth_clients=clients,
            cloud_bridge_url=(
                env.get("CLOUD_BRIDGE_URL", "").strip() or DEFAULT_CLOUD_BRIDGE_URL
            ).rstrip("/"),
            cloud_bridge_token=env.get("CLOUD_BRIDGE_TOKEN", "").strip(),
            tool_bridge_url=env.get("MCP_BRIDGE_URL", "").strip().rstrip("/"),
            data_path=env.get("PROMPT_SUPPLY_DATA_PATH", "").strip(),
        )
