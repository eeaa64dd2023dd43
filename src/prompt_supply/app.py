"""Composition root: wires every service around one shared HTTP client."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx

from prompt_supply.cloud.bridge import CloudBridgeClient
from prompt_supply.connections.lifecycle import ConnectionLifecycle
from prompt_supply.connections.manager import ConnectionManager
from prompt_supply.detection.base import ServerDetectorPort
from prompt_supply.detection.detector import ServerDetector
from prompt_supply.oauth.channel import AuthorizationChannel
from prompt_supply.oauth.exchange import ProviderTokenExchange
from prompt_supply.oauth.manager import OAuthManager
from prompt_supply.oauth.popup import BrowserPopupLauncher
from prompt_supply.ratelimit import SlidingWindowRateLimiter
from prompt_supply.settings import Settings
from prompt_supply.setup.orchestrator import SetupOrchestrator
from prompt_supply.storage.base import RecordStorePort
from prompt_supply.storage.json_file import JsonFileStore
from prompt_supply.storage.memory import MemoryStore
from prompt_supply.toolcall.base import ToolBridgePort
from prompt_supply.toolcall.client import ToolCallClient
from prompt_supply.toolcall.http_bridge import HttpToolBridge
from prompt_supply.toolcall.stdio_bridge import StdioToolBridge

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AppContext:
    """Every long-lived service, built once per process.

    Nothing here is a module-level singleton: tests and embedders build
    their own context (or their own services) explicitly.
    """

    settings: Settings
    http_client: httpx.AsyncClient
    store: RecordStorePort
    detector: ServerDetectorPort
    channel: AuthorizationChannel
    oauth: OAuthManager
    connections: ConnectionManager
    tool_client: ToolCallClient
    lifecycle: ConnectionLifecycle
    cloud_bridge: CloudBridgeClient
    rate_limiter: SlidingWindowRateLimiter

    def setup_session(
        self, user_id: str, *, on_success: Callable[[str], None] | None = None
    ) -> SetupOrchestrator:
        """A fresh setup wizard for ``user_id``."""
        return SetupOrchestrator(
            user_id,
            detector=self.detector,
            oauth=self.oauth,
            lifecycle=self.lifecycle,
            cloud_bridge=self.cloud_bridge,
            on_success=on_success,
        )


def build_store(settings: Settings) -> RecordStorePort:
    if settings.data_path:
        return JsonFileStore(settings.data_path)
    return MemoryStore()


def build_tool_bridge(settings: Settings, http_client: httpx.AsyncClient) -> ToolBridgePort:
    if settings.tool_bridge_url:
        return HttpToolBridge(http_client, settings.tool_bridge_url)
    return StdioToolBridge()


@asynccontextmanager
async def app_lifespan(settings: Settings | None = None) -> AsyncIterator[AppContext]:
    """Own the shared adapters for the lifetime of the application."""
    settings = settings or Settings.from_env()

    async with httpx.AsyncClient(
        timeout=httpx.Timeout(30.0, connect=10.0),
        follow_redirects=True,
        limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        transport=httpx.AsyncHTTPTransport(retries=3),
    ) as http_client:
        store = build_store(settings)
        channel = AuthorizationChannel()
        oauth = OAuthManager(
            store,
            ProviderTokenExchange(http_client, settings.oauth_clients),
            BrowserPopupLauncher(channel),
            channel,
            client_ids={pid: creds.client_id for pid, creds in settings.oauth_clients.items()},
            redirect_uri=settings.redirect_uri,
        )
        bridge = build_tool_bridge(settings, http_client)
        tool_client = ToolCallClient(bridge)
        connections = ConnectionManager(store)

        ctx = AppContext(
            settings=settings,
            http_client=http_client,
            store=store,
            detector=ServerDetector(http_client),
            channel=channel,
            oauth=oauth,
            connections=connections,
            tool_client=tool_client,
            lifecycle=ConnectionLifecycle(connections, tool_client),
            cloud_bridge=CloudBridgeClient(
                http_client,
                store,
                base_url=settings.cloud_bridge_url,
                service_token=settings.cloud_bridge_token,
            ),
            rate_limiter=SlidingWindowRateLimiter(),
        )
        try:
            yield ctx
        finally:
            await tool_client.disconnect_all()
            if isinstance(bridge, StdioToolBridge):
                await bridge.close()
            logger.debug("Application services shut down")
