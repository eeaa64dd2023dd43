"""Tests for the composition root (app.py)."""

from __future__ import annotations

from prompt_supply.app import app_lifespan, build_store, build_tool_bridge
from prompt_supply.models import SetupStep
from prompt_supply.oauth.providers import OAUTH_PROVIDERS
from prompt_supply.settings import ClientCredentials, Settings
from prompt_supply.storage.json_file import JsonFileStore
from prompt_supply.storage.memory import MemoryStore
from prompt_supply.toolcall.http_bridge import HttpToolBridge
from prompt_supply.toolcall.stdio_bridge import StdioToolBridge


class TestBuilders:
    def test_memory_store_by_default(self):
        assert isinstance(build_store(Settings()), MemoryStore)

    def test_json_store_when_path_configured(self, tmp_path):
        store = build_store(Settings(data_path=str(tmp_path / "store.json")))
        assert isinstance(store, JsonFileStore)

    def test_stdio_bridge_by_default(self):
        assert isinstance(build_tool_bridge(Settings(), None), StdioToolBridge)

    def test_http_bridge_when_url_configured(self):
        bridge = build_tool_bridge(Settings(tool_bridge_url="http://localhost:8787"), None)
        assert isinstance(bridge, HttpToolBridge)


class TestAppLifespan:
    async def test_builds_context_and_sessions(self):
        settings = Settings(oauth_clients={"github": ClientCredentials("gh-id", "gh-secret")})

        async with app_lifespan(settings) as ctx:
            assert ctx.settings is settings
            assert isinstance(ctx.store, MemoryStore)
            url = ctx.oauth.build_authorize_url(OAUTH_PROVIDERS["github"], "state-1")
            assert "client_id=gh-id" in url
            wizard = ctx.setup_session("u1")
            assert wizard.user_id == "u1"
            assert wizard.step == SetupStep.URL_INPUT
            http_client = ctx.http_client

        assert http_client.is_closed
