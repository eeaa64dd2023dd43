"""Tests for environment-driven settings."""

from __future__ import annotations

from prompt_supply.settings import (
    DEFAULT_CLOUD_BRIDGE_URL,
    DEFAULT_REDIRECT_URI,
    ClientCredentials,
    Settings,
)


class TestSettingsFromEnv:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.redirect_uri == DEFAULT_REDIRECT_URI
        assert settings.cloud_bridge_url == DEFAULT_CLOUD_BRIDGE_URL
        assert settings.oauth_clients == {}
        assert settings.tool_bridge_url == ""
        assert settings.data_path == ""

    def test_oauth_clients(self):
        settings = Settings.from_env(
            {
                "GITHUB_CLIENT_ID": " gh-id ",
                "GITHUB_CLIENT_SECRET": "gh-secret",
                "NOTION_CLIENT_SECRET": "orphan-secret",
            }
        )
        assert settings.oauth_clients == {"github": ClientCredentials("gh-id", "gh-secret")}
        assert settings.client_id("github") == "gh-id"
        # A secret without a client id does not register the provider.
        assert settings.client_id("notion") == ""

    def test_urls_are_normalized(self):
        settings = Settings.from_env(
            {
                "CLOUD_BRIDGE_URL": "https://bridge.internal/",
                "MCP_BRIDGE_URL": "http://localhost:8787/",
                "PROMPT_SUPPLY_OAUTH_REDIRECT_URI": "https://app.example/cb",
                "PROMPT_SUPPLY_DATA_PATH": "/var/lib/prompt-supply/store.json",
                "CLOUD_BRIDGE_TOKEN": "svc",
            }
        )
        assert settings.cloud_bridge_url == "https://bridge.internal"
        assert settings.tool_bridge_url == "http://localhost:8787"
        assert settings.redirect_uri == "https://app.example/cb"
        assert settings.data_path == "/var/lib/prompt-supply/store.json"
        assert settings.cloud_bridge_token == "svc"

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("LINEAR_CLIENT_ID", "li-id")
        assert Settings.from_env().client_id("linear") == "li-id"
