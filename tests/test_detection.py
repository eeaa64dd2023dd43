"""Tests for server detection: URL routing, manifests, categories, and the detector."""

from __future__ import annotations

import base64
import json
from unittest.mock import AsyncMock

import httpx

from prompt_supply.detection.categories import categorize
from prompt_supply.detection.detector import ServerDetector
from prompt_supply.detection.github import GITHUB_API_BASE, parse_repo_path
from prompt_supply.detection.manifest import parse_manifest
from prompt_supply.detection.npm import NPM_REGISTRY_BASE, package_scope, parse_package_path
from prompt_supply.detection.scorer import MCP_SDK_PACKAGE
from prompt_supply.models import PackageManifest, ServerCategory, ServerSource

# ─── Helpers ─────────────────────────────────────────────────


def _json_response(data: object, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=json.dumps(data).encode(),
        headers={"content-type": "application/json"},
    )


def _b64(data: object) -> str:
    text = data if isinstance(data, str) else json.dumps(data)
    return base64.b64encode(text.encode()).decode()


def _client(routes: dict[str, httpx.Response | Exception]) -> AsyncMock:
    """Mock client whose GET answers from ``routes`` and 404s everything else."""

    async def _get(url: str, **kwargs: object) -> httpx.Response:
        answer = routes.get(url)
        if isinstance(answer, Exception):
            raise answer
        return answer if answer is not None else _json_response({"message": "Not Found"}, 404)

    client = AsyncMock(spec=httpx.AsyncClient)
    client.get = AsyncMock(side_effect=_get)
    return client


SERVER_GITHUB_PACKAGE = {
    "name": "@modelcontextprotocol/server-github",
    "version": "0.6.2",
    "description": "MCP server for using the GitHub API",
    "keywords": ["mcp", "github"],
    "author": {"name": "Anthropic, PBC"},
    "dependencies": {MCP_SDK_PACKAGE: "1.0.1"},
}

SERVER_GITHUB_README = """# GitHub MCP Server

Create a GitHub Personal Access Token with the `repo` scope.

GITHUB_PERSONAL_ACCESS_TOKEN=<YOUR_TOKEN>
"""


def _github_routes(
    owner: str = "modelcontextprotocol",
    repo: str = "server-github",
    package: object = SERVER_GITHUB_PACKAGE,
    readme: str = SERVER_GITHUB_README,
) -> dict[str, httpx.Response | Exception]:
    base = f"{GITHUB_API_BASE}/repos/{owner}/{repo}"
    return {
        base: _json_response(
            {
                "name": repo,
                "description": "Official GitHub server",
                "owner": {"login": owner},
                "html_url": f"https://github.com/{owner}/{repo}",
                "clone_url": f"https://github.com/{owner}/{repo}.git",
            }
        ),
        f"{base}/contents/package.json": _json_response({"content": _b64(package)}),
        f"{base}/readme": _json_response({"content": _b64(readme)}),
    }


# ─── URL parsing ─────────────────────────────────────────────


class TestUrlParsing:
    def test_repo_path(self) -> None:
        assert parse_repo_path("/owner/repo") == ("owner", "repo")
        assert parse_repo_path("/owner/repo/tree/main") == ("owner", "repo")
        assert parse_repo_path("/owner/repo.git") == ("owner", "repo")

    def test_repo_path_needs_two_segments(self) -> None:
        assert parse_repo_path("/owner") is None
        assert parse_repo_path("/") is None

    def test_package_path(self) -> None:
        assert parse_package_path("/package/mcp-weather") == "mcp-weather"
        assert parse_package_path("/package/@scope/pkg/v/1.0.0") == "@scope/pkg"
        assert parse_package_path("/search") is None

    def test_package_scope(self) -> None:
        assert package_scope("@modelcontextprotocol/server-memory") == "modelcontextprotocol"
        assert package_scope("plain") is None


# ─── Manifest validation ─────────────────────────────────────


class TestParseManifest:
    def test_full_manifest(self) -> None:
        manifest = parse_manifest(
            {
                "name": "mcp-thing",
                "version": "1.0.0",
                "author": {"name": "Ada"},
                "repository": {"type": "git", "url": "https://example.com/repo.git"},
                "keywords": ["mcp"],
                "devDependencies": {MCP_SDK_PACKAGE: "^1"},
                "bin": "dist/index.js",
            }
        )
        assert manifest is not None
        assert manifest.author == "Ada"
        assert manifest.repository == "https://example.com/repo.git"
        assert manifest.dev_dependencies == {MCP_SDK_PACKAGE: "^1"}
        assert manifest.bin == {"mcp-thing": "dist/index.js"}

    def test_missing_name_rejected(self) -> None:
        assert parse_manifest({"version": "1.0.0"}) is None

    def test_non_dict_rejected(self) -> None:
        assert parse_manifest(["name"]) is None
        assert parse_manifest(None) is None

    def test_wrong_field_types_rejected(self) -> None:
        assert parse_manifest({"name": "x", "keywords": "mcp"}) is None
        assert parse_manifest({"name": "x", "dependencies": {"a": 1}}) is None
        assert parse_manifest({"name": "x", "description": 5}) is None


# ─── Categorization ──────────────────────────────────────────


class TestCategorize:
    def test_priority_order(self) -> None:
        # "github" (developer-tools) outranks "database".
        manifest = PackageManifest(name="github-database-bridge")
        assert categorize(manifest) == ServerCategory.DEVELOPER_TOOLS

    def test_keywords_are_considered(self) -> None:
        manifest = PackageManifest(name="x", keywords=["slack"])
        assert categorize(manifest) == ServerCategory.COMMUNICATION

    def test_other(self) -> None:
        assert categorize(PackageManifest(name="weather")) == ServerCategory.OTHER


# ─── Detector ────────────────────────────────────────────────


class TestDetectorRouting:
    async def test_unsupported_hosts_return_none(self) -> None:
        client = _client({})
        detector = ServerDetector(client)
        for url in (
            "https://gitlab.com/owner/repo",
            "https://example.com/package/mcp",
            "https://bitbucket.org/a/b",
            "ftp://github.com/owner/repo",
            "not a url",
        ):
            assert await detector.detect_from_url(url) is None
        client.get.assert_not_called()

    async def test_metadata_404_returns_none(self) -> None:
        detector = ServerDetector(_client({}))
        assert await detector.detect_from_url("https://github.com/nobody/nothing") is None

    async def test_network_error_returns_none(self) -> None:
        routes = {
            f"{GITHUB_API_BASE}/repos/a/b": httpx.ConnectError("boom"),
        }
        detector = ServerDetector(_client(routes))
        assert await detector.detect_from_url("https://github.com/a/b") is None

    async def test_invalid_manifest_returns_none(self) -> None:
        routes = _github_routes(package={"version": "1.0.0"})
        detector = ServerDetector(_client(routes))
        assert (
            await detector.detect_from_url("https://github.com/modelcontextprotocol/server-github")
            is None
        )

    async def test_undecodable_manifest_returns_none(self) -> None:
        routes = _github_routes(package="{not json")
        detector = ServerDetector(_client(routes))
        assert (
            await detector.detect_from_url("https://github.com/modelcontextprotocol/server-github")
            is None
        )


class TestGitHubDetection:
    async def test_official_github_server(self) -> None:
        detector = ServerDetector(_client(_github_routes()))

        info = await detector.detect_from_url(
            "https://github.com/modelcontextprotocol/server-github"
        )

        assert info is not None
        assert info.confidence >= 0.9
        assert info.requires_auth is True
        assert "github" in info.provider_ids
        assert info.required_env_vars[0].name == "GITHUB_TOKEN"
        assert info.id == "modelcontextprotocol-server-github"
        assert info.source == ServerSource.GITHUB
        assert info.category == ServerCategory.DEVELOPER_TOOLS
        assert info.command == "npx"
        assert info.args == ["-y", "modelcontextprotocol/server-github"]
        assert info.author == "Anthropic, PBC"

    async def test_low_confidence_returns_none(self) -> None:
        routes = _github_routes(
            owner="someone",
            repo="utils",
            package={"name": "utils", "description": "helpers"},
        )
        detector = ServerDetector(_client(routes))
        assert await detector.detect_from_url("https://github.com/someone/utils") is None

    async def test_missing_readme_does_not_fail(self) -> None:
        routes = _github_routes()
        del routes[f"{GITHUB_API_BASE}/repos/modelcontextprotocol/server-github/readme"]
        detector = ServerDetector(_client(routes))

        info = await detector.detect_from_url(
            "https://github.com/modelcontextprotocol/server-github"
        )

        assert info is not None
        assert info.requires_auth is False
        assert info.required_env_vars == []

    async def test_custom_accept_threshold(self) -> None:
        routes = _github_routes(
            owner="someone",
            repo="weather",
            package={"name": "weather-server", "description": "An MCP server"},
            readme="",
        )
        # 0.2 (server) + 0.3 (mcp in description) = 0.5
        strict = ServerDetector(_client(routes), accept_threshold=0.6)
        lenient = ServerDetector(_client(routes))

        assert await strict.detect_from_url("https://github.com/someone/weather") is None
        info = await lenient.detect_from_url("https://github.com/someone/weather")
        assert info is not None
        assert info.confidence == 0.5


class TestNpmDetection:
    async def test_scoped_package(self) -> None:
        name = "@modelcontextprotocol/server-memory"
        routes = {
            f"{NPM_REGISTRY_BASE}/{name}/latest": _json_response(
                {
                    "name": name,
                    "version": "0.6.0",
                    "description": "MCP server for enabling memory",
                    "dependencies": {MCP_SDK_PACKAGE: "1.0.1"},
                }
            ),
            f"{NPM_REGISTRY_BASE}/{name}": _json_response({"readme": "No auth needed."}),
        }
        detector = ServerDetector(_client(routes))

        info = await detector.detect_from_url(f"https://www.npmjs.com/package/{name}")

        assert info is not None
        assert info.source == ServerSource.NPM
        assert info.id == "-modelcontextprotocol-server-memory"
        assert info.install_command == "npm"
        assert info.install_args == ["install", "-g", name]
        assert info.args == ["-y", name]
        assert info.confidence == 1.0

    async def test_readme_from_manifest_skips_packument(self) -> None:
        routes = {
            f"{NPM_REGISTRY_BASE}/linear-mcp/latest": _json_response(
                {
                    "name": "linear-mcp",
                    "description": "MCP server for Linear",
                    "keywords": ["mcp"],
                    "readme": "Connect your Linear workspace.",
                }
            ),
        }
        client = _client(routes)
        detector = ServerDetector(client)

        info = await detector.detect_from_url("https://npmjs.com/package/linear-mcp")

        assert info is not None
        assert info.provider_ids == ["linear"]
        assert info.category == ServerCategory.PROJECT_MANAGEMENT
        assert client.get.await_count == 1

    async def test_unknown_package_returns_none(self) -> None:
        detector = ServerDetector(_client({}))
        assert await detector.detect_from_url("https://www.npmjs.com/package/missing") is None
