"""Detect an MCP server behind a GitHub repository or npm package URL.

Detection is fail-soft: unsupported hosts, missing or malformed manifests,
low confidence and network errors all produce ``None``. Callers that need to
tell "nothing found" apart from "found but doubtful" inspect
``ServerInfo.confidence`` on non-None results.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import urlsplit

import httpx

from prompt_supply.detection import github, npm
from prompt_supply.detection.categories import categorize
from prompt_supply.detection.manifest import parse_manifest
from prompt_supply.detection.requirements import extract_requirements
from prompt_supply.detection.scorer import (
    ACCEPT_THRESHOLD,
    DEFAULT_WEIGHTS,
    ConfidenceWeights,
    is_accepted,
    score_confidence,
)
from prompt_supply.models import ServerInfo, ServerSource

logger = logging.getLogger(__name__)

_NPM_ID_RE = re.compile(r"[^a-z0-9-]")


class ServerDetector:
    """Adapter for ServerDetectorPort. Holds the httpx client."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        accept_threshold: float = ACCEPT_THRESHOLD,
        weights: ConfidenceWeights = DEFAULT_WEIGHTS,
    ) -> None:
        self._http = http_client
        self._accept_threshold = accept_threshold
        self._weights = weights

    async def detect_from_url(self, url: str) -> ServerInfo | None:
        """Dispatch on the URL host. Unsupported hosts return None."""
        try:
            parts = urlsplit(url.strip())
        except ValueError:
            return None
        if parts.scheme not in ("http", "https"):
            return None

        host = (parts.hostname or "").lower()
        try:
            if host in github.GITHUB_HOSTS:
                return await self._detect_github(url, parts.path)
            if host in npm.NPM_HOSTS:
                return await self._detect_npm(url, parts.path)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Detection failed for '%s': %s", url, exc)
            return None

        logger.debug("Unsupported host for detection: '%s'", host)
        return None

    # ─── GitHub ──────────────────────────────────────────────

    async def _detect_github(self, url: str, path: str) -> ServerInfo | None:
        parsed = github.parse_repo_path(path)
        if parsed is None:
            return None
        owner, repo = parsed

        repo_data = await github.fetch_repo(owner, repo, self._http)
        if repo_data is None:
            return None
        manifest = parse_manifest(await github.fetch_package_json(owner, repo, self._http))
        if manifest is None:
            return None

        owner_data = repo_data.get("owner")
        repo_owner = owner_data.get("login") if isinstance(owner_data, dict) else None
        repo_owner = repo_owner or owner
        confidence = score_confidence(manifest, repo_owner, self._weights)
        if not is_accepted(confidence, self._accept_threshold):
            logger.info("'%s' scored %.2f, below the detection threshold", url, confidence)
            return None

        readme = await github.fetch_readme(owner, repo, self._http)
        requirements = extract_requirements(readme)
        spec = f"{owner}/{repo}"

        return ServerInfo(
            id=f"{owner}-{repo}".lower(),
            name=repo_data.get("name") or repo,
            description=repo_data.get("description") or manifest.description or "MCP Server",
            version=manifest.version,
            author=manifest.author,
            homepage=repo_data.get("html_url") or manifest.homepage,
            repository=repo_data.get("clone_url") or manifest.repository,
            install_command="npx",
            install_args=["-y", spec],
            command="npx",
            args=["-y", spec],
            requires_auth=requirements.requires_auth,
            auth_providers=requirements.auth_providers,
            required_env_vars=requirements.env_vars,
            category=categorize(manifest),
            tags=list(manifest.keywords),
            source=ServerSource.GITHUB,
            source_url=url,
            confidence=confidence,
        )

    # ─── npm ─────────────────────────────────────────────────

    async def _detect_npm(self, url: str, path: str) -> ServerInfo | None:
        name = npm.parse_package_path(path)
        if name is None:
            return None

        raw = await npm.fetch_latest_manifest(name, self._http)
        manifest = parse_manifest(raw)
        if raw is None or manifest is None:
            return None

        # The package scope plays the role of the repository owner.
        confidence = score_confidence(manifest, npm.package_scope(name), self._weights)
        if not is_accepted(confidence, self._accept_threshold):
            logger.info("'%s' scored %.2f, below the detection threshold", url, confidence)
            return None

        readme = raw.get("readme") if isinstance(raw.get("readme"), str) else ""
        if not readme:
            readme = await npm.fetch_readme(name, self._http)
        requirements = extract_requirements(readme)

        return ServerInfo(
            id=_NPM_ID_RE.sub("-", name.lower()),
            name=manifest.name,
            description=manifest.description or "MCP Server",
            version=manifest.version,
            author=manifest.author,
            homepage=manifest.homepage,
            repository=manifest.repository,
            install_command="npm",
            install_args=["install", "-g", name],
            command="npx",
            args=["-y", name],
            requires_auth=requirements.requires_auth,
            auth_providers=requirements.auth_providers,
            required_env_vars=requirements.env_vars,
            category=categorize(manifest),
            tags=list(manifest.keywords),
            source=ServerSource.NPM,
            source_url=url,
            confidence=confidence,
        )
