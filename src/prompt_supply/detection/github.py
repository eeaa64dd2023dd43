"""Read repository metadata, package.json and README from the GitHub public API."""

from __future__ import annotations

import base64
import json
import logging
import re

import httpx

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
GITHUB_HOSTS = frozenset({"github.com", "www.github.com"})

_HEADERS = {"Accept": "application/vnd.github+json"}

_REPO_PATH_RE = re.compile(r"^/([^/]+)/([^/?#]+)")


def parse_repo_path(path: str) -> tuple[str, str] | None:
    """Extract (owner, repo) from a github.com URL path."""
    m = _REPO_PATH_RE.match(path)
    if not m:
        return None
    owner, repo = m.groups()
    repo = repo.removesuffix(".git")
    if not repo:
        return None
    return owner, repo


def _decode_content(payload: dict) -> str:
    """Decode the base64 ``content`` field of a contents/readme response."""
    content = payload.get("content")
    if not isinstance(content, str):
        raise ValueError("GitHub contents response has no content")
    return base64.b64decode(content).decode("utf-8")


async def fetch_repo(owner: str, repo: str, http_client: httpx.AsyncClient) -> dict | None:
    """Fetch repository metadata. Returns None when the repository is unavailable."""
    resp = await http_client.get(f"{GITHUB_API_BASE}/repos/{owner}/{repo}", headers=_HEADERS)
    if resp.status_code != 200:
        logger.debug("GitHub repo %s/%s returned %d", owner, repo, resp.status_code)
        return None
    data = resp.json()
    return data if isinstance(data, dict) else None


async def fetch_package_json(
    owner: str, repo: str, http_client: httpx.AsyncClient
) -> object | None:
    """Fetch and decode package.json at the repository root.

    Returns None when the file does not exist. Raises ValueError on content
    that cannot be decoded.
    """
    resp = await http_client.get(
        f"{GITHUB_API_BASE}/repos/{owner}/{repo}/contents/package.json",
        headers=_HEADERS,
    )
    if resp.status_code != 200:
        logger.debug("No package.json in %s/%s (HTTP %d)", owner, repo, resp.status_code)
        return None
    payload = resp.json()
    if not isinstance(payload, dict):
        raise ValueError("Unexpected contents response for package.json")
    return json.loads(_decode_content(payload))


async def fetch_readme(owner: str, repo: str, http_client: httpx.AsyncClient) -> str:
    """Fetch the repository README. Best-effort: returns "" on any failure."""
    try:
        resp = await http_client.get(
            f"{GITHUB_API_BASE}/repos/{owner}/{repo}/readme", headers=_HEADERS
        )
        if resp.status_code != 200:
            return ""
        payload = resp.json()
        if not isinstance(payload, dict):
            return ""
        return _decode_content(payload)
    except (httpx.HTTPError, ValueError) as exc:
        logger.debug("README fetch failed for %s/%s: %s", owner, repo, exc)
        return ""
