"""Read package manifests and READMEs from the npm registry."""

from __future__ import annotations

import logging
import re

import httpx

logger = logging.getLogger(__name__)

NPM_REGISTRY_BASE = "https://registry.npmjs.org"
NPM_HOSTS = frozenset({"npmjs.com", "www.npmjs.com"})

# /package/name or /package/@scope/name, optionally followed by /v/1.2.3 etc.
_PACKAGE_PATH_RE = re.compile(r"^/package/((?:@[^/?#]+/)?[^/?#]+)")


def parse_package_path(path: str) -> str | None:
    """Extract the package name from an npmjs.com URL path."""
    m = _PACKAGE_PATH_RE.match(path)
    return m.group(1) if m else None


def package_scope(name: str) -> str | None:
    """Return the scope of ``@scope/name`` packages, without the ``@``."""
    if name.startswith("@") and "/" in name:
        return name[1:].split("/", 1)[0]
    return None


async def fetch_latest_manifest(name: str, http_client: httpx.AsyncClient) -> dict | None:
    """Fetch the manifest of the latest published version."""
    resp = await http_client.get(f"{NPM_REGISTRY_BASE}/{name}/latest")
    if resp.status_code != 200:
        logger.debug("npm package '%s' returned %d", name, resp.status_code)
        return None
    data = resp.json()
    return data if isinstance(data, dict) else None


async def fetch_readme(name: str, http_client: httpx.AsyncClient) -> str:
    """Fetch the registry-hosted README from the full packument. Best-effort."""
    try:
        resp = await http_client.get(f"{NPM_REGISTRY_BASE}/{name}")
        if resp.status_code != 200:
            return ""
        data = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.debug("README fetch failed for npm package '%s': %s", name, exc)
        return ""
    readme = data.get("readme") if isinstance(data, dict) else None
    return readme if isinstance(readme, str) else ""
