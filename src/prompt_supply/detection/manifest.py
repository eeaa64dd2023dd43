"""Validate raw package.json content into a PackageManifest."""

from __future__ import annotations

import logging

from prompt_supply.models import PackageManifest

logger = logging.getLogger(__name__)


def _optional_str(raw: dict, key: str) -> str:
    value = raw.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string")
    return value


def _named(raw: dict, key: str, inner: str) -> str:
    """Accept either a plain string or an object carrying ``inner`` (npm style)."""
    value = raw.get(key)
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and isinstance(value.get(inner), str):
        return value[inner]
    raise ValueError(f"'{key}' must be a string or an object with '{inner}'")


def _string_map(raw: dict, key: str) -> dict[str, str]:
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        raise ValueError(f"'{key}' must map strings to strings")
    return dict(value)


def _bin(raw: dict, name: str) -> dict[str, str]:
    value = raw.get("bin")
    if isinstance(value, str):
        return {name.rsplit("/", 1)[-1]: value}
    return _string_map(raw, "bin")


def _keywords(raw: dict) -> list[str]:
    value = raw.get("keywords")
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(k, str) for k in value):
        raise ValueError("'keywords' must be a list of strings")
    return list(value)


def parse_manifest(raw: object) -> PackageManifest | None:
    """Return a PackageManifest, or None if *raw* is not a valid package.json shape."""
    if not isinstance(raw, dict):
        return None
    name = raw.get("name")
    if not isinstance(name, str) or not name:
        return None

    try:
        return PackageManifest(
            name=name,
            version=_optional_str(raw, "version"),
            description=_optional_str(raw, "description"),
            author=_named(raw, "author", "name"),
            homepage=_optional_str(raw, "homepage"),
            repository=_named(raw, "repository", "url"),
            keywords=_keywords(raw),
            dependencies=_string_map(raw, "dependencies"),
            dev_dependencies=_string_map(raw, "devDependencies"),
            bin=_bin(raw, name),
        )
    except ValueError as exc:
        logger.debug("Rejected manifest for '%s': %s", name, exc)
        return None
