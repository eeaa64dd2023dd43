"""Extract OAuth and environment-variable requirements from README text."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from prompt_supply.models import AuthProviderRequirement, EnvVarRequirement, EnvVarSource

# ─── Provider hints ──────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class _ProviderHint:
    requirement: AuthProviderRequirement
    env_var: EnvVarRequirement
    # Extra words of which at least one must also appear in the README.
    also_any: tuple[str, ...] = ()


_PROVIDER_HINTS: tuple[_ProviderHint, ...] = (
    _ProviderHint(
        requirement=AuthProviderRequirement(
            provider="github",
            display_name="GitHub",
            scopes=["repo", "read:user"],
            instructions="Access to repositories and user information",
        ),
        env_var=EnvVarRequirement(
            name="GITHUB_TOKEN",
            description="GitHub personal access token",
            required=True,
            source=EnvVarSource.OAUTH,
        ),
        also_any=("token", "oauth"),
    ),
    _ProviderHint(
        requirement=AuthProviderRequirement(
            provider="notion",
            display_name="Notion",
            scopes=["read_content", "read_user_with_email"],
            instructions="Access to Notion pages and databases",
        ),
        env_var=EnvVarRequirement(
            name="NOTION_API_KEY",
            description="Notion integration token",
            required=True,
            source=EnvVarSource.OAUTH,
        ),
    ),
    _ProviderHint(
        requirement=AuthProviderRequirement(
            provider="linear",
            display_name="Linear",
            scopes=["read"],
            instructions="Access to Linear issues and projects",
        ),
        env_var=EnvVarRequirement(
            name="LINEAR_API_KEY",
            description="Linear API key",
            required=True,
            source=EnvVarSource.OAUTH,
        ),
    ),
)

# ─── Regex patterns ──────────────────────────────────────────

# NAME = value, one per line (shell exports or .env lines)
_ENV_ASSIGN_RE = re.compile(r"\b([A-Z][A-Z0-9_]{2,})\s*=\s*([^\r\n]*)")

# Common uppercase words that are not environment variables
_IGNORE_VARS = frozenset(
    {
        "README",
        "MCP",
        "API",
        "URL",
        "JSON",
        "HTTP",
        "HTTPS",
        "GET",
        "POST",
        "PUT",
        "DELETE",
        "PATCH",
        "TRUE",
        "FALSE",
        "NULL",
        "ENV",
        "VAR",
        "CLI",
        "SDK",
        "NPM",
        "NPX",
        "TODO",
        "NOTE",
        "WARNING",
        "IMPORTANT",
        "LICENSE",
    }
)


@dataclass(frozen=True, slots=True)
class Requirements:
    """What a server needs before it can run."""

    auth_providers: list[AuthProviderRequirement] = field(default_factory=list)
    env_vars: list[EnvVarRequirement] = field(default_factory=list)

    @property
    def requires_auth(self) -> bool:
        return bool(self.auth_providers)


def _has_word(text: str, word: str) -> bool:
    """Whole-word match where underscores also separate words (GITHUB_TOKEN)."""
    return re.search(rf"(?<![a-z0-9]){re.escape(word)}(?![a-z0-9])", text) is not None


def _is_required(readme: str, name: str) -> bool:
    return f"{name} (required)" in readme or f"Required: {name}" in readme


def _clean_value(value: str) -> str:
    return value.strip().strip("`\"'").strip()


def extract_requirements(readme: str) -> Requirements:
    """Scan README text for provider mentions and declared environment variables.

    Provider variables come first in provider order, followed by variables
    harvested from ``NAME = value`` lines. Names are never repeated.
    """
    if not readme:
        return Requirements()

    lowered = readme.lower()
    providers: list[AuthProviderRequirement] = []
    env_vars: list[EnvVarRequirement] = []
    seen: set[str] = set()

    for hint in _PROVIDER_HINTS:
        if not _has_word(lowered, hint.requirement.provider):
            continue
        if hint.also_any and not any(word in lowered for word in hint.also_any):
            continue
        providers.append(hint.requirement)
        env_vars.append(hint.env_var)
        seen.add(hint.env_var.name)

    for match in _ENV_ASSIGN_RE.finditer(readme):
        name = match.group(1)
        if name in seen or name in _IGNORE_VARS:
            continue
        seen.add(name)
        env_vars.append(
            EnvVarRequirement(
                name=name,
                description=_clean_value(match.group(2)),
                required=_is_required(readme, name),
                source=EnvVarSource.MANUAL,
            )
        )

    return Requirements(auth_providers=providers, env_vars=env_vars)
