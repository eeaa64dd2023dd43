"""Static OAuth provider catalog and the provider → env var mapping."""

from __future__ import annotations

from prompt_supply.models import OAuthProvider

OAUTH_PROVIDERS: dict[str, OAuthProvider] = {
    "github": OAuthProvider(
        id="github",
        display_name="GitHub",
        authorize_url="https://github.com/login/oauth/authorize",
        token_url="https://github.com/login/oauth/access_token",
        env_var="GITHUB_TOKEN",
        scopes=["repo", "read:user", "read:org"],
        instructions="Access to repositories and user information",
    ),
    "notion": OAuthProvider(
        id="notion",
        display_name="Notion",
        authorize_url="https://api.notion.com/v1/oauth/authorize",
        token_url="https://api.notion.com/v1/oauth/token",
        env_var="NOTION_API_KEY",
        scopes=["read_content", "read_user_with_email"],
        instructions="Access to Notion pages and databases",
    ),
    "linear": OAuthProvider(
        id="linear",
        display_name="Linear",
        authorize_url="https://linear.app/oauth/authorize",
        token_url="https://api.linear.app/oauth/token",
        env_var="LINEAR_API_KEY",
        scopes=["read", "issues:read", "projects:read"],
        instructions="Access to Linear issues and projects",
    ),
}


def get_provider(provider_id: str) -> OAuthProvider | None:
    return OAUTH_PROVIDERS.get(provider_id)


def env_var_for_provider(provider_id: str) -> str:
    """Canonical environment variable for a provider's access token.

    Unknown providers get ``<PROVIDER>_TOKEN``.
    """
    provider = OAUTH_PROVIDERS.get(provider_id)
    if provider is not None:
        return provider.env_var
    return f"{provider_id.upper().replace('-', '_')}_TOKEN"


def display_name(provider_id: str) -> str:
    provider = OAUTH_PROVIDERS.get(provider_id)
    return provider.display_name if provider else provider_id.capitalize()
