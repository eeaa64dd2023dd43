"""Token exchange proxy: trades codes and refresh tokens at provider token endpoints.

Client secrets stay here; nothing that talks to the browser ever sees them.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta

import httpx

from prompt_supply.errors import OAuthConfigError, TokenExchangeError
from prompt_supply.models import OAuthProvider, OAuthTokens
from prompt_supply.oauth.providers import get_provider
from prompt_supply.settings import ClientCredentials

logger = logging.getLogger(__name__)

_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
    "User-Agent": "Prompt.Supply/1.0",
}


def _parse_scopes(provider: OAuthProvider, raw_scope: object) -> list[str]:
    if not isinstance(raw_scope, str) or not raw_scope.strip():
        return list(provider.scopes)
    # GitHub returns comma-separated scopes, everyone else space-separated.
    separator = "," if provider.id == "github" else " "
    return [s.strip() for s in raw_scope.split(separator) if s.strip()]


def _expires_at(expires_in: object) -> str | None:
    if isinstance(expires_in, bool) or not isinstance(expires_in, int | float) or expires_in <= 0:
        return None
    return (datetime.now(UTC) + timedelta(seconds=float(expires_in))).isoformat()


def parse_token_response(
    provider: OAuthProvider,
    data: dict,
    *,
    previous_refresh_token: str | None = None,
) -> OAuthTokens:
    """Normalize a provider token response into OAuthTokens."""
    access_token = data.get("access_token")
    if not isinstance(access_token, str) or not access_token:
        detail = data.get("error_description") or data.get("error") or "no access token returned"
        raise TokenExchangeError(f"{provider.display_name} token exchange failed: {detail}")

    metadata: dict[str, object] = {"provider": provider.id}
    if data.get("token_type"):
        metadata["token_type"] = data["token_type"]
    for key in ("workspace_id", "workspace_name", "bot_id"):
        if data.get(key):
            metadata[key] = data[key]

    return OAuthTokens(
        access_token=access_token,
        refresh_token=data.get("refresh_token") or previous_refresh_token,
        expires_at=_expires_at(data.get("expires_in")),
        scopes=_parse_scopes(provider, data.get("scope")),
        metadata=metadata,
    )


class ProviderTokenExchange:
    """Adapter for TokenExchangePort. Holds the httpx client and client credentials."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        clients: Mapping[str, ClientCredentials],
        *,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._http = http_client
        self._clients = clients
        self._timeout = timeout_seconds

    def _resolve(self, provider_id: str) -> tuple[OAuthProvider, ClientCredentials]:
        provider = get_provider(provider_id)
        if provider is None:
            raise OAuthConfigError(f"Unsupported OAuth provider: '{provider_id}'.")
        creds = self._clients.get(provider_id)
        if creds is None or not creds.client_id or not creds.client_secret:
            raise OAuthConfigError(
                f"OAuth client for {provider.display_name} is not configured. "
                f"Set {provider_id.upper()}_CLIENT_ID and {provider_id.upper()}_CLIENT_SECRET."
            )
        return provider, creds

    async def _post(self, provider: OAuthProvider, body: dict[str, str]) -> dict:
        try:
            resp = await self._http.post(
                provider.token_url, json=body, headers=_HEADERS, timeout=self._timeout
            )
        except httpx.HTTPError as exc:
            raise TokenExchangeError(
                f"Could not reach the {provider.display_name} token endpoint: {exc}"
            ) from exc

        if resp.status_code != 200:
            logger.error(
                "Token endpoint for '%s' returned HTTP %d: %s",
                provider.id,
                resp.status_code,
                resp.text[:200],
            )
            raise TokenExchangeError(
                f"{provider.display_name} token exchange failed (HTTP {resp.status_code})."
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise TokenExchangeError(
                f"{provider.display_name} returned an unreadable token response."
            ) from exc
        if not isinstance(data, dict):
            raise TokenExchangeError(f"{provider.display_name} returned an unexpected response.")
        return data

    async def exchange_code(self, provider_id: str, code: str, redirect_uri: str) -> OAuthTokens:
        provider, creds = self._resolve(provider_id)
        if not code:
            raise TokenExchangeError("Missing authorization code.")
        data = await self._post(
            provider,
            {
                "client_id": creds.client_id,
                "client_secret": creds.client_secret,
                "code": code,
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            },
        )
        return parse_token_response(provider, data)

    async def refresh(self, provider_id: str, refresh_token: str) -> OAuthTokens:
        provider, creds = self._resolve(provider_id)
        if not refresh_token:
            raise TokenExchangeError("Missing refresh token.")
        data = await self._post(
            provider,
            {
                "client_id": creds.client_id,
                "client_secret": creds.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
        )
        return parse_token_response(provider, data, previous_refresh_token=refresh_token)
