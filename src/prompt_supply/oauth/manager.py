"""Popup-based OAuth authorization-code flow with per-user token storage."""

from __future__ import annotations

import asyncio
import base64
import binascii
import hmac
import logging
import secrets
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode

from prompt_supply.errors import (
    MissingConnectionError,
    OAuthCancelledError,
    OAuthConfigError,
    OAuthError,
    OAuthStateError,
    OAuthTimeoutError,
    PopupBlockedError,
    PromptSupplyError,
    StorageError,
)
from prompt_supply.models import ConnectionCheck, OAuthConnection, OAuthProvider, OAuthTokens
from prompt_supply.oauth.base import PopupLauncherPort, PopupWindow, TokenExchangePort
from prompt_supply.oauth.channel import AuthorizationChannel, AuthorizationMessage
from prompt_supply.oauth.providers import display_name, env_var_for_provider, get_provider
from prompt_supply.storage.base import RecordStorePort
from prompt_supply.storage.schema import OAUTH_CONNECTIONS

logger = logging.getLogger(__name__)

POPUP_WIDTH = 600
POPUP_HEIGHT = 700
REFRESH_WINDOW = timedelta(hours=1)


def generate_state(context: str | None = None) -> str:
    """Random state token, optionally carrying a base64 context after a colon."""
    state = secrets.token_urlsafe(32)
    if context:
        encoded = base64.urlsafe_b64encode(context.encode("utf-8")).decode("ascii")
        state = f"{state}:{encoded}"
    return state


def decode_state_context(state: str) -> str | None:
    """Recover the context string embedded by ``generate_state``, if any."""
    _, sep, encoded = state.partition(":")
    if not sep or not encoded:
        return None
    try:
        return base64.urlsafe_b64decode(encoded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError):
        return None


def _parse_expiry(value: str) -> datetime | None:
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=UTC)


class OAuthManager:
    """Drives authorization for one provider at a time and owns ``oauth_connections``.

    ``initiate_oauth`` and ``handle_oauth_callback`` run in different contexts
    (the waiting wizard and the redirect handler); they meet only through the
    ``AuthorizationChannel``.
    """

    def __init__(
        self,
        store: RecordStorePort,
        token_exchange: TokenExchangePort,
        popups: PopupLauncherPort,
        channel: AuthorizationChannel,
        *,
        client_ids: Mapping[str, str],
        redirect_uri: str,
        poll_interval: float = 1.0,
        timeout_seconds: float = 300.0,
    ) -> None:
        self._store = store
        self._exchange = token_exchange
        self._popups = popups
        self._channel = channel
        self._client_ids = client_ids
        self._redirect_uri = redirect_uri
        self._poll_interval = poll_interval
        self._timeout = timeout_seconds

    # ─── Authorization flow ──────────────────────────────────

    def _require_provider(self, provider_id: str) -> OAuthProvider:
        provider = get_provider(provider_id)
        if provider is None:
            raise OAuthConfigError(f"Unsupported OAuth provider: '{provider_id}'.")
        return provider

    def build_authorize_url(self, provider: OAuthProvider, state: str) -> str:
        client_id = self._client_ids.get(provider.id, "")
        if not client_id:
            raise OAuthConfigError(f"OAuth client not configured for {provider.display_name}.")
        query = urlencode(
            {
                "client_id": client_id,
                "redirect_uri": self._redirect_uri,
                "scope": " ".join(provider.scopes),
                "state": state,
                "response_type": "code",
            }
        )
        return f"{provider.authorize_url}?{query}"

    async def initiate_oauth(
        self,
        user_id: str,
        provider_id: str,
        context: str | None = None,
    ) -> None:
        """Open the authorize popup and wait until the user finishes or gives up.

        Raises:
            OAuthConfigError: Unknown provider or missing client id.
            PopupBlockedError: The popup could not be opened.
            OAuthCancelledError: The popup closed without an outcome.
            OAuthTimeoutError: Nothing happened within the timeout.
            OAuthError: The callback reported a failure.
        """
        provider = self._require_provider(provider_id)
        state = generate_state(context)
        url = self.build_authorize_url(provider, state)

        self._channel.open(user_id, provider_id, state)
        try:
            popup = self._popups.open(
                url, f"oauth_{provider_id}", width=POPUP_WIDTH, height=POPUP_HEIGHT
            )
            if popup is None:
                raise PopupBlockedError("Popup blocked. Please allow popups and try again.")

            try:
                await asyncio.wait_for(self._watch_popup(popup, state), timeout=self._timeout)
            except TimeoutError:
                popup.close()
                raise OAuthTimeoutError(
                    f"{provider.display_name} authorization timed out. Please try again."
                ) from None
        finally:
            self._channel.close(state)

    async def _watch_popup(self, popup: PopupWindow, state: str) -> None:
        while True:
            if popup.closed:
                outcome = self._channel.outcome(state)
                if outcome is None:
                    raise OAuthCancelledError("OAuth flow was cancelled.")
                if not outcome.success:
                    raise OAuthError(outcome.error or "OAuth authorization failed.")
                return
            await asyncio.sleep(self._poll_interval)

    async def handle_oauth_callback(
        self,
        user_id: str,
        provider_id: str,
        code: str,
        state: str,
    ) -> OAuthConnection:
        """Validate state, exchange the code, store tokens and signal the waiting flow.

        A state mismatch always raises OAuthStateError and leaves the pending
        request untouched; the user has to restart the flow.
        """
        provider = self._require_provider(provider_id)
        expected = self._channel.expected_state(user_id, provider_id)
        if expected is None or not hmac.compare_digest(
            expected.encode("utf-8"), (state or "").encode("utf-8")
        ):
            logger.warning("OAuth state mismatch for provider '%s'", provider_id)
            raise OAuthStateError("Invalid OAuth state parameter. Please restart authorization.")

        try:
            tokens = await self._exchange.exchange_code(provider_id, code, self._redirect_uri)
            connection = await self._store_tokens(user_id, provider, tokens)
        except PromptSupplyError as exc:
            failure = AuthorizationMessage(
                state=state, provider_id=provider_id, success=False, error=str(exc)
            )
            self._channel.post(failure)
            raise

        self._channel.post(AuthorizationMessage(state=state, provider_id=provider_id, success=True))
        logger.info("Stored %s OAuth connection for user %s", provider.display_name, user_id)
        return connection

    async def _store_tokens(
        self, user_id: str, provider: OAuthProvider, tokens: OAuthTokens
    ) -> OAuthConnection:
        row = await self._store.upsert(
            OAUTH_CONNECTIONS,
            {
                "user_id": user_id,
                "provider_id": provider.id,
                "provider_name": provider.display_name,
                "access_token": tokens.access_token,
                "refresh_token": tokens.refresh_token,
                "expires_at": tokens.expires_at,
                "scopes": list(tokens.scopes),
                "metadata": dict(tokens.metadata),
            },
            conflict_keys=("user_id", "provider_id"),
        )
        return OAuthConnection.from_row(row)

    # ─── Stored connections ──────────────────────────────────

    async def get_connection(self, user_id: str, provider_id: str) -> OAuthConnection | None:
        try:
            row = await self._store.select_one(
                OAUTH_CONNECTIONS, user_id=user_id, provider_id=provider_id
            )
        except StorageError as exc:
            logger.error("Failed to load %s connection: %s", provider_id, exc)
            return None
        return OAuthConnection.from_row(row) if row else None

    async def get_all_connections(self, user_id: str) -> list[OAuthConnection]:
        try:
            rows = await self._store.select(
                OAUTH_CONNECTIONS, order_by="created_at", descending=True, user_id=user_id
            )
        except StorageError as exc:
            logger.error("Failed to list OAuth connections: %s", exc)
            return []
        return [OAuthConnection.from_row(r) for r in rows]

    async def disconnect_provider(self, user_id: str, provider_id: str) -> None:
        """Delete the stored tokens for a provider. Raises StorageError on failure."""
        try:
            await self._store.delete(OAUTH_CONNECTIONS, user_id=user_id, provider_id=provider_id)
        except StorageError as exc:
            raise StorageError(f"Failed to disconnect {provider_id}: {exc}") from exc
        logger.info("Disconnected %s for user %s", provider_id, user_id)

    async def generate_env_vars(
        self, user_id: str, required_providers: list[str]
    ) -> dict[str, str]:
        """Map each required provider's access token to its canonical env var.

        Raises MissingConnectionError for the first provider with no stored tokens.
        """
        env: dict[str, str] = {}
        for provider_id in required_providers:
            connection = await self.get_connection(user_id, provider_id)
            if connection is None:
                raise MissingConnectionError(
                    f"{display_name(provider_id)} connection required but not found."
                )
            env[env_var_for_provider(provider_id)] = connection.access_token
        return env

    async def check_required_connections(
        self, user_id: str, required_providers: list[str]
    ) -> ConnectionCheck:
        """Partition required providers into connected and missing. No side effects."""
        connected_ids = {c.provider_id for c in await self.get_all_connections(user_id)}
        connected: list[str] = []
        missing: list[str] = []
        for provider_id in dict.fromkeys(required_providers):
            (connected if provider_id in connected_ids else missing).append(provider_id)
        return ConnectionCheck(connected=connected, missing=missing)

    async def refresh_tokens_if_needed(self, user_id: str, provider_id: str) -> bool:
        """Refresh tokens expiring within the hour. Returns True if a refresh happened."""
        connection = await self.get_connection(user_id, provider_id)
        if connection is None or not connection.refresh_token:
            return False

        if connection.expires_at:
            expires_at = _parse_expiry(connection.expires_at)
            if expires_at is not None and expires_at > datetime.now(UTC) + REFRESH_WINDOW:
                return False

        provider = self._require_provider(provider_id)
        try:
            tokens = await self._exchange.refresh(provider_id, connection.refresh_token)
            await self._store_tokens(user_id, provider, tokens)
        except PromptSupplyError as exc:
            logger.warning("Token refresh failed for %s: %s", provider_id, exc)
            return False
        logger.info("Refreshed %s tokens for user %s", provider.display_name, user_id)
        return True
