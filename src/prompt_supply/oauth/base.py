"""Ports: token exchange proxy and authorization popup."""

from __future__ import annotations

from typing import Protocol

from prompt_supply.models import OAuthTokens


class TokenExchangePort(Protocol):
    """Server-side proxy that holds client secrets and talks to token endpoints."""

    async def exchange_code(self, provider_id: str, code: str, redirect_uri: str) -> OAuthTokens:
        """Trade an authorization code for tokens. Raises TokenExchangeError."""
        ...

    async def refresh(self, provider_id: str, refresh_token: str) -> OAuthTokens:
        """Trade a refresh token for fresh tokens. Raises TokenExchangeError."""
        ...


class PopupWindow(Protocol):
    """Handle on an open authorization popup."""

    @property
    def closed(self) -> bool: ...

    def close(self) -> None: ...


class PopupLauncherPort(Protocol):
    """Opens the provider's authorize page in a separate window."""

    def open(self, url: str, name: str, *, width: int, height: int) -> PopupWindow | None:
        """Return a window handle, or None if the popup was blocked."""
        ...
