"""Exception hierarchy for prompt-supply.

All exceptions inherit from PromptSupplyError (single catch point).
Messages are shown to the user as-is, so they say what to do next.
"""

from __future__ import annotations


class PromptSupplyError(Exception):
    """Base exception for all prompt-supply errors."""


# ─── OAuth ───────────────────────────────────────────────────


class OAuthError(PromptSupplyError):
    """An OAuth authorization flow failed."""


class OAuthConfigError(OAuthError):
    """Provider is unknown or its OAuth client is not configured."""


class PopupBlockedError(OAuthError):
    """The browser refused to open the authorization popup."""


class OAuthCancelledError(OAuthError):
    """The user closed the authorization popup without completing it."""


class OAuthTimeoutError(OAuthError):
    """The authorization flow did not complete in time."""


class OAuthStateError(OAuthError):
    """The callback state did not match the expected state (possible CSRF)."""


class TokenExchangeError(OAuthError):
    """The provider rejected the code or refresh token exchange."""


class MissingConnectionError(OAuthError):
    """A required provider has no stored OAuth connection."""


# ─── Persistence ─────────────────────────────────────────────


class StorageError(PromptSupplyError):
    """The record store could not complete an operation."""


class DuplicateRecordError(StorageError):
    """An insert violated a unique key."""


# ─── Connections & tool calls ────────────────────────────────


class ConnectionConfigError(PromptSupplyError):
    """A server connection is missing required configuration."""


class ConnectionFailedError(PromptSupplyError):
    """Connecting to an MCP server failed."""


class BridgeError(PromptSupplyError):
    """The tool-call bridge could not complete a request."""


class CloudBridgeError(PromptSupplyError):
    """The cloud bridge could not provision or reach an instance."""


# ─── Setup wizard ────────────────────────────────────────────


class SetupStateError(PromptSupplyError):
    """A setup action was invoked from a state that does not allow it."""
