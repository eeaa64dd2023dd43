"""Message channel between the OAuth callback and the popup monitor.

The callback context posts an ``AuthorizationMessage`` correlated by the
state token; the monitor polls for the outcome of its pending request.
Everything lives in one in-memory table keyed by state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AuthorizationMessage:
    """Outcome of an authorization attempt, correlated by state token."""

    state: str
    provider_id: str
    success: bool
    error: str = ""


@dataclass(slots=True)
class _PendingAuthorization:
    user_id: str
    provider_id: str
    outcome: AuthorizationMessage | None = None


class AuthorizationChannel:
    def __init__(self) -> None:
        self._pending: dict[str, _PendingAuthorization] = {}

    def open(self, user_id: str, provider_id: str, state: str) -> None:
        """Register a pending request. A newer request for the same pair replaces older ones."""
        stale = [
            s
            for s, p in self._pending.items()
            if p.user_id == user_id and p.provider_id == provider_id
        ]
        for s in stale:
            del self._pending[s]
        self._pending[state] = _PendingAuthorization(user_id, provider_id)

    def expected_state(self, user_id: str, provider_id: str) -> str | None:
        """State still awaiting a callback for (user, provider), if any."""
        for state, pending in self._pending.items():
            if (
                pending.user_id == user_id
                and pending.provider_id == provider_id
                and pending.outcome is None
            ):
                return state
        return None

    def post(self, message: AuthorizationMessage) -> bool:
        """Deliver an outcome. Returns False when nothing is waiting for it."""
        pending = self._pending.get(message.state)
        if pending is None or pending.outcome is not None:
            logger.debug("Dropped authorization message for unknown state")
            return False
        pending.outcome = message
        return True

    def outcome(self, state: str) -> AuthorizationMessage | None:
        pending = self._pending.get(state)
        return pending.outcome if pending else None

    def close(self, state: str) -> None:
        """Forget a pending request. Safe to call more than once."""
        self._pending.pop(state, None)

    def __contains__(self, state: object) -> bool:
        return state in self._pending
