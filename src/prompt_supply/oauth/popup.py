"""Authorization popup backed by the system web browser."""

from __future__ import annotations

import logging
import webbrowser
from urllib.parse import parse_qs, urlsplit

from prompt_supply.oauth.channel import AuthorizationChannel

logger = logging.getLogger(__name__)


class BrowserWindow:
    """A browser tab we cannot observe directly.

    It counts as closed once the callback has delivered an outcome for its
    state, or after ``close()``.
    """

    def __init__(self, channel: AuthorizationChannel, state: str) -> None:
        self._channel = channel
        self._state = state
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed or self._channel.outcome(self._state) is not None

    def close(self) -> None:
        self._closed = True


class BrowserPopupLauncher:
    """Adapter for PopupLauncherPort using the ``webbrowser`` module."""

    def __init__(self, channel: AuthorizationChannel) -> None:
        self._channel = channel

    def open(self, url: str, name: str, *, width: int, height: int) -> BrowserWindow | None:
        # Window name and geometry only matter to real popups; the state is
        # the last query parameter we need to correlate the callback.
        state = _state_from_url(url)
        try:
            opened = webbrowser.open(url, new=2)
        except webbrowser.Error as exc:
            logger.warning("Could not open browser for '%s': %s", name, exc)
            return None
        if not opened:
            return None
        return BrowserWindow(self._channel, state)


def _state_from_url(url: str) -> str:
    values = parse_qs(urlsplit(url).query).get("state", [])
    return values[0] if values else ""
