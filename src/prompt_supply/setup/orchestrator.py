"""Setup wizard state machine.

url-input → detection → server-info → [oauth-setup] → installation → success,
with cloud-bridge as an alternate branch and error reachable from anywhere.
Every transition into ``error`` carries an ErrorAnalysis so the user always
has a next step.

Actions are serialized: starting one while another is still awaiting raises
SetupStateError. Each action writes to the session object it started with,
so a stale action finishing after ``open()`` cannot touch the new session.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from prompt_supply.cloud.bridge import CloudBridgeClient
from prompt_supply.connections.lifecycle import ConnectionLifecycle
from prompt_supply.detection.base import ServerDetectorPort
from prompt_supply.detection.scorer import CONFIRM_THRESHOLD, is_confirmed
from prompt_supply.errors import (
    CloudBridgeError,
    ConnectionConfigError,
    ConnectionFailedError,
    MissingConnectionError,
    OAuthError,
    SetupStateError,
    StorageError,
)
from prompt_supply.models import (
    ErrorContext,
    Notice,
    NoticeLevel,
    OAuthTokens,
    ServerInfo,
    SetupSession,
    SetupStep,
)
from prompt_supply.oauth.manager import OAuthManager
from prompt_supply.oauth.providers import display_name
from prompt_supply.troubleshooting.actions import StepHandlers
from prompt_supply.troubleshooting.engine import analyze_error

logger = logging.getLogger(__name__)

NOT_DETECTED_MESSAGE = (
    "Could not detect an MCP server from this URL. Please check the URL and try again."
)
ANALYSIS_FAILED_MESSAGE = (
    "Failed to analyze the URL. Please check your internet connection and try again."
)

# Closing is refused while these steps have external side effects in flight.
_NON_CLOSABLE = frozenset({SetupStep.INSTALLATION, SetupStep.CLOUD_BRIDGE})


def low_confidence_message(confidence: float) -> str:
    return (
        f"Low confidence: {round(confidence * 100)}%. This doesn't appear to be an "
        "MCP server. Please provide a URL to an MCP server repository."
    )


class SetupOrchestrator:
    def __init__(
        self,
        user_id: str,
        *,
        detector: ServerDetectorPort,
        oauth: OAuthManager,
        lifecycle: ConnectionLifecycle,
        cloud_bridge: CloudBridgeClient | None = None,
        confirm_threshold: float = CONFIRM_THRESHOLD,
        on_success: Callable[[str], None] | None = None,
    ) -> None:
        self.user_id = user_id
        self._detector = detector
        self._oauth = oauth
        self._lifecycle = lifecycle
        self._cloud_bridge = cloud_bridge
        self._confirm_threshold = confirm_threshold
        self._on_success = on_success
        self._lock = asyncio.Lock()
        self.session = SetupSession()

    @property
    def step(self) -> SetupStep:
        return self.session.step

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    # ─── Plumbing ────────────────────────────────────────────

    @asynccontextmanager
    async def _action(self, name: str, *allowed: SetupStep) -> AsyncIterator[SetupSession]:
        if self._lock.locked():
            raise SetupStateError("Another setup action is still running. Please wait.")
        async with self._lock:
            session = self.session
            if allowed and session.step not in allowed:
                raise SetupStateError(f"Cannot {name} while in the '{session.step}' step.")
            yield session

    def _fail(self, session: SetupSession, message: str, context: ErrorContext) -> None:
        session.step = SetupStep.ERROR
        session.error = message
        session.analysis = analyze_error(message, context)
        logger.info("Setup failed at %s: %s", context.step or "unknown step", message)

    @staticmethod
    def _notify(session: SetupSession, level: NoticeLevel, title: str, message: str = "") -> None:
        session.notices.append(Notice(level=level, title=title, message=message))

    @staticmethod
    def _require_server(session: SetupSession) -> ServerInfo:
        if session.server_info is None:
            raise SetupStateError("No MCP server has been detected yet.")
        return session.server_info

    async def _probe_cloud_bridge(self, session: SetupSession) -> None:
        if self._cloud_bridge is None:
            session.cloud_bridge_available = False
            return
        session.cloud_bridge_available = await self._cloud_bridge.is_available()

    def _succeeded(self, session: SetupSession, info: ServerInfo) -> None:
        session.step = SetupStep.SUCCESS
        session.progress = 100
        if self._on_success is not None:
            self._on_success(info.id)

    # ─── Session lifecycle ───────────────────────────────────

    async def open(self) -> SetupSession:
        """Start a fresh session and check whether the cloud bridge is reachable."""
        async with self._action("open the wizard"):
            self.session = SetupSession()
            await self._probe_cloud_bridge(self.session)
            return self.session

    def close(self) -> bool:
        """Close the wizard. Refused while installation or cloud provisioning runs."""
        if self.session.step in _NON_CLOSABLE:
            self._notify(
                self.session,
                NoticeLevel.WARNING,
                "Setup in progress",
                "Please wait for the installation to complete",
            )
            return False
        return True

    async def retry(self) -> SetupSession:
        """From ``error``: start over at url-input with nothing carried over."""
        async with self._action("retry", SetupStep.ERROR):
            self.session = SetupSession()
            await self._probe_cloud_bridge(self.session)
            return self.session

    # ─── Detection ───────────────────────────────────────────

    async def submit_url(self, url: str) -> SetupSession:
        async with self._action("submit a URL", SetupStep.URL_INPUT) as session:
            url = url.strip()
            if not url:
                return session

            session.url = url
            session.step = SetupStep.DETECTION
            session.progress = 10
            session.error = None
            session.analysis = None
            context = ErrorContext(step=SetupStep.DETECTION)

            try:
                info = await self._detector.detect_from_url(url)
            except Exception:
                logger.exception("Detector raised for '%s'", url)
                self._fail(session, ANALYSIS_FAILED_MESSAGE, context)
                return session

            if info is None:
                self._fail(session, NOT_DETECTED_MESSAGE, context)
                return session
            if not is_confirmed(info.confidence, self._confirm_threshold):
                self._fail(session, low_confidence_message(info.confidence), context)
                return session

            session.server_info = info
            session.step = SetupStep.SERVER_INFO
            session.progress = 30
            return session

    async def confirm_server(self) -> SetupSession:
        """Go to oauth-setup when the server needs auth, else straight to installation."""
        async with self._action("confirm the server", SetupStep.SERVER_INFO) as session:
            info = self._require_server(session)
            if not info.requires_auth:
                await self._install(session, info)
                return session

            check = await self._oauth.check_required_connections(self.user_id, info.provider_ids)
            session.connected_providers = list(check.connected)
            session.missing_providers = list(check.missing)
            session.step = SetupStep.OAUTH_SETUP
            session.progress = 50
            return session

    # ─── OAuth ───────────────────────────────────────────────

    async def connect_provider(self, provider_id: str) -> SetupSession:
        """Authorize one provider, then re-check the whole requirement set.

        A failed authorization stays in oauth-setup; the notice and analysis
        explain what happened.
        """
        async with self._action("connect a provider", SetupStep.OAUTH_SETUP) as session:
            info = self._require_server(session)
            session.error = None
            session.analysis = None
            name = display_name(provider_id)

            try:
                await self._oauth.initiate_oauth(self.user_id, provider_id, context=info.id)
            except OAuthError as exc:
                session.analysis = analyze_error(
                    exc,
                    ErrorContext(
                        step=SetupStep.OAUTH_SETUP, server_info=info, provider=provider_id
                    ),
                )
                self._notify(session, NoticeLevel.ERROR, "Connection failed", str(exc))
                return session

            check = await self._oauth.check_required_connections(self.user_id, info.provider_ids)
            session.connected_providers = list(check.connected)
            session.missing_providers = list(check.missing)
            self._notify(
                session, NoticeLevel.SUCCESS, "Connected!", f"Successfully connected to {name}"
            )
            return session

    async def continue_to_installation(self) -> bool:
        """Proceed once every provider is connected. Returns False (no transition) otherwise."""
        async with self._action("continue", SetupStep.OAUTH_SETUP) as session:
            info = self._require_server(session)
            if session.missing_providers:
                self._notify(
                    session,
                    NoticeLevel.ERROR,
                    "Missing connections",
                    "Please connect all required services before continuing",
                )
                return False
            await self._install(session, info)
            return True

    # ─── Installation ────────────────────────────────────────

    async def install(self) -> SetupSession:
        """Install from server-info (no auth needed) or a fully connected oauth-setup."""
        async with self._action(
            "install", SetupStep.SERVER_INFO, SetupStep.OAUTH_SETUP
        ) as session:
            info = self._require_server(session)
            if info.requires_auth and session.step == SetupStep.SERVER_INFO:
                raise SetupStateError("Connect the required services before installing.")
            if session.missing_providers:
                raise SetupStateError("Connect the required services before installing.")
            await self._install(session, info)
            return session

    async def _install(self, session: SetupSession, info: ServerInfo) -> None:
        session.step = SetupStep.INSTALLATION
        session.progress = 70
        context = ErrorContext(step=SetupStep.INSTALLATION, server_info=info)

        env: dict[str, str] = {}
        if info.requires_auth:
            try:
                env = await self._oauth.generate_env_vars(self.user_id, info.provider_ids)
            except MissingConnectionError as exc:
                self._fail(session, str(exc), context)
                return

        config = info.to_server_config(env)
        session.installation_log.append("Starting MCP server setup...")
        session.progress = 80

        try:
            await self._lifecycle.connect(self.user_id, config)
        except (ConnectionFailedError, ConnectionConfigError) as exc:
            session.installation_log.append(f"Error: {exc}")
            self._fail(session, f"Installation failed: {exc}", context)
            return

        session.installation_log.append("MCP server connected successfully!")
        self._notify(
            session,
            NoticeLevel.SUCCESS,
            "Success!",
            f"{info.name} is now connected and ready to use",
        )
        self._succeeded(session, info)

    # ─── Cloud bridge ────────────────────────────────────────

    async def use_cloud_bridge(self) -> SetupSession:
        """Provision the already-detected server on the cloud bridge."""
        async with self._action(
            "use the cloud bridge", SetupStep.ERROR, SetupStep.OAUTH_SETUP
        ) as session:
            info = self._require_server(session)
            if self._cloud_bridge is None or not session.cloud_bridge_available:
                raise SetupStateError("Cloud Bridge is not available right now.")

            session.step = SetupStep.CLOUD_BRIDGE
            session.progress = 75
            session.cloud_bridge_mode = True
            session.error = None
            session.analysis = None

            tokens: dict[str, OAuthTokens] = {}
            for provider_id in info.provider_ids:
                connection = await self._oauth.get_connection(self.user_id, provider_id)
                if connection is not None:
                    tokens[provider_id] = connection.to_tokens()

            session.installation_log.append("Creating cloud bridge instance...")
            session.progress = 85

            try:
                instance = await self._cloud_bridge.create_instance(self.user_id, info, tokens)
            except (CloudBridgeError, StorageError) as exc:
                message = str(exc) or "Cloud Bridge setup failed"
                session.installation_log.append(f"Error: {message}")
                self._fail(
                    session, message, ErrorContext(step=SetupStep.CLOUD_BRIDGE, server_info=info)
                )
                return session

            session.cloud_instance = instance
            session.installation_log.append("Cloud bridge instance created successfully!")
            self._notify(
                session,
                NoticeLevel.SUCCESS,
                "Cloud Bridge Ready!",
                f"{info.name} is now running in the cloud and ready to use",
            )
            self._succeeded(session, info)
            return session

    # ─── Troubleshooting hooks ───────────────────────────────

    async def _retry_current(self) -> None:
        session = self.session
        if session.step == SetupStep.OAUTH_SETUP and session.missing_providers:
            await self.connect_provider(session.missing_providers[0])
        else:
            await self.retry()

    def step_handlers(self) -> StepHandlers:
        """Callbacks that let troubleshooting steps drive this wizard."""
        return StepHandlers(
            retry=self._retry_current,
            use_cloud_bridge=(
                self.use_cloud_bridge if self.session.cloud_bridge_available else None
            ),
            refresh=self.open,
        )
