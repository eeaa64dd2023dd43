"""Domain models for prompt-supply. Frozen dataclasses unless noted otherwise."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

# ─── Enumerations ─────────────────────────────────────────────


class ServerSource(StrEnum):
    GITHUB = "github"
    NPM = "npm"
    MANUAL = "manual"


class ServerCategory(StrEnum):
    DEVELOPER_TOOLS = "developer-tools"
    PROJECT_MANAGEMENT = "project-management"
    DESIGN = "design"
    COMMUNICATION = "communication"
    DATABASE = "database"
    FILESYSTEM = "filesystem"
    SEARCH = "search"
    OTHER = "other"


class EnvVarSource(StrEnum):
    OAUTH = "oauth"
    MANUAL = "manual"


# ─── Detection Models ─────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class PackageManifest:
    """The subset of a package.json that detection relies on."""

    name: str
    version: str = ""
    description: str = ""
    author: str = ""
    homepage: str = ""
    repository: str = ""
    keywords: list[str] = field(default_factory=list)
    dependencies: dict[str, str] = field(default_factory=dict)
    dev_dependencies: dict[str, str] = field(default_factory=dict)
    bin: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class AuthProviderRequirement:
    """An OAuth provider a detected server needs credentials from."""

    provider: str
    display_name: str
    scopes: list[str] = field(default_factory=list)
    instructions: str = ""


@dataclass(frozen=True, slots=True)
class EnvVarRequirement:
    """An environment variable a detected server declares."""

    name: str
    description: str = ""
    required: bool = False
    source: EnvVarSource = EnvVarSource.MANUAL


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """Launch configuration for one MCP server."""

    server_id: str
    name: str
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    description: str = ""

    def to_dict(self) -> dict[str, object]:
        result: dict[str, object] = {
            "id": self.server_id,
            "name": self.name,
            "command": self.command,
            "args": list(self.args),
        }
        if self.env:
            result["env"] = dict(self.env)
        if self.description:
            result["description"] = self.description
        return result


@dataclass(frozen=True, slots=True)
class ServerInfo:
    """Normalized descriptor of a detected MCP server candidate."""

    id: str
    name: str
    description: str
    install_command: str
    command: str
    source: ServerSource
    source_url: str
    confidence: float
    install_args: list[str] = field(default_factory=list)
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    requires_auth: bool = False
    auth_providers: list[AuthProviderRequirement] = field(default_factory=list)
    required_env_vars: list[EnvVarRequirement] = field(default_factory=list)
    category: ServerCategory = ServerCategory.OTHER
    tags: list[str] = field(default_factory=list)
    version: str = ""
    author: str = ""
    homepage: str = ""
    repository: str = ""

    @property
    def provider_ids(self) -> list[str]:
        return [p.provider for p in self.auth_providers]

    def to_server_config(self, extra_env: dict[str, str] | None = None) -> ServerConfig:
        """Build the launch config, layering OAuth-derived env vars on top."""
        return ServerConfig(
            server_id=self.id,
            name=self.name,
            command=self.command,
            args=list(self.args),
            env={**self.env, **(extra_env or {})},
            description=self.description,
        )


# ─── OAuth Models ─────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class OAuthProvider:
    """Static authorization-code configuration for a provider."""

    id: str
    display_name: str
    authorize_url: str
    token_url: str
    env_var: str
    scopes: list[str] = field(default_factory=list)
    instructions: str = ""


@dataclass(frozen=True, slots=True)
class OAuthTokens:
    """Tokens returned by a code exchange or refresh."""

    access_token: str
    refresh_token: str | None = None
    expires_at: str | None = None  # ISO 8601
    scopes: list[str] = field(default_factory=list)
    metadata: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class OAuthConnection:
    """Stored tokens for one (user, provider) pair."""

    id: str
    user_id: str
    provider_id: str
    provider_name: str
    access_token: str
    refresh_token: str | None = None
    expires_at: str | None = None
    scopes: list[str] = field(default_factory=list)
    metadata: dict[str, object] = field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, row: dict) -> OAuthConnection:
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            provider_id=row["provider_id"],
            provider_name=row.get("provider_name", ""),
            access_token=row.get("access_token", ""),
            refresh_token=row.get("refresh_token"),
            expires_at=row.get("expires_at"),
            scopes=list(row.get("scopes") or []),
            metadata=dict(row.get("metadata") or {}),
            created_at=row.get("created_at", ""),
            updated_at=row.get("updated_at", ""),
        )

    def to_tokens(self) -> OAuthTokens:
        return OAuthTokens(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_at=self.expires_at,
            scopes=list(self.scopes),
            metadata=dict(self.metadata),
        )


@dataclass(frozen=True, slots=True)
class ConnectionCheck:
    """Partition of required providers into connected and missing."""

    connected: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)

    @property
    def all_connected(self) -> bool:
        return not self.missing


# ─── Connection Models ───────────────────────────────────────


class ConnectionStatus(StrEnum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class MCPConnection:
    """A persisted server connection owned by one user."""

    id: str
    user_id: str
    server_id: str
    server_name: str
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    last_connected: str | None = None
    error_message: str | None = None
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, row: dict) -> MCPConnection:
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            server_id=row["server_id"],
            server_name=row.get("server_name", ""),
            command=row.get("server_command", ""),
            args=list(row.get("server_args") or []),
            env=dict(row.get("server_env") or {}),
            status=ConnectionStatus(row.get("status", ConnectionStatus.DISCONNECTED)),
            last_connected=row.get("last_connected"),
            error_message=row.get("error_message"),
            created_at=row.get("created_at", ""),
            updated_at=row.get("updated_at", ""),
        )


# ─── Tool Call Models ────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ToolInfo:
    """A tool exposed by a running MCP server."""

    name: str
    description: str = ""
    input_schema: dict[str, object] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict) -> ToolInfo:
        return cls(
            name=raw.get("name", ""),
            description=raw.get("description") or "",
            input_schema=dict(raw.get("inputSchema") or raw.get("input_schema") or {}),
        )


@dataclass(frozen=True, slots=True)
class ToolCall:
    server_id: str
    tool_name: str
    arguments: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ToolCallResult:
    success: bool
    content: object = None
    error: str = ""


# ─── Cloud Bridge Models ─────────────────────────────────────


class CloudInstanceStatus(StrEnum):
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"

    def can_transition_to(self, target: CloudInstanceStatus) -> bool:
        return target == self or target in _INSTANCE_TRANSITIONS[self]


_INSTANCE_TRANSITIONS: dict[CloudInstanceStatus, frozenset[CloudInstanceStatus]] = {
    CloudInstanceStatus.STARTING: frozenset(
        {CloudInstanceStatus.RUNNING, CloudInstanceStatus.ERROR}
    ),
    CloudInstanceStatus.RUNNING: frozenset(
        {CloudInstanceStatus.STOPPING, CloudInstanceStatus.ERROR}
    ),
    CloudInstanceStatus.STOPPING: frozenset(
        {CloudInstanceStatus.STOPPED, CloudInstanceStatus.ERROR}
    ),
    CloudInstanceStatus.ERROR: frozenset(
        {CloudInstanceStatus.STOPPING, CloudInstanceStatus.STOPPED}
    ),
    CloudInstanceStatus.STOPPED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class CloudBridgeInstance:
    """A remotely hosted MCP server process."""

    id: str
    user_id: str
    server_id: str
    server_name: str
    status: CloudInstanceStatus
    server_info: dict[str, object] = field(default_factory=dict)
    endpoint_url: str | None = None
    requests_count: int = 0
    last_request: str | None = None
    error_message: str | None = None
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, row: dict) -> CloudBridgeInstance:
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            server_id=row.get("server_id", ""),
            server_name=row.get("server_name", ""),
            status=CloudInstanceStatus(row.get("status", CloudInstanceStatus.STARTING)),
            server_info=dict(row.get("server_config") or {}),
            endpoint_url=row.get("endpoint_url"),
            requests_count=int(row.get("requests_count") or 0),
            last_request=row.get("last_request"),
            error_message=row.get("error_message"),
            created_at=row.get("created_at", ""),
            updated_at=row.get("updated_at", ""),
        )


@dataclass(frozen=True, slots=True)
class CloudToolCall:
    instance_id: str
    tool_name: str
    arguments: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CloudToolResult:
    success: bool
    data: object = None
    error: str = ""
    execution_time_ms: int | None = None


# ─── Troubleshooting Models ──────────────────────────────────


class ErrorType(StrEnum):
    CONNECTION = "connection"
    AUTHENTICATION = "authentication"
    INSTALLATION = "installation"
    DETECTION = "detection"
    PERMISSION = "permission"
    UNKNOWN = "unknown"


class Severity(StrEnum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class SolutionPriority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SolutionCategory(StrEnum):
    CONNECTION = "connection"
    AUTHENTICATION = "authentication"
    INSTALLATION = "installation"
    CONFIGURATION = "configuration"
    SYSTEM = "system"


class StepKind(StrEnum):
    """How a step is presented: a button, a link, a copy action, or a checkbox."""

    BUTTON = "button"
    LINK = "link"
    COPY = "copy"
    CHECK = "check"


class StepAction(StrEnum):
    """What executing a step does."""

    RETRY = "retry"
    USE_CLOUD_BRIDGE = "use-cloud-bridge"
    REFRESH = "refresh"
    OPEN_LINK = "open-link"
    COPY = "copy"
    MARK_DONE = "mark-done"

    @property
    def kind(self) -> StepKind:
        if self == StepAction.OPEN_LINK:
            return StepKind.LINK
        if self == StepAction.COPY:
            return StepKind.COPY
        if self == StepAction.MARK_DONE:
            return StepKind.CHECK
        return StepKind.BUTTON


@dataclass(frozen=True, slots=True)
class TroubleshootingStep:
    title: str
    description: str
    action: StepAction = StepAction.MARK_DONE
    label: str = ""
    payload: str = ""


@dataclass(frozen=True, slots=True)
class TroubleshootingSolution:
    title: str
    description: str
    priority: SolutionPriority
    category: SolutionCategory
    steps: list[TroubleshootingStep] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ErrorContext:
    """Where an error happened, to tailor the analysis."""

    step: str = ""
    server_info: ServerInfo | None = None
    provider: str = ""


@dataclass(frozen=True, slots=True)
class ErrorAnalysis:
    """Classified error with causes, ranked solutions, and an optional quick fix."""

    error_type: ErrorType
    severity: Severity
    message: str
    original_error: str
    possible_causes: list[str] = field(default_factory=list)
    solutions: list[TroubleshootingSolution] = field(default_factory=list)
    quick_fix: TroubleshootingStep | None = None


# ─── Rate Limit Models ───────────────────────────────────────


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    requests: int
    window_seconds: int
    description: str = ""


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # epoch seconds
    retry_after: int | None = None


# ─── Setup Session Models ────────────────────────────────────


class SetupStep(StrEnum):
    URL_INPUT = "url-input"
    DETECTION = "detection"
    SERVER_INFO = "server-info"
    OAUTH_SETUP = "oauth-setup"
    INSTALLATION = "installation"
    CLOUD_BRIDGE = "cloud-bridge"
    SUCCESS = "success"
    ERROR = "error"


class NoticeLevel(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class Notice:
    """A user-visible toast raised by the setup wizard."""

    level: NoticeLevel
    title: str
    message: str = ""


@dataclass(slots=True)
class SetupSession:
    """Mutable working memory of one setup wizard session."""

    step: SetupStep = SetupStep.URL_INPUT
    url: str = ""
    server_info: ServerInfo | None = None
    connected_providers: list[str] = field(default_factory=list)
    missing_providers: list[str] = field(default_factory=list)
    progress: int = 0
    error: str | None = None
    analysis: ErrorAnalysis | None = None
    installation_log: list[str] = field(default_factory=list)
    cloud_bridge_mode: bool = False
    cloud_bridge_available: bool = False
    cloud_instance: CloudBridgeInstance | None = None
    notices: list[Notice] = field(default_factory=list)
