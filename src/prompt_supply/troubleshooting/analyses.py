"""Hand-authored analysis templates, one per ErrorType."""

from __future__ import annotations

from collections.abc import Callable

from prompt_supply.models import (
    ErrorAnalysis,
    ErrorContext,
    ErrorType,
    Severity,
    SolutionCategory,
    SolutionPriority,
    StepAction,
    TroubleshootingSolution,
    TroubleshootingStep,
)

NODE_DOWNLOAD_URL = "https://nodejs.org/download"
MCP_SERVERS_URL = "https://github.com/modelcontextprotocol/servers"

# ─── Shared building blocks ──────────────────────────────────


def _check(title: str, description: str) -> TroubleshootingStep:
    return TroubleshootingStep(title=title, description=description, action=StepAction.MARK_DONE)


def _install_node_steps(restart_hint: str) -> list[TroubleshootingStep]:
    return [
        TroubleshootingStep(
            title="Download Node.js",
            description="Install the latest LTS version",
            action=StepAction.OPEN_LINK,
            label="Download Node.js",
            payload=NODE_DOWNLOAD_URL,
        ),
        _check("Restart browser", restart_hint),
    ]


def cloud_bridge_solution(priority: SolutionPriority) -> TroubleshootingSolution:
    return TroubleshootingSolution(
        title="Use Cloud Bridge",
        description="Skip local installation with our cloud service",
        priority=priority,
        category=SolutionCategory.INSTALLATION,
        steps=[
            TroubleshootingStep(
                title="Try Cloud Bridge",
                description="We can run the MCP server in the cloud for you",
                action=StepAction.USE_CLOUD_BRIDGE,
                label="Use Cloud Bridge",
            )
        ],
    )


# ─── Templates ───────────────────────────────────────────────


def _connection(error: str, context: ErrorContext) -> ErrorAnalysis:
    return ErrorAnalysis(
        error_type=ErrorType.CONNECTION,
        severity=Severity.CRITICAL,
        message="Network connection failed",
        original_error=error,
        possible_causes=[
            "No internet connection",
            "Firewall blocking requests",
            "VPN/Proxy interference",
            "Server temporarily unavailable",
        ],
        solutions=[
            TroubleshootingSolution(
                title="Check Network Connection",
                description="Verify your internet connection and network settings",
                priority=SolutionPriority.HIGH,
                category=SolutionCategory.CONNECTION,
                steps=[
                    _check("Test internet connection", "Try opening other websites"),
                    _check("Disable VPN/Proxy", "Temporarily disable VPN or proxy settings"),
                    _check(
                        "Try different network",
                        "Connect to a different Wi-Fi network if available",
                    ),
                ],
            )
        ],
        quick_fix=TroubleshootingStep(
            title="Quick Fix",
            description="Retry the connection",
            action=StepAction.RETRY,
            label="Retry Connection",
        ),
    )


def _authentication(error: str, context: ErrorContext) -> ErrorAnalysis:
    lower = error.lower()
    popup_blocked = "popup" in lower or "blocked" in lower
    access_denied = "denied" in lower

    if popup_blocked:
        message = "Pop-up was blocked"
    elif access_denied:
        message = "OAuth access denied"
    else:
        message = "Authentication failed"

    retry = TroubleshootingStep(
        title="Retry authentication",
        description="Try the OAuth flow again",
        action=StepAction.RETRY,
        label="Retry OAuth",
        payload=context.provider,
    )
    return ErrorAnalysis(
        error_type=ErrorType.AUTHENTICATION,
        severity=Severity.WARNING if popup_blocked else Severity.CRITICAL,
        message=message,
        original_error=error,
        possible_causes=[
            "Pop-up blocker enabled",
            "User denied OAuth access",
            "Invalid OAuth configuration",
            "Network interruption during auth flow",
        ],
        solutions=[
            TroubleshootingSolution(
                title="Enable Pop-ups",
                description="Allow pop-ups for OAuth authentication",
                priority=SolutionPriority.HIGH,
                category=SolutionCategory.AUTHENTICATION,
                steps=[
                    _check(
                        "Allow pop-ups",
                        "Click the pop-up blocked icon in your address bar and allow pop-ups",
                    ),
                    retry,
                ],
            )
        ],
        quick_fix=TroubleshootingStep(
            title="Allow Pop-ups",
            description="Enable pop-ups and try again",
            action=StepAction.RETRY,
            label="Retry OAuth",
            payload=context.provider,
        ),
    )


def _installation(error: str, context: ErrorContext) -> ErrorAnalysis:
    lower = error.lower()
    if "node" in lower or "npm" in lower:
        message = "Node.js not found"
    elif "permission" in lower:
        message = "Permission denied"
    else:
        message = "Installation failed"

    steps = _install_node_steps("Close and reopen your browser")
    info = context.server_info
    if info is not None and info.install_command:
        steps.append(
            TroubleshootingStep(
                title="Install manually",
                description=f"Run the install command for {info.name} in a terminal",
                action=StepAction.COPY,
                label="Copy command",
                payload=" ".join([info.install_command, *info.install_args]),
            )
        )

    return ErrorAnalysis(
        error_type=ErrorType.INSTALLATION,
        severity=Severity.CRITICAL,
        message=message,
        original_error=error,
        possible_causes=[
            "Node.js not installed",
            "npm not available",
            "Insufficient permissions",
            "Network issues during download",
        ],
        solutions=[
            TroubleshootingSolution(
                title="Install Node.js",
                description="Install Node.js and npm",
                priority=SolutionPriority.HIGH,
                category=SolutionCategory.SYSTEM,
                steps=steps,
            ),
            cloud_bridge_solution(SolutionPriority.MEDIUM),
        ],
    )


def _detection(error: str, context: ErrorContext) -> ErrorAnalysis:
    return ErrorAnalysis(
        error_type=ErrorType.DETECTION,
        severity=Severity.WARNING,
        message="Could not detect MCP server",
        original_error=error,
        possible_causes=[
            "URL is not an MCP server",
            "Repository is private",
            "Invalid URL format",
            "Server configuration missing",
        ],
        solutions=[
            TroubleshootingSolution(
                title="Verify URL",
                description="Make sure the URL points to an MCP server",
                priority=SolutionPriority.HIGH,
                category=SolutionCategory.CONFIGURATION,
                steps=[
                    _check(
                        "Check URL format",
                        "Use a GitHub repository URL like: https://github.com/user/repo",
                    ),
                    _check(
                        "Verify it's an MCP server",
                        "Make sure the repository contains an MCP server implementation",
                    ),
                    TroubleshootingStep(
                        title="Browse MCP servers",
                        description="Find official MCP servers",
                        action=StepAction.OPEN_LINK,
                        label="Browse Servers",
                        payload=MCP_SERVERS_URL,
                    ),
                ],
            )
        ],
    )


def _permission(error: str, context: ErrorContext) -> ErrorAnalysis:
    return ErrorAnalysis(
        error_type=ErrorType.PERMISSION,
        severity=Severity.CRITICAL,
        message="Permission denied",
        original_error=error,
        possible_causes=[
            "Insufficient system permissions",
            "Admin rights required",
            "File system restrictions",
            "Corporate security policies",
        ],
        solutions=[cloud_bridge_solution(SolutionPriority.HIGH)],
    )


def _unknown(error: str, context: ErrorContext) -> ErrorAnalysis:
    return ErrorAnalysis(
        error_type=ErrorType.UNKNOWN,
        severity=Severity.WARNING,
        message="An unexpected error occurred",
        original_error=error,
        possible_causes=[
            "Temporary service issue",
            "Browser compatibility problem",
            "Network connectivity issue",
        ],
        solutions=[
            TroubleshootingSolution(
                title="Basic Troubleshooting",
                description="Try these common solutions",
                priority=SolutionPriority.MEDIUM,
                category=SolutionCategory.SYSTEM,
                steps=[
                    TroubleshootingStep(
                        title="Refresh the page",
                        description="Reload the page and try again",
                        action=StepAction.REFRESH,
                        label="Refresh Page",
                    ),
                    _check("Clear browser cache", "Clear your browser cache and cookies"),
                    _check("Try different browser", "Test with Chrome, Firefox, or Safari"),
                ],
            )
        ],
    )


TEMPLATES: dict[ErrorType, Callable[[str, ErrorContext], ErrorAnalysis]] = {
    ErrorType.CONNECTION: _connection,
    ErrorType.AUTHENTICATION: _authentication,
    ErrorType.INSTALLATION: _installation,
    ErrorType.DETECTION: _detection,
    ErrorType.PERMISSION: _permission,
    ErrorType.UNKNOWN: _unknown,
}


def common_solutions() -> list[TroubleshootingSolution]:
    """Solutions worth showing before anything has gone wrong."""
    return [
        TroubleshootingSolution(
            title="Enable Pop-ups",
            description="OAuth authentication requires pop-up windows",
            priority=SolutionPriority.HIGH,
            category=SolutionCategory.AUTHENTICATION,
            steps=[
                _check("Check browser settings", "Make sure pop-ups are enabled for this site"),
                TroubleshootingStep(
                    title="Try again",
                    description="Click the OAuth button again after enabling pop-ups",
                    action=StepAction.RETRY,
                    label="Retry OAuth",
                ),
            ],
        ),
        TroubleshootingSolution(
            title="Install Node.js",
            description="MCP servers require Node.js to be installed",
            priority=SolutionPriority.HIGH,
            category=SolutionCategory.SYSTEM,
            steps=_install_node_steps("Close and reopen your browser after installing"),
        ),
        TroubleshootingSolution(
            title="Fix Network Issues",
            description="Connection problems can prevent MCP setup",
            priority=SolutionPriority.MEDIUM,
            category=SolutionCategory.CONNECTION,
            steps=[
                _check(
                    "Check internet connection",
                    "Make sure you have a stable internet connection",
                ),
                _check("Disable VPN/Proxy", "Try disabling VPN or proxy temporarily"),
                _check("Try different network", "Switch to a different network if available"),
            ],
        ),
    ]
