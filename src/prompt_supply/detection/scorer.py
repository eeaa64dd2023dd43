"""Score how likely a package manifest is an MCP server implementation."""

from __future__ import annotations

from dataclasses import dataclass

from prompt_supply.models import PackageManifest

MCP_SDK_PACKAGE = "@modelcontextprotocol/sdk"
MCP_ORG = "modelcontextprotocol"

# Below ACCEPT_THRESHOLD the detector produces no candidate at all; below
# CONFIRM_THRESHOLD the setup wizard refuses to proceed with the candidate.
ACCEPT_THRESHOLD = 0.5
CONFIRM_THRESHOLD = 0.7


@dataclass(frozen=True, slots=True)
class ConfidenceWeights:
    """Points awarded per signal. Tunable; only the two-tier gate is load-bearing."""

    name_mcp: float = 0.4
    name_modelcontextprotocol: float = 0.4
    name_server: float = 0.2
    description_mcp: float = 0.3
    description_model_context_protocol: float = 0.3
    description_context_server: float = 0.2
    keyword_mcp: float = 0.3
    keyword_modelcontextprotocol: float = 0.3
    official_org: float = 0.5
    sdk_dependency: float = 0.4


DEFAULT_WEIGHTS = ConfidenceWeights()


def score_confidence(
    manifest: PackageManifest,
    repo_owner: str | None = None,
    weights: ConfidenceWeights = DEFAULT_WEIGHTS,
) -> float:
    """Compute an additive confidence score in [0, 1].

    Signals:
    - name contains "mcp" / "modelcontextprotocol" / "server"
    - description mentions "mcp" / "model context protocol" / "context server"
    - keywords include "mcp" / "modelcontextprotocol"
    - repository owner is the modelcontextprotocol organization
    - the official MCP SDK is a dependency or dev dependency
    """
    score = 0.0

    name = manifest.name.lower()
    if "mcp" in name:
        score += weights.name_mcp
    if "modelcontextprotocol" in name:
        score += weights.name_modelcontextprotocol
    if "server" in name:
        score += weights.name_server

    description = manifest.description.lower()
    if "mcp" in description:
        score += weights.description_mcp
    if "model context protocol" in description:
        score += weights.description_model_context_protocol
    if "context server" in description:
        score += weights.description_context_server

    keywords = {k.lower() for k in manifest.keywords}
    if "mcp" in keywords:
        score += weights.keyword_mcp
    if "modelcontextprotocol" in keywords:
        score += weights.keyword_modelcontextprotocol

    if repo_owner and repo_owner.lower() == MCP_ORG:
        score += weights.official_org

    if has_sdk_dependency(manifest):
        score += weights.sdk_dependency

    return round(max(0.0, min(1.0, score)), 2)


def has_sdk_dependency(manifest: PackageManifest) -> bool:
    return MCP_SDK_PACKAGE in manifest.dependencies or MCP_SDK_PACKAGE in manifest.dev_dependencies


def is_accepted(confidence: float, threshold: float = ACCEPT_THRESHOLD) -> bool:
    """True when a candidate scores high enough to be produced at all."""
    return confidence >= threshold


def is_confirmed(confidence: float, threshold: float = CONFIRM_THRESHOLD) -> bool:
    """True when a candidate scores high enough to proceed with setup."""
    return confidence >= threshold
