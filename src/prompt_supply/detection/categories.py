"""Keyword-based categorization of detected servers."""

from __future__ import annotations

from prompt_supply.models import PackageManifest, ServerCategory

# First matching row wins, so order encodes priority.
_CATEGORY_KEYWORDS: tuple[tuple[ServerCategory, tuple[str, ...]], ...] = (
    (ServerCategory.DEVELOPER_TOOLS, ("github", "git", "code")),
    (ServerCategory.PROJECT_MANAGEMENT, ("notion", "linear", "jira", "project")),
    (ServerCategory.DESIGN, ("figma", "design")),
    (ServerCategory.COMMUNICATION, ("slack", "discord", "communication")),
    (ServerCategory.DATABASE, ("database", "sql", "postgres", "mysql")),
    (ServerCategory.FILESYSTEM, ("filesystem", "file", "directory")),
    (ServerCategory.SEARCH, ("search", "brave", "google")),
)


def categorize(manifest: PackageManifest) -> ServerCategory:
    """Pick a category from name, description and keywords."""
    text = " ".join([manifest.name, manifest.description, *manifest.keywords]).lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(k in text for k in keywords):
            return category
    return ServerCategory.OTHER
