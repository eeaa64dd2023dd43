"""Classify raw error text into an ErrorType.

Rules are checked in order and the first match wins, so an error that
mentions keywords from two categories always lands in the earlier one.
"""

from __future__ import annotations

from dataclasses import dataclass

from prompt_supply.models import ErrorType


@dataclass(frozen=True, slots=True)
class _Rule:
    error_type: ErrorType
    keywords: tuple[str, ...]
    # A match on any of these vetoes the rule.
    unless: tuple[str, ...] = ()


_RULES: tuple[_Rule, ...] = (
    _Rule(
        ErrorType.CONNECTION,
        ("network", "connection", "timeout", "timed out", "did not respond", "fetch", "cors"),
    ),
    _Rule(
        ErrorType.AUTHENTICATION,
        ("oauth", "authorization", "token", "authentication", "access denied", "unauthorized"),
    ),
    # OS permission codes always belong to the permission rule, even inside
    # an "Installation failed: ..." message.
    _Rule(
        ErrorType.INSTALLATION,
        ("npm", "install", "package", "node", "command not found", "permission denied"),
        unless=("eacces", "eperm"),
    ),
    _Rule(
        ErrorType.DETECTION,
        ("detect", "parse", "invalid url", "not found", "repository"),
    ),
    _Rule(
        ErrorType.PERMISSION,
        ("permission", "access denied", "eacces", "eperm"),
    ),
)


def _matches_any(text: str, patterns: tuple[str, ...]) -> bool:
    return any(p in text for p in patterns)


def classify(error_text: str) -> ErrorType:
    """Return the first category whose keywords appear in ``error_text``."""
    lower = error_text.lower()
    for rule in _RULES:
        if _matches_any(lower, rule.keywords) and not _matches_any(lower, rule.unless):
            return rule.error_type
    return ErrorType.UNKNOWN
