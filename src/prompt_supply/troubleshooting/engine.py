"""Turn any error into an ErrorAnalysis. Pure: no I/O, no state."""

from __future__ import annotations

from prompt_supply.models import ErrorAnalysis, ErrorContext
from prompt_supply.troubleshooting.analyses import TEMPLATES
from prompt_supply.troubleshooting.classifier import classify


def analyze_error(error: BaseException | str, context: ErrorContext | None = None) -> ErrorAnalysis:
    """Classify ``error`` and attach causes, ranked solutions and an optional quick fix.

    Unclassified errors still get the generic refresh / clear cache / other
    browser remedies, so every analysis carries at least one solution.
    """
    text = error if isinstance(error, str) else (str(error) or type(error).__name__)
    error_type = classify(text)
    return TEMPLATES[error_type](text, context or ErrorContext())
