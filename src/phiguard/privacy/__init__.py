"""Placeholder redaction of detected sensitive spans."""

from phiguard.privacy.redactor import (
    FAIL_CLOSED_PLACEHOLDER,
    RedactionRegion,
    Redactor,
    merge_spans,
    placeholder_for,
)

__all__ = [
    "Redactor",
    "RedactionRegion",
    "merge_spans",
    "placeholder_for",
    "FAIL_CLOSED_PLACEHOLDER",
]
