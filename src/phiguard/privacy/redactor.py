"""Category-placeholder redaction over detector results.

Every reported span is replaced, left to right, by a placeholder naming
its category. Text outside the spans is copied through untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from ..detection.detector import Detector, decode_text, get_detector
from ..exceptions import InputDecodeError
from ..schemas.base import DetectionResult, SensitiveCategory, SpanMatch

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "[REDACTED_"
PLACEHOLDER_SUFFIX = "]"
# Joined with word characters only, so no word-bounded phrase rule can
# fire inside a placeholder.
PLACEHOLDER_JOINER = "_AND_"


def placeholder_for(categories: Iterable[SensitiveCategory]) -> str:
    """
    Canonical placeholder for one redacted region.

    placeholder_for([SensitiveCategory.INSURANCE])  -> "[REDACTED_INSURANCE]"
    placeholder_for([MEDICATION, INSURANCE])        -> "[REDACTED_INSURANCE_AND_MEDICATION]"
    """
    ordered = sorted(set(categories), key=lambda c: c.order)
    if not ordered:
        raise ValueError("placeholder_for() needs at least one category")
    labels = PLACEHOLDER_JOINER.join(c.label for c in ordered)
    return f"{PLACEHOLDER_PREFIX}{labels}{PLACEHOLDER_SUFFIX}"


FAIL_CLOSED_PLACEHOLDER = placeholder_for([SensitiveCategory.UNKNOWN_BINARY])


@dataclass(frozen=True)
class RedactionRegion:
    """A merged run of overlapping spans and every category that touched it."""

    start: int
    end: int
    categories: frozenset[SensitiveCategory]

    @property
    def placeholder(self) -> str:
        return placeholder_for(self.categories)


def merge_spans(matches: Iterable[SpanMatch]) -> list[RedactionRegion]:
    """Union overlapping spans; spans that merely touch stay separate."""
    regions: list[RedactionRegion] = []
    for match in sorted(matches, key=lambda m: (m.start, m.end)):
        if regions and match.start < regions[-1].end:
            last = regions[-1]
            regions[-1] = RedactionRegion(
                start=last.start,
                end=max(last.end, match.end),
                categories=last.categories | {match.category},
            )
        else:
            regions.append(
                RedactionRegion(match.start, match.end, frozenset({match.category}))
            )
    return regions


class Redactor:
    """
    Replaces detected spans with category placeholders.

    Unlike reversible tokenization, nothing is kept that would let a reader
    recover the original value; the placeholder only says what kind of
    information was there.

    Example:
        redactor = Redactor()
        redactor.redact("Contact insurance provider for patient id 123456789")
        # "Contact [REDACTED_INSURANCE] provider for
        #  [REDACTED_GENERIC_IDENTIFIER_PHRASE] [REDACTED_IDENTIFIER_NUMERIC]"
    """

    def __init__(self, detector: Optional[Detector] = None):
        self.detector = detector or get_detector()

    def redact(self, content: Any, detection: Optional[DetectionResult] = None) -> str:
        """
        Redact content using a detection result for that same content.

        Args:
            content: The text that was scanned (str, or UTF-8 bytes)
            detection: Result of detect(content); computed here if omitted

        Returns:
            The sanitized text. Never raises; content that cannot be handled
            as text collapses to a single fail-closed placeholder.
        """
        if detection is None:
            detection = self.detector.detect(content)

        if detection.failed:
            return FAIL_CLOSED_PLACEHOLDER

        try:
            text = decode_text(content)
        except InputDecodeError as e:
            logger.error("Failing closed on undecodable input: %s", e)
            return FAIL_CLOSED_PLACEHOLDER

        if not detection:
            return text

        if any(m.start < 0 or m.end > len(text) for m in detection.matches):
            logger.error("Detection result does not belong to this text; failing closed")
            return FAIL_CLOSED_PLACEHOLDER

        parts: list[str] = []
        cursor = 0
        for region in merge_spans(detection.matches):
            parts.append(text[cursor : region.start])
            parts.append(region.placeholder)
            cursor = region.end
        parts.append(text[cursor:])
        return "".join(parts)

    def scan(self, content: Any) -> tuple[str, DetectionResult]:
        """Detect and redact in one call."""
        detection = self.detector.detect(content)
        return self.redact(content, detection), detection

    def redact_value(self, value: Any) -> tuple[Any, bool]:
        """
        Recursively sanitize a JSON-like structure.

        Strings (keys included) are scanned and redacted; numbers are
        checked on their decimal text so a numeric record number cannot slip
        through; anything else is stringified first. The result contains
        only JSON-safe types.

        Returns:
            Tuple of (sanitized_value, whether anything was redacted)
        """
        if value is None or isinstance(value, bool):
            return value, False

        if isinstance(value, (int, float)):
            sanitized, detection = self.scan(str(value))
            if detection:
                return sanitized, True
            return value, False

        if isinstance(value, str):
            sanitized, detection = self.scan(value)
            return sanitized, bool(detection)

        if isinstance(value, dict):
            result: dict[str, Any] = {}
            changed = False
            for key, item in value.items():
                clean_key, key_changed = self.redact_value(str(key))
                clean_item, item_changed = self.redact_value(item)
                result[clean_key] = clean_item
                changed = changed or key_changed or item_changed
            return result, changed

        if isinstance(value, (list, tuple, set, frozenset)):
            items = []
            changed = False
            for item in value:
                clean_item, item_changed = self.redact_value(item)
                items.append(clean_item)
                changed = changed or item_changed
            return items, changed

        return self.redact_value(str(value))
