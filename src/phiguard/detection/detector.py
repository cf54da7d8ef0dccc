"""Detector: scans a text unit against the pattern registry."""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..exceptions import InputDecodeError
from ..schemas.base import DetectionResult, SpanMatch
from .patterns import PatternRegistry, default_registry

logger = logging.getLogger(__name__)

# Neither a digit, a word character nor a separator any rule looks at.
_MASK = "#"


def decode_text(content: Any) -> str:
    """
    Return content as a well-formed str.

    Bytes are decoded as strict UTF-8. Strings carrying lone surrogates
    are rejected too, since they cannot be stored or forwarded intact.

    Raises:
        InputDecodeError: for undecodable bytes or non-text input
    """
    if isinstance(content, (bytes, bytearray, memoryview)):
        try:
            return bytes(content).decode("utf-8")
        except UnicodeDecodeError as e:
            raise InputDecodeError(f"Content is not valid UTF-8: {e.reason}") from e

    if not isinstance(content, str):
        raise InputDecodeError(f"Unsupported content type: {type(content).__name__}")

    try:
        content.encode("utf-8")
    except UnicodeEncodeError as e:
        raise InputDecodeError(f"Content is not well-formed text: {e.reason}") from e
    return content


def _content_length(content: Any) -> int:
    try:
        return len(content)
    except TypeError:
        return 0


class Detector:
    """
    Stateless scanner over a PatternRegistry.

    Every rule is run over the whole input and every span it reports is
    kept, so a category that occurs N times yields N matches. A Detector
    holds no mutable state and may be shared between threads.

    Usage:
        detector = Detector()
        result = detector.detect("Contact insurance provider for patient id 123456789")
        result.categories  # {INSURANCE, GENERIC_IDENTIFIER_PHRASE, IDENTIFIER_NUMERIC}
    """

    def __init__(self, registry: Optional[PatternRegistry] = None):
        self.registry = registry or default_registry()

    def detect(self, content: Any) -> DetectionResult:
        """
        Scan content and return every matched span.

        Never raises. Input that is not decodable text, or any failure
        inside a matcher, produces a fail-closed result.
        """
        try:
            text = decode_text(content)
        except InputDecodeError as e:
            logger.error("Failing closed on undecodable input: %s", e)
            return DetectionResult.fail_closed(_content_length(content))

        try:
            found = self._scan(text)
        except Exception:
            logger.exception("Matcher failed; failing closed")
            return DetectionResult.fail_closed(len(text))

        return DetectionResult(matches=self._normalize(found))

    def contains_sensitive(self, content: Any) -> bool:
        """True when detect() reports anything, including a fail-closed result."""
        return bool(self.detect(content))

    def _scan(self, text: str) -> list[SpanMatch]:
        """
        Run every rule until no new span turns up.

        After each pass the reported spans are masked out and the text is
        scanned again, so digits inside one span never count as the wider
        number context of the next (the 9 digits after "555-555-5555-").
        """
        found: dict[tuple, SpanMatch] = {}
        covered = [False] * len(text)
        view = text
        while True:
            fresh = [
                SpanMatch(rule.category, start, end, rule.name)
                for rule in self.registry
                for start, end in rule.find(view)
                if (rule.category, start, end) not in found
                and not all(covered[start:end])
            ]
            if not fresh:
                return list(found.values())
            for match in fresh:
                found.setdefault((match.category, match.start, match.end), match)
                covered[match.start : match.end] = [True] * (match.end - match.start)
            view = "".join(_MASK if hidden else ch for ch, hidden in zip(text, covered))

    @staticmethod
    def _normalize(found: list[SpanMatch]) -> tuple[SpanMatch, ...]:
        # Two rules of one category can hit the same span; report it once.
        unique: dict[tuple, SpanMatch] = {}
        for match in found:
            unique.setdefault((match.category, match.start, match.end), match)
        return tuple(
            sorted(
                unique.values(),
                key=lambda m: (m.start, m.end, m.category.order, m.rule_name),
            )
        )


_default_detector: Optional[Detector] = None


def get_detector() -> Detector:
    """Process-wide detector over the built-in registry."""
    global _default_detector
    if _default_detector is None:
        _default_detector = Detector()
    return _default_detector
