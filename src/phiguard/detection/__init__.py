"""
Sensitive-content detection.

A fixed registry of category matchers plus a stateless detector that
reports every matched span.
"""

from .detector import Detector, decode_text, get_detector
from .patterns import DEFAULT_PATTERNS, PatternRegistry, PatternRule, default_registry

__all__ = [
    "Detector",
    "PatternRegistry",
    "PatternRule",
    "DEFAULT_PATTERNS",
    "decode_text",
    "default_registry",
    "get_detector",
]
