"""
Pattern registry: the fixed vocabulary of sensitive-category matchers.

Every rule is a compiled regex tied to exactly one SensitiveCategory.
Numeric identifiers are bounded so they never fire inside a wider number;
phrase categories match on presence alone and are deliberately broad.

The registry is built once at start-up and is read-only afterwards. A
registry that is empty, or holds a broken rule, raises ConfigurationError
at construction rather than at scan time.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Sequence

from ..exceptions import ConfigurationError
from ..schemas.base import SensitiveCategory

# A digit group must not touch another digit, directly or through a
# single separator ("12-123456789", "123456789.5").
_NO_NUMBER_BEFORE = r"(?<!\d)(?<!\d[.,/-])"
_NO_NUMBER_AFTER = r"(?![.,/-]\d)(?!\d)"


@dataclass(frozen=True)
class PatternRule:
    """A single (category, matcher) pair."""

    name: str
    category: SensitiveCategory
    pattern: re.Pattern
    validator: Optional[Callable[[str], bool]] = None

    @classmethod
    def compile(
        cls,
        name: str,
        category: SensitiveCategory,
        regex: str,
        flags: int = 0,
        validator: Optional[Callable[[str], bool]] = None,
    ) -> "PatternRule":
        try:
            pattern = re.compile(regex, flags)
        except re.error as e:
            raise ConfigurationError(f"Rule '{name}' does not compile: {e}") from e
        return cls(name=name, category=category, pattern=pattern, validator=validator)

    @classmethod
    def phrase(
        cls, name: str, category: SensitiveCategory, *phrases: str
    ) -> "PatternRule":
        """Case-insensitive, word-bounded match on any of the given phrases."""
        alternatives = "|".join(
            r"\s+".join(re.escape(word) for word in p.split()) for p in phrases
        )
        return cls.compile(name, category, rf"\b(?:{alternatives})\b", re.IGNORECASE)

    def find(self, text: str) -> Iterator[tuple[int, int]]:
        """Yield every (start, end) span in text, not just the first."""
        for match in self.pattern.finditer(text):
            if match.start() == match.end():
                continue
            if self.validator is not None and not self.validator(match.group()):
                continue
            yield match.start(), match.end()


def _is_us_phone(value: str) -> bool:
    digits = re.sub(r"\D", "", value)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    return len(digits) == 10


C = SensitiveCategory

DEFAULT_PATTERNS: tuple[PatternRule, ...] = (
    # Identifiers: SSN-like 3-2-4 groups and bare 9-digit record numbers
    PatternRule.compile(
        "ssn",
        C.IDENTIFIER_NUMERIC,
        rf"\b{_NO_NUMBER_BEFORE}\d{{3}}-\d{{2}}-\d{{4}}{_NO_NUMBER_AFTER}\b",
    ),
    PatternRule.compile(
        "mrn",
        C.IDENTIFIER_NUMERIC,
        rf"\b{_NO_NUMBER_BEFORE}\d{{9}}{_NO_NUMBER_AFTER}\b",
    ),
    # Contact details: the values themselves and the phrases naming them
    PatternRule.compile(
        "phone_us",
        C.CONTACT_PHONE,
        r"(?<![A-Za-z0-9])(?:\+1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}(?![A-Za-z0-9])",
        validator=_is_us_phone,
    ),
    PatternRule.phrase("phone_phrase", C.CONTACT_PHONE, "phone number", "phone numbers"),
    PatternRule.compile(
        "email",
        C.CONTACT_EMAIL,
        r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b",
    ),
    PatternRule.phrase(
        "email_phrase", C.CONTACT_EMAIL, "email address", "email addresses"
    ),
    PatternRule.phrase("address_phrase", C.POSTAL_ADDRESS, "address", "addresses"),
    # Named clinical categories
    PatternRule.phrase("insurance", C.INSURANCE, "insurance"),
    PatternRule.phrase("medical_history", C.MEDICAL_HISTORY, "medical history"),
    PatternRule.phrase("medication", C.MEDICATION, "medication", "medications"),
    PatternRule.phrase("family_history", C.FAMILY_HISTORY, "family history"),
    PatternRule.phrase(
        "genetic_disorder", C.GENETIC_DISORDER, "genetic disorder", "genetic disorders"
    ),
    PatternRule.phrase(
        "clinical_trial", C.CLINICAL_TRIAL, "clinical trial", "clinical trials"
    ),
    PatternRule.phrase("research_data", C.RESEARCH_DATA, "research data"),
    PatternRule.phrase(
        "identifier_phrase",
        C.GENERIC_IDENTIFIER_PHRASE,
        "patient id",
        "phi",
        "date of birth",
    ),
)

del C


class PatternRegistry:
    """
    Ordered, immutable collection of PatternRules.

    Usage:
        registry = PatternRegistry()  # built-in rules

        # Extra site-specific rules on top of the defaults:
        registry = PatternRegistry(rules=[my_rule])

        # Only custom rules:
        registry = PatternRegistry(rules=[my_rule], include_defaults=False)
    """

    def __init__(
        self,
        rules: Optional[Sequence[PatternRule]] = None,
        include_defaults: bool = True,
    ):
        collected: list[PatternRule] = []
        if include_defaults:
            collected.extend(DEFAULT_PATTERNS)
        if rules:
            collected.extend(rules)
        self._validate(collected)
        self._rules: tuple[PatternRule, ...] = tuple(collected)

    @staticmethod
    def _validate(rules: Sequence[PatternRule]) -> None:
        if not rules:
            raise ConfigurationError("Pattern registry is empty")

        seen: set[str] = set()
        for rule in rules:
            if not isinstance(rule, PatternRule):
                raise ConfigurationError(f"Not a PatternRule: {rule!r}")
            if rule.name in seen:
                raise ConfigurationError(f"Duplicate rule name: {rule.name}")
            seen.add(rule.name)
            if not isinstance(rule.category, SensitiveCategory):
                raise ConfigurationError(
                    f"Rule '{rule.name}' has an unknown category: {rule.category!r}"
                )
            if rule.category is SensitiveCategory.UNKNOWN_BINARY:
                raise ConfigurationError(
                    f"Rule '{rule.name}' may not target {rule.category.value}"
                )
            if not isinstance(rule.pattern, re.Pattern):
                raise ConfigurationError(f"Rule '{rule.name}' has no compiled pattern")
            if rule.pattern.match("") is not None:
                raise ConfigurationError(
                    f"Rule '{rule.name}' matches the empty string"
                )

    @property
    def rules(self) -> tuple[PatternRule, ...]:
        return self._rules

    @property
    def categories(self) -> frozenset[SensitiveCategory]:
        return frozenset(rule.category for rule in self._rules)

    def __iter__(self) -> Iterator[PatternRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)


_default_registry: Optional[PatternRegistry] = None


def default_registry() -> PatternRegistry:
    """Shared registry of the built-in rules."""
    global _default_registry
    if _default_registry is None:
        _default_registry = PatternRegistry()
    return _default_registry
