"""
Core data types shared by the detector, redactor, audit trail and policy gate.

Value types that only live in memory (spans, detection results, verdicts)
are plain frozen dataclasses. Types that cross the persistence boundary
(audit events and their filters) are pydantic models, so they validate on
the way in and serialize to a flat record on the way out.
"""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class SensitiveCategory(str, Enum):
    """Closed vocabulary of sensitive information the detector recognizes."""

    IDENTIFIER_NUMERIC = "identifier-numeric"
    CONTACT_PHONE = "contact-phone"
    CONTACT_EMAIL = "contact-email"
    POSTAL_ADDRESS = "postal-address"
    INSURANCE = "insurance"
    MEDICAL_HISTORY = "medical-history"
    MEDICATION = "medication"
    FAMILY_HISTORY = "family-history"
    GENETIC_DISORDER = "genetic-disorder"
    CLINICAL_TRIAL = "clinical-trial"
    RESEARCH_DATA = "research-data"
    GENERIC_IDENTIFIER_PHRASE = "generic-identifier-phrase"
    # Fail-closed marker for undecodable input; never produced by a matcher.
    UNKNOWN_BINARY = "unknown-binary"

    @property
    def label(self) -> str:
        """Upper-snake label used inside redaction placeholders."""
        return self.name

    @property
    def order(self) -> int:
        """Declaration index; fixes category order in results and placeholders."""
        return _CATEGORY_ORDER[self]


_CATEGORY_ORDER = {category: index for index, category in enumerate(SensitiveCategory)}


class ActionKind(str, Enum):
    """Kind of security-relevant action an audit event records."""

    DATA_ACCESS = "data-access"
    CHAT_INTERACTION = "chat-interaction"
    PHI_DETECTION = "phi-detection"
    AUTHENTICATION = "authentication"
    OTHER = "other"


class Direction(str, Enum):
    """Which way content is crossing the trust boundary."""

    OUTBOUND = "outbound"  # user -> external model
    INBOUND = "inbound"  # external model -> user


class PolicyMode(str, Enum):
    """What the gate does with content that triggered the detector."""

    REDACT = "redact"
    BLOCK = "block"


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SpanMatch:
    """One matched span: [start, end) in the scanned text."""

    category: SensitiveCategory
    start: int
    end: int
    rule_name: str = ""

    def overlaps(self, other: "SpanMatch") -> bool:
        return self.start < other.end and other.start < self.end


@dataclass(frozen=True)
class DetectionResult:
    """
    Ordered, immutable result of scanning one text unit.

    Matches are sorted by (start, end, category order) so two scans of the
    same input compare equal. `failed` marks a fail-closed result produced
    for input that could not be scanned; it always carries a single
    UNKNOWN_BINARY span covering the whole input.
    """

    matches: Tuple[SpanMatch, ...] = ()
    failed: bool = False

    @classmethod
    def fail_closed(cls, length: int = 0) -> "DetectionResult":
        return cls(
            matches=(SpanMatch(SensitiveCategory.UNKNOWN_BINARY, 0, length),),
            failed=True,
        )

    @property
    def categories(self) -> FrozenSet[SensitiveCategory]:
        return frozenset(m.category for m in self.matches)

    @property
    def is_clean(self) -> bool:
        return not self.matches

    def spans_for(self, category: SensitiveCategory) -> Tuple[SpanMatch, ...]:
        return tuple(m for m in self.matches if m.category == category)

    def __bool__(self) -> bool:
        return bool(self.matches)

    def __len__(self) -> int:
        return len(self.matches)


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------


def _utc(value: datetime) -> datetime:
    """Normalize to an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AuditEventDraft(BaseModel):
    """What a caller hands to the recorder; id, time and digests are assigned on append."""

    actor_id: str = Field(..., min_length=1)
    action: ActionKind
    resource_type: str = ""
    resource_id: str = ""
    success: bool = True
    categories: List[SensitiveCategory] = Field(default_factory=list)
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None


class AuditEvent(BaseModel):
    """
    Immutable audit record.

    Each event is chained to the previous event of the same actor through
    `prev_digest`; `digest` covers every other field, so any edit to a
    stored row breaks the chain and shows up in `verify_chain`.
    """

    model_config = ConfigDict(frozen=True)

    event_id: int
    actor_id: str
    action: ActionKind
    resource_type: str
    resource_id: str
    timestamp: datetime
    success: bool
    categories: List[SensitiveCategory] = Field(default_factory=list)
    details: Dict[str, Any] = Field(default_factory=dict)
    details_redacted: bool = False
    prev_digest: str = ""
    digest: str = ""

    def canonical_payload(self) -> str:
        body = {
            "event_id": self.event_id,
            "actor_id": self.actor_id,
            "action": self.action.value,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "timestamp": _utc(self.timestamp).isoformat(),
            "success": self.success,
            "categories": self._category_values(),
            "details": self.details,
            "details_redacted": self.details_redacted,
            "prev_digest": self.prev_digest,
        }
        return json.dumps(body, sort_keys=True, separators=(",", ":"), default=str)

    def _category_values(self) -> List[str]:
        return sorted(c.value for c in self.categories)

    def compute_digest(self) -> str:
        return hashlib.sha256(self.canonical_payload().encode("utf-8")).hexdigest()

    def to_record(self) -> Dict[str, Any]:
        """Flat record with stable field names, for persistence and export."""
        return {
            "event_id": self.event_id,
            "actor_id": self.actor_id,
            "action": self.action.value,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "timestamp": _utc(self.timestamp).isoformat(),
            "success": self.success,
            "categories": ",".join(self._category_values()),
            "details": json.dumps(self.details, sort_keys=True, default=str),
            "details_redacted": self.details_redacted,
            "prev_digest": self.prev_digest,
            "digest": self.digest,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "AuditEvent":
        data = dict(record)
        if isinstance(data.get("details"), str):
            data["details"] = json.loads(data["details"])
        if isinstance(data.get("categories"), str):
            data["categories"] = [c for c in data["categories"].split(",") if c]
        if isinstance(data.get("timestamp"), str):
            data["timestamp"] = datetime.fromisoformat(data["timestamp"])
        data["timestamp"] = _utc(data["timestamp"])
        return cls(**data)


class AuditQuery(BaseModel):
    """
    Filter for audit queries. Every field is optional; unset fields match
    everything. The time range is inclusive on both ends and also accepts
    the keys `from` / `to`.
    """

    model_config = ConfigDict(populate_by_name=True)

    actor_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    action: Optional[ActionKind] = None
    since: Optional[datetime] = Field(default=None, alias="from")
    until: Optional[datetime] = Field(default=None, alias="to")
    limit: Optional[int] = Field(default=None, ge=1)

    def matches(self, event: AuditEvent) -> bool:
        if self.actor_id is not None and event.actor_id != self.actor_id:
            return False
        if self.resource_type is not None and event.resource_type != self.resource_type:
            return False
        if self.resource_id is not None and event.resource_id != self.resource_id:
            return False
        if self.action is not None and event.action != self.action:
            return False
        ts = _utc(event.timestamp)
        if self.since is not None and ts < _utc(self.since):
            return False
        if self.until is not None and ts > _utc(self.until):
            return False
        return True


# ---------------------------------------------------------------------------
# Policy gate
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GateContext:
    """Who is sending content through the gate, and for what."""

    actor_id: str
    action: ActionKind = ActionKind.CHAT_INTERACTION
    direction: Direction = Direction.OUTBOUND
    resource_type: str = "ChatMessage"
    resource_id: Optional[str] = None
    message_id: Optional[str] = None


@dataclass(frozen=True)
class GateVerdict:
    """Outcome of `PolicyGate.submit`."""

    allowed: bool
    sanitized_content: str
    detection: DetectionResult = field(default_factory=DetectionResult)
    audit_event_id: Optional[int] = None
    reason: Optional[str] = None

    @property
    def categories(self) -> FrozenSet[SensitiveCategory]:
        return self.detection.categories

    @property
    def sanitized(self) -> bool:
        return bool(self.detection)

    def to_summary(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "sanitized": self.sanitized,
            "categories": sorted(c.value for c in self.categories),
            "match_count": len(self.detection),
            "audit_event_id": self.audit_event_id,
            "reason": self.reason,
        }
