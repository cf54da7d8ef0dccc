"""
Policy gate: the single entry point collaborators call.

Every piece of content crossing the trust boundary, and every clinical
data access, goes through here. The gate never lets content out without
an audit event behind it: if the audit trail cannot be written, the
answer is a denial.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from ..audit.recorder import AuditRecorder, ChainReport
from ..config import GateConfig
from ..detection.detector import Detector, decode_text, get_detector
from ..detection.patterns import PatternRegistry
from ..exceptions import AuditAppendError, InputDecodeError
from ..privacy.redactor import FAIL_CLOSED_PLACEHOLDER, Redactor
from ..schemas.base import (
    ActionKind,
    AuditEvent,
    AuditEventDraft,
    AuditQuery,
    DetectionResult,
    GateContext,
    GateVerdict,
    PolicyMode,
    SensitiveCategory,
)
from ..storage import get_storage
from ..storage.base import BaseAuditStore

logger = logging.getLogger(__name__)

REASON_UNDECODABLE = "undecodable-input"
REASON_BLOCKED = "blocked-by-policy"
REASON_AUDIT_UNAVAILABLE = "audit-unavailable"


@dataclass
class MessageBatchResult:
    """Outcome of screening a list of chat messages."""

    allowed: bool
    messages: List[Dict[str, Any]] = field(default_factory=list)
    verdicts: List[Optional[GateVerdict]] = field(default_factory=list)
    interaction_event_id: Optional[int] = None
    reason: Optional[str] = None

    @property
    def sanitized_count(self) -> int:
        return sum(1 for v in self.verdicts if v is not None and v.sanitized)


class PolicyGate:
    """
    Detect, redact and audit content crossing the trust boundary.

    Features:
    - One shared detector/redactor for every collaborator
    - Redact-and-continue by default, or hard block via policy_mode
    - Fail closed on undecodable input
    - Deny when the audit trail cannot be written
    - Access logging for clinical data fetches

    Usage:
        gate = PolicyGate(store=get_storage("sqlite:///audit.db"))
        verdict = gate.submit(text, GateContext(actor_id="dr-house"))
        if verdict.allowed:
            forward(verdict.sanitized_content)
    """

    def __init__(
        self,
        store: Optional[BaseAuditStore] = None,
        config: Optional[GateConfig] = None,
        registry: Optional[PatternRegistry] = None,
        recorder: Optional[AuditRecorder] = None,
    ):
        """
        Initialize the gate.

        Args:
            store: Audit store (built from config.audit_store_url if omitted)
            config: Gate settings (defaults if omitted)
            registry: Custom pattern registry (built-in rules if omitted)
            recorder: Pre-built recorder; takes precedence over store
        """
        self.config = config or GateConfig()
        self.detector = Detector(registry) if registry is not None else get_detector()
        self.redactor = Redactor(self.detector)

        if recorder is None:
            if store is None:
                store = get_storage(self.config.audit_store_url)
            recorder = AuditRecorder.from_config(store, self.config, redactor=self.redactor)
        self.recorder = recorder

    # --- Content screening ---------------------------------------------------

    def submit(self, content: Any, context: GateContext) -> GateVerdict:
        """
        Screen one text unit.

        Pipeline: decode -> detect -> redact if matched -> record audit
        event -> verdict. Exactly one audit event is recorded per call.

        Args:
            content: Text (str or UTF-8 bytes) about to cross the boundary
            context: Actor and purpose of the submission

        Returns:
            GateVerdict. allowed=False when the input is undecodable, when
            policy_mode is block and something matched, or when the audit
            event could not be recorded.
        """
        try:
            text = decode_text(content)
        except InputDecodeError as e:
            logger.warning("Denying undecodable content from actor=%s: %s", context.actor_id, e)
            return self._deny_undecodable(content, context)

        detection = self.detector.detect(text)
        if detection.failed:
            return self._deny_undecodable(content, context, detection)

        if detection:
            sanitized = self.redactor.redact(text, detection)
            blocked = self.config.policy_mode is PolicyMode.BLOCK
            draft = self._draft(
                context,
                action=ActionKind.PHI_DETECTION,
                success=True,
                categories=detection.categories,
                details={
                    "match_count": len(detection),
                    "direction": context.direction.value,
                    "policy_mode": self.config.policy_mode.value,
                },
            )
            verdict = GateVerdict(
                allowed=not blocked,
                sanitized_content=sanitized,
                detection=detection,
                reason=REASON_BLOCKED if blocked else None,
            )
            logger.info(
                "Sensitive content %s for actor=%s: %s",
                "blocked" if blocked else "redacted",
                context.actor_id,
                ", ".join(sorted(c.value for c in detection.categories)),
            )
        else:
            draft = self._draft(
                context,
                action=context.action,
                success=True,
                details={
                    "clean": True,
                    "direction": context.direction.value,
                    "length": len(text),
                },
            )
            verdict = GateVerdict(allowed=True, sanitized_content=text, detection=detection)

        return self._record_verdict(draft, verdict)

    def submit_messages(
        self, messages: Sequence[Mapping[str, Any]], context: GateContext
    ) -> MessageBatchResult:
        """
        Screen a chat transcript before it is forwarded.

        Messages whose role is in config.screened_roles go through submit();
        the rest pass through unchanged. One extra chat-interaction event
        records the batch itself.
        """
        screened = set(self.config.screened_roles)
        sanitized_messages: List[Dict[str, Any]] = []
        verdicts: List[Optional[GateVerdict]] = []
        denied_reason: Optional[str] = None

        for message in messages:
            out = dict(message)
            if message.get("role") in screened:
                message_id = message.get("id")
                verdict = self.submit(
                    message.get("content", ""),
                    GateContext(
                        actor_id=context.actor_id,
                        action=context.action,
                        direction=context.direction,
                        resource_type=context.resource_type,
                        resource_id=context.resource_id,
                        message_id=str(message_id) if message_id is not None else None,
                    ),
                )
                out["content"] = verdict.sanitized_content
                if not verdict.allowed and denied_reason is None:
                    denied_reason = verdict.reason
                verdicts.append(verdict)
            else:
                verdicts.append(None)
            sanitized_messages.append(out)

        try:
            event = self.recorder.record(
                self._draft(
                    context,
                    action=ActionKind.CHAT_INTERACTION,
                    success=denied_reason is None,
                    details={
                        "message_count": len(messages),
                        "sanitized_count": sum(
                            1 for v in verdicts if v is not None and v.sanitized
                        ),
                        "direction": context.direction.value,
                    },
                )
            )
        except AuditAppendError:
            logger.warning("Denying message batch for actor=%s: audit unavailable", context.actor_id)
            return MessageBatchResult(
                allowed=False,
                messages=[],
                verdicts=verdicts,
                reason=REASON_AUDIT_UNAVAILABLE,
            )

        return MessageBatchResult(
            allowed=denied_reason is None,
            messages=sanitized_messages,
            verdicts=verdicts,
            interaction_event_id=event.event_id,
            reason=denied_reason,
        )

    # --- Data access ---------------------------------------------------------

    def authorize_access(
        self,
        actor_id: str,
        resource_type: str,
        resource_id: str,
        details: Optional[Dict[str, Any]] = None,
        success: bool = True,
    ) -> AuditEvent:
        """
        Record a clinical data access attempt.

        Called before and after each fetch. The caller must not fetch when
        this raises.

        Raises:
            AuditAppendError: the access could not be recorded
        """
        return self.recorder.record(
            AuditEventDraft(
                actor_id=actor_id,
                action=ActionKind.DATA_ACCESS,
                resource_type=resource_type,
                resource_id=str(resource_id),
                success=success,
                details=details or {},
            )
        )

    # --- Reporting -----------------------------------------------------------

    def query_audit(
        self, audit_filter: Optional[AuditQuery] = None, **criteria: Any
    ) -> Sequence[AuditEvent]:
        """Audit events matching the filter, in timestamp order."""
        return self.recorder.query(audit_filter, **criteria)

    def verify_audit(self, actor_id: Optional[str] = None) -> ChainReport:
        """Check the digest chains of the stored audit trail."""
        return self.recorder.verify(actor_id)

    # --- Internals -----------------------------------------------------------

    def _draft(
        self,
        context: GateContext,
        action: ActionKind,
        success: bool,
        details: Dict[str, Any],
        categories: Iterable[SensitiveCategory] = (),
    ) -> AuditEventDraft:
        if context.message_id is not None:
            details = {**details, "message_id": context.message_id}
        return AuditEventDraft(
            actor_id=context.actor_id,
            action=action,
            resource_type=context.resource_type,
            resource_id=context.resource_id or f"chat-{uuid.uuid4().hex}",
            success=success,
            categories=sorted(categories, key=lambda c: c.order),
            details=details,
        )

    def _deny_undecodable(
        self,
        content: Any,
        context: GateContext,
        detection: Optional[DetectionResult] = None,
    ) -> GateVerdict:
        if detection is None:
            detection = self.detector.detect(content)
        draft = self._draft(
            context,
            action=ActionKind.PHI_DETECTION,
            success=False,
            categories=detection.categories,
            details={
                "error": REASON_UNDECODABLE,
                "content_type": type(content).__name__,
                "direction": context.direction.value,
            },
        )
        verdict = GateVerdict(
            allowed=False,
            sanitized_content=FAIL_CLOSED_PLACEHOLDER,
            detection=detection,
            reason=REASON_UNDECODABLE,
        )
        return self._record_verdict(draft, verdict)

    def _record_verdict(self, draft: AuditEventDraft, verdict: GateVerdict) -> GateVerdict:
        try:
            event = self.recorder.record(draft)
        except AuditAppendError:
            logger.warning(
                "Denying submission from actor=%s: audit trail unavailable", draft.actor_id
            )
            return GateVerdict(
                allowed=False,
                sanitized_content="",
                detection=verdict.detection,
                reason=REASON_AUDIT_UNAVAILABLE,
            )
        return GateVerdict(
            allowed=verdict.allowed,
            sanitized_content=verdict.sanitized_content,
            detection=verdict.detection,
            audit_event_id=event.event_id,
            reason=verdict.reason,
        )


def scan(
    content: Any,
    actor_id: str = "anonymous",
    store_url: Optional[str] = None,
    policy_mode: PolicyMode = PolicyMode.REDACT,
) -> GateVerdict:
    """
    One-liner screening through a throwaway gate.

    Examples:
        ```python
        from phiguard import scan

        verdict = scan("Patient id 123456789 is on new medication")
        print(verdict.sanitized_content)
        # [REDACTED_GENERIC_IDENTIFIER_PHRASE] [REDACTED_IDENTIFIER_NUMERIC]
        # is on new [REDACTED_MEDICATION]
        ```

    Args:
        content: Text to screen
        actor_id: Who is submitting it
        store_url: Audit store URL (in-memory if omitted)
        policy_mode: redact (default) or block

    Returns:
        GateVerdict
    """
    config = GateConfig(
        policy_mode=policy_mode,
        audit_store_url=store_url or GateConfig().audit_store_url,
    )
    gate = PolicyGate(config=config)
    return gate.submit(content, GateContext(actor_id=actor_id))
