"""Data models for phiguard."""

from .base import (
    ActionKind,
    AuditEvent,
    AuditEventDraft,
    AuditQuery,
    DetectionResult,
    Direction,
    GateContext,
    GateVerdict,
    PolicyMode,
    SensitiveCategory,
    SpanMatch,
)

__all__ = [
    "SensitiveCategory",
    "SpanMatch",
    "DetectionResult",
    "ActionKind",
    "Direction",
    "PolicyMode",
    "AuditEventDraft",
    "AuditEvent",
    "AuditQuery",
    "GateContext",
    "GateVerdict",
]
