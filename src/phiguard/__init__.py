"""
phiguard - Sensitive-data gate for clinical assistants

Detect and redact protected health information before text crosses a
trust boundary, and keep an append-only, tamper-evident audit trail of
every screening decision and data access.
"""

__version__ = "0.1.0"

import sys

if sys.version_info < (3, 10):
    raise RuntimeError("phiguard requires Python 3.10 or higher")

from .audit import AuditRecorder, ChainReport, verify_chain
from .config import GateConfig
from .core.gate import MessageBatchResult, PolicyGate, scan
from .detection import Detector, PatternRegistry, PatternRule
from .exceptions import (
    AuditAppendError,
    DuplicateEventError,
    ConfigurationError,
    InputDecodeError,
    PhiGuardError,
    StorageError,
)
from .privacy import Redactor, placeholder_for
from .schemas.base import (
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
from .storage import (
    BaseAuditStore,
    InMemoryAuditStore,
    SQLAlchemyAuditStore,
    get_storage,
)

__all__ = [
    "__version__",
    # Main API
    "PolicyGate",
    "scan",
    "GateContext",
    "GateVerdict",
    "MessageBatchResult",
    # Config
    "GateConfig",
    "PolicyMode",
    # Detection and redaction
    "SensitiveCategory",
    "SpanMatch",
    "DetectionResult",
    "Detector",
    "PatternRegistry",
    "PatternRule",
    "Redactor",
    "placeholder_for",
    # Audit trail
    "ActionKind",
    "Direction",
    "AuditEvent",
    "AuditEventDraft",
    "AuditQuery",
    "AuditRecorder",
    "ChainReport",
    "verify_chain",
    "BaseAuditStore",
    "InMemoryAuditStore",
    "SQLAlchemyAuditStore",
    "get_storage",
    # Errors
    "PhiGuardError",
    "InputDecodeError",
    "AuditAppendError",
    "DuplicateEventError",
    "ConfigurationError",
    "StorageError",
]
