"""Append-only audit trail: recorder and chain verification."""

from .recorder import AuditRecorder, ChainReport, verify_chain

__all__ = ["AuditRecorder", "ChainReport", "verify_chain"]
