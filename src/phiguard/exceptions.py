"""phiguard exceptions."""


class PhiGuardError(Exception):
    """Base exception."""


class InputDecodeError(PhiGuardError):
    """Content could not be decoded or scanned as text."""


class StorageError(PhiGuardError):
    """Audit store unavailable or rejected the write."""


class DuplicateEventError(StorageError):
    """Another writer already stored an event with this id."""


class AuditAppendError(PhiGuardError):
    """Audit event could not be appended after all retries."""


class ConfigurationError(PhiGuardError):
    """Invalid pattern registry or gate configuration."""
