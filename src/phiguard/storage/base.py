"""
Base storage abstraction for the audit trail.

Defines the interface every audit backend (in-memory, SQLAlchemy/SQLite,
PostgreSQL, ...) must implement. This file is pure Python, with no
SQLAlchemy or other DB-specific imports.

Key concepts:
- BaseAuditStore is an Abstract Base Class. A concrete backend must
  subclass it and implement every @abstractmethod; forgetting one raises
  TypeError at instantiation time.
- The public contract is append + read. There is deliberately no update or
  delete method: retention happens out of band, never through this API.
- Backends raise StorageError when they cannot serve a request. The
  recorder retries those; any other exception is a bug and propagates.
- A duplicate event_id raises DuplicateEventError instead. It is not
  transient: it means another writer got there first, and the recorder
  re-reads the store before trying again.

Usage pattern:
    from phiguard.storage import get_storage

    store = get_storage(url="sqlite:///audit.db")
    store.append(event)
    events = store.query(AuditQuery(actor_id="dr-house"))
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, Sequence

from ..schemas.base import AuditEvent, AuditQuery


class BaseAuditStore(ABC):
    """
    Abstract base class for audit storage backends.

    Subclass contract:
        - initialize() must be idempotent (safe to call multiple times)
        - append() is atomic: either the whole event becomes visible to later
          queries, or nothing does
        - query() returns an immutable point-in-time snapshot ordered by
          (timestamp, event_id); events appended afterwards never show up in
          an already-returned sequence
        - returned AuditEvents are fresh objects; nothing a caller does to
          them can reach the stored rows
    """

    # --- Lifecycle -----------------------------------------------------------

    @abstractmethod
    def initialize(self) -> None:
        """
        Prepare the backend (create tables, indexes, guards).

        Must be idempotent, calling it twice should not fail or duplicate
        anything.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release connections. The store must not be used afterwards."""
        pass

    # --- Write ---------------------------------------------------------------

    @abstractmethod
    def append(self, event: AuditEvent) -> None:
        """
        Durably append a fully formed event.

        Raises:
            DuplicateEventError: the event_id already exists
            StorageError: backend unavailable
        """
        pass

    # --- Read ----------------------------------------------------------------

    @abstractmethod
    def query(self, audit_filter: Optional[AuditQuery] = None) -> Sequence[AuditEvent]:
        """
        Events matching the filter, in (timestamp, event_id) order.

        Args:
            audit_filter: Optional filter; None returns every event.

        Returns:
            A tuple snapshot of matching events.

        Raises:
            StorageError: backend unavailable
        """
        pass

    @abstractmethod
    def last_event_id(self) -> int:
        """Highest stored event_id, or 0 for an empty store."""
        pass

    @abstractmethod
    def latest_for_actor(self, actor_id: str) -> Optional[AuditEvent]:
        """Most recently appended event of one actor (highest event_id), if any."""
        pass

    @abstractmethod
    def latest_timestamp_for_actor(self, actor_id: str) -> Optional[datetime]:
        """
        Latest timestamp among one actor's events, if any.

        Not necessarily the timestamp of latest_for_actor(): an event may
        carry an explicit timestamp earlier than the one before it.
        """
        pass

    # --- Metadata ------------------------------------------------------------

    @classmethod
    @abstractmethod
    def get_backend_name(cls) -> str:
        """
        Backend identifier string, used by get_storage() to map URL schemes
        to classes, e.g. "memory", "sqlalchemy".
        """
        pass
