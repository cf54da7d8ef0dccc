"""In-process audit store. Not durable across restarts; meant for tests and single-process tools."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..exceptions import DuplicateEventError, StorageError
from ..schemas.base import AuditEvent, AuditQuery
from .base import BaseAuditStore


class InMemoryAuditStore(BaseAuditStore):
    """
    Append-only list of flat records guarded by a lock.

    Records are stored as their `to_record()` form and rebuilt on every
    query, so callers never hold a reference into the store.
    """

    def __init__(self) -> None:
        self._records: List[Dict[str, Any]] = []
        self._ids: set = set()
        self._lock = threading.Lock()
        self._closed = False

    def initialize(self) -> None:
        self._closed = False

    def close(self) -> None:
        self._closed = True

    def _check_open(self) -> None:
        if self._closed:
            raise StorageError("In-memory audit store is closed")

    def append(self, event: AuditEvent) -> None:
        record = event.to_record()
        with self._lock:
            self._check_open()
            if event.event_id in self._ids:
                raise DuplicateEventError(f"Duplicate audit event id: {event.event_id}")
            self._records.append(record)
            self._ids.add(event.event_id)

    def query(self, audit_filter: Optional[AuditQuery] = None) -> Tuple[AuditEvent, ...]:
        with self._lock:
            self._check_open()
            snapshot = list(self._records)

        events = [AuditEvent.from_record(r) for r in snapshot]
        if audit_filter is not None:
            events = [e for e in events if audit_filter.matches(e)]
        events.sort(key=lambda e: (e.timestamp, e.event_id))
        if audit_filter is not None and audit_filter.limit is not None:
            events = events[: audit_filter.limit]
        return tuple(events)

    def last_event_id(self) -> int:
        with self._lock:
            self._check_open()
            return max(self._ids, default=0)

    def latest_for_actor(self, actor_id: str) -> Optional[AuditEvent]:
        with self._lock:
            self._check_open()
            mine = [r for r in self._records if r["actor_id"] == actor_id]
        if not mine:
            return None
        return AuditEvent.from_record(max(mine, key=lambda r: r["event_id"]))

    def latest_timestamp_for_actor(self, actor_id: str) -> Optional[datetime]:
        with self._lock:
            self._check_open()
            stamps = [
                datetime.fromisoformat(r["timestamp"])
                for r in self._records
                if r["actor_id"] == actor_id
            ]
        return max(stamps, default=None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    @classmethod
    def get_backend_name(cls) -> str:
        return "memory"
