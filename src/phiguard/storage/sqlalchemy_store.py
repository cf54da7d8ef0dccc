"""
SQLAlchemy audit store (SQLite by default, any SQLAlchemy URL works).

Each append runs in its own transaction, so a failed insert leaves
nothing behind. Each query is a single SELECT, which gives the
point-in-time snapshot the store contract asks for.

On SQLite the table also carries BEFORE UPDATE / BEFORE DELETE triggers
that abort the statement, so even raw SQL against the file cannot
rewrite history without first dropping the triggers.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Tuple

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    func,
    insert,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from ..exceptions import DuplicateEventError, StorageError
from ..schemas.base import AuditEvent, AuditQuery
from .base import BaseAuditStore

logger = logging.getLogger(__name__)

metadata = MetaData()

audit_events = Table(
    "audit_events",
    metadata,
    Column("event_id", Integer, primary_key=True, autoincrement=False),
    Column("actor_id", String(255), nullable=False, index=True),
    Column("action", String(32), nullable=False, index=True),
    Column("resource_type", String(255), nullable=False, index=True),
    Column("resource_id", String(255), nullable=False, index=True),
    # Naive UTC; SQLite has no timezone-aware type.
    Column("timestamp", DateTime(), nullable=False, index=True),
    Column("success", Boolean, nullable=False),
    # Comma-joined category values, sorted.
    Column("categories", Text, nullable=False),
    Column("details", Text, nullable=False),
    Column("details_redacted", Boolean, nullable=False),
    Column("prev_digest", String(64), nullable=False),
    Column("digest", String(64), nullable=False),
)

_SQLITE_GUARDS = (
    """
    CREATE TRIGGER IF NOT EXISTS audit_events_no_update
    BEFORE UPDATE ON audit_events
    BEGIN SELECT RAISE(ABORT, 'audit_events is append-only'); END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS audit_events_no_delete
    BEFORE DELETE ON audit_events
    BEGIN SELECT RAISE(ABORT, 'audit_events is append-only'); END
    """,
)

_IN_MEMORY_SQLITE_URLS = ("sqlite://", "sqlite:///:memory:")


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.replace(tzinfo=None)


class SQLAlchemyAuditStore(BaseAuditStore):
    """
    Audit store backed by a relational database through SQLAlchemy Core.

    Args:
        url: SQLAlchemy database URL (default: a local SQLite file)
        engine: Pre-built engine; takes precedence over url
        **engine_kwargs: Passed through to create_engine()
    """

    def __init__(
        self,
        url: str = "sqlite:///phiguard_audit.db",
        engine: Optional[Engine] = None,
        **engine_kwargs: Any,
    ) -> None:
        self.url = url
        # A single shared in-memory connection must not be used by two
        # threads at once.
        self._serialize: Optional[threading.Lock] = None

        if engine is None:
            if url in _IN_MEMORY_SQLITE_URLS:
                engine_kwargs.setdefault("poolclass", StaticPool)
                engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
                self._serialize = threading.Lock()
            try:
                engine = create_engine(url, **engine_kwargs)
            except SQLAlchemyError as e:
                raise StorageError(f"Cannot create audit engine for {url}: {e}") from e
        self.engine = engine

    @contextlib.contextmanager
    def _guard(self) -> Iterator[None]:
        if self._serialize is None:
            yield
            return
        with self._serialize:
            yield

    # --- Lifecycle -----------------------------------------------------------

    def initialize(self) -> None:
        try:
            with self._guard():
                metadata.create_all(self.engine, checkfirst=True)
                if self.engine.dialect.name == "sqlite":
                    with self.engine.begin() as conn:
                        for ddl in _SQLITE_GUARDS:
                            conn.exec_driver_sql(ddl)
        except SQLAlchemyError as e:
            raise StorageError(f"Cannot initialize audit store: {e}") from e
        logger.debug("Audit store ready at %s", self.engine.url.render_as_string())

    def close(self) -> None:
        self.engine.dispose()

    # --- Write ---------------------------------------------------------------

    def append(self, event: AuditEvent) -> None:
        row = event.to_record()
        row["timestamp"] = _naive_utc(event.timestamp)
        try:
            with self._guard(), self.engine.begin() as conn:
                conn.execute(insert(audit_events).values(**row))
        except IntegrityError as e:
            raise DuplicateEventError(f"Audit event {event.event_id} already stored: {e}") from e
        except SQLAlchemyError as e:
            raise StorageError(f"Audit append failed for event {event.event_id}: {e}") from e

    # --- Read ----------------------------------------------------------------

    def query(self, audit_filter: Optional[AuditQuery] = None) -> Tuple[AuditEvent, ...]:
        stmt = select(audit_events)
        if audit_filter is not None:
            if audit_filter.actor_id is not None:
                stmt = stmt.where(audit_events.c.actor_id == audit_filter.actor_id)
            if audit_filter.resource_type is not None:
                stmt = stmt.where(audit_events.c.resource_type == audit_filter.resource_type)
            if audit_filter.resource_id is not None:
                stmt = stmt.where(audit_events.c.resource_id == audit_filter.resource_id)
            if audit_filter.action is not None:
                stmt = stmt.where(audit_events.c.action == audit_filter.action.value)
            if audit_filter.since is not None:
                stmt = stmt.where(audit_events.c.timestamp >= _naive_utc(audit_filter.since))
            if audit_filter.until is not None:
                stmt = stmt.where(audit_events.c.timestamp <= _naive_utc(audit_filter.until))
        stmt = stmt.order_by(audit_events.c.timestamp, audit_events.c.event_id)
        if audit_filter is not None and audit_filter.limit is not None:
            stmt = stmt.limit(audit_filter.limit)

        try:
            with self._guard(), self.engine.connect() as conn:
                rows = conn.execute(stmt).mappings().all()
        except SQLAlchemyError as e:
            raise StorageError(f"Audit query failed: {e}") from e
        return tuple(self._to_event(row) for row in rows)

    def last_event_id(self) -> int:
        try:
            with self._guard(), self.engine.connect() as conn:
                value = conn.execute(select(func.max(audit_events.c.event_id))).scalar()
        except SQLAlchemyError as e:
            raise StorageError(f"Audit query failed: {e}") from e
        return int(value or 0)

    def latest_for_actor(self, actor_id: str) -> Optional[AuditEvent]:
        stmt = (
            select(audit_events)
            .where(audit_events.c.actor_id == actor_id)
            .order_by(audit_events.c.event_id.desc())
            .limit(1)
        )
        try:
            with self._guard(), self.engine.connect() as conn:
                row = conn.execute(stmt).mappings().first()
        except SQLAlchemyError as e:
            raise StorageError(f"Audit query failed: {e}") from e
        return self._to_event(row) if row is not None else None

    def latest_timestamp_for_actor(self, actor_id: str) -> Optional[datetime]:
        stmt = select(func.max(audit_events.c.timestamp)).where(
            audit_events.c.actor_id == actor_id
        )
        try:
            with self._guard(), self.engine.connect() as conn:
                value = conn.execute(stmt).scalar()
        except SQLAlchemyError as e:
            raise StorageError(f"Audit query failed: {e}") from e
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)

    @staticmethod
    def _to_event(row: Any) -> AuditEvent:
        record: Dict[str, Any] = dict(row)
        return AuditEvent.from_record(record)

    @classmethod
    def get_backend_name(cls) -> str:
        return "sqlalchemy"
