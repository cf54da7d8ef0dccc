"""
Audit recorder: the only writer of the audit trail.

The recorder turns drafts into immutable AuditEvents:
- sanitizes the detail payload through the redactor
- assigns a unique, monotonically increasing event id
- timestamps the event, never earlier than the actor's previous event
- links the event into its actor's digest chain
- appends it to the store, retrying transient StorageErrors with bounded
  exponential backoff

Appends are serialized per actor stream. The actor's chain head and
timestamp floor are read from the store on every append, so several
recorders (two gates, two CLI runs) can share one durable store. When
another writer has already taken an event id, the recorder re-seeds its
id counter from the store and builds the event again.
"""

import logging
import threading
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timezone
from itertools import groupby
from typing import Any, Callable, Iterable, List, Optional, Sequence

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import GateConfig
from ..exceptions import AuditAppendError, DuplicateEventError, StorageError
from ..privacy.redactor import Redactor
from ..schemas.base import AuditEvent, AuditEventDraft, AuditQuery
from ..storage.base import BaseAuditStore

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class ChainReport:
    """Result of verifying actor digest chains."""

    valid: bool
    checked: int
    broken_event_ids: List[int] = field(default_factory=list)
    message: str = ""


def verify_chain(events: Iterable[AuditEvent]) -> ChainReport:
    """
    Recompute digests and prev-links for complete actor streams.

    The input must hold every event of each actor it mentions (for example
    the result of an unbounded query); a time- or resource-filtered slice
    will report false breaks at its edges.
    """
    ordered = sorted(events, key=lambda e: (e.actor_id, e.event_id))
    broken: List[int] = []
    checked = 0

    for _actor, stream in groupby(ordered, key=lambda e: e.actor_id):
        previous_digest = ""
        for event in stream:
            checked += 1
            if event.prev_digest != previous_digest or event.digest != event.compute_digest():
                broken.append(event.event_id)
            previous_digest = event.digest

    if broken:
        return ChainReport(
            valid=False,
            checked=checked,
            broken_event_ids=broken,
            message=f"Chain broken at {len(broken)} event(s)",
        )
    return ChainReport(valid=True, checked=checked, message="All events verified OK")


class AuditRecorder:
    """
    Appends security events to an audit store.

    Usage:
        recorder = AuditRecorder(store=get_storage("sqlite:///audit.db"))
        event = recorder.record(
            AuditEventDraft(
                actor_id="dr-house",
                action=ActionKind.DATA_ACCESS,
                resource_type="BeakerReport",
                resource_id="patient-42",
                details={"method": "GET"},
            )
        )
    """

    def __init__(
        self,
        store: BaseAuditStore,
        redactor: Optional[Redactor] = None,
        retry_attempts: int = 5,
        retry_initial_wait: float = 0.1,
        retry_max_wait: float = 2.0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the recorder.

        Args:
            store: Backing audit store (injected, never global)
            redactor: Redactor used on detail payloads
            retry_attempts: Total append attempts before AuditAppendError;
                also bounds how often an id taken by another writer is
                re-seeded
            retry_initial_wait: First backoff delay in seconds
            retry_max_wait: Cap on any single backoff delay in seconds
            clock: Source of aware datetimes, for tests
        """
        self.store = store
        self.redactor = redactor or Redactor()
        self.retry_attempts = retry_attempts
        self._clock = clock or _utc_now

        self._retrying = Retrying(
            stop=stop_after_attempt(retry_attempts),
            wait=wait_exponential(multiplier=retry_initial_wait, max=retry_max_wait),
            retry=(
                retry_if_exception_type(StorageError)
                & retry_if_not_exception_type(DuplicateEventError)
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

        self._id_lock = threading.Lock()
        self._next_id: Optional[int] = None

        # Entries disappear once no thread holds the actor's lock.
        self._streams_lock = threading.Lock()
        self._stream_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = (
            weakref.WeakValueDictionary()
        )

    @classmethod
    def from_config(
        cls,
        store: BaseAuditStore,
        config: GateConfig,
        redactor: Optional[Redactor] = None,
    ) -> "AuditRecorder":
        return cls(
            store=store,
            redactor=redactor,
            retry_attempts=config.retry_attempts,
            retry_initial_wait=config.retry_initial_wait,
            retry_max_wait=config.retry_max_wait,
        )

    # --- Write ---------------------------------------------------------------

    def record(self, draft: AuditEventDraft) -> AuditEvent:
        """
        Append one event built from draft.

        Blocks until the store accepts the event or retries are exhausted.

        Raises:
            AuditAppendError: the store stayed unavailable; nothing was written
        """
        details, redacted = self.redactor.redact_value(draft.details)
        if redacted:
            logger.warning(
                "Redacted sensitive content from audit details (actor=%s, action=%s)",
                draft.actor_id,
                draft.action.value,
            )

        with self._stream_lock(draft.actor_id):
            for _ in range(self.retry_attempts):
                event = self._build_event(draft, details, redacted)
                try:
                    self._with_retry(self.store.append, event)
                except DuplicateEventError:
                    logger.warning(
                        "Audit event id %d taken by another writer; re-seeding from store",
                        event.event_id,
                    )
                    self._reseed_ids()
                    continue
                break
            else:
                logger.error(
                    "Audit event ids kept colliding after %d attempt(s)", self.retry_attempts
                )
                raise AuditAppendError("Audit event ids kept colliding with another writer")

        logger.debug(
            "Recorded audit event %d (actor=%s, action=%s, success=%s)",
            event.event_id,
            event.actor_id,
            event.action.value,
            event.success,
        )
        return event

    # --- Read ----------------------------------------------------------------

    def query(
        self, audit_filter: Optional[AuditQuery] = None, **criteria: Any
    ) -> Sequence[AuditEvent]:
        """
        Snapshot of matching events in timestamp order.

        Accepts either an AuditQuery or its fields as keyword arguments.

        Raises:
            StorageError: the store stayed unavailable through every retry
        """
        if audit_filter is None and criteria:
            audit_filter = AuditQuery(**criteria)
        return self._retrying.copy()(self.store.query, audit_filter)

    def verify(self, actor_id: Optional[str] = None) -> ChainReport:
        """Verify the full digest chain of one actor, or of every actor."""
        audit_filter = AuditQuery(actor_id=actor_id) if actor_id else None
        return verify_chain(self.query(audit_filter))

    # --- Internals -----------------------------------------------------------

    def _build_event(
        self, draft: AuditEventDraft, details: Any, redacted: bool
    ) -> AuditEvent:
        """Caller must hold the actor's stream lock."""
        head = self._with_retry(self.store.latest_for_actor, draft.actor_id)
        floor = self._with_retry(self.store.latest_timestamp_for_actor, draft.actor_id)

        if draft.timestamp is not None:
            timestamp = _as_utc(draft.timestamp)
        else:
            timestamp = _as_utc(self._clock())
            if floor is not None and timestamp < _as_utc(floor):
                timestamp = _as_utc(floor)

        event = AuditEvent(
            event_id=self._allocate_id(after=head.event_id if head is not None else 0),
            actor_id=draft.actor_id,
            action=draft.action,
            resource_type=draft.resource_type,
            resource_id=draft.resource_id,
            timestamp=timestamp,
            success=draft.success,
            categories=sorted(set(draft.categories), key=lambda c: c.value),
            details=details,
            details_redacted=redacted,
            prev_digest=head.digest if head is not None else "",
        )
        return event.model_copy(update={"digest": event.compute_digest()})

    def _with_retry(self, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return self._retrying.copy()(fn, *args)
        except DuplicateEventError:
            raise
        except StorageError as e:
            logger.error(
                "Audit store unavailable after %d attempt(s): %s", self.retry_attempts, e
            )
            raise AuditAppendError(f"Audit store unavailable: {e}") from e

    def _stream_lock(self, actor_id: str) -> threading.Lock:
        with self._streams_lock:
            lock = self._stream_locks.get(actor_id)
            if lock is None:
                lock = threading.Lock()
                self._stream_locks[actor_id] = lock
            return lock

    def _allocate_id(self, after: int = 0) -> int:
        """Next free id, always above `after` (the actor's latest stored id)."""
        with self._id_lock:
            if self._next_id is None:
                self._next_id = self._with_retry(self.store.last_event_id) + 1
            self._next_id = max(self._next_id, after + 1)
            event_id = self._next_id
            self._next_id += 1
            return event_id

    def _reseed_ids(self) -> None:
        with self._id_lock:
            self._next_id = None
