"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from phiguard.audit import AuditRecorder
from phiguard.config import GateConfig
from phiguard.core.gate import PolicyGate
from phiguard.exceptions import StorageError
from phiguard.schemas.base import GateContext
from phiguard.storage import InMemoryAuditStore, SQLAlchemyAuditStore
from phiguard.storage.base import BaseAuditStore


@pytest.fixture
def fast_config() -> GateConfig:
    """Gate config with retries but no real backoff delay."""
    return GateConfig(retry_attempts=3, retry_initial_wait=0.0, retry_max_wait=0.0)


@pytest.fixture
def memory_store():
    """Provide an initialized in-memory audit store."""
    store = InMemoryAuditStore()
    store.initialize()
    yield store
    store.close()


@pytest.fixture
def sqlite_url(tmp_path) -> str:
    """SQLite file URL inside the test's temp directory."""
    return f"sqlite:///{tmp_path / 'audit.db'}"


@pytest.fixture
def sqlite_store(sqlite_url):
    """Provide an initialized SQLite-backed audit store."""
    store = SQLAlchemyAuditStore(url=sqlite_url)
    store.initialize()
    yield store
    store.close()


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, memory_store, sqlite_store):
    """Run a test once per storage backend."""
    if request.param == "memory":
        return memory_store
    return sqlite_store


@pytest.fixture
def failing_store():
    """Audit store whose appends always fail."""
    store = MagicMock(spec=BaseAuditStore)
    store.append.side_effect = StorageError("database is locked")
    store.last_event_id.return_value = 0
    store.latest_for_actor.return_value = None
    store.latest_timestamp_for_actor.return_value = None
    store.query.return_value = ()
    return store


class StepClock:
    """Deterministic clock; each call returns the next queued time."""

    def __init__(self, *times: datetime):
        self.times = list(times)
        self.calls = 0

    def __call__(self) -> datetime:
        value = self.times[min(self.calls, len(self.times) - 1)]
        self.calls += 1
        return value


@pytest.fixture
def make_clock():
    """Factory for clocks returning a fixed sequence of times."""
    return StepClock


@pytest.fixture
def base_time() -> datetime:
    return datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def step_clock(base_time):
    """Clock that moves forward one second per call."""
    return StepClock(*(base_time + timedelta(seconds=i) for i in range(100)))


@pytest.fixture
def recorder(memory_store, fast_config, step_clock) -> AuditRecorder:
    """Recorder over the in-memory store with zero-delay retries."""
    return AuditRecorder(
        store=memory_store,
        retry_attempts=fast_config.retry_attempts,
        retry_initial_wait=0.0,
        retry_max_wait=0.0,
        clock=step_clock,
    )


@pytest.fixture
def gate(memory_store, fast_config) -> PolicyGate:
    """Policy gate over the in-memory store."""
    return PolicyGate(store=memory_store, config=fast_config)


@pytest.fixture
def context() -> GateContext:
    """Chat context for a clinician."""
    return GateContext(actor_id="dr-house", resource_id="chat-1")


@pytest.fixture
def sample_phi_text() -> str:
    """Message carrying several sensitive categories."""
    return "Contact insurance provider for patient id 123456789"


@pytest.fixture
def sample_clean_text() -> str:
    """Clinical question with nothing identifying in it."""
    return "What are the common symptoms of mutations in the BRCA1 gene?"
