"""
Audit storage backends.

Supported backends:
- memory (in-process, for tests and one-off tools)
- sqlalchemy (SQLite file by default, or any SQLAlchemy URL)
"""

from typing import Any, Dict, Type

from .base import BaseAuditStore
from .memory import InMemoryAuditStore
from .sqlalchemy_store import SQLAlchemyAuditStore

STORAGE_BACKENDS: Dict[str, Type[BaseAuditStore]] = {
    InMemoryAuditStore.get_backend_name(): InMemoryAuditStore,
    SQLAlchemyAuditStore.get_backend_name(): SQLAlchemyAuditStore,
}

DEFAULT_STORE_URL = "memory://"


def get_storage(url: str = DEFAULT_STORE_URL, **kwargs: Any) -> BaseAuditStore:
    """
    Build and initialize the audit store for a URL.

    Args:
        url: "memory://" for the in-process store, otherwise a SQLAlchemy
             database URL such as "sqlite:///audit.db"
        **kwargs: Passed to the SQLAlchemy engine

    Returns:
        An initialized store
    """
    if url.startswith("memory://"):
        store: BaseAuditStore = InMemoryAuditStore()
    else:
        store = SQLAlchemyAuditStore(url=url, **kwargs)
    store.initialize()
    return store


__all__ = [
    "BaseAuditStore",
    "InMemoryAuditStore",
    "SQLAlchemyAuditStore",
    "STORAGE_BACKENDS",
    "DEFAULT_STORE_URL",
    "get_storage",
]
