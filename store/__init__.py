"""
Document store exports and backend factory.
"""

from __future__ import annotations

from app.config import StoreSettings, get_store_settings
from store.base import (
    DocumentStore,
    StoreResult,
    StoreStatus,
    StoreUnavailableError,
    WriteMode,
    WriteOp,
    merge_documents,
)
from store.memory import InMemoryDocumentStore


def build_document_store(settings: StoreSettings | None = None) -> DocumentStore:
    """
    Build the configured backend. The SQL backend is imported lazily so the
    memory backend works without database drivers.
    """

    settings = settings or get_store_settings()
    if settings.backend == "memory":
        return InMemoryDocumentStore()

    from store.sql_store import SqlDocumentStore

    return SqlDocumentStore(settings=settings)


__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "StoreResult",
    "StoreStatus",
    "StoreUnavailableError",
    "WriteMode",
    "WriteOp",
    "build_document_store",
    "merge_documents",
]
