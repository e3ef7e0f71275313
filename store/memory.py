"""
store/memory.py

Thread-safe in-process document store.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Sequence
from typing import Any

from store.base import DocumentStore, StoreResult, StoreStatus, WriteMode, WriteOp, merge_documents


class InMemoryDocumentStore(DocumentStore):
    """
    Dict-backed store with the same semantics as the SQL backend.

    ``batch_commit`` is all-or-nothing: a create that hits an existing path
    rejects the whole batch, mirroring a transactional backend.
    """

    def __init__(self, documents: dict[str, dict[str, Any]] | None = None) -> None:
        self._documents: dict[str, dict[str, Any]] = copy.deepcopy(documents or {})
        self._lock = threading.Lock()

    def create_if_absent(self, path: str, data: dict[str, Any]) -> StoreResult:
        with self._lock:
            if path in self._documents:
                return StoreResult(StoreStatus.ALREADY_EXISTS, f"Document already exists: {path}")
            self._documents[path] = copy.deepcopy(data)
        return StoreResult(StoreStatus.OK)

    def upsert_merge(self, path: str, data: dict[str, Any]) -> StoreResult:
        with self._lock:
            self._documents[path] = merge_documents(
                self._documents.get(path),
                copy.deepcopy(data),
            )
        return StoreResult(StoreStatus.OK)

    def get(self, path: str) -> dict[str, Any] | None:
        with self._lock:
            document = self._documents.get(path)
            return copy.deepcopy(document) if document is not None else None

    def batch_commit(self, ops: Sequence[WriteOp]) -> list[StoreResult]:
        with self._lock:
            staged = dict(self._documents)
            for op in ops:
                if op.mode == WriteMode.CREATE:
                    if op.path in staged:
                        message = f"Batch rejected, document already exists: {op.path}"
                        return [StoreResult(StoreStatus.ERROR, message) for _ in ops]
                    staged[op.path] = copy.deepcopy(op.data)
                else:
                    staged[op.path] = merge_documents(staged.get(op.path), copy.deepcopy(op.data))
            self._documents = staged
        return [StoreResult(StoreStatus.OK) for _ in ops]

    def paths(self, prefix: str = "") -> list[str]:
        """Sorted document paths under ``prefix``."""
        with self._lock:
            return sorted(path for path in self._documents if path.startswith(prefix))

    def __len__(self) -> int:
        with self._lock:
            return len(self._documents)
