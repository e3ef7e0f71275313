"""
store/base.py

Abstract document store collaborator used by the scan import pipeline.

Documents are JSON mappings addressed by slash-separated paths. Every
implementation provides the same four write/read primitives plus a health
probe; transient-fault retries live inside the implementation, so callers
treat any ``error`` result as final for that attempt.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any


class StoreStatus:
    OK = "ok"
    ALREADY_EXISTS = "already_exists"
    ERROR = "error"


class WriteMode:
    CREATE = "create"
    MERGE = "merge"


class StoreUnavailableError(RuntimeError):
    """
    Raised when the store cannot be reached at all.
    """


@dataclass(frozen=True)
class StoreResult:
    """
    Outcome of one store operation.
    """

    status: str
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == StoreStatus.OK


@dataclass(frozen=True)
class WriteOp:
    """
    One queued write against a document path.
    """

    path: str
    data: dict[str, Any]
    mode: str = WriteMode.MERGE


def merge_documents(existing: dict[str, Any] | None, update: dict[str, Any]) -> dict[str, Any]:
    """
    Shallow top-level merge: keys in ``update`` replace stored keys.
    """

    merged = dict(existing or {})
    merged.update(update)
    return merged


class DocumentStore(ABC):
    """
    Store interface: create-only, merge-upsert, point read, batch commit.
    """

    @abstractmethod
    def create_if_absent(self, path: str, data: dict[str, Any]) -> StoreResult:
        """
        Write ``data`` only if nothing exists at ``path``.

        Returns ``already_exists`` without touching the stored document
        when the path is taken.
        """

    @abstractmethod
    def upsert_merge(self, path: str, data: dict[str, Any]) -> StoreResult:
        """
        Create the document or merge ``data`` over the stored mapping.
        """

    @abstractmethod
    def get(self, path: str) -> dict[str, Any] | None:
        """
        Return the stored mapping or None when absent.
        """

    @abstractmethod
    def batch_commit(self, ops: Sequence[WriteOp]) -> list[StoreResult]:
        """
        Apply ``ops`` as one unit and return one result per op, in order.
        """

    def ping(self) -> None:
        """
        Raise StoreUnavailableError when the store is unreachable.
        """

        return None
