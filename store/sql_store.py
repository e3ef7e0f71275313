"""
store/sql_store.py

PostgreSQL-backed document store built on SQLAlchemy.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from sqlalchemy import func, select, text
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.config import StoreSettings
from db.models.store_document import StoreDocument, collection_of
from store.base import (
    DocumentStore,
    StoreResult,
    StoreStatus,
    StoreUnavailableError,
    WriteMode,
    WriteOp,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SqlDocumentStore(DocumentStore):
    """
    Document store on the ``store_documents`` table.

    Each primitive runs in its own short transaction. Transient connection
    failures (``OperationalError``) are retried with exponential backoff;
    any other database error is reported as an ``error`` result.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session] | Callable[[], Session] | None = None,
        settings: StoreSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory
        settings = settings or StoreSettings()
        self._max_retries = settings.max_retries
        self._backoff_initial_seconds = settings.backoff_initial_seconds
        self._backoff_multiplier = settings.backoff_multiplier
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    def create_if_absent(self, path: str, data: dict[str, Any]) -> StoreResult:
        def _create(session: Session) -> StoreResult:
            stmt = (
                insert(StoreDocument)
                .values(path=path, collection=collection_of(path), data=data)
                .on_conflict_do_nothing(index_elements=[StoreDocument.path])
                .returning(StoreDocument.path)
            )
            inserted = session.scalars(stmt).first()
            if inserted is None:
                return StoreResult(StoreStatus.ALREADY_EXISTS, f"Document already exists: {path}")
            return StoreResult(StoreStatus.OK)

        return self._run_write("create_if_absent", path, _create)

    def upsert_merge(self, path: str, data: dict[str, Any]) -> StoreResult:
        def _merge(session: Session) -> StoreResult:
            session.execute(self._merge_statement(path, data))
            return StoreResult(StoreStatus.OK)

        return self._run_write("upsert_merge", path, _merge)

    def get(self, path: str) -> dict[str, Any] | None:
        def _get(session: Session) -> dict[str, Any] | None:
            stmt = select(StoreDocument.data).where(StoreDocument.path == path)
            return session.scalars(stmt).first()

        return self._with_retries("get", path, _get)

    def batch_commit(self, ops: Sequence[WriteOp]) -> list[StoreResult]:
        if not ops:
            return []

        def _commit(session: Session) -> list[StoreResult]:
            for op in ops:
                if op.mode == WriteMode.CREATE:
                    stmt = (
                        insert(StoreDocument)
                        .values(path=op.path, collection=collection_of(op.path), data=op.data)
                        .returning(StoreDocument.path)
                    )
                    session.execute(stmt)
                else:
                    session.execute(self._merge_statement(op.path, op.data))
            return [StoreResult(StoreStatus.OK) for _ in ops]

        label = f"{ops[0].path} (+{len(ops) - 1})"
        try:
            return self._with_retries("batch_commit", label, _commit)
        except SQLAlchemyError as exc:
            logger.error("Document batch commit failed ops=%d first=%s error=%s", len(ops), ops[0].path, exc)
            return [StoreResult(StoreStatus.ERROR, str(exc)) for _ in ops]

    def ping(self) -> None:
        try:
            with self._session_factory() as session:
                session.execute(text("SELECT 1"))
        except Exception as exc:
            raise StoreUnavailableError("Document store unavailable.") from exc

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _merge_statement(path: str, data: dict[str, Any]) -> Any:
        stmt = insert(StoreDocument).values(
            path=path,
            collection=collection_of(path),
            data=data,
        )
        return stmt.on_conflict_do_update(
            index_elements=[StoreDocument.path],
            set_={
                "data": StoreDocument.data.op("||")(stmt.excluded.data),
                "updated_at": func.now(),
            },
        )

    def _run_write(
        self,
        operation: str,
        path: str,
        work: Callable[[Session], StoreResult],
    ) -> StoreResult:
        try:
            return self._with_retries(operation, path, work)
        except SQLAlchemyError as exc:
            logger.error("Document %s failed path=%s error=%s", operation, path, exc)
            return StoreResult(StoreStatus.ERROR, str(exc))

    def _with_retries(
        self,
        operation: str,
        path: str,
        work: Callable[[Session], T],
    ) -> T:
        last_error: OperationalError | None = None
        for attempt in range(self._max_retries + 1):
            try:
                with self._session_factory() as session:
                    with session.begin():
                        return work(session)
            except OperationalError as exc:
                last_error = exc

            if attempt >= self._max_retries:
                break

            backoff_seconds = self._backoff_initial_seconds * (self._backoff_multiplier**attempt)
            logger.warning(
                "Document store retry operation=%s attempt=%s/%s wait_seconds=%.2f path=%s",
                operation,
                attempt + 1,
                self._max_retries,
                backoff_seconds,
                path,
            )
            self._sleep(backoff_seconds)

        logger.error(
            "Document store exhausted retries operation=%s path=%s error=%s",
            operation,
            path,
            last_error,
        )
        raise last_error  # type: ignore[misc]
