"""
app/services/batch_scheduler.py

Chunked commit of merge writes with progress events and pacing.

Writes are split into chunks of at most ``limit`` operations. Each chunk is
one ``batch_commit`` call. A failing chunk is recorded and skipped; the
scheduler moves on to the next chunk so one bad document does not block an
import. A short fixed delay separates chunks to stay under store write
quotas.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Callable

from app.domain.scan_import import ImportProgress, ProgressCallback, ProgressPhase
from store.base import DocumentStore, StoreResult, StoreStatus, WriteOp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FailedChunk:
    """
    One chunk that could not be committed.
    """

    pass_name: str
    start: int
    op_count: int
    message: str


@dataclass
class BatchRunSummary:
    """
    Outcome of one scheduled pass. ``results`` is aligned with the input ops;
    ops that were never attempted (cancelled runs) have no entry.
    """

    pass_name: str
    total: int
    results: list[StoreResult] = field(default_factory=list)
    failed_chunks: list[FailedChunk] = field(default_factory=list)
    cancelled: bool = False

    @property
    def committed(self) -> int:
        return sum(1 for result in self.results if result.ok)

    @property
    def failed_operations(self) -> int:
        return sum(chunk.op_count for chunk in self.failed_chunks)


class BatchScheduler:
    """
    Commits write operations in bounded chunks against a document store.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        chunk_delay_seconds: float = 0.012,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._chunk_delay_seconds = max(0.0, chunk_delay_seconds)
        self._sleep = sleep

    def commit(
        self,
        ops: Sequence[WriteOp],
        *,
        limit: int,
        pass_name: str,
        on_progress: ProgressCallback | None = None,
        should_continue: Callable[[], bool] | None = None,
    ) -> BatchRunSummary:
        limit = max(1, limit)
        total = len(ops)
        summary = BatchRunSummary(pass_name=pass_name, total=total)

        emit_progress(on_progress, ImportProgress(ProgressPhase.PREPARE, 0, total, pass_name))

        done = 0
        for start in range(0, total, limit):
            if should_continue is not None and not should_continue():
                summary.cancelled = True
                logger.info(
                    "Batch pass cancelled pass=%s committed=%d/%d",
                    pass_name,
                    done,
                    total,
                )
                break

            if start > 0 and self._chunk_delay_seconds > 0:
                self._sleep(self._chunk_delay_seconds)

            chunk = list(ops[start : start + limit])
            chunk_results = self._commit_chunk(chunk, pass_name=pass_name, start=start, summary=summary)
            summary.results.extend(chunk_results)
            done += len(chunk)
            emit_progress(on_progress, ImportProgress(ProgressPhase.WRITE, done, total, pass_name))

        emit_progress(on_progress, ImportProgress(ProgressPhase.DONE, done, total, pass_name))
        return summary

    def _commit_chunk(
        self,
        chunk: list[WriteOp],
        *,
        pass_name: str,
        start: int,
        summary: BatchRunSummary,
    ) -> list[StoreResult]:
        try:
            results = list(self._store.batch_commit(chunk))
        except Exception as exc:  # noqa: BLE001
            message = f"{pass_name} chunk at {start} ({len(chunk)} ops) failed: {exc}"
            logger.warning(message)
            summary.failed_chunks.append(
                FailedChunk(pass_name=pass_name, start=start, op_count=len(chunk), message=message)
            )
            return [StoreResult(StoreStatus.ERROR, str(exc)) for _ in chunk]

        if len(results) != len(chunk):
            message = (
                f"{pass_name} chunk at {start} returned {len(results)} results for {len(chunk)} ops"
            )
            logger.warning(message)
            summary.failed_chunks.append(
                FailedChunk(pass_name=pass_name, start=start, op_count=len(chunk), message=message)
            )
            return [StoreResult(StoreStatus.ERROR, message) for _ in chunk]

        failed = [result for result in results if not result.ok]
        if failed:
            detail = failed[0].message or failed[0].status
            message = f"{pass_name} chunk at {start} ({len(chunk)} ops) failed: {detail}"
            logger.warning(message)
            summary.failed_chunks.append(
                FailedChunk(pass_name=pass_name, start=start, op_count=len(failed), message=message)
            )
        return results


def emit_progress(callback: ProgressCallback | None, event: ImportProgress) -> None:
    if callback is None:
        return
    try:
        callback(event)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Progress callback failed pass=%s error=%s", event.pass_name, exc)
