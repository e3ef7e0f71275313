"""
app/services/batch_executor.py

Write strategies used by the import pipeline.

The strategy only decides how scan documents are created:
``BulkBatchExecutor`` fans creates out over a bounded thread pool and
``ChunkedBatchExecutor`` writes them one by one in path order. Merge passes
(latest, index, history) always go through the ``BatchScheduler`` so that
per-pass chunk limits and the pause between chunks hold for both. The
strategy is picked from configuration when the service is built.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable

from app.config import ScanImportSettings
from app.domain.scan_import import ProgressCallback
from app.services.batch_scheduler import BatchRunSummary, BatchScheduler
from store.base import DocumentStore, StoreResult, StoreStatus, WriteOp

logger = logging.getLogger(__name__)

ResultCallback = Callable[[int, StoreResult], None]


class BatchExecutor(ABC):
    """
    Applies create and merge operations and reports per-op outcomes.
    """

    def __init__(self, store: DocumentStore, *, scheduler: BatchScheduler | None = None) -> None:
        self._store = store
        self._scheduler = scheduler or BatchScheduler(store)

    @abstractmethod
    def create_all(
        self,
        ops: Sequence[WriteOp],
        on_result: ResultCallback | None = None,
    ) -> list[StoreResult]:
        """
        Create every op's document if absent. Results follow input order;
        ``on_result(index, result)`` fires as each op completes.
        """

    def merge_all(
        self,
        ops: Sequence[WriteOp],
        *,
        limit: int,
        pass_name: str,
        on_progress: ProgressCallback | None = None,
        should_continue: Callable[[], bool] | None = None,
    ) -> BatchRunSummary:
        """
        Merge-upsert every op in sequential chunks of at most ``limit``.
        """

        return self._scheduler.commit(
            ops,
            limit=limit,
            pass_name=pass_name,
            on_progress=on_progress,
            should_continue=should_continue,
        )

    def _create_one(self, op: WriteOp) -> StoreResult:
        try:
            return self._store.create_if_absent(op.path, op.data)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Document create failed path=%s error=%s", op.path, exc)
            return StoreResult(StoreStatus.ERROR, str(exc))


class BulkBatchExecutor(BatchExecutor):
    """
    Concurrent creates on a bounded worker pool.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        scheduler: BatchScheduler | None = None,
        max_workers: int = 8,
    ) -> None:
        super().__init__(store, scheduler=scheduler)
        self._max_workers = max(1, max_workers)

    def create_all(
        self,
        ops: Sequence[WriteOp],
        on_result: ResultCallback | None = None,
    ) -> list[StoreResult]:
        if not ops:
            return []
        results: list[StoreResult | None] = [None] * len(ops)

        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(ops))) as pool:
            futures = {pool.submit(self._create_one, op): index for index, op in enumerate(ops)}
            for future in as_completed(futures):
                index = futures[future]
                result = future.result()
                results[index] = result
                if on_result is not None:
                    on_result(index, result)

        return [result for result in results if result is not None]


class ChunkedBatchExecutor(BatchExecutor):
    """
    Sequential creates in document-path order.
    """

    def create_all(
        self,
        ops: Sequence[WriteOp],
        on_result: ResultCallback | None = None,
    ) -> list[StoreResult]:
        results: list[StoreResult | None] = [None] * len(ops)
        order = sorted(range(len(ops)), key=lambda index: ops[index].path)
        for index in order:
            result = self._create_one(ops[index])
            results[index] = result
            if on_result is not None:
                on_result(index, result)
        return [result for result in results if result is not None]


def build_batch_executor(
    store: DocumentStore,
    settings: ScanImportSettings,
    *,
    sleep: Callable[[float], None] | None = None,
) -> BatchExecutor:
    """
    Build the executor named by ``settings.executor``.
    """

    scheduler = BatchScheduler(
        store,
        chunk_delay_seconds=settings.chunk_delay_seconds,
        sleep=sleep or time.sleep,
    )
    if settings.executor == "chunked":
        return ChunkedBatchExecutor(store, scheduler=scheduler)
    return BulkBatchExecutor(store, scheduler=scheduler, max_workers=settings.max_workers)
