"""
tests/test_batch_scheduler.py

Chunked commits, pacing, cancellation and the two write strategies.
"""

from __future__ import annotations

from collections.abc import Sequence

import pytest

from app.config import ScanImportSettings
from app.domain.scan_import import ImportProgress, ProgressPhase
from app.services.batch_executor import (
    BulkBatchExecutor,
    ChunkedBatchExecutor,
    build_batch_executor,
)
from app.services.batch_scheduler import BatchScheduler
from store.base import StoreResult, StoreStatus, WriteMode, WriteOp
from store.memory import InMemoryDocumentStore


class FlakyStore(InMemoryDocumentStore):
    """Raises on any batch that touches a poisoned path."""

    def __init__(self, poisoned: set[str]) -> None:
        super().__init__()
        self.poisoned = poisoned
        self.batches: list[list[str]] = []
        self.created: list[str] = []

    def batch_commit(self, ops: Sequence[WriteOp]) -> list[StoreResult]:
        self.batches.append([op.path for op in ops])
        if any(op.path in self.poisoned for op in ops):
            raise RuntimeError("quota exceeded")
        return super().batch_commit(ops)

    def create_if_absent(self, path, data) -> StoreResult:
        self.created.append(path)
        return super().create_if_absent(path, data)


def _ops(count: int) -> list[WriteOp]:
    return [WriteOp(f"docs/{index}", {"n": index}, WriteMode.MERGE) for index in range(count)]


class TestBatchScheduler:
    def test_failed_chunk_is_recorded_and_later_chunks_still_commit(self) -> None:
        store = FlakyStore(poisoned={"docs/2"})
        sleeps: list[float] = []
        scheduler = BatchScheduler(store, chunk_delay_seconds=0.5, sleep=sleeps.append)
        events: list[ImportProgress] = []

        summary = scheduler.commit(_ops(5), limit=2, pass_name="latest", on_progress=events.append)

        assert store.batches == [["docs/0", "docs/1"], ["docs/2", "docs/3"], ["docs/4"]]
        assert sleeps == [0.5, 0.5]
        assert summary.committed == 3
        assert summary.failed_operations == 2
        assert summary.failed_chunks[0].start == 2
        assert "quota exceeded" in summary.failed_chunks[0].message
        assert store.get("docs/4") == {"n": 4}
        assert store.get("docs/3") is None
        assert [event.phase for event in events] == [
            ProgressPhase.PREPARE,
            ProgressPhase.WRITE,
            ProgressPhase.WRITE,
            ProgressPhase.WRITE,
            ProgressPhase.DONE,
        ]
        assert [event.current for event in events] == [0, 2, 4, 5, 5]

    def test_cancellation_stops_before_next_chunk(self) -> None:
        store = InMemoryDocumentStore()
        scheduler = BatchScheduler(store, chunk_delay_seconds=0)
        calls = iter([True, False])

        summary = scheduler.commit(_ops(4), limit=2, pass_name="index", should_continue=lambda: next(calls))

        assert summary.cancelled is True
        assert summary.committed == 2
        assert store.paths() == ["docs/0", "docs/1"]

    def test_progress_callback_errors_do_not_abort(self) -> None:
        def _broken(event: ImportProgress) -> None:
            raise ValueError("ui gone")

        summary = BatchScheduler(InMemoryDocumentStore(), chunk_delay_seconds=0).commit(
            _ops(3), limit=10, pass_name="history", on_progress=_broken
        )
        assert summary.committed == 3


class TestExecutors:
    @pytest.mark.parametrize("name", ["bulk", "chunked"])
    def test_create_all_results_follow_input_order(self, name: str) -> None:
        store = InMemoryDocumentStore({"scans/b": {"v": 0}})
        settings = ScanImportSettings(chunk_delay_seconds=0.0, executor=name, max_workers=3)
        executor = build_batch_executor(store, settings)
        ops = [WriteOp(path, {"v": 1}, WriteMode.CREATE) for path in ("scans/c", "scans/b", "scans/a")]
        seen: list[int] = []

        results = executor.create_all(ops, lambda index, result: seen.append(index))

        assert [result.status for result in results] == [
            StoreStatus.OK,
            StoreStatus.ALREADY_EXISTS,
            StoreStatus.OK,
        ]
        assert sorted(seen) == [0, 1, 2]

    def test_chunked_creates_in_path_order(self) -> None:
        store = FlakyStore(poisoned=set())
        executor = ChunkedBatchExecutor(store, scheduler=BatchScheduler(store, chunk_delay_seconds=0))
        ops = [WriteOp(path, {}, WriteMode.CREATE) for path in ("b", "c", "a")]

        executor.create_all(ops)
        assert store.created == ["a", "b", "c"]

    @pytest.mark.parametrize("name", ["bulk", "chunked"])
    def test_merges_are_chunked_and_paced(self, name: str) -> None:
        store = FlakyStore(poisoned={"docs/1"})
        sleeps: list[float] = []
        settings = ScanImportSettings(chunk_delay_seconds=0.5, executor=name, max_workers=4)
        executor = build_batch_executor(store, settings, sleep=sleeps.append)

        summary = executor.merge_all(_ops(5), limit=2, pass_name="latest")

        assert store.batches == [["docs/0", "docs/1"], ["docs/2", "docs/3"], ["docs/4"]]
        assert sleeps == [0.5, 0.5]
        assert summary.committed == 3
        assert [(chunk.start, chunk.op_count) for chunk in summary.failed_chunks] == [(0, 2)]

    def test_bulk_reports_creates_as_they_complete(self) -> None:
        store = InMemoryDocumentStore()
        executor = BulkBatchExecutor(store, max_workers=2)
        ops = [WriteOp(f"scans/{index}", {}, WriteMode.CREATE) for index in range(6)]
        seen: list[int] = []

        results = executor.create_all(ops, lambda index, result: seen.append(index))

        assert len(results) == 6
        assert sorted(seen) == list(range(6))
        assert store.paths() == sorted(op.path for op in ops)

    def test_factory_picks_strategy(self) -> None:
        store = InMemoryDocumentStore()
        bulk = build_batch_executor(store, ScanImportSettings(executor="bulk"))
        chunked = build_batch_executor(store, ScanImportSettings(executor="chunked"))
        assert isinstance(bulk, BulkBatchExecutor)
        assert isinstance(chunked, ChunkedBatchExecutor)
