"""
tests/test_scan_writer.py

Create-only scan persistence, the stored-timestamp reader and the latest
timestamp cache.
"""

from __future__ import annotations

from app.domain.scan_import import EntityKey, ImportPass, ParsedScanRow, ProgressPhase
from app.failure_codes import OUTCOME_CREATED, OUTCOME_DUPLICATE
from app.services.batch_executor import BulkBatchExecutor
from app.services.freshness_gate import FreshnessGate, read_stored_timestamp
from app.services.latest_cache import LatestTimestampCache
from app.services.scan_writer import ScanWriter, build_scan_document
from store.memory import InMemoryDocumentStore

T1 = 1_700_000_000
ENTITY = EntityKey(kind="players", entity_id="p1", server="EU5")


def _row(ts: int) -> ParsedScanRow:
    return ParsedScanRow(
        key=ENTITY,
        timestamp_sec=ts,
        timestamp_raw=ts,
        name="Hero",
        raw={"ID": "p1", "Timestamp": str(ts), "Name": "Hero"},
    )


class TestScanWriter:
    def test_second_import_reports_duplicates(self) -> None:
        store = InMemoryDocumentStore()
        writer = ScanWriter(BulkBatchExecutor(store, max_workers=2), batch_size=1)
        rows = [_row(T1), _row(T1 + 60)]

        first = writer.write(rows, kind="players")
        second = writer.write(rows, kind="players")

        assert (first.created, first.duplicate, first.error) == (2, 0, 0)
        assert (second.created, second.duplicate) == (0, 2)
        assert [item.status for item in first.results] == [OUTCOME_CREATED, OUTCOME_CREATED]
        assert [item.status for item in second.results] == [OUTCOME_DUPLICATE, OUTCOME_DUPLICATE]
        assert first.results[0].key == f"p1__EU5__{T1}"

        stored = store.get(f"players/EU5__p1/scans/{T1}")
        assert stored["timestamp"] == T1
        assert stored["timestamp_raw"] == str(T1)
        assert stored["values"]["Name"] == "Hero"

    def test_progress_carries_running_counts(self) -> None:
        events = []
        writer = ScanWriter(BulkBatchExecutor(InMemoryDocumentStore(), max_workers=1))
        writer.write([_row(T1), _row(T1)], kind="players", on_progress=events.append)

        assert events[0].phase == ProgressPhase.PREPARE
        assert events[-1].phase == ProgressPhase.DONE
        assert all(event.pass_name == ImportPass.SCANS for event in events)
        assert (events[-1].created, events[-1].duplicate) == (1, 1)

    def test_scan_document_shape(self) -> None:
        document = build_scan_document(_row(T1))
        assert set(document) == {
            "entity_id",
            "server",
            "timestamp",
            "timestamp_raw",
            "name",
            "values",
            "created_at",
        }


class TestReadStoredTimestamp:
    def test_field_precedence(self) -> None:
        assert read_stored_timestamp({"values": {"timestamp": "14.11.2023 22:13:20"}, "ts": 5}) == T1
        assert read_stored_timestamp({"timestamp_raw": str(T1), "ts": 5}) == T1
        assert read_stored_timestamp({"ts": 5, "timestamp": 9}) == 5
        assert read_stored_timestamp({"timestamp": T1 * 1000}) == T1
        assert read_stored_timestamp({"timestamp": "2023-11-14T22:13:20Z"}) == T1

    def test_unknown_is_zero(self) -> None:
        assert read_stored_timestamp(None) == 0
        assert read_stored_timestamp({"values": {}}) == 0


class TestFreshnessGate:
    def test_reads_store_once_then_uses_cache(self) -> None:
        store = InMemoryDocumentStore({ENTITY.latest_path: {"timestamp": T1}})
        gate = FreshnessGate(store, LatestTimestampCache(ttl_seconds=0))

        assert gate.should_advance(ENTITY.latest_path, T1 + 1)
        assert not gate.should_advance(ENTITY.latest_path, T1)

        store.upsert_merge(ENTITY.latest_path, {"timestamp": T1 + 100})
        assert gate.previous_timestamp(ENTITY.latest_path) == T1

        gate.forget(ENTITY.latest_path)
        assert gate.previous_timestamp(ENTITY.latest_path) == T1 + 100


class TestLatestTimestampCache:
    def test_ttl_expiry(self) -> None:
        now = [0.0]
        cache = LatestTimestampCache(max_entries=10, ttl_seconds=5, clock=lambda: now[0])
        cache.put("a", 1)
        now[0] = 4.0
        assert cache.get("a") == 1
        now[0] = 6.0
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_evicts_oldest_insert_at_capacity(self) -> None:
        cache = LatestTimestampCache(max_entries=2, ttl_seconds=0)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.put("c", 3)
        assert cache.get("a") is None
        assert (cache.get("b"), cache.get("c")) == (2, 3)
