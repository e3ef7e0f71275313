"""
tests/test_ranking.py

Daily ranking shards and per-server snapshot merging.
"""

from __future__ import annotations

from datetime import datetime, timezone

from ranking.derived_values import GROUP_ALL, GROUP_DEX, GROUP_STR, DerivedValues
from ranking.index_builder import RankingIndexBuilder, index_shard_path, scopes_for
from ranking.server_snapshot import (
    ServerSnapshotWriter,
    SnapshotEntry,
    merge_snapshot_entries,
    snapshot_path,
)
from store.base import WriteMode
from store.memory import InMemoryDocumentStore

T1 = 1_700_000_000
FIXED_NOW = datetime(2023, 11, 20, tzinfo=timezone.utc)


def _entry(entity_id: str, total: float | None) -> dict:
    return {"entity_id": entity_id, "sum": total}


class TestScopes:
    def test_scopes_for_server_bound_player(self) -> None:
        scopes = scopes_for(DerivedValues(group=GROUP_STR, server_key="eu5", sum=1.0))
        assert [scope.scope_id for scope in scopes] == ["all_all_sum", "STR_all_sum", "STR_eu5_sum"]
        assert scopes[0].group == GROUP_ALL

    def test_missing_server_key_skips_server_scope(self) -> None:
        scopes = scopes_for(DerivedValues(group=GROUP_DEX, server_key="", sum=None))
        assert [scope.scope_id for scope in scopes] == ["all_all_sum", "DEX_all_sum"]


class TestRankingIndexBuilder:
    def test_shards_are_ranked_descending(self) -> None:
        builder = RankingIndexBuilder("players")
        builder.add("p1", T1, DerivedValues(group=GROUP_STR, server_key="eu5", sum=300.0))
        builder.add("p2", T1 + 60, DerivedValues(group=GROUP_STR, server_key="eu5", sum=500.0))
        builder.add("p3", T1 + 120, DerivedValues(group=GROUP_DEX, server_key="eu5", sum=None))

        ops = {op.path: op for op in builder.write_ops(now=FIXED_NOW)}
        shard = ops[index_shard_path("players", 20231114, "all_all_sum")]

        assert shard.mode == WriteMode.MERGE
        assert shard.path == "stats_index_players_daily_compact/20231114__all_all_sum"
        assert shard.data["ids"] == ["p2", "p1", "p3"]
        assert shard.data["values"] == [500.0, 300.0, 0.0]
        assert shard.data["ranks"] == [1, 2, 3]
        assert shard.data["n"] == 3
        assert shard.data["generated_at"] == FIXED_NOW.isoformat()
        assert ops[index_shard_path("players", 20231114, "DEX_eu5_sum")].data["ids"] == ["p3"]

    def test_every_shard_keeps_parallel_lists(self) -> None:
        builder = RankingIndexBuilder("players")
        for offset, total in enumerate([5.0, 5.0, 9.0, 1.0]):
            builder.add(f"p{offset}", T1 + offset * 86400, DerivedValues(GROUP_STR, "eu1", total))

        for op in builder.write_ops(now=FIXED_NOW):
            data = op.data
            assert len(data["ids"]) == len(data["values"]) == len(data["ranks"]) == data["n"]
            assert data["ranks"] == [index + 1 for index in range(data["n"])]
            assert all(a >= b for a, b in zip(data["values"], data["values"][1:]))


class TestSnapshotMerge:
    def test_known_ids_replaced_and_new_ids_admitted_below_limit(self) -> None:
        merged = merge_snapshot_entries([_entry("a", 10)], [_entry("a", 5), _entry("b", 7)], limit=2)
        assert merged == [_entry("b", 7), _entry("a", 5)]

    def test_full_list_only_admits_strictly_higher_sum(self) -> None:
        existing = [_entry("a", 10), _entry("b", 4)]

        assert merge_snapshot_entries(existing, [_entry("c", 4)], limit=2) == existing
        assert merge_snapshot_entries(existing, [_entry("c", 6)], limit=2) == [_entry("a", 10), _entry("c", 6)]

    def test_ties_sort_by_id(self) -> None:
        merged = merge_snapshot_entries([], [_entry("z", 1), _entry("b", 1), _entry("m", None)])
        assert [item["entity_id"] for item in merged] == ["b", "z", "m"]

    def test_writer_merges_with_stored_document(self) -> None:
        store = InMemoryDocumentStore()
        writer = ServerSnapshotWriter(store, limit=2)
        entry = SnapshotEntry(
            entity_id="p1",
            server="EU5",
            name="Hero",
            class_name="Warrior",
            guild="Knights",
            last_scan=str(T1),
            level=300.0,
            sum=400.0,
        )

        assert writer.upsert("eu5", []) is None
        writer.upsert("eu5", [entry])
        writer.upsert("eu5", [SnapshotEntry("p2", "EU5", "Other", "Mage", None, None, None, 10.0)])

        stored = store.get(snapshot_path("eu5"))
        assert snapshot_path("eu5") == "stats_cache_player_derived/snapshot_eu5_player_derived"
        assert stored["server"] == "eu5"
        assert [player["entity_id"] for player in stored["players"]] == ["p1", "p2"]
