"""
ranking/index_builder.py

Daily ranking shards over derived sums.

Each entity that advanced its latest projection contributes its derived sum
to up to three scopes for the day of its newest scan: everyone, its group,
and its group on its server. Shards hold parallel ``ids``/``values``/``ranks``
lists sorted by value, highest first.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Any

from aggregation.periods import UTC, date_key
from ranking.derived_values import GROUP_ALL, DerivedValues
from store.base import WriteMode, WriteOp

METRIC_SUM = "sum"
SERVER_ALL = "all"


def index_collection(kind: str) -> str:
    return f"stats_index_{kind}_daily_compact"


def index_shard_path(kind: str, day: int, scope_id: str) -> str:
    return f"{index_collection(kind)}/{day}__{scope_id}"


@dataclass(frozen=True)
class RankingScope:
    scope_id: str
    group: str
    server_key: str


def scopes_for(derived: DerivedValues) -> list[RankingScope]:
    group = derived.group or GROUP_ALL
    scopes = [
        RankingScope("all_all_sum", GROUP_ALL, SERVER_ALL),
        RankingScope(f"{group}_{SERVER_ALL}_{METRIC_SUM}", group, SERVER_ALL),
    ]
    if derived.server_key and derived.server_key != SERVER_ALL:
        scopes.append(
            RankingScope(f"{group}_{derived.server_key}_{METRIC_SUM}", group, derived.server_key)
        )
    return scopes


@dataclass
class IndexShard:
    """
    One ranking shard for a day and scope.
    """

    date_key: int
    scope: RankingScope
    ids: list[str] = field(default_factory=list)
    values: list[float] = field(default_factory=list)

    def add(self, entity_id: str, value: float) -> None:
        self.ids.append(entity_id)
        self.values.append(value)

    def to_document(self, generated_at: str) -> dict[str, Any]:
        entries = sorted(zip(self.ids, self.values), key=lambda entry: entry[1], reverse=True)
        return {
            "date_key": self.date_key,
            "scope_id": self.scope.scope_id,
            "group": self.scope.group,
            "server_key": self.scope.server_key,
            "metric": METRIC_SUM,
            "n": len(entries),
            "ids": [entity_id for entity_id, _ in entries],
            "values": [value for _, value in entries],
            "ranks": list(range(1, len(entries) + 1)),
            "generated_at": generated_at,
        }


class RankingIndexBuilder:
    """
    Collects derived sums during an import and emits shard writes.
    """

    def __init__(self, kind: str, *, timezone: tzinfo = UTC) -> None:
        self._kind = kind
        self._timezone = timezone
        self._shards: dict[tuple[int, str], IndexShard] = {}

    def add(self, entity_id: str, timestamp_sec: int, derived: DerivedValues) -> None:
        day = date_key(timestamp_sec, self._timezone)
        value = float(derived.sum) if derived.sum is not None else 0.0
        for scope in scopes_for(derived):
            shard = self._shards.get((day, scope.scope_id))
            if shard is None:
                shard = IndexShard(date_key=day, scope=scope)
                self._shards[(day, scope.scope_id)] = shard
            shard.add(entity_id, value)

    @property
    def shards(self) -> list[IndexShard]:
        return list(self._shards.values())

    def write_ops(self, *, now: datetime | None = None) -> list[WriteOp]:
        generated_at = (now or datetime.now(timezone.utc)).isoformat()
        return [
            WriteOp(
                path=index_shard_path(self._kind, shard.date_key, shard.scope.scope_id),
                data=shard.to_document(generated_at),
                mode=WriteMode.MERGE,
            )
            for shard in self._shards.values()
        ]
