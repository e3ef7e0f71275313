"""
ranking/server_snapshot.py

Bounded per-server top list of derived player entries.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from app.mappers.column_lookup import to_number_loose
from store.base import DocumentStore, StoreResult

logger = logging.getLogger(__name__)

SNAPSHOT_COLLECTION = "stats_cache_player_derived"
DEFAULT_SNAPSHOT_LIMIT = 500


def snapshot_path(server_key: str) -> str:
    key = (server_key or "").strip() or "all"
    return f"{SNAPSHOT_COLLECTION}/snapshot_{key}_player_derived"


@dataclass(frozen=True)
class SnapshotEntry:
    entity_id: str
    server: str
    name: str
    class_name: str
    guild: str | None
    last_scan: str | None
    level: float | None
    sum: float | None

    def as_document(self) -> dict[str, Any]:
        return asdict(self)


def _sum_of(entry: Mapping[str, Any]) -> float:
    return to_number_loose(entry.get("sum")) or 0.0


def merge_snapshot_entries(
    existing: Iterable[Mapping[str, Any]],
    incoming: Sequence[Mapping[str, Any]],
    *,
    limit: int = DEFAULT_SNAPSHOT_LIMIT,
) -> list[dict[str, Any]]:
    """
    Merge new entries into a stored top list.

    Known ids are replaced in place. New ids are admitted while below
    ``limit``; after that a new id only displaces the current lowest sum when
    its own sum is strictly higher. Output is sorted by sum descending, then
    id ascending.
    """

    by_id: dict[str, dict[str, Any]] = {}
    for raw in existing:
        if not isinstance(raw, Mapping):
            continue
        entity_id = str(raw.get("entity_id") or "")
        if entity_id:
            by_id[entity_id] = dict(raw)

    for entry in incoming:
        entity_id = str(entry.get("entity_id") or "")
        if not entity_id:
            continue
        if entity_id in by_id or len(by_id) < limit:
            by_id[entity_id] = dict(entry)
            continue
        lowest_id = min(by_id, key=lambda key: _sum_of(by_id[key]))
        if _sum_of(entry) > _sum_of(by_id[lowest_id]):
            del by_id[lowest_id]
            by_id[entity_id] = dict(entry)

    players = sorted(by_id.values(), key=lambda item: (-_sum_of(item), str(item.get("entity_id"))))
    return players[:limit]


class ServerSnapshotWriter:
    """
    Read-merge-write of one server snapshot document.
    """

    def __init__(self, store: DocumentStore, *, limit: int = DEFAULT_SNAPSHOT_LIMIT) -> None:
        self._store = store
        self._limit = max(1, limit)

    def upsert(self, server_key: str, entries: Sequence[SnapshotEntry]) -> StoreResult | None:
        if not entries:
            return None
        path = snapshot_path(server_key)
        existing = self._store.get(path) or {}
        stored_players = existing.get("players")
        players = merge_snapshot_entries(
            stored_players if isinstance(stored_players, list) else [],
            [entry.as_document() for entry in entries],
            limit=self._limit,
        )
        result = self._store.upsert_merge(
            path,
            {
                "server": server_key,
                "updated_at": datetime.now(timezone.utc).isoformat(),
                "players": players,
            },
        )
        logger.debug("Server snapshot upserted path=%s players=%d ok=%s", path, len(players), result.ok)
        return result
