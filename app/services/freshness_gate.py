"""
app/services/freshness_gate.py

Guards the latest projection against older imports.
"""

from __future__ import annotations

import logging
from datetime import tzinfo
from typing import Any, Mapping

from app.mappers.column_lookup import TIMESTAMP_KEYS, canon, is_blank
from app.services.latest_cache import LatestTimestampCache
from app.validators.row_normalizer import UTC, parse_timestamp
from store.base import DocumentStore

logger = logging.getLogger(__name__)

_MAX_EPOCH_SECONDS = 9_999_999_999


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None


def read_stored_timestamp(doc: Mapping[str, Any] | None, tz: tzinfo = UTC) -> int:
    """
    Best-effort timestamp of a stored latest projection, 0 when unknown.

    Older documents carry the timestamp in different places, so several
    fields are tried in order.
    """

    if not doc:
        return 0

    values = doc.get("values")
    if isinstance(values, Mapping):
        for column, raw in values.items():
            if canon(column) == TIMESTAMP_KEYS[0] and not is_blank(raw):
                parsed = parse_timestamp(raw, tz)
                if parsed is not None:
                    return parsed
                break

    raw_text = doc.get("timestamp_raw")
    if not is_blank(raw_text):
        parsed = parse_timestamp(raw_text, tz)
        if parsed is not None:
            return parsed

    ts = _as_int(doc.get("ts"))
    if ts is not None:
        return ts

    timestamp = doc.get("timestamp")
    numeric = _as_int(timestamp)
    if numeric is not None:
        return numeric // 1000 if numeric > _MAX_EPOCH_SECONDS else numeric
    if isinstance(timestamp, str) and timestamp.strip():
        parsed = parse_timestamp(timestamp, tz)
        if parsed is not None:
            return parsed

    return 0


class FreshnessGate:
    """
    Decides whether a latest projection may be replaced.

    Stored timestamps are read once per path and then served from the
    injected cache; callers keep the cache in sync with write outcomes.
    """

    def __init__(
        self,
        store: DocumentStore,
        cache: LatestTimestampCache,
        *,
        timezone: tzinfo = UTC,
    ) -> None:
        self._store = store
        self._cache = cache
        self._timezone = timezone

    def previous_timestamp(self, path: str) -> int:
        cached = self._cache.get(path)
        if cached is not None:
            return cached
        stored = read_stored_timestamp(self._store.get(path), self._timezone)
        self._cache.put(path, stored)
        return stored

    def should_advance(self, path: str, newest_timestamp_sec: int) -> bool:
        return newest_timestamp_sec > self.previous_timestamp(path)

    def remember(self, path: str, timestamp_sec: int) -> None:
        self._cache.put(path, timestamp_sec)

    def forget(self, path: str) -> None:
        self._cache.forget(path)
