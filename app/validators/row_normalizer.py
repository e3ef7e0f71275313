"""
app/validators/row_normalizer.py

Key/timestamp resolution and per-row filtering for scan imports.

Rows that lack an identifier, a parseable timestamp or a server are counted
under exactly one skip reason and dropped. Nothing in here raises for bad
row content; the normalizer is a filter, not a validator that aborts.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Any, Mapping
from zoneinfo import ZoneInfo

import pandas as pd

from app.domain.scan_import import EntityKey, EntityKind, ParsedScanRow, SkipCounters
from app.failure_codes import (
    SKIP_BAD_TIMESTAMP,
    SKIP_MISSING_GUILD_IDENTIFIER,
    SKIP_MISSING_IDENTIFIER,
    SKIP_MISSING_SERVER,
)
from app.mappers.column_lookup import (
    GUILD_ID_KEYS,
    NAME_KEYS,
    PLAYER_ID_KEYS,
    SERVER_KEYS,
    TIMESTAMP_KEYS,
    ColumnLookup,
    infer_headers,
    is_blank,
)

logger = logging.getLogger(__name__)

_EPOCH_MS_RE = re.compile(r"^\d{13}$")
_EPOCH_SEC_RE = re.compile(r"^\d{10}$")
_RELATIVE_DATE_RE = re.compile(r"\b(now|today|yesterday|tomorrow)\b", re.IGNORECASE)
_DOTTED_DATETIME_RE = re.compile(
    r"^(\d{1,2})\.(\d{1,2})\.(\d{4})\s+(\d{1,2}):(\d{2})(?::(\d{2}))?$"
)

UTC = ZoneInfo("UTC")


def parse_timestamp(value: Any, tz: tzinfo = UTC) -> int | None:
    """
    Parse an export timestamp to whole epoch seconds.

    Accepted shapes, in order:
      - 13-digit millisecond epoch
      - 10-digit second epoch
      - ``dd.mm.yyyy hh:mm[:ss]`` wall-clock time in ``tz``
      - anything else with a digit in it that the pandas datetime parser
        understands (naive values as UTC); relative words such as ``now``
        never resolve

    Returns None when nothing matches.
    """

    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    if _EPOCH_MS_RE.match(text):
        return int(text) // 1000
    if _EPOCH_SEC_RE.match(text):
        return int(text)

    match = _DOTTED_DATETIME_RE.match(text)
    if match:
        day, month, year, hour, minute, second = match.groups()
        try:
            moment = datetime(
                int(year),
                int(month),
                int(day),
                int(hour),
                int(minute),
                int(second or 0),
                tzinfo=tz,
            )
        except ValueError:
            moment = None
        if moment is not None:
            return int(moment.timestamp())

    if not any(char.isdigit() for char in text) or _RELATIVE_DATE_RE.search(text):
        return None
    try:
        parsed = pd.to_datetime(text, utc=True, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if parsed is None or pd.isna(parsed):
        return None
    return int(parsed.timestamp())


@dataclass
class NormalizedBatch:
    """
    Valid rows of one import, grouped by entity, plus skip counters.
    """

    kind: str
    headers: list[str]
    rows: list[ParsedScanRow] = field(default_factory=list)
    by_entity: dict[EntityKey, list[ParsedScanRow]] = field(default_factory=dict)
    skips: SkipCounters = field(default_factory=SkipCounters)


class RowNormalizer:
    """
    Resolves entity keys and timestamps for raw export rows.
    """

    def __init__(self, *, timezone: tzinfo = UTC) -> None:
        self._timezone = timezone

    def normalize(
        self,
        *,
        kind: str,
        rows: Sequence[Mapping[str, Any]],
        headers: Sequence[str] | None = None,
    ) -> NormalizedBatch:
        resolved_headers = list(headers) if headers else infer_headers(rows)
        lookup = ColumnLookup(resolved_headers)
        batch = NormalizedBatch(kind=kind, headers=resolved_headers)

        if kind == EntityKind.PLAYERS:
            id_keys = PLAYER_ID_KEYS
            missing_id_reason = SKIP_MISSING_IDENTIFIER
        else:
            id_keys = GUILD_ID_KEYS
            missing_id_reason = SKIP_MISSING_GUILD_IDENTIFIER

        for row in rows:
            if all(is_blank(value) for value in row.values()):
                continue

            entity_id = lookup.text_of(row, id_keys)
            if not entity_id:
                batch.skips.increment(missing_id_reason)
                continue

            timestamp_raw = lookup.pick(row, TIMESTAMP_KEYS[0])
            timestamp_sec = parse_timestamp(timestamp_raw, self._timezone)
            if timestamp_sec is None:
                batch.skips.increment(SKIP_BAD_TIMESTAMP)
                continue

            server = lookup.text_of(row, SERVER_KEYS)
            if not server:
                batch.skips.increment(SKIP_MISSING_SERVER)
                continue

            parsed = ParsedScanRow(
                key=EntityKey(kind=kind, entity_id=entity_id, server=server.upper()),
                timestamp_sec=timestamp_sec,
                timestamp_raw=timestamp_raw,
                name=lookup.text_of(row, NAME_KEYS) or None,
                raw=dict(row),
            )
            batch.rows.append(parsed)
            batch.by_entity.setdefault(parsed.key, []).append(parsed)

        logger.debug(
            "Normalized scan rows kind=%s valid=%d skipped=%d entities=%d",
            kind,
            len(batch.rows),
            batch.skips.total,
            len(batch.by_entity),
        )
        return batch
