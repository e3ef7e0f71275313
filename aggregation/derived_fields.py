"""
aggregation/derived_fields.py

Search and display fields stored alongside the latest projection.
"""

from __future__ import annotations

import math
import re
import unicodedata
from datetime import datetime, timezone
from typing import Any, Mapping

from app.domain.scan_import import EntityKind, ParsedScanRow
from app.mappers.column_lookup import (
    CLASS_KEYS,
    GUILD_ID_KEYS,
    GUILD_NAME_KEYS,
    HOF_RANK_KEYS,
    LEVEL_KEYS,
    MEMBER_COUNT_KEYS,
    TIMESTAMP_KEYS,
    ColumnLookup,
)
from ranking.derived_values import PLAYER_CLASS_NAMES, DerivedValues, resolve_class_id

_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9]+")


def fold_text(value: Any) -> str:
    """Lowercase and strip diacritics (``Zoë`` -> ``zoe``)."""
    if value is None:
        return ""
    decomposed = unicodedata.normalize("NFD", str(value))
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return stripped.lower()


def name_tokens(value: Any) -> list[str]:
    """Alphanumeric runs of at least two characters, de-duplicated in order."""
    folded = fold_text(value)
    seen: dict[str, None] = {}
    for part in _TOKEN_SPLIT_RE.split(folded):
        if len(part) >= 2:
            seen.setdefault(part, None)
    return list(seen)


def edge_ngrams(tokens: list[str]) -> list[str]:
    """Every prefix of every token, de-duplicated in order."""
    seen: dict[str, None] = {}
    for token in tokens:
        for end in range(1, len(token) + 1):
            seen.setdefault(token[:end], None)
    return list(seen)


def _finite_or_none(number: float | None) -> float | None:
    if number is None or not math.isfinite(number):
        return None
    return number


def player_scalars(values: Mapping[str, Any], derived: DerivedValues | None = None) -> dict[str, Any]:
    lookup = ColumnLookup(list(values.keys()))

    level_number = _finite_or_none(lookup.number_of(values, LEVEL_KEYS))
    class_raw = lookup.pick_any(values, CLASS_KEYS)
    class_id = resolve_class_id(class_raw)
    if class_id is not None:
        class_name: str | None = PLAYER_CLASS_NAMES[class_id]
    else:
        class_name = lookup.text_of(values, CLASS_KEYS) or None
    guild_name = lookup.text_of(values, GUILD_NAME_KEYS) or None

    scalars: dict[str, Any] = {
        "level": int(level_number) if level_number is not None else None,
        "class_id": class_id,
        "class_name": class_name,
        "guild_name": guild_name,
        "guild_name_fold": fold_text(guild_name) if guild_name else None,
        "guild_identifier": lookup.text_of(values, GUILD_ID_KEYS) or None,
    }
    if derived is not None:
        scalars["sum"] = derived.sum
        scalars["group"] = derived.group
        scalars["server_key"] = derived.server_key
    return scalars


def guild_scalars(values: Mapping[str, Any]) -> dict[str, Any]:
    lookup = ColumnLookup(list(values.keys()))
    return {
        "member_count": _finite_or_none(lookup.number_of(values, MEMBER_COUNT_KEYS)),
        "hof_rank": _finite_or_none(lookup.number_of(values, HOF_RANK_KEYS)),
    }


def build_latest_document(
    row: ParsedScanRow,
    *,
    derived: DerivedValues | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Latest projection for the newest scan of one entity.
    """

    tokens = name_tokens(row.name or "")
    lookup = ColumnLookup(list(row.raw.keys()))
    timestamp_raw = lookup.pick(row.raw, TIMESTAMP_KEYS[0])
    document: dict[str, Any] = {
        "entity_id": row.key.entity_id,
        "server": row.key.server,
        "timestamp": row.timestamp_sec,
        "timestamp_raw": None if timestamp_raw is None else str(timestamp_raw),
        "name": row.name,
        "values": dict(row.raw),
        "updated_at": (now or datetime.now(timezone.utc)).isoformat(),
        "name_fold": fold_text(row.name or ""),
        "name_tokens": tokens,
        "name_ngrams": edge_ngrams(tokens),
    }
    if row.key.kind == EntityKind.PLAYERS:
        document.update(player_scalars(row.raw, derived))
    else:
        document.update(guild_scalars(row.raw))
    return document
