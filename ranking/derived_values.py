"""
ranking/derived_values.py

Ranking inputs derived from one entity's newest scan.

A helper maps the raw column map to ``(group, server_key, sum)``. Only
kinds with a registered helper take part in ranking shards and server
snapshots; guilds have none.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from app.domain.scan_import import EntityKind, ParsedScanRow
from app.mappers.column_lookup import (
    BASE_ATTRIBUTE_KEYS,
    CLASS_KEYS,
    GUILD_ID_KEYS,
    GUILD_NAME_KEYS,
    LEVEL_KEYS,
    ColumnLookup,
    canon,
    is_blank,
    to_number_loose,
)

PLAYER_CLASS_NAMES: dict[int, str] = {
    1: "Warrior",
    2: "Mage",
    3: "Scout",
    4: "Assassin",
    5: "Battle Mage",
    6: "Berserker",
    7: "Demon Hunter",
    8: "Bard",
}
_CLASS_ID_BY_CANON = {canon(name): class_id for class_id, name in PLAYER_CLASS_NAMES.items()}

GROUP_STR = "STR"
GROUP_DEX = "DEX"
GROUP_INT = "INT"
GROUP_ALL = "ALL"

_STR_CLASSES = {1, 5, 6}
_DEX_CLASSES = {3, 4, 7}

_SERVER_CODE_RE = re.compile(r"^[a-z]{1,4}\d+$", re.IGNORECASE)
_SERVER_SUFFIX_RE = re.compile(r"^([a-z]{1,4}\d+)[_.-]?(net|eu)$", re.IGNORECASE)
_SERVER_HOST_RE = re.compile(r"^([a-z]{1,4}\d+)\.sfgame\.(net|eu)$", re.IGNORECASE)
_SHORT_EU_RE = re.compile(r"^S(\d+)$")


@dataclass(frozen=True)
class DerivedInput:
    """
    What a derived-value helper sees of one entity's newest scan.
    """

    entity_id: str
    server: str
    values: Mapping[str, Any]
    kind: str = EntityKind.PLAYERS
    name: str | None = None
    class_name: str | None = None
    level: float | None = None
    guild_id: str | None = None
    guild_name: str | None = None
    timestamp_sec: int = 0

    @classmethod
    def from_row(cls, row: ParsedScanRow) -> "DerivedInput":
        lookup = ColumnLookup(list(row.raw.keys()))
        return cls(
            entity_id=row.key.entity_id,
            server=row.key.server,
            values=row.raw,
            kind=row.key.kind,
            name=row.name,
            class_name=lookup.text_of(row.raw, CLASS_KEYS) or None,
            level=lookup.number_of(row.raw, LEVEL_KEYS),
            guild_id=lookup.text_of(row.raw, GUILD_ID_KEYS) or None,
            guild_name=lookup.text_of(row.raw, GUILD_NAME_KEYS) or None,
            timestamp_sec=row.timestamp_sec,
        )


@dataclass(frozen=True)
class DerivedValues:
    group: str
    server_key: str
    sum: float | None


DerivedValueHelper = Callable[[DerivedInput], DerivedValues]


def _server_alias(code: str) -> str:
    cleaned = code.strip().upper()
    match = _SHORT_EU_RE.match(cleaned)
    if match:
        return f"EU{match.group(1)}"
    return cleaned


def normalize_server_code(value: Any) -> str | None:
    """
    Canonical upper-case server code.

    ``s5`` -> ``EU5``, ``eu5.sfgame.net`` -> ``EU5``, ``eu5_net`` -> ``EU5``;
    anything unrecognized is upper-cased as is.
    """

    text = "" if value is None else str(value).strip()
    if not text:
        return None
    lowered = text.lower()
    if _SERVER_CODE_RE.match(lowered):
        return _server_alias(lowered)
    for pattern in (_SERVER_SUFFIX_RE, _SERVER_HOST_RE):
        match = pattern.match(lowered)
        if match:
            return _server_alias(match.group(1))
    return _server_alias(text)


def resolve_class_id(value: Any) -> int | None:
    """Class id from a numeric id or a class name."""
    if is_blank(value):
        return None
    number = to_number_loose(value)
    if number is not None and int(number) in PLAYER_CLASS_NAMES:
        return int(number)
    return _CLASS_ID_BY_CANON.get(canon(value))


def class_group(class_id: int | None) -> str:
    if class_id is None:
        return GROUP_ALL
    if class_id in _STR_CLASSES:
        return GROUP_STR
    if class_id in _DEX_CLASSES:
        return GROUP_DEX
    return GROUP_INT


def derive_for_player(data: DerivedInput) -> DerivedValues:
    lookup = ColumnLookup(list(data.values.keys()))
    class_id = resolve_class_id(lookup.pick_any(data.values, CLASS_KEYS))

    total: float | None = None
    for key in BASE_ATTRIBUTE_KEYS:
        number = lookup.number_of(data.values, (key,))
        if number is None:
            continue
        total = (total or 0.0) + number

    server_code = normalize_server_code(data.server) or data.server.upper()
    return DerivedValues(
        group=class_group(class_id),
        server_key=server_code.lower(),
        sum=total,
    )


DERIVED_VALUE_HELPERS: dict[str, DerivedValueHelper] = {
    EntityKind.PLAYERS: derive_for_player,
}


def get_derived_helper(kind: str) -> DerivedValueHelper | None:
    return DERIVED_VALUE_HELPERS.get(kind)
