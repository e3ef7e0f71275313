"""
app/mappers/column_lookup.py

Canonical, case/whitespace-insensitive access to free-form scan columns.

Exports carry arbitrary headers ("Guild Identifier", "guild_identifier",
"GuildIdentifier" are the same column). Rows are never rewritten; instead a
``ColumnLookup`` resolves a canonical key to the first matching source
header and exposes a few typed accessors. Logical fields that appear under
several names keep an explicit, ordered alias list below.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Sequence
from typing import Any, Mapping

_CANON_STRIP_RE = re.compile(r"[\s_\u00a0]+")
_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")


def canon(name: Any) -> str:
    """Lowercase a column name and drop whitespace, underscores and NBSP."""
    return _CANON_STRIP_RE.sub("", str(name if name is not None else "").lower())


def is_blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def to_number_loose(value: Any) -> float | None:
    """
    Parse a number from a display string such as ``"1.234.567"`` or ``"Lv 312"``.

    Everything except digits, ``.`` and ``-`` is dropped before conversion.
    Returns ``None`` when nothing parseable remains. Never raises.
    """

    if value is None:
        return None
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    cleaned = _NON_NUMERIC_RE.sub("", str(value))
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Column aliases, in priority order
# ---------------------------------------------------------------------------

PLAYER_ID_KEYS: tuple[str, ...] = (canon("ID"), canon("Identifier"))
GUILD_ID_KEYS: tuple[str, ...] = (canon("Guild Identifier"),)
SERVER_KEYS: tuple[str, ...] = (canon("Server"),)
NAME_KEYS: tuple[str, ...] = (canon("Name"),)
TIMESTAMP_KEYS: tuple[str, ...] = (canon("Timestamp"),)
LEVEL_KEYS: tuple[str, ...] = (canon("Level"), canon("Lvl"), canon("Stufe"))
CLASS_KEYS: tuple[str, ...] = (
    canon("Class"),
    canon("ClassID"),
    canon("Class ID"),
    canon("CharClass"),
    canon("Klasse"),
)
GUILD_NAME_KEYS: tuple[str, ...] = (canon("Guild"),)
MEMBER_COUNT_KEYS: tuple[str, ...] = (canon("Guild Member Count"),)
HOF_RANK_KEYS: tuple[str, ...] = (
    canon("Hall of Fame Rank"),
    canon("HoF"),
    canon("Rank"),
    canon("Guild Rank"),
)
BASE_ATTRIBUTE_KEYS: tuple[str, ...] = (
    canon("Strength"),
    canon("Dexterity"),
    canon("Intelligence"),
    canon("Constitution"),
    canon("Luck"),
)


def infer_headers(rows: Iterable[Mapping[str, Any]]) -> list[str]:
    """Union of row keys in first-seen order."""
    seen: dict[str, None] = {}
    for row in rows:
        for key in row.keys():
            seen.setdefault(key, None)
    return list(seen)


class ColumnLookup:
    """
    Resolves canonical column keys against one export's headers.
    """

    def __init__(self, headers: Sequence[str]) -> None:
        self._headers = list(headers)
        self._by_canon: dict[str, str] = {}
        for header in self._headers:
            self._by_canon.setdefault(canon(header), header)

    @classmethod
    def from_rows(cls, rows: Sequence[Mapping[str, Any]]) -> "ColumnLookup":
        return cls(infer_headers(rows))

    @property
    def headers(self) -> list[str]:
        return list(self._headers)

    def header_for(self, key: str) -> str | None:
        return self._by_canon.get(key)

    def pick(self, row: Mapping[str, Any], key: str) -> Any:
        """
        Return the raw value for one canonical key, or ``None``.

        Rows that do not share the export's header set are scanned directly.
        """

        header = self._by_canon.get(key)
        if header is not None and header in row:
            return row[header]
        for column, value in row.items():
            if canon(column) == key:
                return value
        return None

    def pick_any(self, row: Mapping[str, Any], keys: Sequence[str]) -> Any:
        """Return the first non-empty value among ``keys``, in order."""
        for key in keys:
            value = self.pick(row, key)
            if not is_blank(value):
                return value
        return None

    def text_of(self, row: Mapping[str, Any], keys: Sequence[str]) -> str | None:
        value = self.pick_any(row, keys)
        return None if value is None else str(value).strip()

    def number_of(self, row: Mapping[str, Any], keys: Sequence[str]) -> float | None:
        return to_number_loose(self.pick_any(row, keys))
