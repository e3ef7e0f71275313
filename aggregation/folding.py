"""
aggregation/folding.py

Per-column fold rules used to combine several scans into one rollup value.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Mapping

from app.config import FoldSettings
from app.mappers.column_lookup import canon, is_blank, to_number_loose

FOLD_MAX = "max"
FOLD_LAST = "last"


@dataclass(frozen=True)
class FoldRow:
    """
    One timestamped column map taking part in a fold.
    """

    timestamp_sec: int
    values: Mapping[str, Any]


class FoldClassifier:
    """
    Decides which columns keep their maximum instead of their latest value.

    The rule is a heuristic over canonical column names (attribute stats and
    anything mentioning equipment), so it is configuration, not schema.
    """

    def __init__(self, *, max_keys: Iterable[str], max_substrings: Iterable[str]) -> None:
        self._max_keys = frozenset(canon(key) for key in max_keys)
        self._max_substrings = tuple(canon(part) for part in max_substrings if canon(part))

    @classmethod
    def from_settings(cls, settings: FoldSettings) -> "FoldClassifier":
        return cls(max_keys=settings.max_keys, max_substrings=settings.max_substrings)

    def rule_for(self, column: str) -> str:
        key = canon(column)
        if key in self._max_keys or any(part in key for part in self._max_substrings):
            return FOLD_MAX
        return FOLD_LAST


def _fold_max(rows_ascending: Sequence[FoldRow], column: str) -> tuple[Any, int | None]:
    """Raw value of the row with the greatest number and its timestamp; ties keep the first."""
    best_number: float | None = None
    best: tuple[Any, int | None] = ("", None)
    for row in rows_ascending:
        raw = row.values.get(column)
        if is_blank(raw):
            continue
        number = to_number_loose(raw)
        if number is None:
            continue
        if best_number is None or number > best_number:
            best_number = number
            best = (raw, row.timestamp_sec)
    return best


def _fold_last(rows_ascending: Sequence[FoldRow], column: str) -> tuple[Any, int | None]:
    """Most recent non-empty value and its timestamp."""
    for row in reversed(rows_ascending):
        raw = row.values.get(column)
        if not is_blank(raw):
            return raw, row.timestamp_sec
    return "", None


def fold_columns_with_sources(
    rows: Sequence[FoldRow],
    headers: Sequence[str],
    classifier: FoldClassifier,
) -> tuple[dict[str, Any], dict[str, int]]:
    """
    Fold every header over ``rows`` and report the timestamp of the row
    each non-empty value was taken from.

    Rows are ordered by timestamp ascending first (stable, so equal
    timestamps keep their given order). The result depends only on the row
    set, never on earlier calls.
    """

    ordered = sorted(rows, key=lambda row: row.timestamp_sec)
    folded: dict[str, Any] = {}
    sources: dict[str, int] = {}
    for column in headers:
        if classifier.rule_for(column) == FOLD_MAX:
            value, source = _fold_max(ordered, column)
        else:
            value, source = _fold_last(ordered, column)
        folded[column] = value
        if source is not None:
            sources[column] = source
    return folded, sources


def fold_columns(
    rows: Sequence[FoldRow],
    headers: Sequence[str],
    classifier: FoldClassifier,
) -> dict[str, Any]:
    """Fold every header over ``rows``."""
    return fold_columns_with_sources(rows, headers, classifier)[0]
