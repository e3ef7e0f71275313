"""
aggregation/period_aggregator.py

Weekly and monthly rollups of scan rows.

Rows of one entity are bucketed by ISO week and calendar month. Each bucket
folds its rows column by column (see ``aggregation.folding``). A stored
rollup can be passed back in as a seed. Every rollup records the scan
timestamp each value came from, and a seeded value re-enters the fold at
that timestamp, so a partial or late export never lowers a max-wins column
and a last-wins column always ends on its newest scan.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Any

from aggregation.folding import FoldClassifier, FoldRow, fold_columns_with_sources
from aggregation.periods import UTC, PeriodBounds, month_bounds, month_id, week_bounds, week_id
from app.domain.scan_import import EntityKey, ParsedScanRow
from app.mappers.column_lookup import is_blank

logger = logging.getLogger(__name__)

PERIOD_WEEKLY = "weekly"
PERIOD_MONTHLY = "monthly"


@dataclass
class PeriodBucket:
    """
    Rows of one entity that fall into one week or month.
    """

    entity: EntityKey
    period: str
    period_id: str
    bounds: PeriodBounds
    rows: list[ParsedScanRow] = field(default_factory=list)

    @property
    def path(self) -> str:
        if self.period == PERIOD_WEEKLY:
            return self.entity.weekly_path(self.period_id)
        return self.entity.monthly_path(self.period_id)


@dataclass(frozen=True)
class RollupDocument:
    path: str
    period: str
    period_id: str
    data: dict[str, Any]


def _as_timestamp(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def _seed_rows(seed: Mapping[str, Any], floor_sec: int) -> tuple[list[FoldRow], tuple[int, str] | None]:
    """
    Split a stored rollup back into fold rows, one per source timestamp.

    Each value re-enters the fold at the timestamp of the scan it came
    from (``value_timestamps``). Values without a recorded source sit at
    ``floor_sec`` so any scan in the bucket outranks them.
    """

    values = seed.get("values")
    if not isinstance(values, Mapping):
        return [], None
    stamps = seed.get("value_timestamps")
    if not isinstance(stamps, Mapping):
        stamps = {}

    grouped: dict[int, dict[str, Any]] = {}
    for column, raw in values.items():
        if is_blank(raw):
            continue
        source = _as_timestamp(stamps.get(column))
        grouped.setdefault(floor_sec if source is None else source, {})[column] = raw

    seeded_name = None
    name = seed.get("name")
    if not is_blank(name):
        name_ts = _as_timestamp(seed.get("name_timestamp_sec"))
        seeded_name = (floor_sec if name_ts is None else name_ts, str(name))

    rows = [FoldRow(timestamp_sec=ts, values=grouped[ts]) for ts in sorted(grouped)]
    return rows, seeded_name


class PeriodAggregator:
    """
    Builds rollup documents for one entity at a time.
    """

    def __init__(self, classifier: FoldClassifier, *, timezone: tzinfo = UTC) -> None:
        self._classifier = classifier
        self._timezone = timezone

    def plan(
        self,
        entity: EntityKey,
        rows: Sequence[ParsedScanRow],
        *,
        fresh_timestamps: Collection[int] | None = None,
    ) -> list[PeriodBucket]:
        """
        Bucket ``rows`` by week and month.

        With ``fresh_timestamps``, only buckets holding at least one of
        those timestamps are returned; the rest would fold to what is
        already stored.
        """

        buckets: dict[tuple[str, str], PeriodBucket] = {}
        for row in rows:
            ts = row.timestamp_sec
            for period, period_id, bounds in (
                (PERIOD_WEEKLY, week_id(ts, self._timezone), week_bounds(ts, self._timezone)),
                (PERIOD_MONTHLY, month_id(ts, self._timezone), month_bounds(ts, self._timezone)),
            ):
                bucket = buckets.get((period, period_id))
                if bucket is None:
                    bucket = PeriodBucket(entity=entity, period=period, period_id=period_id, bounds=bounds)
                    buckets[(period, period_id)] = bucket
                bucket.rows.append(row)

        planned = list(buckets.values())
        if fresh_timestamps is not None:
            fresh = set(fresh_timestamps)
            planned = [
                bucket for bucket in planned if any(row.timestamp_sec in fresh for row in bucket.rows)
            ]
        return planned

    def fold_bucket(
        self,
        bucket: PeriodBucket,
        headers: Sequence[str],
        *,
        seed: Mapping[str, Any] | None = None,
        now: datetime | None = None,
    ) -> RollupDocument:
        fold_rows = [FoldRow(timestamp_sec=row.timestamp_sec, values=row.raw) for row in bucket.rows]
        names: list[tuple[int, str]] = [
            (row.timestamp_sec, row.name) for row in bucket.rows if not is_blank(row.name)
        ]
        columns = list(headers)
        latest_ts = max(row.timestamp_sec for row in bucket.rows)
        latest_raw: Any = next(
            row.timestamp_raw for row in reversed(bucket.rows) if row.timestamp_sec == latest_ts
        )

        if seed:
            seed_rows, seed_name = _seed_rows(seed, bucket.bounds.start_sec)
            fold_rows[:0] = seed_rows
            if seed_name is not None:
                names.insert(0, seed_name)
            known = set(columns)
            for seed_row in seed_rows:
                for column in seed_row.values:
                    if column not in known:
                        known.add(column)
                        columns.append(column)
            seed_ts = _as_timestamp(seed.get("last_timestamp_sec"))
            if seed_ts is not None and seed_ts > latest_ts:
                latest_ts = seed_ts
                latest_raw = seed.get("last_timestamp_raw")

        names.sort(key=lambda item: item[0])
        values, sources = fold_columns_with_sources(fold_rows, columns, self._classifier)
        data = {
            "entity_id": bucket.entity.entity_id,
            "period_id": bucket.period_id,
            "period_start_sec": bucket.bounds.start_sec,
            "period_end_sec": bucket.bounds.end_sec,
            "last_timestamp_sec": latest_ts,
            "last_timestamp_raw": None if latest_raw is None else str(latest_raw),
            "server": bucket.entity.server,
            "name": names[-1][1] if names else None,
            "name_timestamp_sec": names[-1][0] if names else None,
            "values": values,
            "value_timestamps": sources,
            "updated_at": (now or datetime.now(timezone.utc)).isoformat(),
        }
        return RollupDocument(path=bucket.path, period=bucket.period, period_id=bucket.period_id, data=data)

    def build(
        self,
        entity: EntityKey,
        rows: Sequence[ParsedScanRow],
        headers: Sequence[str],
        *,
        seeds: Mapping[str, Mapping[str, Any] | None] | None = None,
        fresh_timestamps: Collection[int] | None = None,
        now: datetime | None = None,
    ) -> list[RollupDocument]:
        """
        Plan and fold every bucket; ``seeds`` maps rollup paths to stored docs.
        """

        seeds = seeds or {}
        documents = [
            self.fold_bucket(bucket, headers, seed=seeds.get(bucket.path), now=now)
            for bucket in self.plan(entity, rows, fresh_timestamps=fresh_timestamps)
        ]
        logger.debug(
            "Built rollups entity=%s rows=%d documents=%d",
            entity.document_id,
            len(rows),
            len(documents),
        )
        return documents
