"""
app/services/scan_import_service.py

Service layer for scan import orchestration.

One import runs these stages in order:

    1. store ping: hard failure when the store is unreachable
    2. RowNormalizer: key and timestamp resolution, skip counters
    3. ScanWriter: create-only scan documents
    4. per entity: freshness gate, derived fields, ranking inputs and
       period rollups
    5. latest and index merges, chunked through the batch executor
    6. server snapshots (bounded per-server top lists)
    7. rollup merges

A failure inside step 4 for one entity is logged at WARNING level and
recorded as a report warning; other entities continue. Failed write chunks
are recorded as report errors. Re-running an import is always safe: scans
are create-only and every other write is a convergent merge.
"""

from __future__ import annotations

import csv
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from functools import lru_cache
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from aggregation.derived_fields import build_latest_document
from aggregation.folding import FoldClassifier
from aggregation.period_aggregator import (
    PERIOD_MONTHLY,
    PERIOD_WEEKLY,
    PeriodAggregator,
    RollupDocument,
)
from app.config import (
    ScanImportSettings,
    get_fold_settings,
    get_scan_import_settings,
)
from app.domain.scan_import import (
    ALLOWED_KINDS,
    EntityKey,
    EntityKind,
    ImportPass,
    ImportProgress,
    ImportReport,
    ParsedScanRow,
    ProgressCallback,
    SelectionImportReport,
)
from app.failure_codes import OUTCOME_DUPLICATE, OUTCOME_ERROR
from app.logging_utils import log_event
from app.mappers.column_lookup import GUILD_ID_KEYS, MEMBER_COUNT_KEYS, TIMESTAMP_KEYS, ColumnLookup
from app.parsing.csv_text import read_csv_text
from app.services.batch_executor import BatchExecutor, build_batch_executor
from app.services.batch_scheduler import BatchRunSummary
from app.services.freshness_gate import FreshnessGate
from app.services.latest_cache import LatestTimestampCache
from app.services.scan_writer import ScanWriter
from app.validators.row_normalizer import RowNormalizer
from ranking.derived_values import DerivedInput, DerivedValues, get_derived_helper
from ranking.index_builder import RankingIndexBuilder
from ranking.server_snapshot import ServerSnapshotWriter, SnapshotEntry
from store import DocumentStore, WriteMode, WriteOp, build_document_store

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ScanImportError(Exception):
    """
    Base class for import failures raised to the caller.
    """


class UnsupportedImportKindError(ScanImportError, ValueError):
    """
    Raised when the import kind is neither players nor guilds.
    """


class ImportSourceError(ScanImportError, ValueError):
    """
    Raised when the import payload cannot be read as rows.
    """


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolve_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown import timezone '%s'; falling back to UTC.", name)
        return ZoneInfo("UTC")


def _newest_row(rows: Sequence[ParsedScanRow]) -> ParsedScanRow:
    # Later input rows win on equal timestamps.
    return sorted(rows, key=lambda row: row.timestamp_sec)[-1]


def _guild_id_of(lookup: ColumnLookup, row: Mapping[str, Any]) -> str:
    return lookup.text_of(row, GUILD_ID_KEYS) or ""


def _member_count_of(lookup: ColumnLookup, row: Mapping[str, Any]) -> float | None:
    text = lookup.text_of(row, MEMBER_COUNT_KEYS)
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def select_uploadable_guilds(
    players_rows: Sequence[Mapping[str, Any]],
    guilds_rows: Sequence[Mapping[str, Any]],
) -> set[str]:
    """
    Guild ids whose member count equals the number of player rows in the
    selection carrying that guild id. Guilds with no positive member count
    are never uploadable.
    """

    player_lookup = ColumnLookup.from_rows(players_rows)
    players_per_guild: dict[str, int] = {}
    for row in players_rows:
        guild_id = _guild_id_of(player_lookup, row)
        if guild_id:
            players_per_guild[guild_id] = players_per_guild.get(guild_id, 0) + 1

    guild_lookup = ColumnLookup.from_rows(guilds_rows)
    member_counts: dict[str, float] = {}
    for row in guilds_rows:
        guild_id = _guild_id_of(guild_lookup, row)
        member_count = _member_count_of(guild_lookup, row)
        if not guild_id or member_count is None or member_count <= 0:
            continue
        member_counts[guild_id] = member_count

    return {
        guild_id
        for guild_id, member_count in member_counts.items()
        if players_per_guild.get(guild_id, 0) == member_count
    }


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ScanImportService:
    """
    Coordinates normalization, scan persistence, projections and rollups.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        settings: ScanImportSettings | None = None,
        classifier: FoldClassifier | None = None,
        executor: BatchExecutor | None = None,
        cache: LatestTimestampCache | None = None,
        derived_helpers: Mapping[str, Callable[[DerivedInput], DerivedValues]] | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or get_scan_import_settings()
        self._timezone = _resolve_timezone(self._settings.timezone)
        self._normalizer = RowNormalizer(timezone=self._timezone)
        self._executor = executor or build_batch_executor(store, self._settings)
        self._scan_writer = ScanWriter(self._executor, batch_size=self._settings.batch_scans)
        if cache is None:
            cache = LatestTimestampCache(
                max_entries=self._settings.latest_cache_size,
                ttl_seconds=self._settings.latest_cache_ttl_seconds,
            )
        self._cache = cache
        self._gate = FreshnessGate(store, self._cache, timezone=self._timezone)
        self._aggregator = PeriodAggregator(
            classifier or FoldClassifier.from_settings(get_fold_settings()),
            timezone=self._timezone,
        )
        self._snapshot_writer = ServerSnapshotWriter(store, limit=self._settings.snapshot_limit)
        self._derived_helpers = derived_helpers

    @property
    def store(self) -> DocumentStore:
        return self._store

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def import_rows(
        self,
        kind: str,
        rows: Sequence[Mapping[str, Any]],
        *,
        headers: Sequence[str] | None = None,
        on_progress: ProgressCallback | None = None,
        should_continue: Callable[[], bool] | None = None,
    ) -> ImportReport:
        """
        Import already-parsed rows of one kind and return the run report.

        Raises UnsupportedImportKindError for unknown kinds and
        StoreUnavailableError when the store cannot be reached.
        """

        normalized_kind = (kind or "").strip().lower()
        if normalized_kind not in ALLOWED_KINDS:
            raise UnsupportedImportKindError(
                f"Unsupported import kind '{kind}'. Expected one of: {', '.join(sorted(ALLOWED_KINDS))}."
            )

        started = time.perf_counter()
        self._store.ping()

        progress = _with_kind(on_progress, normalized_kind)
        report = ImportReport(detected_type=normalized_kind)
        batch = self._normalizer.normalize(kind=normalized_kind, rows=rows, headers=headers)
        report.counts.add_skips(batch.skips)

        log_event(
            logger,
            logging.INFO,
            "scan_import_started",
            kind=normalized_kind,
            rows=len(rows),
            valid_rows=len(batch.rows),
            entities=len(batch.by_entity),
            skipped=batch.skips.total,
        )

        if not batch.rows:
            report.warnings.append("No importable rows found.")
            return self._finish(report, started)

        scan_summary = self._scan_writer.write(batch.rows, kind=normalized_kind, on_progress=progress)
        report.results = scan_summary.results
        report.counts.scans_created = scan_summary.created
        report.counts.scans_duplicate = scan_summary.duplicate
        report.counts.scans_error = scan_summary.error
        for item in scan_summary.results:
            if item.status == OUTCOME_ERROR:
                report.errors.append(f"scan {item.key}: {item.message}")

        fresh_by_entity: dict[EntityKey, set[int]] = {}
        for row, item in zip(batch.rows, scan_summary.results):
            if item.status != OUTCOME_DUPLICATE:
                fresh_by_entity.setdefault(row.key, set()).add(row.timestamp_sec)

        helper = self._derived_helper(normalized_kind)
        index_builder = RankingIndexBuilder(normalized_kind, timezone=self._timezone)
        latest_ops: list[WriteOp] = []
        latest_sources: list[tuple[ParsedScanRow, dict[str, Any], DerivedValues | None]] = []
        snapshot_entries: dict[str, list[SnapshotEntry]] = {}
        rollup_ops: list[WriteOp] = []
        rollup_periods: list[str] = []

        for entity, entity_rows in batch.by_entity.items():
            if should_continue is not None and not should_continue():
                report.warnings.append("Import cancelled before all entities were processed.")
                break

            newest = _newest_row(entity_rows)
            try:
                advanced = self._gate.should_advance(entity.latest_path, newest.timestamp_sec)
            except Exception as exc:  # noqa: BLE001
                advanced = False
                self._stage_warning(report, "freshness", entity, exc)

            if advanced:
                try:
                    derived = helper(DerivedInput.from_row(newest)) if helper is not None else None
                    document = build_latest_document(newest, derived=derived)
                    latest_ops.append(WriteOp(path=entity.latest_path, data=document, mode=WriteMode.MERGE))
                    latest_sources.append((newest, document, derived))
                except Exception as exc:  # noqa: BLE001
                    self._stage_warning(report, "derived", entity, exc)

            fresh = fresh_by_entity.get(entity)
            if not fresh:
                continue
            try:
                for rollup in self._build_rollups(entity, entity_rows, batch.headers, fresh):
                    rollup_ops.append(WriteOp(path=rollup.path, data=rollup.data, mode=WriteMode.MERGE))
                    rollup_periods.append(rollup.period)
            except Exception as exc:  # noqa: BLE001
                self._stage_warning(report, "rollup", entity, exc)

        # Latest projections, then the index shards and snapshots they feed.
        latest_summary = self._executor.merge_all(
            latest_ops,
            limit=self._settings.batch_latest,
            pass_name=ImportPass.LATEST,
            on_progress=progress,
            should_continue=should_continue,
        )
        self._record_pass(report, latest_summary)
        for index, op in enumerate(latest_ops):
            result = latest_summary.results[index] if index < len(latest_summary.results) else None
            newest, document, derived = latest_sources[index]
            if result is None or not result.ok:
                self._gate.forget(op.path)
                continue
            self._gate.remember(op.path, newest.timestamp_sec)
            report.counts.latest_written += 1
            if derived is not None:
                index_builder.add(newest.key.document_id, newest.timestamp_sec, derived)
                snapshot_entries.setdefault(derived.server_key, []).append(
                    _snapshot_entry(newest, document, derived)
                )

        index_summary = self._executor.merge_all(
            index_builder.write_ops(),
            limit=self._settings.batch_index,
            pass_name=ImportPass.INDEX,
            on_progress=progress,
            should_continue=should_continue,
        )
        self._record_pass(report, index_summary)
        report.counts.index_shards_written = index_summary.committed

        for server_key, entries in snapshot_entries.items():
            try:
                result = self._snapshot_writer.upsert(server_key, entries)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Server snapshot upsert failed server_key=%s error=%s", server_key, exc)
                report.warnings.append(f"snapshot {server_key}: {exc}")
                continue
            if result is not None and result.ok:
                report.counts.snapshots_written += 1
            elif result is not None:
                report.warnings.append(f"snapshot {server_key}: {result.message}")

        history_summary = self._executor.merge_all(
            rollup_ops,
            limit=self._settings.batch_history,
            pass_name=ImportPass.HISTORY,
            on_progress=progress,
            should_continue=should_continue,
        )
        self._record_pass(report, history_summary)
        for index, period in enumerate(rollup_periods):
            if index >= len(history_summary.results) or not history_summary.results[index].ok:
                continue
            if period == PERIOD_WEEKLY:
                report.counts.weekly_written += 1
            elif period == PERIOD_MONTHLY:
                report.counts.monthly_written += 1

        return self._finish(report, started)

    def import_csv_text(
        self,
        kind: str,
        text: str,
        *,
        on_progress: ProgressCallback | None = None,
        should_continue: Callable[[], bool] | None = None,
    ) -> ImportReport:
        """
        Parse raw CSV export text and import its rows.
        """

        if not text or not text.strip():
            raise ImportSourceError("CSV input is empty.")
        try:
            table = read_csv_text(text)
        except csv.Error as exc:
            raise ImportSourceError(f"CSV input could not be parsed: {exc}") from exc
        if not table.headers:
            raise ImportSourceError("CSV input has no header row.")

        return self.import_rows(
            kind,
            table.rows,
            headers=table.headers,
            on_progress=on_progress,
            should_continue=should_continue,
        )

    def import_selection(
        self,
        players_rows: Sequence[Mapping[str, Any]],
        guilds_rows: Sequence[Mapping[str, Any]],
        *,
        on_progress: ProgressCallback | None = None,
        should_continue: Callable[[], bool] | None = None,
    ) -> SelectionImportReport:
        """
        Import a players + guilds selection.

        Guilds are imported first and only when the selection holds exactly
        their member count of player rows; players are always imported. A
        failure of one kind does not stop the other.
        """

        self._store.ping()
        uploadable = select_uploadable_guilds(players_rows, guilds_rows)
        guild_lookup = ColumnLookup.from_rows(guilds_rows)
        selected_guild_rows = [
            row for row in guilds_rows if _guild_id_of(guild_lookup, row) in uploadable
        ]
        selection = SelectionImportReport(
            guilds_selected=len(selected_guild_rows),
            guilds_excluded=len(guilds_rows) - len(selected_guild_rows),
        )

        if selected_guild_rows:
            try:
                selection.guilds = self.import_rows(
                    EntityKind.GUILDS,
                    selected_guild_rows,
                    on_progress=on_progress,
                    should_continue=should_continue,
                )
            except ScanImportError as exc:
                logger.error("Guild selection import failed error=%s", exc)
                selection.ok = False
                selection.errors.append(f"guilds: {exc}")

        try:
            selection.players = self.import_rows(
                EntityKind.PLAYERS,
                players_rows,
                on_progress=on_progress,
                should_continue=should_continue,
            )
        except ScanImportError as exc:
            logger.error("Player selection import failed error=%s", exc)
            selection.ok = False
            selection.errors.append(f"players: {exc}")

        return selection

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _derived_helper(self, kind: str) -> Callable[[DerivedInput], DerivedValues] | None:
        if self._derived_helpers is not None:
            return self._derived_helpers.get(kind)
        return get_derived_helper(kind)

    def _build_rollups(
        self,
        entity: EntityKey,
        rows: Sequence[ParsedScanRow],
        headers: Sequence[str],
        fresh: set[int],
    ) -> list[RollupDocument]:
        buckets = self._aggregator.plan(entity, rows, fresh_timestamps=fresh)
        rollups = []
        for bucket in buckets:
            seed = self._store.get(bucket.path) if self._settings.seed_rollups else None
            rollups.append(self._aggregator.fold_bucket(bucket, headers, seed=seed))
        return rollups

    @staticmethod
    def _stage_warning(report: ImportReport, stage: str, entity: EntityKey, exc: Exception) -> None:
        logger.warning(
            "Import stage failed stage=%s entity=%s error=%s",
            stage,
            entity.document_id,
            exc,
        )
        report.warnings.append(f"{stage} {entity.kind}/{entity.document_id}: {exc}")

    @staticmethod
    def _record_pass(report: ImportReport, summary: BatchRunSummary) -> None:
        for chunk in summary.failed_chunks:
            report.errors.append(chunk.message)
        report.counts.failed_operations += summary.failed_operations
        if summary.cancelled:
            report.warnings.append(f"{summary.pass_name} pass cancelled.")

    @staticmethod
    def _finish(report: ImportReport, started: float) -> ImportReport:
        report.duration_ms = round((time.perf_counter() - started) * 1000.0, 3)
        log_event(
            logger,
            logging.INFO,
            "scan_import_finished",
            kind=report.detected_type,
            duration_ms=report.duration_ms,
            errors=len(report.errors),
            warnings=len(report.warnings),
            **report.counts.as_dict(),
        )
        return report


def _with_kind(callback: ProgressCallback | None, kind: str) -> ProgressCallback | None:
    if callback is None:
        return None

    def _forward(event: ImportProgress) -> None:
        if event.kind == kind:
            callback(event)
            return
        callback(
            ImportProgress(
                phase=event.phase,
                current=event.current,
                total=event.total,
                pass_name=event.pass_name,
                created=event.created,
                duplicate=event.duplicate,
                error=event.error,
                kind=kind,
            )
        )

    return _forward


def _snapshot_entry(row: ParsedScanRow, document: Mapping[str, Any], derived: DerivedValues) -> SnapshotEntry:
    lookup = ColumnLookup(list(row.raw.keys()))
    last_scan = lookup.text_of(row.raw, TIMESTAMP_KEYS) or str(row.timestamp_sec)
    level = document.get("level")
    return SnapshotEntry(
        entity_id=row.key.entity_id,
        server=derived.server_key,
        name=row.name or "",
        class_name=str(document.get("class_name") or ""),
        guild=document.get("guild_name"),
        last_scan=last_scan,
        level=float(level) if level is not None else None,
        sum=derived.sum,
    )


@lru_cache(maxsize=1)
def get_scan_import_service() -> ScanImportService:
    """
    Return cached scan import service instance for dependency injection.
    """

    return ScanImportService(build_document_store())
