"""
app/domain/scan_import.py

Domain models used by the scan import pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from app.failure_codes import (
    SKIP_BAD_TIMESTAMP,
    SKIP_MISSING_GUILD_IDENTIFIER,
    SKIP_MISSING_IDENTIFIER,
    SKIP_MISSING_SERVER,
)

Row = Mapping[str, Any]


class EntityKind:
    PLAYERS = "players"
    GUILDS = "guilds"


ALLOWED_KINDS = {EntityKind.PLAYERS, EntityKind.GUILDS}


class ImportPass:
    SCANS = "scans"
    LATEST = "latest"
    INDEX = "index"
    HISTORY = "history"


class ProgressPhase:
    PREPARE = "prepare"
    WRITE = "write"
    DONE = "done"


@dataclass(frozen=True, order=True)
class EntityKey:
    """
    Logical identity of one player or guild on one server.
    """

    kind: str
    entity_id: str
    server: str

    @property
    def document_id(self) -> str:
        return f"{self.server}__{self.entity_id}"

    @property
    def root_path(self) -> str:
        return f"{self.kind}/{self.document_id}"

    @property
    def latest_path(self) -> str:
        return f"{self.root_path}/latest/latest"

    def scan_path(self, timestamp_sec: int) -> str:
        return f"{self.root_path}/scans/{timestamp_sec}"

    def weekly_path(self, week_id: str) -> str:
        return f"{self.root_path}/history_weekly/{week_id}"

    def monthly_path(self, month_id: str) -> str:
        return f"{self.root_path}/history_monthly/{month_id}"

    def result_key(self, timestamp_sec: int) -> str:
        return f"{self.entity_id}__{self.server}__{timestamp_sec}"


@dataclass(frozen=True)
class ParsedScanRow:
    """
    One row that passed key and timestamp resolution.
    """

    key: EntityKey
    timestamp_sec: int
    timestamp_raw: Any
    name: str | None
    raw: Row


@dataclass(frozen=True)
class ImportResultItem:
    """
    Per-row outcome of the scan writer, reported back to the caller.
    """

    key: str
    status: str
    message: str | None = None


@dataclass(frozen=True)
class ImportProgress:
    """
    Progress event emitted by the writers and the batch scheduler.
    """

    phase: str
    current: int
    total: int
    pass_name: str
    created: int | None = None
    duplicate: int | None = None
    error: int | None = None
    kind: str | None = None


ProgressCallback = Callable[[ImportProgress], None]


@dataclass
class SkipCounters:
    """
    Rows excluded by the row normalizer, per reason.
    """

    missing_identifier: int = 0
    missing_guild_identifier: int = 0
    missing_server: int = 0
    bad_timestamp: int = 0

    def increment(self, reason: str) -> None:
        if reason == SKIP_MISSING_IDENTIFIER:
            self.missing_identifier += 1
        elif reason == SKIP_MISSING_GUILD_IDENTIFIER:
            self.missing_guild_identifier += 1
        elif reason == SKIP_MISSING_SERVER:
            self.missing_server += 1
        elif reason == SKIP_BAD_TIMESTAMP:
            self.bad_timestamp += 1
        else:
            raise ValueError(f"Unknown skip reason '{reason}'.")

    @property
    def total(self) -> int:
        return (
            self.missing_identifier
            + self.missing_guild_identifier
            + self.missing_server
            + self.bad_timestamp
        )


@dataclass
class ImportCounts:
    """
    Per-stage counters collected over one import.
    """

    skipped_missing_identifier: int = 0
    skipped_missing_guild_identifier: int = 0
    skipped_missing_server: int = 0
    skipped_bad_timestamp: int = 0
    scans_created: int = 0
    scans_duplicate: int = 0
    scans_error: int = 0
    latest_written: int = 0
    weekly_written: int = 0
    monthly_written: int = 0
    index_shards_written: int = 0
    snapshots_written: int = 0
    failed_operations: int = 0

    def add_skips(self, skips: SkipCounters) -> None:
        self.skipped_missing_identifier += skips.missing_identifier
        self.skipped_missing_guild_identifier += skips.missing_guild_identifier
        self.skipped_missing_server += skips.missing_server
        self.skipped_bad_timestamp += skips.bad_timestamp

    def as_dict(self) -> dict[str, int]:
        return dict(vars(self))


@dataclass
class ImportReport:
    """
    End-of-run import report.
    """

    detected_type: str | None
    counts: ImportCounts = field(default_factory=ImportCounts)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    duration_ms: float = 0.0
    results: list[ImportResultItem] = field(default_factory=list)


@dataclass
class SelectionImportReport:
    """
    Combined outcome of a players + guilds selection import.

    ``ok`` is false when either kind failed as a whole; the other kind's
    report is still returned.
    """

    ok: bool = True
    players: ImportReport | None = None
    guilds: ImportReport | None = None
    guilds_selected: int = 0
    guilds_excluded: int = 0
    errors: list[str] = field(default_factory=list)
