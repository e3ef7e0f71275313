"""
app/schemas/scan_import.py

Request and response schemas for scan import endpoints.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ImportRowsRequest(BaseModel):
    """
    API request model for importing already-parsed rows.
    """

    rows: list[dict[str, Any]] = Field(default_factory=list)
    headers: list[str] | None = None


class SelectionImportRequest(BaseModel):
    """
    API request model for a combined players + guilds selection.
    """

    players_rows: list[dict[str, Any]] = Field(default_factory=list)
    guilds_rows: list[dict[str, Any]] = Field(default_factory=list)


class ImportResultItemResponse(BaseModel):
    key: str
    status: str
    message: str | None = None


class ImportCountsResponse(BaseModel):
    """
    Per-stage counters of one import.
    """

    skipped_missing_identifier: int = Field(..., ge=0)
    skipped_missing_guild_identifier: int = Field(..., ge=0)
    skipped_missing_server: int = Field(..., ge=0)
    skipped_bad_timestamp: int = Field(..., ge=0)
    scans_created: int = Field(..., ge=0)
    scans_duplicate: int = Field(..., ge=0)
    scans_error: int = Field(..., ge=0)
    latest_written: int = Field(..., ge=0)
    weekly_written: int = Field(..., ge=0)
    monthly_written: int = Field(..., ge=0)
    index_shards_written: int = Field(..., ge=0)
    snapshots_written: int = Field(..., ge=0)
    failed_operations: int = Field(..., ge=0)


class ImportReportResponse(BaseModel):
    """
    API response model for one import run.
    """

    detected_type: str | None = None
    counts: ImportCountsResponse
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    duration_ms: float = Field(..., ge=0)
    results: list[ImportResultItemResponse] = Field(default_factory=list)


class SelectionImportResponse(BaseModel):
    ok: bool
    players: ImportReportResponse | None = None
    guilds: ImportReportResponse | None = None
    guilds_selected: int = Field(..., ge=0)
    guilds_excluded: int = Field(..., ge=0)
    errors: list[str] = Field(default_factory=list)
