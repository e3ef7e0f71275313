"""
app/domain package marker.
"""

from app.domain.scan_import import (
    ALLOWED_KINDS,
    EntityKey,
    EntityKind,
    ImportCounts,
    ImportPass,
    ImportProgress,
    ImportReport,
    ImportResultItem,
    ParsedScanRow,
    ProgressCallback,
    ProgressPhase,
    SelectionImportReport,
    SkipCounters,
)

__all__ = [
    "ALLOWED_KINDS",
    "EntityKey",
    "EntityKind",
    "ImportCounts",
    "ImportPass",
    "ImportProgress",
    "ImportReport",
    "ImportResultItem",
    "ParsedScanRow",
    "ProgressCallback",
    "ProgressPhase",
    "SelectionImportReport",
    "SkipCounters",
]
