"""
app/services package marker.
"""

from app.services.scan_import_service import (
    ImportSourceError,
    ScanImportError,
    ScanImportService,
    UnsupportedImportKindError,
    get_scan_import_service,
)

__all__ = [
    "ImportSourceError",
    "ScanImportError",
    "ScanImportService",
    "UnsupportedImportKindError",
    "get_scan_import_service",
]
