"""
app/schemas package marker.
"""

from app.schemas.scan_import import (
    ImportCountsResponse,
    ImportReportResponse,
    ImportResultItemResponse,
    ImportRowsRequest,
    SelectionImportRequest,
    SelectionImportResponse,
)

__all__ = [
    "ImportCountsResponse",
    "ImportReportResponse",
    "ImportResultItemResponse",
    "ImportRowsRequest",
    "SelectionImportRequest",
    "SelectionImportResponse",
]
