"""
app/api/routers/scan_import.py

Scan import HTTP endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, UploadFile, status

from app.api.dependencies import get_csv_upload
from app.domain.scan_import import ImportReport
from app.schemas.scan_import import (
    ImportCountsResponse,
    ImportReportResponse,
    ImportResultItemResponse,
    ImportRowsRequest,
    SelectionImportRequest,
    SelectionImportResponse,
)
from app.services.scan_import_service import (
    ImportSourceError,
    ScanImportService,
    UnsupportedImportKindError,
    get_scan_import_service,
)
from store.base import StoreUnavailableError

router = APIRouter(prefix="/imports", tags=["imports"])


def _to_response(report: ImportReport) -> ImportReportResponse:
    return ImportReportResponse(
        detected_type=report.detected_type,
        counts=ImportCountsResponse(**report.counts.as_dict()),
        errors=list(report.errors),
        warnings=list(report.warnings),
        duration_ms=report.duration_ms,
        results=[
            ImportResultItemResponse(key=item.key, status=item.status, message=item.message)
            for item in report.results
        ],
    )


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, StoreUnavailableError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Document store unavailable.",
        )
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=str(exc),
    )


@router.post("/selection", response_model=SelectionImportResponse)
def import_selection(
    payload: SelectionImportRequest,
    import_service: ScanImportService = Depends(get_scan_import_service),
) -> SelectionImportResponse:
    """
    Import a players + guilds selection; guilds only when complete.
    """

    try:
        selection = import_service.import_selection(payload.players_rows, payload.guilds_rows)
    except StoreUnavailableError as exc:
        raise _http_error(exc) from exc

    return SelectionImportResponse(
        ok=selection.ok,
        players=_to_response(selection.players) if selection.players is not None else None,
        guilds=_to_response(selection.guilds) if selection.guilds is not None else None,
        guilds_selected=selection.guilds_selected,
        guilds_excluded=selection.guilds_excluded,
        errors=list(selection.errors),
    )


@router.post("/{kind}/csv", response_model=ImportReportResponse)
def import_csv(
    kind: str,
    file: UploadFile = Depends(get_csv_upload),
    import_service: ScanImportService = Depends(get_scan_import_service),
) -> ImportReportResponse:
    """
    Import one exported CSV file of players or guilds.
    """

    try:
        raw = file.file.read()
        try:
            text = raw.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="CSV file must be UTF-8 encoded.",
            ) from exc
        report = import_service.import_csv_text(kind, text)
    except (UnsupportedImportKindError, ImportSourceError, StoreUnavailableError) as exc:
        raise _http_error(exc) from exc
    finally:
        file.file.close()

    return _to_response(report)


@router.post("/{kind}/rows", response_model=ImportReportResponse)
def import_rows(
    kind: str,
    payload: ImportRowsRequest,
    import_service: ScanImportService = Depends(get_scan_import_service),
) -> ImportReportResponse:
    """
    Import already-parsed rows of players or guilds.
    """

    try:
        report = import_service.import_rows(kind, payload.rows, headers=payload.headers)
    except (UnsupportedImportKindError, StoreUnavailableError) as exc:
        raise _http_error(exc) from exc

    return _to_response(report)
