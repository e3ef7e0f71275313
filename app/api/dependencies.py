"""
app/api/dependencies.py

Shared FastAPI dependencies for request validation.
"""

from __future__ import annotations

from fastapi import File, HTTPException, UploadFile, status

# Exports are comma, semicolon, tab or pipe separated; the delimiter is
# sniffed from the header line, so plain-text uploads are accepted too.
EXPORT_CONTENT_TYPES = {
    "text/csv",
    "application/csv",
    "application/vnd.ms-excel",
    "text/tab-separated-values",
    "text/plain",
}
EXPORT_EXTENSIONS = (".csv", ".tsv", ".txt")


def get_csv_upload(file: UploadFile = File(...)) -> UploadFile:
    """
    Validate that the uploaded file is a delimited text export by extension
    or MIME type.
    """

    filename = (file.filename or "").strip().lower()
    content_type = (file.content_type or "").split(";", 1)[0].strip().lower()

    if not filename.endswith(EXPORT_EXTENSIONS) and content_type not in EXPORT_CONTENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only CSV exports (.csv, .tsv, .txt) are allowed.",
        )

    return file
