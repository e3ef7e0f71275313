"""
app/mappers package marker.
"""

from app.mappers.column_lookup import ColumnLookup, canon, infer_headers, is_blank, to_number_loose

__all__ = [
    "ColumnLookup",
    "canon",
    "infer_headers",
    "is_blank",
    "to_number_loose",
]
