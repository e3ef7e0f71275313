"""
app/validators package marker.
"""

from app.validators.row_normalizer import NormalizedBatch, RowNormalizer, parse_timestamp

__all__ = [
    "NormalizedBatch",
    "RowNormalizer",
    "parse_timestamp",
]
