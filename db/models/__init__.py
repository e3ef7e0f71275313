"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.store_document import StoreDocument

__all__ = [
    "StoreDocument",
]
